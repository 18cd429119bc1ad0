"""Tests for the failed-login lockout guard."""

from concurrent.futures import ThreadPoolExecutor
from unittest.mock import Mock

import pytest

from vaultguard.adapters.store.base import LoginAttemptRow
from vaultguard.adapters.store.sql import SqlCounterStore
from vaultguard.services.login_guard import LoginAttemptGuard


@pytest.fixture
def guard(store, clock) -> LoginAttemptGuard:
    return LoginAttemptGuard(store, max_attempts=5, lockout_seconds=120, clock=clock)


def test_unknown_identifier_has_full_budget(guard) -> None:
    result = guard.check_attempt("1.2.3.4")

    assert result.allowed is True
    assert result.remaining_attempts == 5
    assert result.retry_after_seconds is None


@pytest.mark.parametrize("failures", [1, 2, 3, 4])
def test_remaining_attempts_after_failures(guard, failures: int) -> None:
    for _ in range(failures):
        guard.record_failure("1.2.3.4")

    result = guard.check_attempt("1.2.3.4")
    assert result.allowed is True
    assert result.remaining_attempts == 5 - failures


def test_fifth_failure_locks(guard) -> None:
    results = [guard.record_failure("1.2.3.4") for _ in range(5)]

    assert [r.locked for r in results] == [False, False, False, False, True]
    assert results[0].retry_after_seconds is None
    assert results[4].retry_after_seconds == 120


def test_locked_check_reports_retry_after(guard, clock: Mock) -> None:
    for _ in range(5):
        guard.record_failure("1.2.3.4")

    clock.return_value += 30.5
    result = guard.check_attempt("1.2.3.4")

    assert result.allowed is False
    assert result.remaining_attempts == 0
    assert result.retry_after_seconds == 90


def test_locked_check_immediately_after_lock(guard) -> None:
    for _ in range(5):
        guard.record_failure("1.2.3.4")

    result = guard.check_attempt("1.2.3.4")

    assert result.allowed is False
    assert 0 < result.retry_after_seconds <= 120


def test_expired_lock_resets_on_check(guard, store, clock: Mock) -> None:
    for _ in range(5):
        guard.record_failure("1.2.3.4")

    clock.return_value += 120
    result = guard.check_attempt("1.2.3.4")

    assert result.allowed is True
    assert result.remaining_attempts == 5
    assert store.get_login_attempt("1.2.3.4") is None


def test_expired_lock_resets_on_record(guard, clock: Mock) -> None:
    for _ in range(5):
        guard.record_failure("1.2.3.4")

    clock.return_value += 121
    result = guard.record_failure("1.2.3.4")

    assert result.locked is False
    assert guard.check_attempt("1.2.3.4").remaining_attempts == 4


def test_clear_restores_full_budget(guard) -> None:
    for _ in range(5):
        guard.record_failure("1.2.3.4")

    guard.clear("1.2.3.4")

    result = guard.check_attempt("1.2.3.4")
    assert result.allowed is True
    assert result.remaining_attempts == 5


def test_clear_without_record(guard) -> None:
    guard.clear("1.2.3.4")

    assert guard.check_attempt("1.2.3.4").remaining_attempts == 5


def test_identifiers_are_isolated(guard) -> None:
    for _ in range(5):
        guard.record_failure("1.2.3.4")

    assert guard.check_attempt("5.6.7.8").allowed is True


def test_blank_identifier_uses_sentinel(guard) -> None:
    guard.record_failure("   ")

    assert guard.check_attempt("unknown").remaining_attempts == 4
    assert guard.check_attempt("").remaining_attempts == 4


def test_identifier_is_trimmed(guard) -> None:
    guard.record_failure(" 1.2.3.4 ")

    assert guard.check_attempt("1.2.3.4").remaining_attempts == 4


def test_store_errors_propagate(clock: Mock) -> None:
    store = Mock()
    store.get_login_attempt.side_effect = RuntimeError("boom")
    guard = LoginAttemptGuard(store, clock=clock)

    with pytest.raises(RuntimeError):
        guard.check_attempt("1.2.3.4")


def test_defaults_from_settings(store) -> None:
    guard = LoginAttemptGuard(store)

    assert guard.max_attempts == 5
    assert guard.lockout_seconds == 120


@pytest.mark.parametrize(
    "kwargs",
    [
        {"max_attempts": 0},
        {"lockout_seconds": 0},
    ],
)
def test_invalid_constructor_args(store, kwargs: dict) -> None:
    with pytest.raises(ValueError):
        LoginAttemptGuard(store, **kwargs)


def test_expired_lock_replaced_concurrently_reports_fresh_record(clock: Mock) -> None:
    now_ms = int(clock() * 1000)
    store = Mock()
    store.get_login_attempt.side_effect = [
        LoginAttemptRow(ip="1.2.3.4", attempts=5, locked_until=now_ms - 1, updated_at=now_ms - 1),
        LoginAttemptRow(ip="1.2.3.4", attempts=1, locked_until=None, updated_at=now_ms),
    ]
    store.delete_expired_login_attempt.return_value = False
    guard = LoginAttemptGuard(store, max_attempts=5, lockout_seconds=120, clock=clock)

    result = guard.check_attempt("1.2.3.4")

    assert result.allowed is True
    assert result.remaining_attempts == 4
    store.delete_expired_login_attempt.assert_called_once_with("1.2.3.4", now_ms)


def test_expired_lock_relocked_concurrently_is_denied(clock: Mock) -> None:
    now_ms = int(clock() * 1000)
    store = Mock()
    store.get_login_attempt.side_effect = [
        LoginAttemptRow(ip="1.2.3.4", attempts=5, locked_until=now_ms, updated_at=now_ms - 1),
        LoginAttemptRow(ip="1.2.3.4", attempts=5, locked_until=now_ms + 120_000, updated_at=now_ms),
    ]
    store.delete_expired_login_attempt.return_value = False
    guard = LoginAttemptGuard(store, max_attempts=5, lockout_seconds=120, clock=clock)

    result = guard.check_attempt("1.2.3.4")

    assert result.allowed is False
    assert result.retry_after_seconds == 120


@pytest.mark.parametrize("concurrent_calls", [10, 40])
def test_concurrent_failures_are_counted_exactly(engine, clock: Mock, concurrent_calls: int) -> None:
    seed_store = SqlCounterStore(engine)
    seed_store.ensure_schema()

    def fail_from_cold_context(_: int) -> bool:
        guard = LoginAttemptGuard(
            SqlCounterStore(engine), max_attempts=1000, lockout_seconds=120, clock=clock
        )
        return guard.record_failure("1.2.3.4").locked

    with ThreadPoolExecutor(max_workers=8) as pool:
        outcomes = list(pool.map(fail_from_cold_context, range(concurrent_calls)))

    assert not any(outcomes)
    assert seed_store.get_login_attempt("1.2.3.4").attempts == concurrent_calls


def test_concurrent_failures_trigger_lockout(engine, clock: Mock) -> None:
    seed_store = SqlCounterStore(engine)
    seed_store.ensure_schema()

    def fail_from_cold_context(_: int) -> bool:
        guard = LoginAttemptGuard(
            SqlCounterStore(engine), max_attempts=5, lockout_seconds=120, clock=clock
        )
        return guard.record_failure("1.2.3.4").locked

    with ThreadPoolExecutor(max_workers=8) as pool:
        outcomes = list(pool.map(fail_from_cold_context, range(12)))

    assert outcomes.count(True) >= 1
    assert seed_store.get_login_attempt("1.2.3.4").attempts == 12

    guard = LoginAttemptGuard(seed_store, max_attempts=5, lockout_seconds=120, clock=clock)
    result = guard.check_attempt("1.2.3.4")
    assert result.allowed is False
    assert result.retry_after_seconds == 120
