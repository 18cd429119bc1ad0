"""Tests for the fixed-window write budget limiter."""

from concurrent.futures import ThreadPoolExecutor
from unittest.mock import Mock

import pytest
from sqlalchemy import select

from vaultguard.adapters.store.sql import SqlCounterStore, api_rate_limits
from vaultguard.services.write_budget import WriteBudgetLimiter

# Window boundary used by the shared clock fixture
FIXED_NOW = 1_000_000_020.0


@pytest.fixture
def limiter(store, clock) -> WriteBudgetLimiter:
    return WriteBudgetLimiter(store, limit=120, window_seconds=60, clock=clock)


def _stored_count(engine, identifier: str) -> int:
    with engine.connect() as conn:
        return conn.execute(
            select(api_rate_limits.c["count"]).where(api_rate_limits.c.identifier == identifier)
        ).scalar_one()


def test_accepts_exactly_limit_then_rejects(limiter, clock: Mock) -> None:
    clock.return_value = FIXED_NOW + 45

    accepted = [limiter.consume("1.2.3.4") for _ in range(120)]

    assert all(r.allowed for r in accepted)
    assert [r.remaining for r in accepted] == list(range(119, -1, -1))
    assert all(r.retry_after_seconds is None for r in accepted)

    rejected = limiter.consume("1.2.3.4")
    assert rejected.allowed is False
    assert rejected.remaining == 0
    assert rejected.retry_after_seconds == 15
    assert rejected.reset_at == int(FIXED_NOW) + 60


def test_new_window_restores_budget(store, clock: Mock) -> None:
    limiter = WriteBudgetLimiter(store, limit=2, window_seconds=60, clock=clock)

    assert limiter.consume("k").allowed is True
    assert limiter.consume("k").allowed is True
    assert limiter.consume("k").allowed is False

    clock.return_value = FIXED_NOW + 60
    result = limiter.consume("k")
    assert result.allowed is True
    assert result.remaining == 1


def test_boundary_burst_allows_two_windows(store, clock: Mock) -> None:
    limiter = WriteBudgetLimiter(store, limit=3, window_seconds=60, clock=clock)

    clock.return_value = FIXED_NOW + 59
    end_of_window = [limiter.consume("k").allowed for _ in range(3)]
    clock.return_value = FIXED_NOW + 60
    start_of_next = [limiter.consume("k").allowed for _ in range(3)]

    assert end_of_window == [True, True, True]
    assert start_of_next == [True, True, True]


def test_isolated_by_identifier(store, clock: Mock) -> None:
    limiter = WriteBudgetLimiter(store, limit=1, window_seconds=60, clock=clock)

    assert limiter.consume("k1").allowed is True
    assert limiter.consume("k1").allowed is False
    assert limiter.consume("k2").allowed is True


def test_rejected_requests_do_not_increment(store, engine, clock: Mock) -> None:
    limiter = WriteBudgetLimiter(store, limit=2, window_seconds=60, clock=clock)

    for _ in range(5):
        limiter.consume("k")

    assert _stored_count(engine, "k") == 2


@pytest.mark.parametrize(
    ("preloaded", "concurrent_calls"),
    [
        (0, 10),
        (5, 40),
        (20, 8),
    ],
)
def test_concurrent_consumers_never_overcount(
    engine, clock: Mock, preloaded: int, concurrent_calls: int
) -> None:
    limit = 20
    seed_store = SqlCounterStore(engine)
    seed_store.ensure_schema()
    seed = WriteBudgetLimiter(seed_store, limit=limit, window_seconds=60, clock=clock)
    for _ in range(preloaded):
        assert seed.consume("1.2.3.4").allowed is True

    def consume_from_cold_context(_: int) -> bool:
        # Fresh store per call: no shared in-process state besides the database
        limiter = WriteBudgetLimiter(
            SqlCounterStore(engine), limit=limit, window_seconds=60, clock=clock
        )
        return limiter.consume("1.2.3.4").allowed

    with ThreadPoolExecutor(max_workers=8) as pool:
        outcomes = list(pool.map(consume_from_cold_context, range(concurrent_calls)))

    expected_accepted = min(concurrent_calls, limit - preloaded)
    assert outcomes.count(True) == expected_accepted
    assert outcomes.count(False) == concurrent_calls - expected_accepted
    assert _stored_count(engine, "1.2.3.4") == min(limit, preloaded + concurrent_calls)


def test_blank_identifier_uses_sentinel(store, engine, clock: Mock) -> None:
    limiter = WriteBudgetLimiter(store, limit=5, window_seconds=60, clock=clock)

    limiter.consume("  ")

    assert _stored_count(engine, "unknown") == 1


def test_to_dict_shape(limiter) -> None:
    assert limiter.consume("k").to_dict() == {"allowed": True, "remaining": 119}


def test_defaults_from_settings(store) -> None:
    limiter = WriteBudgetLimiter(store)

    assert limiter.limit == 120
    assert limiter.window_seconds == 60


@pytest.mark.parametrize(
    "kwargs",
    [
        {"limit": 0, "window_seconds": 60},
        {"limit": 1, "window_seconds": 0},
    ],
)
def test_invalid_constructor_args(store, kwargs: dict) -> None:
    with pytest.raises(ValueError):
        WriteBudgetLimiter(store, **kwargs)
