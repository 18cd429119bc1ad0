"""Public entry point for the abuse-control subsystem.

Handlers resolve an identifier, then call ``check_login_attempt`` before
processing credentials or ``consume_api_write_budget`` before any write or
sync request. Both guards share one store.
"""

from __future__ import annotations

import threading
import time
from typing import Callable, Mapping

from vaultguard.adapters.store.base import AbstractCounterStore
from vaultguard.adapters.store.factory import create_counter_store
from vaultguard.core.config import AppSettings, settings
from vaultguard.core.identifier import resolve_identifier
from vaultguard.services.login_guard import LoginAttemptGuard
from vaultguard.services.results import LoginCheckResult, LoginFailureResult, WriteBudgetResult
from vaultguard.services.write_budget import WriteBudgetLimiter


class RateLimitService:
    """Facade over the login attempt guard and the write budget limiter."""

    def __init__(
        self,
        store: AbstractCounterStore,
        *,
        app_settings: AppSettings | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        cfg = app_settings or settings.app
        self._settings = cfg
        self._store = store
        self._login_guard = LoginAttemptGuard(
            store,
            max_attempts=cfg.login_max_attempts,
            lockout_seconds=cfg.login_lockout_seconds,
            sentinel=cfg.unknown_identifier,
            clock=clock,
        )
        self._write_budget = WriteBudgetLimiter(
            store,
            limit=cfg.write_limit_per_window,
            window_seconds=cfg.write_window_seconds,
            sentinel=cfg.unknown_identifier,
            clock=clock,
        )

    @property
    def store(self) -> AbstractCounterStore:
        return self._store

    def check_login_attempt(self, identifier: str) -> LoginCheckResult:
        return self._login_guard.check_attempt(identifier)

    def record_failed_login(self, identifier: str) -> LoginFailureResult:
        return self._login_guard.record_failure(identifier)

    def clear_login_attempts(self, identifier: str) -> None:
        self._login_guard.clear(identifier)

    def consume_api_write_budget(self, identifier: str) -> WriteBudgetResult:
        return self._write_budget.consume(identifier)

    def resolve_identifier(self, headers: Mapping[str, str]) -> str:
        return resolve_identifier(
            headers,
            trusted_ip_header=self._settings.trusted_ip_header,
            forwarded_for_header=self._settings.forwarded_for_header,
            sentinel=self._settings.unknown_identifier,
        )


_service: RateLimitService | None = None
_service_lock = threading.Lock()


def get_rate_limit_service() -> RateLimitService:
    """Return the process-wide service instance.

    The store engine (and its connection pool) is created once per process on
    first use.
    """

    global _service

    if _service is None:
        with _service_lock:
            if _service is None:
                _service = RateLimitService(create_counter_store())
    return _service


def reset_rate_limit_service() -> None:
    """Drop the cached instance so the next call rebuilds it from settings."""

    global _service

    with _service_lock:
        _service = None
