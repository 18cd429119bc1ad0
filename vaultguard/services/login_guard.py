"""Failed-login lockout guard.

Per-identifier state machine with two states:
- OPEN: no record, or a record without an active lock.
- LOCKED: a record whose ``locked_until`` is still in the future.

Locks expire lazily: there is no sweeper, an expired lock is detected and
cleared by the next ``check_attempt`` or ``record_failure`` for the same
identifier. Rows that are never touched again stay in the store until the
compaction job removes them.
"""

from __future__ import annotations

import logging
import math
import time
from typing import Callable

from vaultguard.adapters.store.base import AbstractCounterStore
from vaultguard.core.config import settings
from vaultguard.core.logging import hash_identifier
from vaultguard.services.results import LoginCheckResult, LoginFailureResult

logger = logging.getLogger(__name__)


class LoginAttemptGuard:
    """Tracks failed logins per identifier and locks out repeat offenders.

    Args:
        store: Durable counter store.
        max_attempts: Failures that trigger a lockout.
        lockout_seconds: Lockout duration.
        sentinel: Key used when the identifier is blank.
        clock: Time source returning UNIX time in seconds.

    Raises:
        ValueError: If max_attempts or lockout_seconds are invalid.
    """

    def __init__(
        self,
        store: AbstractCounterStore,
        *,
        max_attempts: int | None = None,
        lockout_seconds: int | None = None,
        sentinel: str | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        max_attempts = settings.app.login_max_attempts if max_attempts is None else max_attempts
        lockout_seconds = settings.app.login_lockout_seconds if lockout_seconds is None else lockout_seconds
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if lockout_seconds < 1:
            raise ValueError("lockout_seconds must be >= 1")

        self._store = store
        self._max_attempts = max_attempts
        self._lockout_seconds = lockout_seconds
        self._sentinel = sentinel or settings.app.unknown_identifier
        self._clock = clock

    @property
    def max_attempts(self) -> int:
        return self._max_attempts

    @property
    def lockout_seconds(self) -> int:
        return self._lockout_seconds

    def _key(self, identifier: str) -> str:
        return identifier.strip() or self._sentinel

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    def check_attempt(self, identifier: str) -> LoginCheckResult:
        """Report whether the caller may attempt to authenticate.

        Args:
            identifier: Caller identifier.

        Returns:
            LoginCheckResult with the remaining budget or the lock's retry delay.

        Raises:
            StoreUnavailableError: If the store call fails.
        """
        self._store.ensure_schema()

        key = self._key(identifier)
        now_ms = self._now_ms()
        row = self._store.get_login_attempt(key)

        if row is not None and row.locked_until is not None and row.locked_until <= now_ms:
            if self._store.delete_expired_login_attempt(key, now_ms):
                logger.info(
                    "login_guard.lock_expired",
                    extra={"identifier_hash": hash_identifier(key)},
                )
                row = None
            else:
                # A concurrent write replaced the expired lock; report its state
                row = self._store.get_login_attempt(key)

        if row is None:
            return LoginCheckResult(allowed=True, remaining_attempts=self._max_attempts)

        if row.locked_until is not None and row.locked_until > now_ms:
            retry_after = math.ceil((row.locked_until - now_ms) / 1000)
            logger.info(
                "login_guard.denied",
                extra={
                    "identifier_hash": hash_identifier(key),
                    "retry_after_s": retry_after,
                },
            )
            return LoginCheckResult(
                allowed=False,
                remaining_attempts=0,
                retry_after_seconds=retry_after,
            )

        remaining = max(0, self._max_attempts - row.attempts)
        return LoginCheckResult(allowed=True, remaining_attempts=remaining)

    def record_failure(self, identifier: str) -> LoginFailureResult:
        """Count one failed login and lock the caller once the threshold is hit.

        Args:
            identifier: Caller identifier.

        Returns:
            LoginFailureResult; ``locked`` is True when this failure reached
            the threshold.

        Raises:
            StoreUnavailableError: If the store call fails.
        """
        self._store.ensure_schema()

        key = self._key(identifier)
        now_ms = self._now_ms()
        attempts = self._store.increment_login_attempts(key, now_ms)

        if attempts >= self._max_attempts:
            locked_until = now_ms + self._lockout_seconds * 1000
            self._store.lock_login(key, locked_until, now_ms)
            logger.warning(
                "login_guard.locked",
                extra={
                    "identifier_hash": hash_identifier(key),
                    "attempts": attempts,
                    "lockout_s": self._lockout_seconds,
                },
            )
            return LoginFailureResult(locked=True, retry_after_seconds=self._lockout_seconds)

        logger.info(
            "login_guard.failure_recorded",
            extra={
                "identifier_hash": hash_identifier(key),
                "attempts": attempts,
                "max_attempts": self._max_attempts,
            },
        )
        return LoginFailureResult(locked=False)

    def clear(self, identifier: str) -> None:
        """Forget all failures for the caller (successful authentication)."""
        self._store.ensure_schema()
        self._store.delete_login_attempt(self._key(identifier))
