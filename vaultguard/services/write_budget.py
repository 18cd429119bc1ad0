"""Fixed-window write budget limiter backed by the durable counter store.

Windows are aligned to epoch boundaries (``now - now % window``). Because
windows are fixed rather than sliding, a caller can land up to ``2 x limit``
writes around a boundary.

Each ``consume`` is a single conditional upsert on the store, so concurrent
callers in separate processes can never push a window past its limit.
"""

from __future__ import annotations

import logging
import time
from typing import Callable

from vaultguard.adapters.store.base import AbstractCounterStore
from vaultguard.core.config import settings
from vaultguard.core.logging import hash_identifier
from vaultguard.services.results import WriteBudgetResult

logger = logging.getLogger(__name__)


class WriteBudgetLimiter:
    """Caps write requests per identifier per fixed window.

    Args:
        store: Durable counter store.
        limit: Maximum writes per window.
        window_seconds: Window size in seconds.
        sentinel: Key used when the identifier is blank.
        clock: Time source returning UNIX time in seconds.

    Raises:
        ValueError: If limit or window_seconds are invalid.
    """

    def __init__(
        self,
        store: AbstractCounterStore,
        *,
        limit: int | None = None,
        window_seconds: int | None = None,
        sentinel: str | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        limit = settings.app.write_limit_per_window if limit is None else limit
        window_seconds = settings.app.write_window_seconds if window_seconds is None else window_seconds
        if limit < 1:
            raise ValueError("limit must be >= 1")
        if window_seconds < 1:
            raise ValueError("window_seconds must be >= 1")

        self._store = store
        self._limit = limit
        self._window_seconds = window_seconds
        self._sentinel = sentinel or settings.app.unknown_identifier
        self._clock = clock

    @property
    def limit(self) -> int:
        return self._limit

    @property
    def window_seconds(self) -> int:
        return self._window_seconds

    def _get_window_bounds(self, now: int) -> tuple[int, int]:
        window_start = now - (now % self._window_seconds)
        return window_start, window_start + self._window_seconds

    def consume(self, identifier: str) -> WriteBudgetResult:
        """Consume one write from the caller's budget for the current window.

        Args:
            identifier: Caller identifier.

        Returns:
            WriteBudgetResult with allowance decision and metadata.

        Raises:
            StoreUnavailableError: If the store call fails.
        """
        self._store.ensure_schema()

        key = identifier.strip() or self._sentinel
        now = int(self._clock())
        window_start, reset_at = self._get_window_bounds(now)

        count = self._store.increment_window(key, window_start, self._limit)

        if count is None:
            retry_after = reset_at - now
            logger.warning(
                "write_budget.exceeded",
                extra={
                    "identifier_hash": hash_identifier(key),
                    "limit": self._limit,
                    "window_s": self._window_seconds,
                    "retry_after_s": retry_after,
                },
            )
            return WriteBudgetResult(
                allowed=False,
                remaining=0,
                limit=self._limit,
                reset_at=reset_at,
                retry_after_seconds=retry_after,
            )

        remaining = max(0, self._limit - count)
        logger.debug(
            "write_budget.allowed",
            extra={
                "identifier_hash": hash_identifier(key),
                "limit": self._limit,
                "remaining": remaining,
            },
        )
        return WriteBudgetResult(
            allowed=True,
            remaining=remaining,
            limit=self._limit,
            reset_at=reset_at,
        )
