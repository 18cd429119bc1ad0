"""Out-of-band compaction of stale counter rows.

Neither guard deletes rows for windows that have ended or for lock records
that are never touched again. This job removes them once they are older than
a retention horizon. It runs outside the request path and does not change
what the guards report.
"""

from __future__ import annotations

import logging
import time
from typing import Callable

from vaultguard.adapters.store.base import AbstractCounterStore
from vaultguard.core.config import settings
from vaultguard.services.results import CompactionResult

logger = logging.getLogger(__name__)


def compact(
    store: AbstractCounterStore,
    *,
    retention_seconds: int | None = None,
    window_seconds: int | None = None,
    clock: Callable[[], float] = time.time,
) -> CompactionResult:
    """Delete counter rows untouched for longer than the retention horizon.

    Login records are only removed when their lock (if any) has expired.
    Window rows are removed once their window ended before the horizon.

    Args:
        store: Durable counter store.
        retention_seconds: Horizon in seconds; defaults to settings.
        window_seconds: Write window size; defaults to settings.
        clock: Time source returning UNIX time in seconds.

    Returns:
        CompactionResult with per-table deletion counts.

    Raises:
        ValueError: If retention_seconds is not positive.
        StoreUnavailableError: If a store call fails.
    """
    if retention_seconds is None:
        retention_seconds = settings.app.compaction_retention_seconds
    if window_seconds is None:
        window_seconds = settings.app.write_window_seconds
    if retention_seconds < 1:
        raise ValueError("retention_seconds must be >= 1")

    store.ensure_schema()

    now = int(clock())
    horizon = now - retention_seconds

    login_deleted = store.purge_login_attempts(horizon * 1000)
    windows_deleted = store.purge_windows(horizon - window_seconds)

    logger.info(
        "compaction.completed",
        extra={
            "retention_s": retention_seconds,
            "login_attempts_deleted": login_deleted,
            "windows_deleted": windows_deleted,
        },
    )
    return CompactionResult(
        login_attempts_deleted=login_deleted,
        windows_deleted=windows_deleted,
    )
