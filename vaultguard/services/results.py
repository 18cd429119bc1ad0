"""Result types returned by the login guard and the write budget limiter.

``to_dict()`` renders the camelCase shape handlers put on the wire;
``retryAfterSeconds`` is omitted when not applicable.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class LoginCheckResult:
    """Outcome of a pre-authentication lockout check.

    Attributes:
        allowed: Whether credentials may be processed.
        remaining_attempts: Failures left before lockout (0 when locked).
        retry_after_seconds: Seconds until the lock expires, when locked.
    """

    allowed: bool
    remaining_attempts: int
    retry_after_seconds: int | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "allowed": self.allowed,
            "remainingAttempts": self.remaining_attempts,
        }
        if self.retry_after_seconds is not None:
            data["retryAfterSeconds"] = self.retry_after_seconds
        return data


@dataclass(frozen=True)
class LoginFailureResult:
    """Outcome of recording a failed login.

    Attributes:
        locked: Whether this failure triggered a lockout.
        retry_after_seconds: Full lockout duration, when locked.
    """

    locked: bool
    retry_after_seconds: int | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"locked": self.locked}
        if self.retry_after_seconds is not None:
            data["retryAfterSeconds"] = self.retry_after_seconds
        return data


@dataclass(frozen=True)
class WriteBudgetResult:
    """Outcome of consuming one unit of write budget.

    Attributes:
        allowed: Whether the write may proceed.
        remaining: Writes left in the current window (0 when blocked).
        limit: Max writes per window.
        reset_at: UNIX epoch seconds when the current window ends.
        retry_after_seconds: Seconds until the next window, when blocked.
    """

    allowed: bool
    remaining: int
    limit: int
    reset_at: int
    retry_after_seconds: int | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "allowed": self.allowed,
            "remaining": self.remaining,
        }
        if self.retry_after_seconds is not None:
            data["retryAfterSeconds"] = self.retry_after_seconds
        return data


@dataclass(frozen=True)
class CompactionResult:
    """Rows removed by a compaction run."""

    login_attempts_deleted: int
    windows_deleted: int
