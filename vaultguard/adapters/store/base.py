"""Durable counter store interface.

The guards talk to the store through this abstraction only. Every method is a
single atomic statement on the store side; implementations must not group
calls into multi-statement transactions.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class LoginAttemptRow:
    """Persisted failed-login state for one identifier.

    Attributes:
        ip: Caller identifier (usually a client IP).
        attempts: Failures recorded since the record was created.
        locked_until: Lock expiry in epoch milliseconds, or None when unlocked.
        updated_at: Last write in epoch milliseconds.
    """

    ip: str
    attempts: int
    locked_until: int | None
    updated_at: int


class AbstractCounterStore(ABC):
    """Interface for the durable store backing lockouts and write budgets."""

    @abstractmethod
    def ensure_schema(self) -> None:
        """Create both counter tables if they are absent.

        Safe to call any number of times from any number of processes.
        """
        raise NotImplementedError

    @abstractmethod
    def get_login_attempt(self, ip: str) -> LoginAttemptRow | None:
        """Return the login attempt record for ``ip`` or None."""
        raise NotImplementedError

    @abstractmethod
    def increment_login_attempts(self, ip: str, now_ms: int) -> int:
        """Insert the record at attempts=1 or increment it, atomically.

        A record whose lock expired before ``now_ms`` restarts at 1 with the
        lock cleared.

        Returns:
            The attempts value after the write.
        """
        raise NotImplementedError

    @abstractmethod
    def lock_login(self, ip: str, locked_until_ms: int, now_ms: int) -> None:
        """Set the lock expiry on an existing record."""
        raise NotImplementedError

    @abstractmethod
    def delete_login_attempt(self, ip: str) -> None:
        """Delete the record unconditionally."""
        raise NotImplementedError

    @abstractmethod
    def delete_expired_login_attempt(self, ip: str, now_ms: int) -> bool:
        """Delete the record only while its lock has expired at ``now_ms``.

        Returns:
            True if a row was deleted.
        """
        raise NotImplementedError

    @abstractmethod
    def increment_window(self, identifier: str, window_start: int, limit: int) -> int | None:
        """Insert the window row at count=1 or increment it while below ``limit``.

        Args:
            identifier: Caller identifier.
            window_start: Window start in epoch seconds.
            limit: Maximum count allowed in the window.

        Returns:
            The count after the write, or None when the window is already full.
        """
        raise NotImplementedError

    @abstractmethod
    def purge_login_attempts(self, older_than_ms: int) -> int:
        """Delete unlocked or expired records last written before ``older_than_ms``.

        Returns:
            Number of rows deleted.
        """
        raise NotImplementedError

    @abstractmethod
    def purge_windows(self, older_than: int) -> int:
        """Delete window rows that started before ``older_than`` (epoch seconds).

        Returns:
            Number of rows deleted.
        """
        raise NotImplementedError
