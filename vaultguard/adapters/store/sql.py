"""SQLAlchemy-backed durable counter store.

Notes:
- Every counter transition is ONE statement in its own transaction. Nothing
  here reads a row and then writes it back.
- Conditional upserts use the dialect's native ``INSERT .. ON CONFLICT DO
  UPDATE .. WHERE .. RETURNING``. Supported dialects: SQLite (>= 3.35) and
  PostgreSQL.
- ``_schema_ready`` is a per-instance, per-process hint. ``ensure_schema``
  only ever issues ``CREATE .. IF NOT EXISTS``, so a cold instance against an
  existing database is fine.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Callable, Iterator

from sqlalchemy import (
    BigInteger,
    Column,
    Index,
    Integer,
    MetaData,
    Table,
    Text,
    and_,
    case,
    delete,
    null,
    or_,
    select,
    update,
)
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.schema import CreateIndex, CreateTable

from vaultguard.adapters.store.base import AbstractCounterStore, LoginAttemptRow
from vaultguard.core.errors import StoreUnavailableError, ValidationAppError
from vaultguard.core.logging import hash_identifier

logger = logging.getLogger(__name__)


metadata = MetaData()

login_attempts_ip = Table(
    "login_attempts_ip",
    metadata,
    Column("ip", Text, primary_key=True),
    Column("attempts", Integer, nullable=False),
    Column("locked_until", BigInteger, nullable=True),
    Column("updated_at", BigInteger, nullable=False),
)

api_rate_limits = Table(
    "api_rate_limits",
    metadata,
    Column("identifier", Text, primary_key=True),
    Column("window_start", BigInteger, primary_key=True),
    Column("count", Integer, nullable=False),
)

# Compaction scans by age
_INDEXES = (
    Index("ix_login_attempts_ip_updated_at", login_attempts_ip.c.updated_at),
    Index("ix_api_rate_limits_window_start", api_rate_limits.c.window_start),
)

_UPSERT_INSERTS: dict[str, Callable[[Table], Any]] = {
    "sqlite": sqlite.insert,
    "postgresql": postgresql.insert,
}


class SqlCounterStore(AbstractCounterStore):
    """Counter store over a SQLAlchemy engine.

    Args:
        engine: Engine for a dialect listed in ``_UPSERT_INSERTS``.

    Raises:
        ValidationAppError: If the engine dialect lacks conditional upsert.
    """

    def __init__(self, engine: Engine) -> None:
        dialect = engine.dialect.name
        if dialect not in _UPSERT_INSERTS:
            raise ValidationAppError(
                code="store_unsupported_dialect",
                message=f"Counter store does not support the '{dialect}' dialect",
                details={
                    "dialect": dialect,
                    "hint": "Use a SQLite or PostgreSQL STORE_DATABASE_URL",
                },
            )

        self._engine = engine
        self._insert = _UPSERT_INSERTS[dialect]
        self._schema_ready = False

    @property
    def engine(self) -> Engine:
        return self._engine

    @contextmanager
    def _transaction(self, operation: str) -> Iterator[Connection]:
        """Open a single-statement transaction and map driver failures."""

        try:
            with self._engine.begin() as conn:
                yield conn
        except SQLAlchemyError as exc:
            logger.error(
                "store.error",
                extra={
                    "operation": operation,
                    "error_type": type(exc).__name__,
                    "dialect": self._engine.dialect.name,
                },
            )
            raise StoreUnavailableError(
                code="store_unavailable",
                message="Counter store is unavailable",
                details={
                    "operation": operation,
                    "error_type": type(exc).__name__,
                },
            ) from exc

    def ensure_schema(self) -> None:
        if self._schema_ready:
            return

        for table in metadata.sorted_tables:
            with self._transaction("ensure_schema") as conn:
                conn.execute(CreateTable(table, if_not_exists=True))
        for index in _INDEXES:
            with self._transaction("ensure_schema") as conn:
                conn.execute(CreateIndex(index, if_not_exists=True))

        self._schema_ready = True
        logger.debug("store.schema_ready", extra={"dialect": self._engine.dialect.name})

    def get_login_attempt(self, ip: str) -> LoginAttemptRow | None:
        t = login_attempts_ip
        stmt = select(t.c.ip, t.c.attempts, t.c.locked_until, t.c.updated_at).where(t.c.ip == ip)
        with self._transaction("get_login_attempt") as conn:
            row = conn.execute(stmt).first()

        if row is None:
            return None
        return LoginAttemptRow(
            ip=row.ip,
            attempts=row.attempts or 0,
            locked_until=row.locked_until,
            updated_at=row.updated_at,
        )

    def increment_login_attempts(self, ip: str, now_ms: int) -> int:
        t = login_attempts_ip
        lock_expired = and_(t.c.locked_until.is_not(None), t.c.locked_until <= now_ms)

        stmt = self._insert(t).values(ip=ip, attempts=1, locked_until=None, updated_at=now_ms)
        stmt = stmt.on_conflict_do_update(
            index_elements=[t.c.ip],
            set_={
                "attempts": case((lock_expired, 1), else_=t.c.attempts + 1),
                "locked_until": case((lock_expired, null()), else_=t.c.locked_until),
                "updated_at": stmt.excluded.updated_at,
            },
        ).returning(t.c.attempts)

        with self._transaction("increment_login_attempts") as conn:
            attempts = conn.execute(stmt).scalar_one()

        logger.debug(
            "store.login_attempts_incremented",
            extra={"identifier_hash": hash_identifier(ip), "attempts": attempts},
        )
        return attempts

    def lock_login(self, ip: str, locked_until_ms: int, now_ms: int) -> None:
        t = login_attempts_ip
        stmt = (
            update(t)
            .where(t.c.ip == ip)
            .values(locked_until=locked_until_ms, updated_at=now_ms)
        )
        with self._transaction("lock_login") as conn:
            conn.execute(stmt)

    def delete_login_attempt(self, ip: str) -> None:
        t = login_attempts_ip
        with self._transaction("delete_login_attempt") as conn:
            conn.execute(delete(t).where(t.c.ip == ip))

    def delete_expired_login_attempt(self, ip: str, now_ms: int) -> bool:
        t = login_attempts_ip
        stmt = delete(t).where(
            t.c.ip == ip,
            t.c.locked_until.is_not(None),
            t.c.locked_until <= now_ms,
        )
        with self._transaction("delete_expired_login_attempt") as conn:
            return conn.execute(stmt).rowcount > 0

    def increment_window(self, identifier: str, window_start: int, limit: int) -> int | None:
        t = api_rate_limits
        stmt = self._insert(t).values(identifier=identifier, window_start=window_start, count=1)
        # A false WHERE on the conflict branch updates nothing and returns no row.
        stmt = stmt.on_conflict_do_update(
            index_elements=[t.c.identifier, t.c.window_start],
            set_={"count": t.c["count"] + 1},
            where=t.c["count"] < limit,
        ).returning(t.c["count"])

        with self._transaction("increment_window") as conn:
            return conn.execute(stmt).scalar_one_or_none()

    def purge_login_attempts(self, older_than_ms: int) -> int:
        t = login_attempts_ip
        stmt = delete(t).where(
            t.c.updated_at < older_than_ms,
            or_(t.c.locked_until.is_(None), t.c.locked_until < older_than_ms),
        )
        with self._transaction("purge_login_attempts") as conn:
            return conn.execute(stmt).rowcount

    def purge_windows(self, older_than: int) -> int:
        t = api_rate_limits
        with self._transaction("purge_windows") as conn:
            return conn.execute(delete(t).where(t.c.window_start < older_than)).rowcount
