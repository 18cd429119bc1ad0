"""Factory for creating the durable counter store."""

from __future__ import annotations

import math
from typing import Any

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine, make_url

from vaultguard.adapters.store.base import AbstractCounterStore
from vaultguard.adapters.store.sql import SqlCounterStore
from vaultguard.core.config import StoreSettings, settings
from vaultguard.core.errors import ValidationAppError


def create_store_engine(store_settings: StoreSettings | None = None) -> Engine:
    """Build a SQLAlchemy engine for the counter store.

    The configured timeout is passed to the driver so a hung store surfaces as
    an error instead of blocking the request indefinitely.

    Args:
        store_settings: Optional store settings; defaults to global settings.

    Returns:
        Engine: Configured engine.

    Raises:
        ValidationAppError: If the URL targets an unsupported backend.
    """
    cfg = store_settings or settings.store
    url = make_url(cfg.database_url)
    backend = url.get_backend_name()

    connect_args: dict[str, Any] = {}
    if backend == "sqlite":
        # Busy timeout: concurrent writers wait for the file lock
        connect_args["timeout"] = cfg.timeout_seconds
        connect_args["check_same_thread"] = False
    elif backend == "postgresql":
        connect_args["connect_timeout"] = max(1, math.ceil(cfg.timeout_seconds))
    else:
        raise ValidationAppError(
            code="store_unsupported_dialect",
            message=f"Unsupported counter store backend: '{backend}'. Supported: sqlite, postgresql",
            details={"dialect": backend},
        )

    return create_engine(
        url,
        echo=cfg.echo,
        connect_args=connect_args,
        pool_pre_ping=True,
    )


def create_counter_store(store_settings: StoreSettings | None = None) -> AbstractCounterStore:
    """Factory function returning the configured counter store.

    Returns:
        AbstractCounterStore: Store bound to a fresh engine.
    """
    return SqlCounterStore(create_store_engine(store_settings))
