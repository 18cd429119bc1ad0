"""Pytest configuration and fixtures shared across all test modules.

This file is automatically loaded by pytest before running any tests.
Environment defaults are set before any import that might build settings.
"""

import os

# CRITICAL: Set this before any imports that might load settings
os.environ["APP_ENV"] = "testing"
os.environ.setdefault("LOG_FORMAT", "plain")
os.environ.setdefault("LOG_LEVEL", "WARNING")

from pathlib import Path
from typing import Iterator
from unittest.mock import Mock

import pytest
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine

from vaultguard.adapters.store.sql import SqlCounterStore

# 2001-09-09T01:46:40Z; aligned to a 60 s window boundary
FIXED_NOW = 1_000_000_020.0


@pytest.fixture
def engine(tmp_path: Path) -> Iterator[Engine]:
    """SQLite file engine shared by every thread of a test."""
    db_engine = create_engine(
        f"sqlite:///{tmp_path / 'counters.db'}",
        connect_args={"timeout": 30, "check_same_thread": False},
    )
    yield db_engine
    db_engine.dispose()


@pytest.fixture
def store(engine: Engine) -> SqlCounterStore:
    return SqlCounterStore(engine)


@pytest.fixture
def clock() -> Mock:
    """Controllable time source (UNIX seconds)."""
    return Mock(return_value=FIXED_NOW)
