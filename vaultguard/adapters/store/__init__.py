"""Durable counter store adapters.

The guards depend only on ``AbstractCounterStore``. The SQL implementation
targets any SQLAlchemy dialect with native conditional upsert and RETURNING
(SQLite, PostgreSQL), so every counter transition is a single statement.
"""
