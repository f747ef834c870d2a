"""Dialect-aware INSERT constructs supporting ON CONFLICT."""

from __future__ import annotations

from typing import Any

from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session


def insert_for(db: Session, entity: Any):
    """
    Return an INSERT for ``entity`` that supports ``on_conflict_do_nothing``.

    PostgreSQL is the production target; SQLite is used by the test suite.
    """
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        return postgresql.insert(entity)
    if dialect == "sqlite":
        return sqlite.insert(entity)
    raise NotImplementedError(f"ON CONFLICT inserts are not supported on {dialect}")
