"""Context manager for ad-hoc database sessions outside request scope."""

from __future__ import annotations

from contextlib import contextmanager
from typing import Generator

from sqlalchemy.orm import Session

from app.db import db_manager


@contextmanager
def db_session() -> Generator[Session, None, None]:
    """Yield a session that commits on success and rolls back on error."""
    with db_manager.db_session() as db:
        yield db
