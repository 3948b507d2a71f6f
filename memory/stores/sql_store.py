"""SQLAlchemy store wrapper (SQLite by default)."""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

from sqlalchemy import create_engine, event
from sqlalchemy.orm import Session, sessionmaker

from memory.schemas import Base, MemoryEventRecord


def _enable_sqlite_foreign_keys(dbapi_connection: Any, _record: Any) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


class SQLStore:
    """Provides SQLAlchemy session management for the memory tables.

    Every public core operation runs inside exactly one ``session()`` block,
    which is the unit of atomicity: either all of its writes land or none do.
    """

    def __init__(self, db_path: Path | None = None, url: str | None = None) -> None:
        if url is None:
            if db_path is None:
                raise ValueError("SQLStore needs either db_path or url.")
            db_path.parent.mkdir(parents=True, exist_ok=True)
            url = f"sqlite+pysqlite:///{db_path}"
        self.db_path = db_path
        self.url = url
        self.engine = create_engine(url, future=True)
        if self.engine.dialect.name == "sqlite":
            event.listen(self.engine, "connect", _enable_sqlite_foreign_keys)
        self._session_factory = sessionmaker(bind=self.engine, future=True)

    def create_all(self) -> None:
        """Create all schema tables if missing."""
        Base.metadata.create_all(self.engine)

    @contextmanager
    def session(self) -> Iterator[Session]:
        """Context manager that commits on success and rolls back on error."""
        sess = self._session_factory()
        try:
            yield sess
            sess.commit()
        except Exception:
            sess.rollback()
            raise
        finally:
            sess.close()


def log_event(sess: Session, event_type: str, **details: Any) -> None:
    """Append a state-transition event inside the caller's transaction."""
    sess.add(MemoryEventRecord(event_type=event_type, details=details))
