"""Relational database connection and session management."""

from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Iterator

import structlog
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from cograph.db.models import Base

logger = structlog.get_logger(__name__)


class DatabaseManager:
    """Owns the SQLAlchemy engine and hands out transactional sessions.

    Usage::

        db = DatabaseManager("postgresql+psycopg://...")
        db.init_schema()
        with db.get_session() as session:
            session.add(row)

    Sessions commit when the ``with`` block exits normally and roll back
    when it raises.  Loaded objects stay usable after the session closes
    (``expire_on_commit=False``) so callers on other threads can read
    them without a live connection.

    Attributes:
        url: SQLAlchemy database URL.
    """

    def __init__(self, url: str, echo: bool = False) -> None:
        self.url = url
        self.engine: Engine = create_engine(url, echo=echo, **_engine_options(url))
        if self.engine.dialect.name == "sqlite":
            event.listen(self.engine, "connect", _enable_sqlite_foreign_keys)
        self._session_factory = sessionmaker(
            bind=self.engine,
            expire_on_commit=False,
        )

    def init_schema(self) -> None:
        """Create all tables that do not exist yet."""
        Base.metadata.create_all(self.engine)
        logger.info("database_schema_ready", dialect=self.engine.dialect.name)

    @contextmanager
    def get_session(self) -> Iterator[Session]:
        """Yield a session bound to one transaction."""
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def dispose(self) -> None:
        """Release every pooled connection."""
        self.engine.dispose()
        logger.info("database_disposed")


def _engine_options(url: str) -> dict[str, Any]:
    """In-memory SQLite needs one shared connection usable from worker threads."""
    if url.startswith("sqlite") and (url in ("sqlite://", "sqlite:///:memory:") or "mode=memory" in url):
        return {"poolclass": StaticPool, "connect_args": {"check_same_thread": False}}
    if url.startswith("sqlite"):
        return {"connect_args": {"check_same_thread": False}}
    return {"pool_pre_ping": True}


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()
