"""
core/database.py -- Process-wide database handle (SQLAlchemy engine + pool).

Database is constructed once at startup from Settings and passed by reference
into every component that needs storage. It is never lazily re-created.

Each request takes exactly one pooled connection through connect() and keeps
it for its whole sequence of round trips. The connection goes back to the
pool on every exit path, including exceptions.

Timeouts:
  pool_timeout bounds how long a request waits for a free connection.
  MySQL: connect/read/write timeouts bound every driver round trip.
  SQLite: the busy timeout bounds lock waits.

Errors: any SQLAlchemyError escaping a connect() block is logged and
re-raised as StorageError so callers never see driver-specific exceptions.
Exceptions that are not SQLAlchemyError (e.g. ConflictError raised by a store
that already translated an IntegrityError) pass through untouched.

Layer rule: core/ is the kernel. No imports from api/ or auth/.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy import URL, create_engine, event
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import SQLAlchemyError

from core.config import Settings

logger = logging.getLogger("twinsight.db")


class StorageError(Exception):
    """The database could not be reached or a query failed."""


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode on file-backed SQLite databases."""
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def mysql_url(settings: Settings) -> URL:
    """Assemble the MySQL URL from settings. Credentials are escaped by URL.create."""
    return URL.create(
        "mysql+pymysql",
        username=settings.mysql_username,
        password=settings.mysql_password,
        host=settings.mysql_host,
        database=settings.mysql_database,
    )


class Database:
    """Owns the engine (and therefore the connection pool) for the process lifetime.

    Usage:
        db = Database("sqlite:///twinsight.db")
        with db.connect() as conn:
            conn.execute(...)
        db.close()
    """

    def __init__(self, url: str | URL, pool_size: int = 5, timeout_seconds: int = 10) -> None:
        url_str = url if isinstance(url, str) else url.render_as_string(hide_password=False)
        self.is_sqlite = url_str.startswith("sqlite")
        self.timeout_seconds = timeout_seconds

        if self.is_sqlite:
            # SQLite's default pools do not accept pool_size/pool_timeout.
            self.engine: Engine = create_engine(
                url,
                connect_args={"check_same_thread": False, "timeout": timeout_seconds},
            )
            if "mode=memory" not in url_str and ":memory:" not in url_str:
                event.listen(self.engine, "connect", _set_wal_mode)
        else:
            self.engine = create_engine(
                url,
                pool_size=pool_size,
                pool_timeout=timeout_seconds,
                pool_pre_ping=True,
                pool_recycle=3600,
                connect_args={
                    "connect_timeout": timeout_seconds,
                    "read_timeout": timeout_seconds,
                    "write_timeout": timeout_seconds,
                },
            )

    @classmethod
    def from_settings(cls, settings: Settings) -> Database:
        url = settings.database_url or mysql_url(settings)
        return cls(url, pool_size=settings.db_pool_size, timeout_seconds=settings.db_timeout_seconds)

    @contextmanager
    def connect(self) -> Iterator[Connection]:
        """Yield one pooled connection; translate driver failures into StorageError."""
        try:
            with self.engine.connect() as conn:
                yield conn
        except SQLAlchemyError as exc:
            logger.error("Database operation failed: %s", exc.__class__.__name__, exc_info=exc)
            raise StorageError("Database operation failed.") from exc

    @contextmanager
    def reuse(self, conn: Connection | None) -> Iterator[Connection]:
        """Yield conn when the caller already holds one, else a fresh pooled connection."""
        if conn is not None:
            yield conn
            return
        with self.connect() as own:
            yield own

    def ping(self) -> bool:
        """Return True if a trivial round trip succeeds. Used by /health."""
        try:
            with self.connect() as conn:
                conn.exec_driver_sql("SELECT 1")
        except StorageError:
            return False
        return True

    def close(self) -> None:
        self.engine.dispose()
