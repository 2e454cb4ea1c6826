"""
auth/schema.py -- Table definitions and the startup schema guard.

The two tables are declared once here with SQLAlchemy Core and imported by
the credential and session managers. Nothing creates them implicitly on
import or on first use: SchemaGuard.ensure_schema() runs once at boot, and
the server refuses to start if it fails.

users.email carries a UNIQUE constraint so the one-account-per-email invariant
holds under concurrent registrations, not only through the read-then-write
pre-check in AuthFacade.register().

sessions.user_id is a plain back-reference to users.user_id: no foreign key,
no cascading delete.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import logging

from sqlalchemy import BigInteger, Column, MetaData, String, Table, UniqueConstraint, inspect

from core.database import Database, StorageError

logger = logging.getLogger("twinsight.auth")

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

EMAIL_MAX_LENGTH = 255

metadata = MetaData()

users = Table(
    "users",
    metadata,
    Column("user_id", String(64), primary_key=True),
    Column("email", String(EMAIL_MAX_LENGTH), nullable=False),
    Column("password", String(255), nullable=False),  # final bcrypt output
    Column("salt", String(16), nullable=False),
    UniqueConstraint("email", name="uq_users_email"),
)

sessions = Table(
    "sessions",
    metadata,
    Column("session_id", String(64), primary_key=True),
    Column("user_id", String(64), nullable=False),
    Column("expiry", BigInteger, nullable=False),  # epoch seconds
)

REQUIRED_TABLES: frozenset[str] = frozenset({"users", "sessions"})


# ---------------------------------------------------------------------------
# Guard
# ---------------------------------------------------------------------------


class SchemaGuard:
    """Verifies and bootstraps the auth tables.

    Usage:
        guard = SchemaGuard(db)
        if not guard.check_schema():
            guard.init_schema()
    """

    def __init__(self, database: Database) -> None:
        self._db = database

    def missing_tables(self) -> set[str]:
        """Return the required tables absent from the target database.

        Raises StorageError if the metadata cannot be read.
        """
        with self._db.connect() as conn:
            present = set(inspect(conn).get_table_names())
        return set(REQUIRED_TABLES - present)

    def check_schema(self) -> bool:
        """Return True iff both users and sessions exist.

        Missing tables are reported as False, not as an error. Connection or
        query failures raise StorageError.
        """
        missing = self.missing_tables()
        if missing:
            logger.info("Schema check: missing tables %s", ", ".join(sorted(missing)))
            return False
        return True

    def init_schema(self) -> None:
        """Create the auth tables.

        Intended for the case where check_schema() returned False. Tables that
        already exist are skipped (checkfirst), so a half-created schema gets
        only its missing table.
        """
        with self._db.connect() as conn:
            metadata.create_all(conn, checkfirst=True)
            conn.commit()
        logger.info("Schema initialized (tables: %s)", ", ".join(sorted(REQUIRED_TABLES)))

    def ensure_schema(self) -> bool:
        """Run the boot sequence: check, create if needed, re-check.

        Returns True if tables were created, False if the schema was already
        complete. Raises StorageError if the schema is still incomplete after
        initialization; the caller must not start serving in that case.
        """
        if self.check_schema():
            return False
        self.init_schema()
        missing = self.missing_tables()
        if missing:
            raise StorageError(f"Schema still incomplete after initialization: {', '.join(sorted(missing))}")
        return True
