"""
auth/sessions.py -- Session token issuance, validation, and revocation.

Lifecycle of a session row:
  created  -> valid while now < expiry
           -> expired  (terminal, reached only by time passing)
           -> revoked  (terminal, reached only via revoke_session)

Rows are only ever inserted and deleted. expiry is fixed at issue time to
now + 30 days and never extended; there is no refresh or rotation.

Expiry is checked lazily in validate_session(). Nothing sweeps expired rows:
they stay in the table until a logout deletes them.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from datetime import timedelta

from sqlalchemy.engine import Connection

from auth import tokens
from auth.models import Session, SessionCheck
from auth.schema import sessions
from core.database import Database

logger = logging.getLogger("twinsight.auth")

SESSION_DURATION = timedelta(days=30)

MSG_NOT_FOUND = "Session ID not found."
MSG_EXPIRED = "Session expired"


class SessionManager:
    """Issues, validates, and revokes opaque session tokens.

    clock returns the current time in epoch seconds; tests inject a fixed one.
    """

    def __init__(
        self,
        database: Database,
        duration: timedelta = SESSION_DURATION,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._db = database
        self._duration = int(duration.total_seconds())
        self._clock = clock

    def _now(self) -> int:
        return int(self._clock())

    def issue_session(self, user_id: str, conn: Connection | None = None) -> Session:
        """Create and persist a new session for user_id.

        A primary-key collision on insert is not retried; it surfaces as a
        storage failure.
        """
        session = Session(
            session_id=tokens.generate_session_id(),
            user_id=user_id,
            expiry=self._now() + self._duration,
        )
        with self._db.reuse(conn) as c:
            c.execute(
                sessions.insert().values(
                    session_id=session.session_id,
                    user_id=session.user_id,
                    expiry=session.expiry,
                )
            )
            c.commit()
        logger.debug("Issued session for user %s (expiry=%d)", user_id[:8], session.expiry)
        return session

    def get_session(self, session_id: str, conn: Connection | None = None) -> Session | None:
        with self._db.reuse(conn) as c:
            row = c.execute(sessions.select().where(sessions.c.session_id == session_id)).fetchone()
        return _row_to_session(row) if row is not None else None

    def validate_session(self, session_id: str, conn: Connection | None = None) -> SessionCheck:
        """Return whether session_id is usable right now.

        Absent and expired sessions both come back valid=False with different
        messages. Expired rows are left in place.
        """
        session = self.get_session(session_id, conn)
        if session is None:
            return SessionCheck(valid=False, message=MSG_NOT_FOUND)
        if self._now() >= session.expiry:
            return SessionCheck(valid=False, message=MSG_EXPIRED)
        return SessionCheck(valid=True, user_id=session.user_id)

    def revoke_session(self, session_id: str, conn: Connection | None = None) -> bool:
        """Delete the session. Returns False (not an error) if it did not exist.

        Expired sessions are revocable too.
        """
        with self._db.reuse(conn) as c:
            result = c.execute(sessions.delete().where(sessions.c.session_id == session_id))
            c.commit()
        return result.rowcount > 0


def _row_to_session(row) -> Session:
    return Session(
        session_id=row.session_id,
        user_id=row.user_id,
        expiry=int(row.expiry),
    )
