"""
auth/facade.py -- register / login / logout / whoami.

AuthFacade is the only entry point the HTTP layer calls. Each operation:
  1. takes ONE pooled connection for its whole duration (released on every
     exit path by Database.connect()),
  2. runs a short fixed sequence of round trips through CredentialManager and
     SessionManager,
  3. returns an AuthResult whose status uses HTTP semantics.

Error mapping:
  client input problems     -> 400 / 401 / 409 results with a message
  StorageError              -> logged, 500 result, generic message
  ConsistencyError          -> logged at CRITICAL, 500 result, generic message

Register and login are not wrapped in a transaction. Two concurrent
registrations for the same email can both pass the pre-check; the UNIQUE
constraint on users.email rejects the second insert and it is reported as 409.

Login never reveals whether an email exists: unknown email and wrong password
return the same status and message, and both cost one bcrypt round.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import logging
import re

from auth.credentials import CredentialManager
from auth.errors import ConflictError, ConsistencyError
from auth.models import AuthResult
from auth.schema import EMAIL_MAX_LENGTH
from auth.sessions import SessionManager
from core.config import Settings
from core.database import Database, StorageError

logger = logging.getLogger("twinsight.auth")

# Permissive RFC 5322-style pattern. Searched, not full-matched: any substring
# shaped like local@domain is accepted.
EMAIL_PATTERN = re.compile(
    r"(([^<>()\[\]\\.,;:\s@\"]+(\.[^<>()\[\]\\.,;:\s@\"]+)*)|(\".+\"))@"
    r"((\[[0-9]{1,3}\.[0-9]{1,3}\.[0-9]{1,3}\.[0-9]{1,3}])|(([a-zA-Z\-0-9]+\.)+[a-zA-Z]{2,}))"
)

MSG_INVALID_EMAIL = "Invalid E-mail address."
MSG_ACCOUNT_EXISTS = "Account already exists."
MSG_BAD_CREDENTIALS = "Invalid E-mail/password combination."
MSG_INTERNAL = "Internal server error."


def is_valid_email(email: str) -> bool:
    if len(email) > EMAIL_MAX_LENGTH:
        return False
    return EMAIL_PATTERN.search(email) is not None


class AuthFacade:
    """Composes CredentialManager and SessionManager into the four auth operations.

    Usage:
        auth = build_auth_facade(db, settings)
        result = auth.register("a@example.com", "hunter2")
        auth.whoami(result.session_id).email   # "a@example.com"
    """

    def __init__(self, database: Database, credentials: CredentialManager, sessions: SessionManager) -> None:
        self._db = database
        self.credentials = credentials
        self.sessions = sessions

    def _server_error(self, operation: str, exc: Exception) -> AuthResult:
        if isinstance(exc, ConsistencyError):
            logger.critical("Consistency violation during %s: %s", operation, exc)
        else:
            logger.error("%s failed: %s", operation, exc)
        return AuthResult(status=500, message=MSG_INTERNAL)

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def register(self, email: str, password: str) -> AuthResult:
        """Create an account and log it in.

        400 invalid email, 409 email taken, 200 with session_id/expiry.
        """
        if not is_valid_email(email):
            return AuthResult(status=400, message=MSG_INVALID_EMAIL)

        try:
            with self._db.connect() as conn:
                if self.credentials.find_by_email(email, conn):
                    return AuthResult(status=409, message=MSG_ACCOUNT_EXISTS)
                user = self.credentials.create_user(email, password, conn)
                session = self.sessions.issue_session(user.user_id, conn)
        except ConflictError:
            logger.info("Registration lost a race on an existing email")
            return AuthResult(status=409, message=MSG_ACCOUNT_EXISTS)
        except StorageError as exc:
            return self._server_error("register", exc)

        return AuthResult(status=200, session_id=session.session_id, expiry=session.expiry)

    def login(self, email: str, password: str) -> AuthResult:
        """Check credentials and issue a new session.

        401 for unknown email or wrong password (same message), 500 if the
        email maps to more than one user, 200 with session_id/expiry.
        """
        try:
            with self._db.connect() as conn:
                matches = self.credentials.find_by_email(email, conn)
                if not matches:
                    self.credentials.equalize_timing(password)
                    return AuthResult(status=401, message=MSG_BAD_CREDENTIALS)
                if len(matches) > 1:
                    raise ConsistencyError(f"{len(matches)} users share one email address")

                user = matches[0]
                if not self.credentials.check_password(user, password):
                    return AuthResult(status=401, message=MSG_BAD_CREDENTIALS)
                session = self.sessions.issue_session(user.user_id, conn)
        except (StorageError, ConsistencyError) as exc:
            return self._server_error("login", exc)

        return AuthResult(status=200, session_id=session.session_id, expiry=session.expiry)

    def logout(self, session_id: str) -> AuthResult:
        """Revoke a session: 200 if it existed, 401 if not."""
        try:
            with self._db.connect() as conn:
                found = self.sessions.revoke_session(session_id, conn)
        except StorageError as exc:
            return self._server_error("logout", exc)
        return AuthResult(status=200 if found else 401)

    def whoami(self, session_id: str) -> AuthResult:
        """Resolve a session to its user.

        401 with the validation message for absent/expired sessions. A valid
        session whose user row is missing fails closed with 500.
        """
        try:
            with self._db.connect() as conn:
                check = self.sessions.validate_session(session_id, conn)
                if not check.valid:
                    return AuthResult(status=401, message=check.message)
                user = self.credentials.get_by_id(check.user_id, conn)
                if user is None:
                    raise ConsistencyError(f"valid session references missing user {check.user_id[:8]}")
        except (StorageError, ConsistencyError) as exc:
            return self._server_error("whoami", exc)

        return AuthResult(status=200, user_id=user.user_id, email=user.email)


def build_auth_facade(database: Database, settings: Settings) -> AuthFacade:
    """Wire the managers for one process. Called once at startup."""
    return AuthFacade(
        database,
        CredentialManager(database, pepper=settings.password_pepper),
        SessionManager(database),
    )
