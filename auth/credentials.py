"""
auth/credentials.py -- Password hashing pipeline and user records.

Hashing pipeline (derive_hash):
  1. SHA-512/256 over UTF-8 password || salt || pepper. The pepper is a
     server-wide secret from config; the salt is the user's 16-char salt.
  2. Standard base64 of the 32-byte digest (44 printable characters, well
     under bcrypt's 72-byte input limit).
  3. bcrypt, cost 10, keyed with the SAME per-user salt: its 16 ASCII bytes
     are exactly bcrypt's 128-bit salt, encoded in bcrypt's own base64
     alphabet. The result is formatted with the $2y$ version prefix.

Because the bcrypt salt is derived from the stored salt rather than generated
by bcrypt.gensalt(), the whole pipeline is deterministic: login recomputes the
hash from the candidate password and the stored salt and compares strings.

User rows are written once at registration and never updated.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import logging
import string

import bcrypt
from sqlalchemy.engine import Connection
from sqlalchemy.exc import IntegrityError

from auth import tokens
from auth.errors import ConflictError
from auth.models import User
from auth.schema import users
from core.database import Database

logger = logging.getLogger("twinsight.auth")

BCRYPT_COST = 10
HASH_VERSION_PREFIX = "$2y$"

_STD_B64 = string.ascii_uppercase + string.ascii_lowercase + string.digits + "+/"
_BCRYPT_B64 = "./" + string.ascii_uppercase + string.ascii_lowercase + string.digits
_TO_BCRYPT_B64 = str.maketrans(_STD_B64, _BCRYPT_B64)


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------


def _bcrypt_salt(salt: str) -> bytes:
    """Encode a 16-character salt as a bcrypt "$2b$10$<22 chars>" salt string.

    Raises ValueError for anything that is not exactly 16 ASCII characters.
    That is a programmer or data error, never a client error.
    """
    if not salt or len(salt) != tokens.SALT_LENGTH or not salt.isascii():
        raise ValueError(f"salt must be exactly {tokens.SALT_LENGTH} ASCII characters")
    encoded = base64.b64encode(salt.encode("ascii")).decode("ascii").rstrip("=")
    return f"$2b${BCRYPT_COST:02d}${encoded.translate(_TO_BCRYPT_B64)}".encode("ascii")


def derive_hash(password: str, salt: str, pepper: str) -> str:
    """Return the storable hash for password under (salt, pepper). Deterministic."""
    digest = hashlib.new("sha512_256")
    digest.update(password.encode("utf-8"))
    digest.update(salt.encode("utf-8"))
    digest.update(pepper.encode("utf-8"))
    encoded = base64.b64encode(digest.digest())

    hashed = bcrypt.hashpw(encoded, _bcrypt_salt(salt)).decode("ascii")
    return HASH_VERSION_PREFIX + hashed[len(HASH_VERSION_PREFIX) :]


def verify_password(candidate_hash: str, stored_hash: str) -> bool:
    """Return True if the recomputed hash equals the stored one (constant time)."""
    return hmac.compare_digest(candidate_hash.encode("utf-8"), stored_hash.encode("utf-8"))


# Used when the email is unknown so the response takes as long as a real check.
_DUMMY_SALT = "timingEqualizer0"


# ---------------------------------------------------------------------------
# Manager
# ---------------------------------------------------------------------------


class CredentialManager:
    """Derives/verifies password hashes and reads/writes user rows.

    Usage:
        creds = CredentialManager(db, pepper=settings.password_pepper)
        user = creds.create_user("a@example.com", "hunter2")
        creds.check_password(user, "hunter2")   # True
    """

    def __init__(self, database: Database, pepper: str) -> None:
        self._db = database
        self._pepper = pepper

    # ------------------------------------------------------------------
    # Hashing
    # ------------------------------------------------------------------

    def generate_salt(self) -> str:
        return tokens.generate_salt()

    def derive_hash(self, password: str, salt: str, pepper: str | None = None) -> str:
        return derive_hash(password, salt, self._pepper if pepper is None else pepper)

    def verify_password(self, candidate_hash: str, stored_hash: str) -> bool:
        return verify_password(candidate_hash, stored_hash)

    def check_password(self, user: User, password: str) -> bool:
        """Recompute the hash for password with the user's salt and compare."""
        return self.verify_password(self.derive_hash(password, user.salt), user.password_hash)

    def equalize_timing(self, password: str) -> None:
        """Run the full pipeline once and discard the result.

        Called on the unknown-email path of login so it costs the same bcrypt
        round as a wrong password.
        """
        self.derive_hash(password, _DUMMY_SALT)

    # ------------------------------------------------------------------
    # User queries
    #
    # conn: pass the request's connection to keep all round trips on one
    # pooled connection; omit it to borrow a fresh one for the call.
    # ------------------------------------------------------------------

    def find_by_email(self, email: str, conn: Connection | None = None) -> list[User]:
        """Return every user row for this exact (case-sensitive) email.

        Returns a list rather than a single row so callers can detect a
        broken uniqueness invariant instead of silently picking one row.
        """
        with self._db.reuse(conn) as c:
            return _select_by_email(c, email)

    def get_by_id(self, user_id: str, conn: Connection | None = None) -> User | None:
        with self._db.reuse(conn) as c:
            row = c.execute(users.select().where(users.c.user_id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def create_user(self, email: str, password: str, conn: Connection | None = None) -> User:
        """Hash the password under a fresh salt and insert a new user row.

        Raises ConflictError if the email is already registered (UNIQUE
        constraint). Any other integrity failure, e.g. a user_id collision,
        propagates as a storage failure.
        """
        salt = self.generate_salt()
        user = User(
            user_id=tokens.generate_user_id(),
            email=email,
            password_hash=self.derive_hash(password, salt),
            salt=salt,
        )
        with self._db.reuse(conn) as c:
            try:
                c.execute(
                    users.insert().values(
                        user_id=user.user_id,
                        email=user.email,
                        password=user.password_hash,
                        salt=user.salt,
                    )
                )
                c.commit()
            except IntegrityError:
                c.rollback()
                if _select_by_email(c, email):
                    raise ConflictError("An account with this email already exists.") from None
                raise
        logger.info("Created user %s", user.user_id[:8])
        return user


# ---------------------------------------------------------------------------
# Row helpers
# ---------------------------------------------------------------------------


def _select_by_email(conn: Connection, email: str) -> list[User]:
    rows = conn.execute(users.select().where(users.c.email == email)).fetchall()
    return [_row_to_user(r) for r in rows]


def _row_to_user(row) -> User:
    return User(
        user_id=row.user_id,
        email=row.email,
        password_hash=row.password,
        salt=row.salt,
    )
