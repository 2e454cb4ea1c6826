"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Stores and managers
do the work; these types only carry shape between them.

Layer rule: no imports from api/.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class User:
    """A registered account.

    password_hash is the final output of the hashing pipeline, never the raw
    password. salt is the 16-character per-user salt stored next to it.
    Users are created by registration and never updated or deleted here.
    """

    user_id: str
    email: str
    password_hash: str
    salt: str


@dataclass
class Session:
    """An issued bearer token.

    expiry is epoch seconds, fixed at creation and never extended. A session
    is valid iff the row exists and now < expiry.
    """

    session_id: str
    user_id: str
    expiry: int


@dataclass
class SessionCheck:
    """Outcome of validating a session id.

    Absent and expired sessions are both valid=False; only message differs.
    """

    valid: bool
    user_id: str | None = None
    message: str | None = None


@dataclass
class AuthResult:
    """Structured result returned by every AuthFacade operation.

    status uses HTTP semantics (200, 400, 401, 409, 500). Optional fields are
    filled only where the operation produces them.
    """

    status: int
    message: str | None = None
    session_id: str | None = None
    expiry: int | None = None
    user_id: str | None = None
    email: str | None = None

    @property
    def ok(self) -> bool:
        return self.status == 200
