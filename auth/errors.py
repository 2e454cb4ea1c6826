"""
auth/errors.py -- Typed errors raised by the auth core.

StorageError (core.database) covers connectivity and query failures. The
classes here cover outcomes that are not storage faults:

  ConflictError     -- a write hit a uniqueness constraint (duplicate email).
                       Mapped to a 409 result.
  ConsistencyError  -- stored data violates an invariant the code relies on
                       (several users for one email, a valid session whose
                       user is gone). Logged loudly and mapped to a 500 result.
"""


class AuthError(Exception):
    """Base class for auth core errors."""


class ConflictError(AuthError):
    """A record with the same unique key already exists."""


class ConsistencyError(AuthError):
    """Stored data violates an invariant of the auth schema."""
