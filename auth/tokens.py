"""
auth/tokens.py -- Random identifier generation.

Every opaque value the service hands out or stores (user ids, session ids,
password salts) is an alphanumeric string drawn from secrets.choice(), i.e.
the OS CSPRNG. 64 characters over a 62-symbol alphabet is ~381 bits, so
collisions are not retried: a primary-key clash on insert surfaces as a
storage error.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import secrets
import string

ALPHANUMERIC = string.ascii_letters + string.digits

USER_ID_LENGTH = 64
SESSION_ID_LENGTH = 64
SALT_LENGTH = 16


def random_alphanumeric(length: int) -> str:
    """Return `length` characters drawn uniformly from [A-Za-z0-9]."""
    if length <= 0:
        raise ValueError("length must be positive")
    return "".join(secrets.choice(ALPHANUMERIC) for _ in range(length))


def generate_user_id() -> str:
    return random_alphanumeric(USER_ID_LENGTH)


def generate_session_id() -> str:
    return random_alphanumeric(SESSION_ID_LENGTH)


def generate_salt() -> str:
    return random_alphanumeric(SALT_LENGTH)
