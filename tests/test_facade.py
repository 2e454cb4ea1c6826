"""Unit tests for auth/facade.py -- register / login / logout / whoami.

Covers:
- register: 200 with a usable session, 400 invalid email, 409 duplicate
  (pre-check and the UNIQUE-constraint race path), no extra user rows
- login: success, and identical 401 for wrong password vs unknown email
- logout: 200 then 401 on the same session
- whoami: 200 with email, 401 for unknown/expired sessions
- fail-closed 500 results for storage failures and consistency violations
"""

from __future__ import annotations

import pytest
from sqlalchemy import func, select

from auth.credentials import CredentialManager
from auth.facade import (
    MSG_ACCOUNT_EXISTS,
    MSG_BAD_CREDENTIALS,
    MSG_INTERNAL,
    MSG_INVALID_EMAIL,
    AuthFacade,
    is_valid_email,
)
from auth.schema import EMAIL_MAX_LENGTH
from auth.schema import sessions as sessions_table
from auth.schema import users as users_table
from auth.sessions import MSG_EXPIRED, MSG_NOT_FOUND, SessionManager
from core.database import Database
from tests.conftest import TEST_PEPPER


def _user_count(db: Database) -> int:
    with db.connect() as conn:
        return conn.execute(select(func.count()).select_from(users_table)).scalar()


# ---------------------------------------------------------------------------
# Email validation
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    "email",
    ["alice@example.com", "first.last@sub.example.co.uk", '"quoted name"@example.com', "x@[192.168.0.1]"],
)
def test_valid_emails(email: str) -> None:
    assert is_valid_email(email) is True


@pytest.mark.parametrize("email", ["", "plainaddress", "@example.com", "alice@", "alice@localhost", "alice@example.c"])
def test_invalid_emails(email: str) -> None:
    assert is_valid_email(email) is False


# ---------------------------------------------------------------------------
# Register
# ---------------------------------------------------------------------------


class TestRegister:
    def test_success_issues_session(self, facade: AuthFacade) -> None:
        result = facade.register("alice@example.com", "pw-alice")
        assert result.status == 200
        assert result.ok
        assert result.message is None
        assert len(result.session_id) == 64
        assert result.expiry is not None

        me = facade.whoami(result.session_id)
        assert me.status == 200
        assert me.email == "alice@example.com"

    def test_invalid_email(self, facade: AuthFacade, schema_db: Database) -> None:
        result = facade.register("not-an-email", "pw")
        assert result.status == 400
        assert result.message == MSG_INVALID_EMAIL
        assert result.session_id is None
        assert _user_count(schema_db) == 0

    def test_overlong_email_is_invalid(self, facade: AuthFacade, schema_db: Database) -> None:
        """An address longer than the email column is a client error, not a storage failure."""
        email = "a" * 250 + "@example.com"
        assert len(email) > EMAIL_MAX_LENGTH
        result = facade.register(email, "pw")
        assert result.status == 400
        assert result.message == MSG_INVALID_EMAIL
        assert _user_count(schema_db) == 0

    def test_duplicate(self, facade: AuthFacade, schema_db: Database) -> None:
        first = facade.register("bob@example.com", "pw-1")
        second = facade.register("bob@example.com", "pw-2")
        assert first.status == 200
        assert second.status == 409
        assert second.message == MSG_ACCOUNT_EXISTS
        assert second.session_id is None
        assert second.expiry is None
        assert _user_count(schema_db) == 1

    def test_duplicate_race_hits_unique_constraint(
        self, facade: AuthFacade, schema_db: Database, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """If the pre-check misses a concurrent insert, the UNIQUE constraint still yields 409."""
        facade.register("race@example.com", "pw")
        monkeypatch.setattr(facade.credentials, "find_by_email", lambda email, conn=None: [])

        result = facade.register("race@example.com", "pw")
        assert result.status == 409
        assert result.message == MSG_ACCOUNT_EXISTS
        assert _user_count(schema_db) == 1


# ---------------------------------------------------------------------------
# Login
# ---------------------------------------------------------------------------


class TestLogin:
    def test_success_issues_new_session(self, facade: AuthFacade) -> None:
        registered = facade.register("carol@example.com", "pw-carol")
        result = facade.login("carol@example.com", "pw-carol")
        assert result.status == 200
        assert result.session_id != registered.session_id
        assert facade.whoami(result.session_id).email == "carol@example.com"
        # Logging in does not touch earlier sessions.
        assert facade.whoami(registered.session_id).status == 200

    def test_wrong_password_and_unknown_email_are_identical(self, facade: AuthFacade) -> None:
        facade.register("dave@example.com", "pw-dave")
        wrong_password = facade.login("dave@example.com", "pw-DAVE")
        unknown_email = facade.login("nobody@example.com", "pw-dave")
        assert wrong_password.status == unknown_email.status == 401
        assert wrong_password.message == unknown_email.message == MSG_BAD_CREDENTIALS
        assert wrong_password == unknown_email

    def test_duplicate_rows_fail_closed(self, database: Database, caplog: pytest.LogCaptureFixture) -> None:
        """Two users with one email (schema without UNIQUE) is a server error, not a login."""
        with database.connect() as conn:
            conn.exec_driver_sql(
                "CREATE TABLE users (user_id VARCHAR(64) PRIMARY KEY, email VARCHAR(255) NOT NULL, "
                "password VARCHAR(255) NOT NULL, salt VARCHAR(16) NOT NULL)"
            )
            sessions_table.create(conn)
            conn.commit()

        credentials = CredentialManager(database, pepper=TEST_PEPPER)
        facade = AuthFacade(database, credentials, SessionManager(database))
        credentials.create_user("twin@example.com", "pw")
        credentials.create_user("twin@example.com", "pw")

        result = facade.login("twin@example.com", "pw")
        assert result.status == 500
        assert result.message == MSG_INTERNAL
        assert result.session_id is None
        assert any(r.levelname == "CRITICAL" for r in caplog.records)


# ---------------------------------------------------------------------------
# Logout / whoami
# ---------------------------------------------------------------------------


class TestLogout:
    def test_logout_twice(self, facade: AuthFacade) -> None:
        session_id = facade.register("erin@example.com", "pw").session_id
        assert facade.logout(session_id).status == 200
        assert facade.logout(session_id).status == 401
        assert facade.whoami(session_id).status == 401

    def test_logout_unknown(self, facade: AuthFacade) -> None:
        assert facade.logout("0" * 64).status == 401


class TestWhoAmI:
    def test_unknown_session(self, facade: AuthFacade) -> None:
        result = facade.whoami("0" * 64)
        assert result.status == 401
        assert result.message == MSG_NOT_FOUND
        assert result.user_id is None

    def test_expired_session(self, facade: AuthFacade, schema_db: Database) -> None:
        user_id = facade.credentials.create_user("frank@example.com", "pw").user_id
        with schema_db.connect() as conn:
            conn.execute(sessions_table.insert().values(session_id="old" * 16, user_id=user_id, expiry=0))
            conn.commit()
        result = facade.whoami("old" * 16)
        assert result.status == 401
        assert result.message == MSG_EXPIRED
        assert facade.logout("old" * 16).status == 200

    def test_returns_user(self, facade: AuthFacade) -> None:
        session_id = facade.register("gina@example.com", "pw").session_id
        user = facade.credentials.find_by_email("gina@example.com")[0]
        result = facade.whoami(session_id)
        assert result.status == 200
        assert result.user_id == user.user_id
        assert result.email == "gina@example.com"

    def test_orphan_session_fails_closed(self, facade: AuthFacade, caplog: pytest.LogCaptureFixture) -> None:
        session = facade.sessions.issue_session("ghost" + "0" * 59)
        result = facade.whoami(session.session_id)
        assert result.status == 500
        assert result.message == MSG_INTERNAL
        assert result.email is None
        assert any(r.levelname == "CRITICAL" for r in caplog.records)


# ---------------------------------------------------------------------------
# Storage failures
# ---------------------------------------------------------------------------


class TestStorageFailure:
    """Without tables every query fails; each operation must return a bare 500."""

    @pytest.fixture
    def broken(self, database: Database) -> AuthFacade:
        return AuthFacade(database, CredentialManager(database, pepper=TEST_PEPPER), SessionManager(database))

    def test_register(self, broken: AuthFacade) -> None:
        result = broken.register("hank@example.com", "pw")
        assert (result.status, result.message, result.session_id) == (500, MSG_INTERNAL, None)

    def test_login(self, broken: AuthFacade) -> None:
        assert broken.login("hank@example.com", "pw").status == 500

    def test_logout(self, broken: AuthFacade) -> None:
        assert broken.logout("x" * 64).status == 500

    def test_whoami(self, broken: AuthFacade) -> None:
        result = broken.whoami("x" * 64)
        assert result.status == 500
        assert result.message == MSG_INTERNAL
