"""
Shared fixtures.

Each test gets its own SQLite file (so a second connection can play the part
of a concurrent writer), a frozen clock and a notifier that records instead of
sending.
"""
from datetime import datetime

import pytest

from app import create_app
from config import Config
from models import db
from models.account import Account
from security.access import get_access_control
from security.clock import FrozenClock

START = datetime(2026, 3, 2, 9, 0, 0)
EMAIL = "a@x.com"
PASSWORD = "pw"


class RecordingNotifier:
    def __init__(self):
        self.sent = []
        self.fail = False

    def _record(self, kind, email, secret):
        self.sent.append((kind, email, secret))
        if self.fail:
            return False, "SMTP unavailable"
        return True, None

    def send_verification_link(self, email, token):
        return self._record("verify", email, token)

    def send_mfa_code(self, email, code):
        return self._record("mfa", email, code)

    def send_password_reset_link(self, email, token):
        return self._record("reset", email, token)

    def of_kind(self, kind):
        return [secret for k, _, secret in self.sent if k == kind]

    def last(self, kind):
        return self.of_kind(kind)[-1]


class FakeStore:
    def __init__(self):
        self.saved = []

    def save(self, account):
        self.saved.append(account)
        return account


@pytest.fixture
def clock():
    return FrozenClock(START)


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def app(tmp_path, clock, notifier):
    class TestConfig(Config):
        TESTING = True
        SECRET_KEY = "test-secret-key-for-signing-tokens-0123"
        SQLALCHEMY_DATABASE_URI = "sqlite:///" + str(tmp_path / "test.db")
        BCRYPT_ROUNDS = 4
        PASSWORD_MIN_LEN = 2
        PASSWORD_REQUIRE_DIGIT = False
        MAIL_SUPPRESS_SEND = True

    app = create_app(TestConfig, notifier=notifier, clock=clock)
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def access(app):
    return get_access_control()


@pytest.fixture
def client(app):
    return app.test_client()


# --- Helpers ---

def register_verified(access, notifier, email=EMAIL, password=PASSWORD) -> Account:
    account = access.register(email, password, {"full_name": "Ada", "phone_number": "9800000000"})
    access.verify_email(notifier.last("verify"))
    return account


def login_with_mfa(access, notifier, email=EMAIL, password=PASSWORD, device="Laptop"):
    """Login + MFA, returning (account_id, session token)."""
    result = access.login(email, password, device)
    assert result.mfa_required
    token = access.verify_mfa(result.account_id, notifier.last("mfa"), device)
    return result.account_id, token


def reload(account_id) -> Account:
    db.session.expire_all()
    return db.session.get(Account, account_id)


def bump_elsewhere(account_id, **values):
    """Commit a change to the account row from another connection, as a concurrent request would."""
    table = Account.__table__
    with db.engine.begin() as conn:
        conn.execute(
            table.update()
            .where(table.c.id == account_id)
            .values(version=table.c.version + 1, **values)
        )
