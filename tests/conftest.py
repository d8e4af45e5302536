"""
Pytest configuration and fixtures for Academy tests
"""

import os
import sys
from contextlib import contextmanager
from pathlib import Path

# Settings are read at import time
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("APP_URL", "http://testserver")
os.environ.setdefault("WEBHOOK_SECRET", "test-webhook-secret")
os.environ.setdefault("EMAIL_API_KEY", "test-email-key")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("AUTO_CREATE_DB", "false")
os.environ.setdefault("BUNNY_LIBRARY_ID", "12345")

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

# Add project root to Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from academy.email_client import EmailDeliveryError, get_email_client  # noqa: E402
from academy.jwt_auth import create_access_token  # noqa: E402
from academy.server import app  # noqa: E402


class FakeCursor:
    """Records statements; query helpers are monkeypatched in the tests"""

    def __init__(self):
        self.statements = []
        self.rowcount = 1
        self.closed = False

    def execute(self, query, params=None):
        self.statements.append((query, params))

    def fetchone(self):
        return None

    def fetchall(self):
        return []

    def close(self):
        self.closed = True


class FakeConnection:
    def __init__(self):
        self.cursor_obj = FakeCursor()
        self.commits = 0
        self.rollbacks = 0

    def cursor(self, dictionary=False):
        return self.cursor_obj

    def commit(self):
        self.commits += 1

    def rollback(self):
        self.rollbacks += 1

    def is_connected(self):
        return True

    def close(self):
        pass


class RecordingEmailClient:
    """Stands in for the email API; fail_for lists addresses that bounce"""

    def __init__(self, fail_for=(), fail_all=False):
        self.sent = []
        self.fail_for = set(fail_for)
        self.fail_all = fail_all

    async def send_email(self, to, subject, html):
        if self.fail_all or to in self.fail_for:
            raise EmailDeliveryError(f"rejected {to}")
        self.sent.append({"to": to, "subject": subject, "html": html})
        return f"msg-{len(self.sent)}"


@pytest.fixture
def client():
    test_client = TestClient(app, base_url="http://testserver")
    yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def fake_db(monkeypatch):
    """Route modules get a fake connection instead of MySQL"""
    conn = FakeConnection()

    @contextmanager
    def _connection(*args, **kwargs):
        yield conn

    def install(*modules):
        for module in modules:
            monkeypatch.setattr(module, "get_db_connection_with_retry", _connection)
        return conn

    return install


@pytest.fixture
def email_client():
    recorder = RecordingEmailClient()
    app.dependency_overrides[get_email_client] = lambda: recorder
    return recorder


def bearer(user_id="student-1", email="student@example.com", role="student"):
    return {"Authorization": f"Bearer {create_access_token(user_id, email, role)}"}


@pytest.fixture
def student_headers():
    return bearer()


@pytest.fixture
def admin_headers():
    return bearer("admin-1", "admin@example.com", "admin")
