"""Pytest configuration and fixtures."""

import os
import secrets

import pytest

# Generate a unique test secret for this test run to prevent token forgery
_TEST_JWT_SECRET = f"test-only-{secrets.token_urlsafe(32)}"

os.environ.setdefault("JWT_SECRET_KEY", _TEST_JWT_SECRET)
os.environ.setdefault("STORE_BACKEND", "memory")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")

from diarysync.auth import create_access_token  # noqa: E402
from diarysync.config import get_settings  # noqa: E402
from diarysync.database import InMemoryRecordStore  # noqa: E402
from diarysync.main import create_app  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

# Clearly invalid test IDs that cannot collide with production IDs
TEST_OWNER = "usr_TEST_ONLY_000000"
OTHER_OWNER = "usr_TEST_ONLY_999999"


@pytest.fixture
def store():
    """A fresh in-memory record store."""
    return InMemoryRecordStore()


@pytest.fixture
def client(store):
    """Create a test client serving from the ``store`` fixture."""
    with TestClient(create_app(store=store)) as test_client:
        yield test_client


@pytest.fixture
def auth_headers():
    """Create auth headers with a test token."""
    token = create_access_token(TEST_OWNER, get_settings())
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def other_auth_headers():
    """Auth headers for a second, unrelated owner."""
    token = create_access_token(OTHER_OWNER, get_settings())
    return {"Authorization": f"Bearer {token}"}
