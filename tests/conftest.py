"""
Pytest configuration and fixtures for the test suite.
"""
import base64
import json
import os
import sys
import time

import pytest

# Add src directory to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from weave_client.storage import MemoryStorage  # noqa: E402
from weave_client.token_store import AuthTokenStore  # noqa: E402


def _b64url(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def make_jwt(exp=None, **claims) -> str:
    """Build an unsigned three-part token carrying the given claims."""
    if exp is not None:
        claims["exp"] = exp
    header = _b64url(json.dumps({"alg": "HS256", "typ": "JWT"}).encode())
    payload = _b64url(json.dumps(claims).encode())
    return f"{header}.{payload}.signature"


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line("markers", "asyncio: mark test as an async test")


@pytest.fixture
def jwt_factory():
    return make_jwt


@pytest.fixture
def valid_access_token():
    return make_jwt(exp=time.time() + 3600, sub="user-1")


@pytest.fixture
def expired_access_token():
    return make_jwt(exp=time.time() - 60, sub="user-1")


@pytest.fixture
def persistent_storage():
    return MemoryStorage()


@pytest.fixture
def session_storage():
    return MemoryStorage()


@pytest.fixture
def token_store(persistent_storage, session_storage):
    return AuthTokenStore(persistent=persistent_storage, session=session_storage)
