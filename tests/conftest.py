"""
tests/conftest.py -- Shared test fixtures for CipherWire.

This module provides:
  - _fresh_settings: clears the get_settings() singleton around every test
  - user / token: a known user and a valid token carrying it
  - client / encrypted_client: TestClients with response encryption off / on

SECRET_KEY must be set before any auth/core import so get_settings() does not
raise in production mode. DEBUG is left off on purpose: debug mode forces
pretty-printed JSON, and the compact-output tests need it off.
"""

from __future__ import annotations

import os
from collections.abc import Generator
from datetime import timedelta

# CRITICAL: set before any core/auth import.
os.environ.setdefault("SECRET_KEY", "test-secret-key-0123456789abcdef0123456789abcdef")

import pytest
from fastapi.testclient import TestClient

from api.main import app
from auth.models import User
from auth.tokens import issue_token
from core.config import get_settings
from tests.helpers import TEST_AES_KEY


@pytest.fixture(autouse=True)
def _fresh_settings() -> Generator[None, None, None]:
    """Drop the Settings singleton around each test so env changes take effect."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def user() -> User:
    return User(id="42", name="a", email="a@example.com")


@pytest.fixture
def token(user: User) -> str:
    token, _ = issue_token("", user, timedelta(minutes=5))
    return token


@pytest.fixture
def client() -> Generator[TestClient, None, None]:
    """TestClient with response encryption disabled (the default)."""
    with TestClient(app) as c:
        yield c


@pytest.fixture
def encrypted_client(monkeypatch: pytest.MonkeyPatch) -> Generator[TestClient, None, None]:
    """TestClient with encryption on and the health endpoint excluded."""
    monkeypatch.setenv("AES_ENABLED", "true")
    monkeypatch.setenv("AES_KEY", TEST_AES_KEY)
    monkeypatch.setenv("AES_EXCLUDE_PREFIXES", '["/api/v1/health"]')
    get_settings.cache_clear()
    with TestClient(app) as c:
        yield c
