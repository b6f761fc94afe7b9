"""
tests/conftest.py -- Shared test fixtures for KeyDash integration tests.

This module provides:
  - _make_test_stores(): isolated in-memory registry + layout DBs
  - _patch_lifespan(): wires test stores and a mock OTP verifier into app.state
  - harness: one TestClient per test module (follow_redirects=False)
  - app_env: per-test view of the harness with the mocks reset
  - make_otp() / session_headers(): request-building helpers

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs sync route handlers in a thread pool. Plain :memory:
DBs are per-connection and would present a blank schema to each worker
thread. The named URI format (file:name?mode=memory&cache=shared&uri=true)
shares one in-memory instance across all connections in the same process.

ALLOWED_HOSTS must be set before api.main is imported: TrustedHostMiddleware
reads it once at import time, and TestClient sends Host: testserver.

Session cookies are sent as an explicit Cookie header rather than through
the client's cookie jar. The app marks them Secure and TestClient talks
plain http, so the jar would silently drop them.
"""

from __future__ import annotations

import base64
import os
import uuid
from collections.abc import Generator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Optional
from unittest.mock import MagicMock

# CRITICAL: Set before any core/api import so get_settings() sees them.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("ALLOWED_HOSTS", '["testserver", "localhost"]')

import pytest
from fastapi.testclient import TestClient

from api.limiter import limiter
from asgi import app
from auth.otp import YubicoVerifier
from auth.sessions import SESSION_COOKIE, issue_session_token
from auth.store import CredentialStore
from cache.store import MarketHoursCache
from core.config import Settings
from dashboard.store import LayoutStore

TEST_SECRET = "test-session-secret-0123456789abcdef"
TEST_CLIENT_ID = "12345"
TEST_API_KEY = base64.b64encode(b"yubico-test-api-key").decode("ascii")

REGISTERED_ID = "cccccccbcjdf"
# The 32 characters after the ID; content is irrelevant once Yubico is mocked.
OTP_TAIL = "hfhbbkrkkbjrtugjikvlrhiuculffbrr"

# Rate limits are exercised by slowapi itself; they would make request-heavy
# modules flaky here.
limiter.enabled = False


def make_otp(yubikey_id: str = REGISTERED_ID) -> str:
    return yubikey_id + OTP_TAIL


def make_settings(**overrides) -> Settings:
    values = dict(
        session_secret=TEST_SECRET,
        yubico_client_id=TEST_CLIENT_ID,
        yubico_secret_key=TEST_API_KEY,
        secure_cookies=True,
    )
    values.update(overrides)
    return Settings(_env_file=None, **values)


def session_headers(subject_id: str = REGISTERED_ID, secret: str = TEST_SECRET, token: Optional[str] = None) -> dict:
    """Return a Cookie header carrying a session for `subject_id`."""
    if token is None:
        token = issue_session_token(secret, subject_id)
    return {"Cookie": f"{SESSION_COOKIE}={token}"}


# ---------------------------------------------------------------------------
# Store helpers
# ---------------------------------------------------------------------------


def _make_test_stores(db_suffix: str) -> tuple[CredentialStore, LayoutStore]:
    """Create isolated named shared-memory SQLite stores.

    Args:
        db_suffix: Unique string appended to the DB name so test modules
                   never share state.
    """
    registry_url = f"sqlite:///file:test_registry_{db_suffix}?mode=memory&cache=shared&uri=true"
    layout_url = f"sqlite:///file:test_layouts_{db_suffix}?mode=memory&cache=shared&uri=true"
    return CredentialStore(registry_url), LayoutStore(layout_url)


def _patch_lifespan(settings: Settings, credentials: CredentialStore, layouts: LayoutStore, verifier: MagicMock):
    """Return an async context manager that replaces the real lifespan.

    The verifier is a MagicMock so no test ever reaches api.yubico.com.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.settings = settings
        app.state.credentials = credentials
        app.state.layouts = layouts
        app.state.market_cache = MarketHoursCache(":memory:")
        app.state.otp_verifier = verifier
        yield
        app.state.market_cache.close()

    return test_lifespan


@dataclass
class Harness:
    client: TestClient
    settings: Settings
    credentials: CredentialStore
    layouts: LayoutStore
    verifier: MagicMock


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture(scope="module")
def harness(request) -> Generator[Harness, None, None]:
    """Yield a running TestClient backed by fresh stores for this module.

    follow_redirects=False is essential: nearly every auth assertion is on a
    redirect Location, which is invisible once the client follows it.
    """
    suffix = f"{request.module.__name__.rsplit('.', 1)[-1]}_{uuid.uuid4().hex[:8]}"
    credentials, layouts = _make_test_stores(suffix)
    credentials.register(REGISTERED_ID)
    settings = make_settings()
    verifier = MagicMock(spec=YubicoVerifier)

    app.router.lifespan_context = _patch_lifespan(settings, credentials, layouts, verifier)

    with TestClient(app, follow_redirects=False, raise_server_exceptions=True) as client:
        yield Harness(client, settings, credentials, layouts, verifier)

    credentials.close()
    layouts.close()


@pytest.fixture()
def app_env(harness: Harness) -> Harness:
    """Per-test harness: verifier accepts by default, market cache is empty."""
    harness.verifier.verify.reset_mock(return_value=True, side_effect=True)
    harness.verifier.verify.return_value = True
    harness.client.cookies.clear()
    app.state.market_cache.close()
    app.state.market_cache = MarketHoursCache(":memory:")
    return harness
