"""
Shared test fixtures and helpers.
"""
from __future__ import annotations

from typing import Generator

import httpx
import pytest

from metabase_proxy.config import Config, validate_config
from metabase_proxy.services.proxy import ProxyForwarder
from metabase_proxy.services.session import Credentials, SessionManager
from metabase_proxy.state import AppState, app_state


BACKEND = "http://backend.local:3000"
PROBE_URL = f"{BACKEND}/api/user/current"
LOGIN_URL = f"{BACKEND}/api/session"
TEST_EMAIL = "a@b.com"
TEST_PASSWORD = "secret"


def make_config(**proxy_overrides) -> Config:
    """Build a validated Config with test defaults."""
    proxy = {"target": BACKEND, "address": "127.0.0.1", "hostname": "proxy.local"}
    proxy.update(proxy_overrides)
    return validate_config({
        "proxy": proxy,
        "metabase": {"email": TEST_EMAIL, "password": TEST_PASSWORD},
    })


@pytest.fixture
def credentials() -> Credentials:
    return Credentials(email=TEST_EMAIL, password=TEST_PASSWORD)


@pytest.fixture
def http_client() -> httpx.AsyncClient:
    """Create an HTTP client for tests."""
    return httpx.AsyncClient()


@pytest.fixture
def session_manager(http_client, credentials) -> SessionManager:
    return SessionManager(target=BACKEND, credentials=credentials, client=http_client)


@pytest.fixture
def sample_config() -> Config:
    return make_config()


@pytest.fixture
def temp_config_file(tmp_path) -> str:
    """Create a temporary YAML config file for testing."""
    config_path = tmp_path / "metabase-api-proxy.conf"
    config_path.write_text(
        "proxy:\n"
        f"  target: {BACKEND}\n"
        "  port: 8080\n"
        "metabase:\n"
        f"  email: {TEST_EMAIL}\n"
        f"  password: {TEST_PASSWORD}\n"
    )
    return str(config_path)


@pytest.fixture
def mock_app_state(sample_config, session_manager, http_client) -> Generator[AppState, None, None]:
    """
    Set up app_state with test values and reset after test.
    """
    # Store original values
    original_config = app_state.config
    original_client = app_state.http_client
    original_session_manager = app_state.session_manager
    original_forwarder = app_state.forwarder
    
    # Set test values
    app_state.config = sample_config
    app_state.http_client = http_client
    app_state.session_manager = session_manager
    app_state.forwarder = ProxyForwarder(target=BACKEND, client=http_client)
    
    yield app_state
    
    # Restore original values
    app_state.config = original_config
    app_state.http_client = original_client
    app_state.session_manager = original_session_manager
    app_state.forwarder = original_forwarder


@pytest.fixture
def mock_env(temp_config_file, monkeypatch):
    """Set up environment variables for testing."""
    monkeypatch.setenv("METABASE_PROXY_CONFIG", temp_config_file)
    # Clear the cached config
    from metabase_proxy.config import get_config
    get_config.cache_clear()
    yield
    get_config.cache_clear()
