"""
Metabase API Proxy - reverse proxy that owns the backend session.

Entry point for the FastAPI application.
"""
from __future__ import annotations

from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI

from metabase_proxy.logging import get_logger
from metabase_proxy.state import app_state
from metabase_proxy.routers import proxy
from metabase_proxy.services.proxy import ProxyForwarder
from metabase_proxy.services.session import Credentials, SessionManager

logger = get_logger(__name__)


def _init_http_client() -> None:
    """Initialize shared HTTP client for backend requests."""
    config = app_state.config
    # Backend calls never time out on the proxy side
    app_state.http_client = httpx.AsyncClient(
        timeout=None,
        verify=config.proxy.verify_target,
        follow_redirects=False,
    )
    logger.info("HTTP client initialized")


def _init_session_manager() -> None:
    """Create the session manager; the first request triggers the first login."""
    config = app_state.config
    app_state.session_manager = SessionManager(
        target=config.proxy.target,
        credentials=Credentials(email=config.metabase.email, password=config.metabase.password),
        client=app_state.http_client,
        api_path=config.metabase.api_path,
    )
    logger.info(f"Session manager ready for {config.proxy.target}")


def _init_forwarder() -> None:
    app_state.forwarder = ProxyForwarder(target=app_state.config.proxy.target, client=app_state.http_client)


async def _shutdown_http_client() -> None:
    """Close the shared HTTP client."""
    if app_state.http_client:
        await app_state.http_client.aclose()
        logger.info("HTTP client closed")
    app_state.forwarder = None
    app_state.session_manager = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager - handles startup and shutdown."""
    if app_state.config is None:
        raise RuntimeError("Configuration must be loaded before the application starts")
    _init_http_client()
    _init_session_manager()
    _init_forwarder()
    
    yield
    
    logger.info("Closing proxy")
    await _shutdown_http_client()


app = FastAPI(
    title="Metabase API Proxy",
    description="Reverse proxy that injects a managed Metabase session",
    lifespan=lifespan,
    # Every path belongs to the backend
    docs_url=None,
    redoc_url=None,
    openapi_url=None,
)

app.include_router(proxy.router)
