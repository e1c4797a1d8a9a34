"""
Application state - shared state initialized at startup.
"""
from __future__ import annotations

import httpx

from metabase_proxy.config import Config
from metabase_proxy.services.connections import ConnectionRegistry
from metabase_proxy.services.proxy import ProxyForwarder
from metabase_proxy.services.session import SessionManager


class AppState:
    """
    Application state container.
    Config is set before the server starts; the HTTP client, session manager
    and forwarder are created by the lifespan and read by the proxy router.
    """
    
    def __init__(self):
        self.config: Config | None = None
        self.http_client: httpx.AsyncClient | None = None
        self.session_manager: SessionManager | None = None
        self.forwarder: ProxyForwarder | None = None
        self.connections = ConnectionRegistry()


app_state = AppState()
