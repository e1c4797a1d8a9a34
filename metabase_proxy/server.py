"""
Listener - uvicorn server with connection tracking and signal-driven drain.
"""
from __future__ import annotations

import asyncio
import contextlib
import signal
import socket
import threading
from typing import Generator, List, Optional

import uvicorn
from uvicorn.protocols.http.h11_impl import H11Protocol

from metabase_proxy.config import Config, ProxySettings
from metabase_proxy.logging import get_logger
from metabase_proxy.main import app
from metabase_proxy.services.shutdown import ShutdownCoordinator
from metabase_proxy.services.tls import TLSMaterial
from metabase_proxy.state import app_state

logger = get_logger(__name__)

HANDLED_SIGNALS = tuple(
    getattr(signal, name) for name in ("SIGHUP", "SIGINT", "SIGTERM") if hasattr(signal, name)
)


def get_port(proxy: ProxySettings) -> int:
    """Explicit port, else 443 with TLS, else 80."""
    if proxy.port:
        return proxy.port
    if proxy.ssl:
        return 443
    return 80


def listen_url(proxy: ProxySettings, port: int) -> str:
    scheme = "https" if proxy.ssl else "http"
    return f"{scheme}://{proxy.address}:{port}"


def public_url(proxy: ProxySettings, port: int) -> str:
    """URL clients should open; the port is omitted when it is the scheme's default."""
    scheme = "https" if proxy.ssl else "http"
    default_port = 443 if proxy.ssl else 80
    port_part = "" if port == default_port else f":{port}"
    return f"{scheme}://{proxy.hostname}{port_part}/"


class TrackedH11Protocol(H11Protocol):
    """HTTP protocol that registers each client connection for the lifetime of its socket."""

    def connection_made(self, transport: asyncio.Transport) -> None:
        super().connection_made(transport)
        app_state.connections.add(transport)

    def connection_lost(self, exc: Optional[Exception]) -> None:
        app_state.connections.discard(self.transport)
        super().connection_lost(exc)


class ProxyServer(uvicorn.Server):
    """
    uvicorn server whose shutdown is driven by a ShutdownCoordinator.
    
    HUP, INT and TERM all start the same drain; repeated signals are ignored
    and are not re-raised once the server has stopped.
    """

    def __init__(self, config: uvicorn.Config, proxy: ProxySettings, coordinator: ShutdownCoordinator):
        super().__init__(config)
        self.proxy = proxy
        self.coordinator = coordinator

    @contextlib.contextmanager
    def capture_signals(self) -> Generator[None, None, None]:
        if threading.current_thread() is not threading.main_thread():
            yield
            return
        original_handlers = {sig: signal.signal(sig, self.handle_exit) for sig in HANDLED_SIGNALS}
        try:
            yield
        finally:
            for sig, handler in original_handlers.items():
                signal.signal(sig, handler)

    def handle_exit(self, sig: int, frame) -> None:
        if self.coordinator.begin(sig):
            self.should_exit = True

    async def startup(self, sockets: Optional[List[socket.socket]] = None) -> None:
        await super().startup(sockets=sockets)
        if self.should_exit:
            return
        port = self.config.port
        logger.info(f"Listening at {listen_url(self.proxy, port)}")
        logger.info(f"Open {public_url(self.proxy, port)}")

    async def shutdown(self, sockets: Optional[List[socket.socket]] = None) -> None:
        async def stop_accepting() -> None:
            for server in self.servers:
                server.close()
            for sock in sockets or []:
                sock.close()

        await self.coordinator.drain(stop_accepting, self.lifespan.shutdown)


def build_server(config: Config, tls: Optional[TLSMaterial], coordinator: ShutdownCoordinator) -> ProxyServer:
    """Create the listener for a validated config."""
    app_state.config = config
    uvicorn_config = uvicorn.Config(
        app,
        host=config.proxy.address,
        port=get_port(config.proxy),
        http=TrackedH11Protocol,
        lifespan="on",
        ssl_keyfile=tls.key_file if tls else None,
        ssl_certfile=tls.cert_file if tls else None,
        log_level="debug" if config.debug else "info",
        # Backend Server/Date headers are relayed as-is
        server_header=False,
        date_header=False,
    )
    return ProxyServer(uvicorn_config, proxy=config.proxy, coordinator=coordinator)
