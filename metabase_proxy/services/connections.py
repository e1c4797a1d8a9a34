"""
Connection registry - tracks open client connections so shutdown can close them.
"""
from __future__ import annotations

import asyncio
from typing import Iterator, Set

from metabase_proxy.logging import get_logger

logger = get_logger(__name__)


class ConnectionRegistry:
    """Set of live client transports. Only touched from the event loop."""

    def __init__(self):
        self._transports: Set[asyncio.Transport] = set()

    def add(self, transport: asyncio.Transport) -> None:
        self._transports.add(transport)

    def discard(self, transport: asyncio.Transport) -> None:
        self._transports.discard(transport)

    def __len__(self) -> int:
        return len(self._transports)

    def __iter__(self) -> Iterator[asyncio.Transport]:
        return iter(list(self._transports))

    def __contains__(self, transport: object) -> bool:
        return transport in self._transports

    def destroy_all(self) -> int:
        """
        Abort every registered transport without flushing pending writes.
        
        Returns:
            The number of connections destroyed
        """
        transports = list(self._transports)
        for transport in transports:
            transport.abort()
        self._transports.clear()
        if transports:
            logger.info(f"Destroyed {len(transports)} open connection(s)")
        return len(transports)
