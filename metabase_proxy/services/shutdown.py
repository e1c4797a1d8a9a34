"""
Shutdown service - drains the server when a termination signal arrives.

Running -> Draining -> Stopped. Draining stops accepting, closes the forwarding
subsystem, then aborts whatever client connections are still open. The process
exit status is 128 + signal number.
"""
from __future__ import annotations

from enum import Enum
from typing import Awaitable, Callable, Dict, Optional

from metabase_proxy.logging import get_logger
from metabase_proxy.services.connections import ConnectionRegistry

logger = get_logger(__name__)

# POSIX signal numbers; the exit status is 128 + value
SIGNAL_VALUES: Dict[str, int] = {
    "SIGHUP": 1,
    "SIGINT": 2,
    "SIGTERM": 15,
}
SIGNAL_NAMES: Dict[int, str] = {value: name for name, value in SIGNAL_VALUES.items()}


class ShutdownState(str, Enum):
    RUNNING = "running"
    DRAINING = "draining"
    STOPPED = "stopped"


class ShutdownCoordinator:
    """Runs the shutdown sequence exactly once, whatever signals arrive."""

    def __init__(self, connections: ConnectionRegistry):
        self.connections = connections
        self.state = ShutdownState.RUNNING
        self.signum: Optional[int] = None

    @property
    def signal_name(self) -> Optional[str]:
        if self.signum is None:
            return None
        return SIGNAL_NAMES.get(self.signum, f"signal {self.signum}")

    @property
    def exit_code(self) -> int:
        if self.signum is None:
            return 0
        return 128 + self.signum

    def begin(self, signum: int) -> bool:
        """
        Record a termination signal and enter Draining.
        
        Returns:
            True if this signal started the shutdown, False if one is already underway
        """
        signum = int(signum)
        name = SIGNAL_NAMES.get(signum, f"signal {signum}")
        if self.state is not ShutdownState.RUNNING:
            logger.warning(f"Received {name} while {self.state.value}, ignoring")
            return False

        logger.info(f"Process received a {name} signal")
        self.signum = signum
        self.state = ShutdownState.DRAINING
        return True

    async def drain(
        self,
        stop_accepting: Callable[[], Awaitable[None]],
        close_proxy: Callable[[], Awaitable[None]],
    ) -> int:
        """
        Run the drain sequence and return the exit status.
        
        Args:
            stop_accepting: Closes the listening sockets
            close_proxy: Gracefully closes the forwarding subsystem
        """
        if self.state is ShutdownState.STOPPED:
            return self.exit_code
        # Shutdown requested without a signal (e.g. programmatic stop)
        self.state = ShutdownState.DRAINING

        logger.info("Closing server")
        await stop_accepting()
        try:
            await close_proxy()
        finally:
            logger.info("Destroying sockets")
            self.connections.destroy_all()
            self.state = ShutdownState.STOPPED

        if self.signum is not None:
            logger.info(f"Server stopped by {self.signal_name} with value {self.signum}")
        return self.exit_code
