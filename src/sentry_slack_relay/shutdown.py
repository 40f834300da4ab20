"""Signal handling for the webhook server process.

Usage:
    ```python
    async with GracefulShutdown() as shutdown:
        await server.start()
        await shutdown.wait()
        await server.stop()
    ```
"""

from __future__ import annotations

import asyncio
import logging
import signal
from contextlib import suppress
from typing import Any

logger = logging.getLogger(__name__)

# Signals to trap for graceful shutdown
SHUTDOWN_SIGNALS = (signal.SIGTERM, signal.SIGINT)


class GracefulShutdown:
    """Turns SIGTERM/SIGINT into an awaitable shutdown event.

    In-flight webhook requests, including any pending rate-limit wait,
    are abandoned when the server stops; nothing needs to be flushed.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self._loop: asyncio.AbstractEventLoop | None = None
        self._installed: list[signal.Signals] = []

    async def wait(self) -> None:
        """Block until a shutdown signal arrives."""
        await self._event.wait()

    def _handle_signal(self, sig: signal.Signals) -> None:
        logger.info("Received %s - shutting down...", sig.name)
        self._event.set()

    def install_signal_handlers(self) -> None:
        """Route shutdown signals to the event on the running loop."""
        self._loop = asyncio.get_running_loop()
        for sig in SHUTDOWN_SIGNALS:
            try:
                self._loop.add_signal_handler(sig, self._handle_signal, sig)
            except (NotImplementedError, ValueError, OSError) as e:
                # Not supported on Windows event loops
                logger.warning("Could not install handler for %s: %s", sig.name, e)
            else:
                self._installed.append(sig)

    def remove_signal_handlers(self) -> None:
        """Remove the handlers installed by install_signal_handlers."""
        if self._loop is None:
            return
        for sig in self._installed:
            with suppress(ValueError, OSError):
                self._loop.remove_signal_handler(sig)
        self._installed.clear()

    async def __aenter__(self) -> GracefulShutdown:
        self.install_signal_handlers()
        return self

    async def __aexit__(self, *_args: Any) -> None:
        self.remove_signal_handlers()
