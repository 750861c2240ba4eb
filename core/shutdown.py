"""Cooperative shutdown coordination.

A single :class:`ShutdownCoordinator` is created by ``main.py`` and passed
down to the cycle driver, every account pipeline and the operation catalog.
Nothing reads a module-level flag; tests build their own coordinator.

The flag is set once by the interrupt handler and never reset.  Loops
check :attr:`ShutdownCoordinator.requested` before starting new work and
every delay goes through :meth:`ShutdownCoordinator.sleep`, which returns
early as soon as shutdown is requested.
"""

import asyncio
import logging
import os
import signal
import sys
from typing import Callable

logger = logging.getLogger(__name__)

GRACE_PERIOD_SECONDS = 5.0


def _hard_exit(code: int) -> None:
    logging.shutdown()
    os._exit(code)


class ShutdownCoordinator:
    """Process-wide shutdown flag with an interruptible sleep.

    Args:
        grace_period: Seconds between the interrupt and forced exit.
        exit_func: Called with exit code ``0`` when the grace period ends.
    """

    def __init__(
        self,
        grace_period: float = GRACE_PERIOD_SECONDS,
        exit_func: Callable[[int], None] = _hard_exit,
    ) -> None:
        self.grace_period = grace_period
        self._exit_func = exit_func
        self._event = asyncio.Event()

    @property
    def requested(self) -> bool:
        """``True`` once shutdown has been requested."""
        return self._event.is_set()

    def request(self, reason: str = "interrupt") -> None:
        """Set the flag and schedule the forced exit.

        Subsequent calls are ignored.
        """
        if self._event.is_set():
            return
        self._event.set()
        logger.warning(f"🛑 Shutting down gracefully ({reason})...")
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        loop.call_later(self.grace_period, self._exit_func, 0)

    async def sleep(self, seconds: float) -> bool:
        """Sleep for *seconds* unless shutdown is requested first.

        Returns:
            ``True`` if the full delay elapsed, ``False`` if interrupted.
        """
        if self._event.is_set():
            return False
        if seconds <= 0:
            return True
        try:
            await asyncio.wait_for(self._event.wait(), timeout=seconds)
            return False
        except asyncio.TimeoutError:
            return True

    def install_signal_handlers(self, loop: asyncio.AbstractEventLoop) -> None:
        """Route SIGINT / SIGTERM to :meth:`request`.

        Windows has no ``add_signal_handler``; there KeyboardInterrupt is
        handled by ``main.py`` instead.
        """
        if sys.platform == "win32":
            return
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, self.request, sig.name)
