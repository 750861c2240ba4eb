"""Freeze protection for long-running pipeline steps.

A step that never finishes (typically a transaction receipt that never
arrives) must not stall the whole multi-account cycle.  :class:`FreezeGuard`
races the step against a long timeout; when the timeout wins, the step task
is cancelled and the guard returns ``None`` so the pipeline moves on.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional

from core.shutdown import ShutdownCoordinator

logger = logging.getLogger(__name__)

FREEZE_TIMEOUT_SECONDS = 3600.0


class FreezeGuard:
    """Timeout racer used around every account-pipeline step.

    Args:
        timeout: Seconds a step may run before it is abandoned.
        shutdown: Optional coordinator; no step starts once it is set.
    """

    def __init__(
        self,
        timeout: float = FREEZE_TIMEOUT_SECONDS,
        shutdown: Optional[ShutdownCoordinator] = None,
    ) -> None:
        self.timeout = timeout
        self.shutdown = shutdown
        self.freezes = 0

    async def guard(
        self,
        label: str,
        operation: Callable[..., Awaitable[Any]],
        *args: Any,
        **kwargs: Any,
    ) -> Any:
        """Run ``operation(*args, **kwargs)`` under the freeze timeout.

        Returns:
            The operation's result, or ``None`` if it froze (or shutdown was
            already requested).

        Raises:
            Whatever the operation raised, if it finished before the timeout.
        """
        if self.shutdown is not None and self.shutdown.requested:
            return None

        task = asyncio.ensure_future(operation(*args, **kwargs))
        try:
            done, _ = await asyncio.wait({task}, timeout=self.timeout)
        except asyncio.CancelledError:
            task.cancel()
            raise
        if task in done:
            return task.result()

        self.freezes += 1
        logger.warning(
            f"Process {label} detected freeze for more than "
            f"{self.timeout:g} seconds, continuing to next process..."
        )
        # Request cancellation but do not wait for it: a task that ignores
        # cancellation must not block the pipeline.
        task.cancel()
        task.add_done_callback(_consume_result)
        return None


def _consume_result(task: "asyncio.Future[Any]") -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.debug(f"Abandoned step finished with error: {exc}")
