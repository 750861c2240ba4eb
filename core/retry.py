"""Bounded retry for network operations.

:func:`execute` runs a zero-argument coroutine factory and retries it only
when the failure is classified as :attr:`ErrorType.TRANSIENT` (the remote
host could not be resolved).  Business rejections and unknown errors end
the operation after a single attempt because another attempt cannot change
the answer.

The result is always an :class:`Outcome`; exceptions never escape
:func:`execute`.
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

from core.errors import ErrorType, classify_error
from core.shutdown import ShutdownCoordinator

logger = logging.getLogger(__name__)

MAX_RETRIES = 3
RETRY_DELAY_SECONDS = 5.0


class OutcomeStatus(Enum):
    SUCCESS = "success"
    FAILURE = "failure"
    EXHAUSTED = "exhausted"


@dataclass
class Outcome:
    """Result of a retried operation.

    Attributes:
        status: SUCCESS, FAILURE (terminal) or EXHAUSTED (all attempts used).
        value: Return value of the operation on success.
        error: Human-readable error detail for FAILURE / EXHAUSTED.
        error_type: Classified error category, if any.
        attempts: Number of attempts actually made.
    """

    status: OutcomeStatus
    value: Any = None
    error: Optional[str] = None
    error_type: Optional[ErrorType] = None
    attempts: int = 0

    @property
    def success(self) -> bool:
        return self.status is OutcomeStatus.SUCCESS

    @classmethod
    def ok(cls, value: Any = None, attempts: int = 1) -> "Outcome":
        return cls(OutcomeStatus.SUCCESS, value=value, attempts=attempts)

    @classmethod
    def failed(
        cls,
        error: str,
        error_type: ErrorType = ErrorType.BUSINESS,
        attempts: int = 1,
    ) -> "Outcome":
        return cls(OutcomeStatus.FAILURE, error=error, error_type=error_type, attempts=attempts)

    def __bool__(self) -> bool:
        return self.success


async def execute(
    operation: Callable[[], Awaitable[Any]],
    *,
    label: str = "Operation",
    shutdown: Optional[ShutdownCoordinator] = None,
    max_retries: int = MAX_RETRIES,
    retry_delay: float = RETRY_DELAY_SECONDS,
) -> Outcome:
    """Run *operation* with retry on transient connectivity failures.

    Args:
        operation: Zero-argument callable returning an awaitable.
        label: Name used in log lines (e.g. ``"Check-in"``).
        shutdown: Optional coordinator; no new attempt starts once it is set
            and the inter-attempt delay is cut short.
        max_retries: Maximum number of attempts in total.
        retry_delay: Seconds between attempts.

    Returns:
        An :class:`Outcome`.
    """
    attempts = 0
    last_error: Optional[str] = None
    while attempts < max_retries:
        if shutdown is not None and shutdown.requested:
            return Outcome.failed(
                f"{label} skipped: shutdown in progress",
                error_type=ErrorType.PERMANENT,
                attempts=attempts,
            )
        attempts += 1
        try:
            value = await operation()
            return Outcome.ok(value, attempts=attempts)
        except Exception as e:
            error_type = classify_error(e)
            if error_type is not ErrorType.TRANSIENT:
                logger.error(f"{label} failed: {e}")
                return Outcome.failed(str(e), error_type=error_type, attempts=attempts)
            last_error = str(e)

        if attempts >= max_retries:
            break
        logger.warning(
            f"{label} failed, attempt {attempts}/{max_retries}. "
            f"Waiting {retry_delay:g} seconds..."
        )
        if shutdown is not None:
            await shutdown.sleep(retry_delay)
        else:
            await asyncio.sleep(retry_delay)

    logger.error(f"{label} failed after {attempts} attempts")
    return Outcome(
        OutcomeStatus.EXHAUSTED,
        error=last_error,
        error_type=ErrorType.TRANSIENT,
        attempts=attempts,
    )
