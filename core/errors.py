"""Error taxonomy for the Pharos task runner.

Every external collaborator (the task API client and the chain client)
raises one of the typed exceptions below instead of leaking transport
specific errors.  :func:`classify_error` turns an exception into an
:class:`ErrorType`, which is what the retry layer uses to decide whether
another attempt is worth the time.

Classes:
    ErrorType: Enum of error categories.
    PharosError: Base exception.
    ConnectivityError: Remote host could not be resolved / reached.
    BusinessRejection: The remote side answered and said no.
    InsufficientBalance: Wallet cannot fund the requested operation.
    ConfigError: Fatal startup configuration problem.
"""

import logging
import socket
from enum import Enum
from typing import Optional

import aiohttp

logger = logging.getLogger(__name__)


class ErrorType(Enum):
    """Classification of error types for retry decisions.

    Error Categories:
    - TRANSIENT: DNS / host resolution failures (retryable, fixed delay)
    - BUSINESS: Non-zero response code, insufficient balance, reverted tx (NOT retryable)
    - PERMANENT: Bad configuration or credentials (NOT retryable)
    - UNKNOWN: Unclassified errors (NOT retryable, logged with detail)
    """
    TRANSIENT = "transient"
    BUSINESS = "business"
    PERMANENT = "permanent"
    UNKNOWN = "unknown"


class PharosError(Exception):
    """Base class for all errors raised by this package."""

    error_type: ErrorType = ErrorType.UNKNOWN


class ConnectivityError(PharosError):
    """The remote host could not be resolved."""

    error_type = ErrorType.TRANSIENT


class BusinessRejection(PharosError):
    """A syntactically valid response that signals a logical failure.

    Attributes:
        code: Envelope ``code`` returned by the API, if any.
    """

    error_type = ErrorType.BUSINESS

    def __init__(self, message: str, code: Optional[int] = None):
        super().__init__(message)
        self.code = code


class InsufficientBalance(BusinessRejection):
    """Wallet balance is below what the operation needs."""


class ConfigError(PharosError):
    """Fatal startup configuration error (bad keys, recipients, ...)."""

    error_type = ErrorType.PERMANENT


def is_resolution_failure(exc: BaseException) -> bool:
    """Return ``True`` if *exc* is a host-name resolution failure.

    Walks ``__cause__`` / ``__context__`` and aiohttp's ``os_error`` so
    that errors wrapped by web3 or aiohttp are still recognised.
    """
    seen = set()
    current: Optional[BaseException] = exc
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        if isinstance(current, socket.gaierror):
            return True
        if isinstance(current, aiohttp.ClientConnectorError):
            os_error = getattr(current, "os_error", None)
            if isinstance(os_error, socket.gaierror):
                return True
        current = current.__cause__ or current.__context__
    return False


def translate_transport_error(exc: BaseException) -> BaseException:
    """Map a transport exception onto the package taxonomy.

    Resolution failures become :class:`ConnectivityError`; anything else
    is returned unchanged so the caller can re-raise it.
    """
    if isinstance(exc, PharosError):
        return exc
    if is_resolution_failure(exc):
        return ConnectivityError(f"Could not resolve remote host: {exc}")
    return exc


def classify_error(exception: BaseException) -> ErrorType:
    """Classify an exception for the retry layer.

    Args:
        exception: The exception raised by an operation.

    Returns:
        ErrorType enum value.  Only ``TRANSIENT`` is retried.
    """
    if isinstance(exception, PharosError):
        return exception.error_type
    if is_resolution_failure(exception):
        logger.debug("Classified as TRANSIENT (resolution failure): %s", exception)
        return ErrorType.TRANSIENT
    return ErrorType.UNKNOWN
