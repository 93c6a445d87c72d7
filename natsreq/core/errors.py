"""
Error taxonomy for the NATS request tool.

Every failure raised by the tool derives from NatsRequestError and carries
a standardized ErrorInfo so the host engine can route on it without
brittle string matching:

    case:
      - when: "{{ event.payload.error.kind == 'connection' }}"
        then:
          retry:
            max_attempts: 3

Timeouts and "no responders" are not errors: the task succeeds with an
empty response.
"""

from enum import Enum
from typing import Any, Optional
from pydantic import BaseModel, Field


class ErrorKind(str, Enum):
    """Standardized error categories for case block matching."""

    CONNECTION = "connection"       # Connection refused, DNS failure, auth rejected
    TIMEOUT = "timeout"             # Connect timeout
    TRANSPORT = "transport"         # Request rejected by the client or server
    SCHEMA = "schema"               # Invalid task configuration or payload shape
    UNKNOWN = "unknown"             # Unclassified error


class ErrorInfo(BaseModel):
    """Standardized error object for event payloads."""

    kind: ErrorKind = Field(
        default=ErrorKind.UNKNOWN,
        description="Error category for case matching"
    )
    retryable: bool = Field(
        default=False,
        description="Whether this error is worth retrying"
    )
    code: str = Field(
        default="UNKNOWN",
        description="Tool-specific error code (NATS_CONN_REFUSED, NATS_INVALID_INPUT, etc.)"
    )
    message: str = Field(
        default="Unknown error",
        description="Human-readable error message"
    )
    source: str = Field(
        default="nats",
        description="Tool kind that produced this error"
    )
    exception_type: Optional[str] = Field(
        None, description="Python exception class name"
    )
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Optional extra context"
    )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dict for event payload access."""
        d = {
            "kind": self.kind.value,
            "retryable": self.retryable,
            "code": self.code,
            "message": self.message,
            "source": self.source,
        }
        if self.exception_type is not None:
            d["exception_type"] = self.exception_type
        if self.details:
            d["details"] = self.details
        return d


class NatsRequestError(Exception):
    """Base class for failures of the NATS request tool."""

    kind = ErrorKind.UNKNOWN
    code = "NATS_ERROR"
    retryable = False

    def __init__(self, message: str, **details: Any):
        super().__init__(message)
        self.message = message
        self.details = details

    @property
    def error_info(self) -> ErrorInfo:
        return ErrorInfo(
            kind=self.kind,
            retryable=self.retryable,
            code=self.code,
            message=self.message,
            exception_type=type(self).__name__,
            details=self.details,
        )


class InvalidInputError(NatsRequestError, ValueError):
    """Malformed task configuration: bad 'from' shape, bad storage URI, missing file."""

    kind = ErrorKind.SCHEMA
    code = "NATS_INVALID_INPUT"


class NatsConnectionError(NatsRequestError, ConnectionError):
    """The NATS connection could not be established."""

    kind = ErrorKind.CONNECTION
    code = "NATS_CONN_ERROR"
    retryable = True


class NatsTransportError(NatsRequestError):
    """The request was rejected at publish/request time (not a timeout)."""

    kind = ErrorKind.TRANSPORT
    code = "NATS_TRANSPORT_ERROR"


def classify_connection_error(error: Exception) -> ErrorInfo:
    """Classify connection/network errors raised while connecting."""
    error_str = str(error).lower()

    if "timeout" in error_str or "timed out" in error_str:
        return ErrorInfo(
            kind=ErrorKind.TIMEOUT,
            retryable=True,
            code="NATS_CONN_TIMEOUT",
            message=str(error),
            exception_type=type(error).__name__,
        )
    elif "authorization" in error_str or "authentication" in error_str:
        return ErrorInfo(
            kind=ErrorKind.CONNECTION,
            retryable=False,
            code="NATS_AUTH",
            message=str(error),
            exception_type=type(error).__name__,
        )
    elif "connection refused" in error_str:
        return ErrorInfo(
            kind=ErrorKind.CONNECTION,
            retryable=True,  # May be transient
            code="NATS_CONN_REFUSED",
            message=str(error),
            exception_type=type(error).__name__,
        )
    elif "dns" in error_str or "resolve" in error_str or "name or service" in error_str:
        return ErrorInfo(
            kind=ErrorKind.CONNECTION,
            retryable=True,
            code="NATS_DNS_ERROR",
            message=str(error),
            exception_type=type(error).__name__,
        )
    return ErrorInfo(
        kind=ErrorKind.CONNECTION,
        retryable=True,
        code="NATS_CONN_ERROR",
        message=str(error),
        exception_type=type(error).__name__,
    )


def classify_nats_error(error: Exception) -> ErrorInfo:
    """
    Map any exception raised by the tool to ErrorInfo.

    Tool errors carry their own classification; connection errors are refined
    by message; anything else is reported as unknown.
    """
    if isinstance(error, NatsConnectionError):
        info = classify_connection_error(error)
        info.details = dict(error.details)
        return info
    if isinstance(error, NatsRequestError):
        return error.error_info
    if isinstance(error, (ConnectionError, OSError)):
        return classify_connection_error(error)
    return ErrorInfo(
        kind=ErrorKind.UNKNOWN,
        retryable=False,
        code=f"PY_{type(error).__name__}",
        message=str(error),
        exception_type=type(error).__name__,
    )


__all__ = [
    "ErrorKind",
    "ErrorInfo",
    "NatsRequestError",
    "InvalidInputError",
    "NatsConnectionError",
    "NatsTransportError",
    "classify_connection_error",
    "classify_nats_error",
]
