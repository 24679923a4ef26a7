"""Exception types raised by the GPIB measurement core."""
from __future__ import annotations

from typing import Optional


class GpibError(Exception):
    """Base class for all errors raised by this package."""


class TransportError(GpibError):
    """An I/O operation on the instrument transport failed."""


class TransportTimeout(TransportError, TimeoutError):
    """A single write or read did not complete within the handle timeout."""


class ConnectError(GpibError):
    """The connect retry budget was exhausted without a validated session."""

    def __init__(self, resource_name: str, attempts: int, last_error: Optional[BaseException] = None) -> None:
        self.resource_name = resource_name
        self.attempts = attempts
        self.last_error = last_error
        detail = f" Last error: {last_error}" if last_error is not None else ""
        super().__init__(f"Failed to connect to {resource_name} after {attempts} attempts.{detail}")


class NotConnectedError(GpibError, RuntimeError):
    """An operation that needs an open session was called while disconnected."""


class LoopAbortError(GpibError):
    """The read loop gave up after too many consecutive failed cycles."""

    def __init__(self, consecutive_errors: int, last_error: BaseException) -> None:
        self.consecutive_errors = consecutive_errors
        self.last_error = last_error
        super().__init__(
            f"Max consecutive errors reached ({consecutive_errors}). Stopping measurement. "
            f"Last error: {last_error}"
        )
