"""Fixed commands and retry/backoff policy for instrument sessions."""
from __future__ import annotations

from dataclasses import dataclass

DEFAULT_RESOURCE = "GPIB0::1::INSTR"
IDN_QUERY = "*IDN?"
READ_QUERY = ":READ?"


@dataclass(frozen=True)
class RetryPolicy:
    """Timing and retry limits used by the session and the read loop.

    All durations are in milliseconds.
    """

    connect_attempts: int = 10
    connect_backoff_base_ms: int = 1000
    connect_backoff_cap_ms: int = 5000
    settle_delay_ms: int = 250
    validation_timeout_ms: int = 5000
    validation_io_timeout_ms: int = 2000
    read_timeout_ms: int = 1000
    read_backoff_base_ms: int = 100
    read_backoff_cap_ms: int = 5000
    max_consecutive_errors: int = 5
    reconnect_attempts: int = 3
    reconnect_delay_ms: int = 1000
    reconnect_settle_ms: int = 500
    poll_interval_ms: int = 10

    def connect_backoff_ms(self, attempt: int) -> int:
        """Delay after failed connect attempt number ``attempt`` (1-based)."""
        return min(self.connect_backoff_base_ms * 2 ** (attempt - 1), self.connect_backoff_cap_ms)

    def read_backoff_ms(self, consecutive_errors: int) -> int:
        return min(self.read_backoff_base_ms * 2**consecutive_errors, self.read_backoff_cap_ms)


DEFAULT_POLICY = RetryPolicy()
