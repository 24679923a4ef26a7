"""Connection lifecycle for a single GPIB instrument."""
from __future__ import annotations

import time
from contextlib import contextmanager
from typing import Iterator, Optional

from loguru import logger

from .errors import ConnectError, GpibError, NotConnectedError, TransportError, TransportTimeout
from .policy import DEFAULT_POLICY, DEFAULT_RESOURCE, IDN_QUERY, RetryPolicy
from .transport import TransportHandle, TransportOpener, open_transport


class GpibSession:
    """Owns at most one transport handle and validates it before use.

    ``is_measuring`` doubles as the cooperative stop flag for the read loop:
    the loop raises it on entry and keeps iterating only while it stays set.
    """

    def __init__(
        self,
        resource_name: str = DEFAULT_RESOURCE,
        opener: Optional[TransportOpener] = None,
        *,
        policy: RetryPolicy = DEFAULT_POLICY,
    ) -> None:
        self._resource_name = resource_name
        self._opener = opener or open_transport
        self.policy = policy
        self.identity: Optional[str] = None
        self._transport: Optional[TransportHandle] = None
        self._connected = False
        self._measuring = False
        self._closed = False
        # Bumped by disconnect() so an in-flight reconnect knows to give up.
        self._generation = 0
        self._validation_error: Optional[Exception] = None

    def __enter__(self) -> "GpibSession":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    @property
    def resource_name(self) -> str:
        return self._resource_name

    @property
    def is_connected(self) -> bool:
        return self._connected and self._transport is not None

    @property
    def is_measuring(self) -> bool:
        return self._measuring

    @property
    def transport(self) -> TransportHandle:
        if self._transport is None:
            raise NotConnectedError(f"Not connected to {self._resource_name}")
        return self._transport

    def require_connected(self) -> None:
        if not self.is_connected:
            raise NotConnectedError(f"Not connected to {self._resource_name}")

    def connect(self) -> None:
        """Open and validate the instrument, retrying with capped exponential backoff.

        Raises:
            ConnectError: every attempt failed; ``__cause__`` is the last failure.
        """
        if self._closed:
            raise GpibError("Session has been closed")
        if self.is_connected:
            return
        policy = self.policy
        last_error: Optional[Exception] = None
        for attempt in range(1, policy.connect_attempts + 1):
            logger.info(
                "Attempting to connect to {} (attempt {}/{})", self._resource_name, attempt, policy.connect_attempts
            )
            self._discard_transport()
            try:
                self._transport = self._opener(self._resource_name)
                time.sleep(policy.settle_delay_ms / 1000)
                if self._validate():
                    self._connected = True
                    logger.info("Connected to {} ({})", self._resource_name, self.identity)
                    return
                last_error = self._validation_error
            except (TransportError, OSError) as exc:
                last_error = exc
                logger.warning("Connection attempt {} failed: {}", attempt, exc)
            self._discard_transport()
            if attempt < policy.connect_attempts:
                time.sleep(policy.connect_backoff_ms(attempt) / 1000)

        self._connected = False
        raise ConnectError(self._resource_name, policy.connect_attempts, last_error) from last_error

    def disconnect(self) -> None:
        """Clear the stop flag, close the handle and mark the session disconnected."""
        self._measuring = False
        self._generation += 1
        if self._transport is None and not self._connected:
            return
        self._discard_transport()
        self._connected = False
        logger.info("Disconnected from {}", self._resource_name)

    def reconnect(self) -> None:
        """Replace the current handle with a freshly opened one for the same address.

        Raises:
            TransportError: the address could not be reopened, or the session
                was disconnected while waiting.
        """
        policy = self.policy
        generation = self._generation
        self._discard_transport()
        self._connected = False
        time.sleep(policy.reconnect_delay_ms / 1000)
        if generation != self._generation or self._closed:
            raise TransportError("Reconnect abandoned: session was disconnected")
        try:
            self._transport = self._opener(self._resource_name)
        except (TransportError, OSError) as exc:
            logger.error("Reconnection to {} failed: {}", self._resource_name, exc)
            if isinstance(exc, TransportError):
                raise
            raise TransportError(f"Reconnection to {self._resource_name} failed: {exc}") from exc
        self._connected = True
        time.sleep(policy.reconnect_settle_ms / 1000)

    def close(self) -> None:
        """Tear the session down. Only the first call has any effect."""
        if self._closed:
            return
        self._closed = True
        self.disconnect()

    def mark_measuring(self) -> None:
        self._measuring = True

    def mark_idle(self) -> None:
        self._measuring = False

    @contextmanager
    def query_timeout(self, timeout_ms: float) -> Iterator[TransportHandle]:
        """Temporarily override the handle timeout; the original is always restored."""
        transport = self.transport
        original = transport.timeout_ms
        transport.timeout_ms = timeout_ms
        try:
            yield transport
        finally:
            transport.timeout_ms = original

    def _validate(self) -> bool:
        policy = self.policy
        started = time.monotonic()
        try:
            with self.query_timeout(policy.validation_io_timeout_ms) as transport:
                transport.write_line(IDN_QUERY)
                response = transport.read_line().strip()
        except Exception as exc:
            logger.warning("Error during device validation: {}", exc)
            self._validation_error = exc
            return False

        elapsed_ms = (time.monotonic() - started) * 1000
        if not response:
            logger.warning("Device returned empty response during validation")
            self._validation_error = TransportError("Empty identification response")
            return False
        if elapsed_ms > policy.validation_timeout_ms:
            logger.warning("Validation took {:.0f} ms", elapsed_ms)
            self._validation_error = TransportTimeout(
                f"Validation exceeded {policy.validation_timeout_ms} ms"
            )
            return False
        logger.info("Device identification: {}", response)
        self.identity = response
        self._validation_error = None
        return True

    def _discard_transport(self) -> None:
        transport, self._transport = self._transport, None
        if transport is not None:
            transport.close()
