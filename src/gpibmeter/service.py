"""Caller-facing facade pairing one session with one read loop."""
from __future__ import annotations

import threading
from typing import Callable, Optional

from loguru import logger

from .errors import NotConnectedError
from .notify import MeasurementSink
from .policy import DEFAULT_POLICY, DEFAULT_RESOURCE, RetryPolicy
from .reader import ReadLoop, ReadLoopResult
from .session import GpibSession
from .transport import TransportOpener

FinishedCallback = Callable[[ReadLoopResult], None]


class MeasurementService:
    """Connect, read, stop and disconnect without blocking the controlling thread."""

    def __init__(
        self,
        resource_name: str = DEFAULT_RESOURCE,
        sink: Optional[MeasurementSink] = None,
        *,
        opener: Optional[TransportOpener] = None,
        policy: RetryPolicy = DEFAULT_POLICY,
        join_timeout_s: float = 10.0,
    ) -> None:
        self._session = GpibSession(resource_name, opener, policy=policy)
        self._loop = ReadLoop(self._session, sink, policy=policy)
        self._join_timeout_s = join_timeout_s
        self._connect_thread: Optional[threading.Thread] = None

    def __enter__(self) -> "MeasurementService":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    @property
    def resource_name(self) -> str:
        return self._session.resource_name

    @property
    def identity(self) -> Optional[str]:
        return self._session.identity

    @property
    def is_connected(self) -> bool:
        return self._session.is_connected

    @property
    def is_measuring(self) -> bool:
        return self._session.is_measuring

    @property
    def last_result(self) -> Optional[ReadLoopResult]:
        return self._loop.last_result

    def connect(self) -> None:
        self._session.connect()

    def connect_async(self, on_done: Callable[[Optional[Exception]], None]) -> threading.Thread:
        """Run :meth:`connect` on a worker; ``on_done`` gets None or the failure."""
        if self._connect_thread is not None and self._connect_thread.is_alive():
            raise RuntimeError("A connect attempt is already in progress")

        def _target() -> None:
            error: Optional[Exception] = None
            try:
                self._session.connect()
            except Exception as exc:
                logger.error("Connect failed: {}", exc)
                error = exc
            on_done(error)

        thread = threading.Thread(target=_target, name="gpibmeter-connect", daemon=True)
        self._connect_thread = thread
        thread.start()
        return thread

    def start_unbounded(self, on_finished: Optional[FinishedCallback] = None) -> None:
        self._loop.start_unbounded(on_finished)

    def start_for_duration(self, seconds: float, on_finished: Optional[FinishedCallback] = None) -> None:
        self._loop.start_for_duration(seconds, on_finished)

    def stop(self) -> None:
        """Clear the measuring flag. The session stays connected."""
        if not self._session.is_connected:
            raise NotConnectedError(f"Not connected to {self._session.resource_name}")
        self._loop.stop()

    def wait(self, timeout: Optional[float] = None) -> bool:
        return self._loop.wait(timeout)

    def disconnect(self) -> None:
        """Stop the loop, give it a bounded time to exit, then close the session."""
        self._loop.stop()
        if not self._loop.wait(self._join_timeout_s):
            logger.warning("Read loop still busy after {} s; closing transport under it", self._join_timeout_s)
        self._session.disconnect()

    def disconnect_async(self, on_done: Optional[Callable[[], None]] = None) -> threading.Thread:
        """Run :meth:`disconnect` on a worker so the caller never waits on the loop."""

        def _target() -> None:
            self.disconnect()
            if on_done is not None:
                on_done()

        thread = threading.Thread(target=_target, name="gpibmeter-disconnect", daemon=True)
        thread.start()
        return thread

    def close(self) -> None:
        self._loop.stop()
        self._loop.wait(self._join_timeout_s)
        self._session.close()
