"""Notification surface between the read loop and its observers."""
from __future__ import annotations

import queue
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional, Protocol, Union

from loguru import logger


class FailureKind(str, Enum):
    VALIDATION = "validation"
    WRITE = "write"
    READ = "read"
    TIMEOUT = "timeout"
    ABORT = "abort"
    DISCONNECTED = "disconnected"


@dataclass(frozen=True)
class FailureInfo:
    """One failed cycle, or the terminal failure that ended a run."""

    kind: FailureKind
    message: str
    error: Optional[BaseException] = None
    consecutive_errors: int = 0
    terminal: bool = False

    def __str__(self) -> str:
        return self.message


class MeasurementSink(Protocol):
    def on_measurement(self, text: str) -> None:
        """Called once per successful read cycle, in loop order."""

    def on_error(self, failure: FailureInfo) -> None:
        """Called once per failed cycle and once for a terminal abort."""


class CallbackSink:
    """Adapts plain callables to :class:`MeasurementSink`."""

    def __init__(
        self,
        on_measurement: Optional[Callable[[str], None]] = None,
        on_error: Optional[Callable[[FailureInfo], None]] = None,
    ) -> None:
        self._on_measurement = on_measurement
        self._on_error = on_error

    def on_measurement(self, text: str) -> None:
        if self._on_measurement is not None:
            self._on_measurement(text)

    def on_error(self, failure: FailureInfo) -> None:
        if self._on_error is not None:
            self._on_error(failure)


_Notification = Union[str, FailureInfo]
_CLOSE = object()


class QueuedSink:
    """Delivers notifications to ``target`` from a dispatcher thread.

    The producer only enqueues, so a slow observer never stalls the read
    loop. Ordering between measurements and failures is preserved.
    """

    def __init__(self, target: MeasurementSink) -> None:
        self._target = target
        self._queue: "queue.Queue[object]" = queue.Queue()
        self._thread = threading.Thread(target=self._dispatch, name="gpibmeter-notify", daemon=True)
        self._closed = False
        self._thread.start()

    def on_measurement(self, text: str) -> None:
        self._put(text)

    def on_error(self, failure: FailureInfo) -> None:
        self._put(failure)

    def join(self) -> None:
        """Block until every queued notification has been delivered."""
        self._queue.join()

    def close(self, timeout: Optional[float] = None) -> None:
        if self._closed:
            return
        self._closed = True
        self._queue.put(_CLOSE)
        self._thread.join(timeout)

    def _put(self, item: _Notification) -> None:
        if self._closed:
            raise RuntimeError("QueuedSink is closed")
        self._queue.put(item)

    def _dispatch(self) -> None:
        while True:
            item = self._queue.get()
            try:
                if item is _CLOSE:
                    return
                deliver(self._target, item)
            finally:
                self._queue.task_done()


def deliver(sink: MeasurementSink, item: _Notification) -> None:
    """Hand one notification to ``sink``; observer errors are logged, not raised."""
    try:
        if isinstance(item, FailureInfo):
            sink.on_error(item)
        else:
            sink.on_measurement(item)
    except Exception:
        logger.exception("Notification sink raised while handling {!r}", item)
