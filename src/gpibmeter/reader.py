"""Continuous ``:READ?`` polling on top of a connected :class:`GpibSession`."""
from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from loguru import logger

from .errors import GpibError, LoopAbortError, NotConnectedError, TransportError, TransportTimeout
from .notify import CallbackSink, FailureInfo, FailureKind, MeasurementSink, deliver
from .policy import READ_QUERY, RetryPolicy
from .session import GpibSession


class StopReason(str, Enum):
    STOPPED = "stopped"
    DEADLINE = "deadline"
    ABORTED = "aborted"
    DISCONNECTED = "disconnected"


@dataclass
class ReadLoopResult:
    measurements: int = 0
    failures: int = 0
    stop_reason: StopReason = StopReason.STOPPED
    error: Optional[BaseException] = None


class ReadLoop:
    """Drives the query/response cycle and reports every outcome to a sink.

    ``run_*`` block the calling thread; ``start_*`` arm the stop flag and run
    the same loop on a background worker. Either way the loop exits when the
    session's measuring flag is cleared, when the optional duration elapses,
    when the session loses its connection, or after too many consecutive
    failed cycles.
    """

    def __init__(
        self,
        session: GpibSession,
        sink: Optional[MeasurementSink] = None,
        *,
        policy: Optional[RetryPolicy] = None,
    ) -> None:
        self._session = session
        self._sink = sink or CallbackSink()
        self.policy = policy or session.policy
        self._consecutive_errors = 0
        self._thread: Optional[threading.Thread] = None
        self.last_result: Optional[ReadLoopResult] = None

    @property
    def session(self) -> GpibSession:
        return self._session

    @property
    def consecutive_errors(self) -> int:
        return self._consecutive_errors

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def run_unbounded(self) -> ReadLoopResult:
        self._prepare()
        return self._run(None)

    def run_for_duration(self, seconds: float) -> ReadLoopResult:
        _check_duration(seconds)
        self._prepare()
        return self._run(seconds)

    def start_unbounded(self, on_finished: Optional[Callable[[ReadLoopResult], None]] = None) -> threading.Thread:
        self._prepare()
        return self._spawn(None, on_finished)

    def start_for_duration(
        self,
        seconds: float,
        on_finished: Optional[Callable[[ReadLoopResult], None]] = None,
    ) -> threading.Thread:
        _check_duration(seconds)
        self._prepare()
        return self._spawn(seconds, on_finished)

    def stop(self) -> None:
        """Ask the loop to exit at its next checkpoint. Does not block or disconnect."""
        self._session.mark_idle()

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Join the background worker. Returns False if it is still running."""
        thread = self._thread
        if thread is None:
            return True
        thread.join(timeout)
        return not thread.is_alive()

    def read_with_reconnect(self, command: str = READ_QUERY) -> str:
        """Read one response, reopening the session on timeout or I/O failure.

        ``command`` has already been written once by the caller; after each
        reconnect it is written again on the fresh handle before reading.

        Raises:
            TransportTimeout: the read still failed after every reconnect attempt.
        """
        session = self._session
        policy = self.policy
        last_error: Optional[TransportError] = None
        reconnects = 0
        for attempt in range(policy.reconnect_attempts + 1):
            if attempt:
                if not session.is_measuring:
                    raise TransportTimeout(
                        f"Reconnect abandoned after {reconnects} attempts: read loop was stopped ({last_error})"
                    ) from last_error
                reconnects = attempt
                logger.info("Attempting reconnection, try {} of {}", attempt, policy.reconnect_attempts)
            try:
                if attempt:
                    session.reconnect()
                    session.transport.write_line(command)
                with session.query_timeout(policy.read_timeout_ms) as transport:
                    return transport.read_line()
            except TransportError as exc:
                last_error = exc
                logger.warning("Read attempt {} failed: {}", attempt + 1, exc)

        raise TransportTimeout(
            f"Read operation failed after {reconnects} reconnection attempts: {last_error}"
        ) from last_error

    def _prepare(self) -> None:
        if self.is_running:
            raise RuntimeError("Read loop is already running")
        self._session.require_connected()
        self._session.mark_measuring()

    def _spawn(
        self,
        duration: Optional[float],
        on_finished: Optional[Callable[[ReadLoopResult], None]],
    ) -> threading.Thread:
        thread = threading.Thread(
            target=self._worker,
            args=(duration, on_finished),
            name="gpibmeter-read",
            daemon=True,
        )
        self._thread = thread
        thread.start()
        return thread

    def _worker(
        self,
        duration: Optional[float],
        on_finished: Optional[Callable[[ReadLoopResult], None]],
    ) -> None:
        try:
            result = self._run(duration)
        except Exception as exc:
            logger.exception("Read loop terminated unexpectedly")
            result = ReadLoopResult(stop_reason=StopReason.ABORTED, error=exc)
            self.last_result = result
            deliver(
                self._sink,
                FailureInfo(FailureKind.ABORT, f"Read loop terminated unexpectedly: {exc}", exc, terminal=True),
            )
        if on_finished is not None:
            try:
                on_finished(result)
            except Exception:
                logger.exception("Read loop completion callback failed")

    def _run(self, duration: Optional[float]) -> ReadLoopResult:
        session = self._session
        policy = self.policy
        result = ReadLoopResult()
        self._consecutive_errors = 0
        started = time.monotonic()
        logger.info("Read loop started on {} (duration={})", session.resource_name, duration)
        try:
            while True:
                if not session.is_measuring:
                    result.stop_reason = StopReason.STOPPED
                    break
                if duration is not None and time.monotonic() - started >= duration:
                    result.stop_reason = StopReason.DEADLINE
                    break
                if not session.is_connected:
                    error = NotConnectedError(f"Lost connection to {session.resource_name}")
                    logger.error("{}", error)
                    deliver(
                        self._sink,
                        FailureInfo(
                            FailureKind.DISCONNECTED, str(error), error, self._consecutive_errors, terminal=True
                        ),
                    )
                    result.stop_reason = StopReason.DISCONNECTED
                    result.error = error
                    break

                phase = FailureKind.WRITE
                try:
                    session.transport.write_line(READ_QUERY)
                    phase = FailureKind.READ
                    text = self.read_with_reconnect(READ_QUERY)
                except GpibError as exc:
                    self._consecutive_errors += 1
                    result.failures += 1
                    count = self._consecutive_errors
                    if count >= policy.max_consecutive_errors:
                        abort = LoopAbortError(count, exc)
                        logger.error("{}", abort)
                        deliver(self._sink, FailureInfo(FailureKind.ABORT, str(abort), abort, count, terminal=True))
                        result.stop_reason = StopReason.ABORTED
                        result.error = abort
                        break
                    logger.warning("Read cycle failed ({} consecutive): {}", count, exc)
                    deliver(self._sink, FailureInfo(_failure_kind(exc, phase), str(exc), exc, count))
                    if session.is_measuring:
                        time.sleep(policy.read_backoff_ms(count) / 1000)
                else:
                    self._consecutive_errors = 0
                    result.measurements += 1
                    deliver(self._sink, text)

                time.sleep(policy.poll_interval_ms / 1000)
        finally:
            session.mark_idle()
            self.last_result = result
        logger.info(
            "Read loop finished: {} ({} readings, {} failures)",
            result.stop_reason.value,
            result.measurements,
            result.failures,
        )
        return result


def _check_duration(seconds: float) -> None:
    if seconds <= 0:
        raise ValueError("seconds must be positive")


def _failure_kind(exc: GpibError, phase: FailureKind) -> FailureKind:
    if isinstance(exc, NotConnectedError):
        return FailureKind.DISCONNECTED
    if isinstance(exc, TransportTimeout):
        return FailureKind.TIMEOUT
    return phase
