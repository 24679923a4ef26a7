import threading

import pytest

from gpibmeter import (
    ConnectError,
    MeasurementService,
    NotConnectedError,
    RetryPolicy,
    SimulatedInstrument,
    StopReason,
)

FAST = RetryPolicy(
    connect_attempts=3,
    settle_delay_ms=0,
    connect_backoff_base_ms=1,
    connect_backoff_cap_ms=1,
    reconnect_delay_ms=0,
    reconnect_settle_ms=0,
    read_backoff_base_ms=1,
    read_backoff_cap_ms=1,
    poll_interval_ms=1,
)


class _ReadingsSeen:
    def __init__(self, count: int = 3) -> None:
        self.count = count
        self.measurements: list[str] = []
        self.failures = []
        self.event = threading.Event()

    def on_measurement(self, text: str) -> None:
        self.measurements.append(text)
        if len(self.measurements) >= self.count:
            self.event.set()

    def on_error(self, failure) -> None:
        self.failures.append(failure)


def _service(instrument, sink=None):
    return MeasurementService("sim://6485", sink, opener=instrument.open, policy=FAST)


def test_connect_async_reports_success():
    instrument = SimulatedInstrument()
    service = _service(instrument)
    done = []
    finished = threading.Event()

    def on_done(error):
        done.append(error)
        finished.set()

    service.connect_async(on_done)

    assert finished.wait(5.0)
    assert done == [None]
    assert service.is_connected is True
    assert service.identity == instrument.identity
    service.close()


def test_connect_async_reports_failure():
    instrument = SimulatedInstrument(reachable=False)
    service = _service(instrument)
    done = []
    finished = threading.Event()

    def on_done(error):
        done.append(error)
        finished.set()

    service.connect_async(on_done)

    assert finished.wait(5.0)
    assert isinstance(done[0], ConnectError)
    assert service.is_connected is False
    assert instrument.open_count == 3


def test_operations_require_connection():
    service = _service(SimulatedInstrument())

    with pytest.raises(NotConnectedError):
        service.stop()
    with pytest.raises(NotConnectedError):
        service.start_unbounded()
    with pytest.raises(NotConnectedError):
        service.start_for_duration(1.0)
    assert service.is_measuring is False


def test_stop_keeps_connection():
    sink = _ReadingsSeen()
    service = _service(SimulatedInstrument(), sink)
    service.connect()
    service.start_unbounded()
    assert sink.event.wait(5.0)

    service.stop()

    assert service.is_connected is True
    assert service.wait(5.0)
    assert service.is_measuring is False
    assert service.last_result.stop_reason is StopReason.STOPPED
    service.close()


def test_start_for_duration_ends_at_deadline():
    service = _service(SimulatedInstrument(), _ReadingsSeen())
    service.connect()
    finished = []

    service.start_for_duration(0.05, on_finished=finished.append)

    assert service.wait(5.0)
    assert finished[0].stop_reason is StopReason.DEADLINE
    assert finished[0].measurements > 0
    assert service.is_measuring is False
    service.close()


def test_disconnect_while_reading_closes_once():
    instrument = SimulatedInstrument()
    sink = _ReadingsSeen()
    service = _service(instrument, sink)
    service.connect()
    service.start_unbounded()
    assert sink.event.wait(5.0)

    service.disconnect()
    service.disconnect()

    assert service.is_connected is False
    assert service.is_measuring is False
    assert service.wait(5.0)
    assert instrument.handles[0].close_count == 1


def test_disconnect_async_calls_back():
    instrument = SimulatedInstrument()
    service = _service(instrument)
    service.connect()
    finished = threading.Event()

    service.disconnect_async(finished.set)

    assert finished.wait(5.0)
    assert service.is_connected is False


def test_context_manager_closes_session():
    instrument = SimulatedInstrument()
    with _service(instrument) as service:
        service.connect()
    assert service.is_connected is False
    assert instrument.handles[0].close_count == 1
