import re
from unittest.mock import MagicMock

import pytest
import pyvisa

from gpibmeter import (
    ConnectError,
    GpibSession,
    ReadLoop,
    SimulatedInstrument,
    SimulatedTransport,
    StopReason,
    VisaTransport,
    open_transport,
)
from gpibmeter.errors import TransportError, TransportTimeout

RESOURCE = "GPIB0::1::INSTR"


def _visa(timeout_ms=5000):
    rm = MagicMock()
    transport = VisaTransport(RESOURCE, rm, timeout_ms=timeout_ms)
    return transport, rm, rm.open_resource.return_value


def test_visa_open_configures_resource():
    transport, rm, resource = _visa(timeout_ms=3000)

    assert transport.open() is transport

    rm.open_resource.assert_called_once_with(RESOURCE, read_termination="\n", write_termination="\n")
    assert resource.timeout == 3000
    assert transport.is_open


def test_visa_timeout_setter_reaches_resource():
    transport, _, resource = _visa()
    transport.open()

    transport.timeout_ms = 2000

    assert transport.timeout_ms == 2000
    assert resource.timeout == 2000


def test_visa_write_and_read():
    transport, _, resource = _visa()
    transport.open()
    resource.read.return_value = "+1.234E-09A,+1.0E+00,+0.0E+00\n"

    transport.write_line(":READ?")

    resource.write.assert_called_once_with(":READ?")
    assert transport.read_line() == "+1.234E-09A,+1.0E+00,+0.0E+00"


def test_visa_timeout_is_translated():
    transport, _, resource = _visa()
    transport.open()
    resource.read.side_effect = pyvisa.errors.VisaIOError(pyvisa.constants.StatusCode.error_timeout)

    with pytest.raises(TransportTimeout):
        transport.read_line()


def test_visa_io_error_is_translated():
    transport, _, resource = _visa()
    transport.open()
    resource.write.side_effect = pyvisa.errors.VisaIOError(pyvisa.constants.StatusCode.error_connection_lost)

    with pytest.raises(TransportError) as info:
        transport.write_line("*IDN?")
    assert not isinstance(info.value, TransportTimeout)


def test_visa_requires_open():
    transport, _, _ = _visa()
    with pytest.raises(TransportError):
        transport.write_line("*IDN?")
    with pytest.raises(TransportError):
        transport.read_line()


def test_visa_open_failure_is_wrapped():
    transport, rm, _ = _visa()
    rm.open_resource.side_effect = pyvisa.errors.VisaIOError(pyvisa.constants.StatusCode.error_resource_not_found)

    with pytest.raises(TransportError):
        transport.open()
    assert not transport.is_open


def test_visa_close_is_idempotent_and_keeps_injected_manager():
    transport, rm, resource = _visa()
    transport.open()

    transport.close()
    transport.close()

    resource.close.assert_called_once_with()
    rm.close.assert_not_called()
    assert not transport.is_open


def test_open_transport_uses_simulator_for_sim_addresses():
    handle = open_transport("sim://6485")
    assert isinstance(handle, SimulatedTransport)

    handle.write_line("*IDN?")
    assert "MODEL 6485" in handle.read_line()
    handle.write_line(":READ?")
    assert re.fullmatch(r"[+-]\d\.\d{6}E[+-]\d{2}A,[+-]\d\.\d{6}E[+-]\d{2},\+0\.000000E\+00", handle.read_line())


def test_simulator_scripted_faults():
    instrument = SimulatedInstrument(responses=["first"], read_failures=1)
    handle = instrument.open(RESOURCE)

    handle.write_line(":READ?")
    with pytest.raises(TransportTimeout):
        handle.read_line()
    handle.write_line(":READ?")
    assert handle.read_line() == "first"
    with pytest.raises(NotImplementedError):
        handle.write_line("*RST")

    handle.close()
    with pytest.raises(TransportError):
        handle.write_line(":READ?")


def _garbled():
    return UnicodeDecodeError("ascii", b"\xff", 0, 1, "ordinal not in range(128)")


def test_visa_undecodable_reply_is_translated():
    transport, _, resource = _visa()
    transport.open()
    resource.read.side_effect = _garbled()

    with pytest.raises(TransportError) as info:
        transport.read_line()
    assert isinstance(info.value.__cause__, UnicodeDecodeError)


def test_garbled_identification_is_retried(clock):
    rm = MagicMock()
    resource = rm.open_resource.return_value
    resource.read.side_effect = _garbled()
    session = GpibSession(RESOURCE, lambda name: VisaTransport(name, rm).open())

    with pytest.raises(ConnectError) as info:
        session.connect()

    assert rm.open_resource.call_count == 10
    assert resource.close.call_count == 10
    assert isinstance(info.value.__cause__, TransportError)
    assert session.is_connected is False


def test_garbled_reading_does_not_end_the_loop(clock, sink):
    rm = MagicMock()
    resource = rm.open_resource.return_value
    resource.read.side_effect = [
        "KEITHLEY INSTRUMENTS INC.,MODEL 6485",
        _garbled(),
        "+1.000000E-09A,+0.000000E+00,+0.000000E+00",
    ]
    session = GpibSession(RESOURCE, lambda name: VisaTransport(name, rm).open())
    session.connect()
    loop = ReadLoop(session, sink)
    sink.on_measurement = lambda text: (sink.measurements.append(text), loop.stop())

    result = loop.run_unbounded()

    assert result.stop_reason is StopReason.STOPPED
    assert sink.measurements == ["+1.000000E-09A,+0.000000E+00,+0.000000E+00"]
    assert result.failures == 0
    # the undecodable reply was treated as an I/O failure and the handle reopened
    assert rm.open_resource.call_count == 2
    assert session.is_connected is True
