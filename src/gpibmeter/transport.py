"""Transport interfaces for talking to a GPIB measurement instrument."""
from __future__ import annotations

import random
import time
from dataclasses import dataclass, field
from typing import Callable, Optional, Protocol

from loguru import logger

from .errors import TransportError, TransportTimeout
from .policy import IDN_QUERY, READ_QUERY

SIM_PREFIX = "sim"


class TransportHandle(Protocol):
    """Open line-oriented channel to one instrument."""

    timeout_ms: float

    def write_line(self, text: str) -> None:
        """Send one command line."""

    def read_line(self) -> str:
        """Read one response line, without the termination character."""

    def close(self) -> None:
        """Release the channel. Calling it again is a no-op."""


TransportOpener = Callable[[str], TransportHandle]


class VisaTransport:
    """PyVISA-backed transport."""

    def __init__(
        self,
        resource_name: str,
        resource_manager: Optional["pyvisa.ResourceManager"] = None,
        *,
        timeout_ms: float = 5000,
    ) -> None:
        self.resource_name = resource_name
        self._resource_manager = resource_manager
        self._owns_manager = False
        self._timeout_ms = timeout_ms
        self._resource = None

    @property
    def is_open(self) -> bool:
        return self._resource is not None

    @property
    def timeout_ms(self) -> float:
        return self._timeout_ms

    @timeout_ms.setter
    def timeout_ms(self, value: float) -> None:
        self._timeout_ms = value
        if self._resource is not None:
            self._resource.timeout = value

    def open(self) -> "VisaTransport":
        if self._resource is not None:
            return self
        try:
            import pyvisa
        except ImportError as exc:  # pragma: no cover - pyvisa is a hard dependency
            raise TransportError("pyvisa is not installed") from exc

        try:
            rm = self._resource_manager
            if rm is None:
                rm = pyvisa.ResourceManager()
                self._resource_manager = rm
                self._owns_manager = True
            resource = rm.open_resource(
                self.resource_name,
                read_termination="\n",
                write_termination="\n",
            )
            resource.timeout = self._timeout_ms
        except Exception as exc:
            self._release_manager()
            raise TransportError(f"Failed to open VISA resource {self.resource_name!r}: {exc}") from exc
        self._resource = resource
        return self

    def close(self) -> None:
        if self._resource is None:
            return
        resource, self._resource = self._resource, None
        try:
            resource.close()
        except Exception as exc:  # pragma: no cover - VISA/driver quirks
            logger.warning("Error closing {}: {}", self.resource_name, exc)
        self._release_manager()

    def write_line(self, text: str) -> None:
        resource = self._require_open()
        import pyvisa

        try:
            resource.write(text)
        except (pyvisa.errors.Error, OSError, ValueError) as exc:
            raise _translate_visa_error(exc, f"write {text!r}") from exc

    def read_line(self) -> str:
        resource = self._require_open()
        import pyvisa

        # A stray non-ASCII byte surfaces as UnicodeDecodeError, a ValueError.
        try:
            return str(resource.read()).strip()
        except (pyvisa.errors.Error, OSError, ValueError) as exc:
            raise _translate_visa_error(exc, "read") from exc

    def _require_open(self):
        if self._resource is None:
            raise TransportError("Transport is not open")
        return self._resource

    def _release_manager(self) -> None:
        if self._owns_manager and self._resource_manager is not None:
            try:
                self._resource_manager.close()
            except Exception as exc:  # pragma: no cover - VISA/driver quirks
                logger.warning("Error closing VISA resource manager: {}", exc)
            self._resource_manager = None
            self._owns_manager = False


def _translate_visa_error(exc: Exception, operation: str) -> TransportError:
    import pyvisa

    if isinstance(exc, pyvisa.errors.VisaIOError) and exc.error_code == pyvisa.constants.StatusCode.error_timeout:
        return TransportTimeout(f"Timeout during {operation}: {exc}")
    return TransportError(f"I/O error during {operation}: {exc}")


@dataclass
class SimulatedInstrument:
    """In-memory picoammeter for local development without hardware.

    ``responses`` are returned, in order, for ``:READ?`` before synthetic
    readings are produced. ``idn_failures`` and ``read_failures`` make the next
    N identification queries or reads go unanswered, which the handle reports
    as a timeout. An unreachable instrument refuses to open.
    """

    identity: str = "KEITHLEY INSTRUMENTS INC.,MODEL 6485,1234567,B03   Sep 25 2002 10:53:29/A02  /E"
    current_a: float = 1.0e-9
    noise_a: float = 5.0e-12
    responses: list[str] = field(default_factory=list)
    idn_failures: int = 0
    read_failures: int = 0
    reachable: bool = True
    open_count: int = field(default=0, init=False)
    handles: list["SimulatedTransport"] = field(default_factory=list, init=False)
    read_timeouts: list[float] = field(default_factory=list, init=False)
    _started: float = field(default_factory=time.monotonic, init=False)

    def open(self, resource_name: str) -> "SimulatedTransport":
        self.open_count += 1
        if not self.reachable:
            raise TransportError(f"Simulated resource {resource_name!r} is not reachable")
        handle = SimulatedTransport(self, resource_name)
        self.handles.append(handle)
        return handle

    def respond(self, command: str) -> Optional[str]:
        if command == IDN_QUERY:
            if self.idn_failures > 0:
                self.idn_failures -= 1
                return None
            return self.identity
        if command == READ_QUERY:
            if self.read_failures > 0:
                self.read_failures -= 1
                return None
            if self.responses:
                return self.responses.pop(0)
            return self._synthesize_reading()
        raise NotImplementedError(f"Simulator cannot handle command: {command}")

    def _synthesize_reading(self) -> str:
        value = random.gauss(self.current_a, self.noise_a)
        elapsed = time.monotonic() - self._started
        return f"{value:+.6E}A,{elapsed:+.6E},+0.000000E+00"


@dataclass
class SimulatedTransport:
    """Handle onto a :class:`SimulatedInstrument`."""

    instrument: SimulatedInstrument
    resource_name: str
    timeout_ms: float = 5000
    close_count: int = field(default=0, init=False)
    _pending: Optional[str] = field(default=None, init=False)

    @property
    def is_open(self) -> bool:
        return self.close_count == 0

    def write_line(self, text: str) -> None:
        if not self.is_open:
            raise TransportError("Transport is not open")
        self._pending = self.instrument.respond(text.strip())

    def read_line(self) -> str:
        if not self.is_open:
            raise TransportError("Transport is not open")
        self.instrument.read_timeouts.append(self.timeout_ms)
        response, self._pending = self._pending, None
        if response is None:
            raise TransportTimeout(f"No response within {self.timeout_ms} ms")
        return response.strip()

    def close(self) -> None:
        self.close_count += 1


def open_transport(
    resource_name: str,
    resource_manager: Optional["pyvisa.ResourceManager"] = None,
) -> TransportHandle:
    """Open ``resource_name``; ``sim://`` addresses get an in-memory instrument."""
    if resource_name.lower().startswith(SIM_PREFIX):
        return SimulatedInstrument().open(resource_name)
    return VisaTransport(resource_name, resource_manager).open()
