"""Resilient session manager for GPIB measurement instruments."""

from .errors import ConnectError, GpibError, LoopAbortError, NotConnectedError, TransportError, TransportTimeout
from .notify import CallbackSink, FailureInfo, FailureKind, MeasurementSink, QueuedSink
from .policy import DEFAULT_POLICY, DEFAULT_RESOURCE, RetryPolicy
from .reader import ReadLoop, ReadLoopResult, StopReason
from .service import MeasurementService
from .session import GpibSession
from .settings import AppSettings
from .transport import SimulatedInstrument, SimulatedTransport, TransportHandle, VisaTransport, open_transport

__all__ = [
    "AppSettings",
    "CallbackSink",
    "ConnectError",
    "DEFAULT_POLICY",
    "DEFAULT_RESOURCE",
    "FailureInfo",
    "FailureKind",
    "GpibError",
    "GpibSession",
    "LoopAbortError",
    "MeasurementService",
    "MeasurementSink",
    "NotConnectedError",
    "QueuedSink",
    "ReadLoop",
    "ReadLoopResult",
    "RetryPolicy",
    "SimulatedInstrument",
    "SimulatedTransport",
    "StopReason",
    "TransportError",
    "TransportHandle",
    "TransportTimeout",
    "VisaTransport",
    "open_transport",
]
