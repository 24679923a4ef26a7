"""Glue code that wires the PyQt6 GUI to the measurement service."""
from __future__ import annotations

from typing import Optional

from loguru import logger
from PyQt6.QtCore import QElapsedTimer, QObject, pyqtSignal
from PyQt6.QtWidgets import QApplication, QMessageBox

from .errors import GpibError
from .gui import MainWindow, SettingsDialog, create_application
from .log import shutdown_log, start_log
from .notify import FailureInfo
from .reader import ReadLoopResult, StopReason
from .service import MeasurementService
from .settings import AppSettings


class _SignalSink(QObject):
    """Measurement sink that re-emits worker notifications as Qt signals.

    Signals cross into the GUI thread as queued events, so worker threads never
    touch widgets and never wait for the GUI to repaint.
    """

    measurement_received = pyqtSignal(str)
    error_occurred = pyqtSignal(object)
    run_finished = pyqtSignal(object)
    connect_finished = pyqtSignal(object)
    disconnect_finished = pyqtSignal()

    def on_measurement(self, text: str) -> None:
        self.measurement_received.emit(text)

    def on_error(self, failure: FailureInfo) -> None:
        self.error_occurred.emit(failure)


class Application:
    """Controller that binds GUI events to instrument actions."""

    def __init__(self, window: Optional[MainWindow] = None, settings: Optional[AppSettings] = None) -> None:
        self.app: QApplication = create_application()
        self.window = window or MainWindow()
        self.settings = settings or AppSettings.load()
        self._sink = _SignalSink()
        self._service: Optional[MeasurementService] = None
        self._elapsed = QElapsedTimer()
        self._shut_down = False
        self._wire_signals()
        self.app.aboutToQuit.connect(self.shutdown)
        self.window.set_resource(self.settings.gpib_resource_name)
        self.window.show()

    def run(self) -> int:
        return self.app.exec()

    # --- GUI signal handlers -------------------------------------------------

    def handle_connect(self) -> None:
        if self._service is not None and self._service.is_connected:
            self.window.append_output("Already connected; disconnect first to switch instruments.")
            return
        service = self._ensure_service()
        self.window.set_connecting()
        try:
            service.connect_async(self._sink.connect_finished.emit)
        except RuntimeError as exc:
            self.window.append_output(str(exc))

    def handle_disconnect(self) -> None:
        if self._service is None:
            return
        self.window.set_connecting()
        self.window.set_status("Disconnecting...")
        self._service.disconnect_async(self._sink.disconnect_finished.emit)

    def handle_start(self, seconds: float, continuous: bool) -> None:
        if self._service is None or not self._service.is_connected:
            self.window.append_output("Cannot start reading while disconnected.")
            return
        self.window.clear_output()
        self._elapsed.start()
        try:
            if continuous:
                self._service.start_unbounded(self._sink.run_finished.emit)
            else:
                self._service.start_for_duration(seconds, self._sink.run_finished.emit)
        except (GpibError, RuntimeError, ValueError) as exc:
            self._show_error("Error starting measurement", str(exc))
            return
        self.window.set_measuring(True)
        self.window.set_status("Reading measurements...")

    def handle_stop(self) -> None:
        if self._service is None or not self._service.is_connected:
            return
        self._service.stop()

    def handle_settings(self) -> None:
        dialog = SettingsDialog(self.settings.gpib_resource_name, self.window)
        if not dialog.exec():
            return
        self.settings.gpib_resource_name = dialog.resource_name()
        try:
            self.settings.save()
        except OSError as exc:
            self._show_error("Settings", f"Could not save settings: {exc}")
        self.window.set_resource(self.settings.gpib_resource_name)

    def shutdown(self) -> None:
        if self._shut_down:
            return
        self._shut_down = True
        if self._service is not None:
            self._service.close()
            self._service = None

    # --- Worker notifications (delivered on the GUI thread) -----------------

    def _on_connect_finished(self, error: Optional[Exception]) -> None:
        if self._service is None:
            return
        if error is None and self._service.is_connected:
            self.window.set_connection_state(True)
            self.window.set_status("Connected")
            self.window.append_output(f"Connected to {self._service.identity}")
            return
        self.window.set_connection_state(False)
        self.window.set_status("Connection failed")
        self._show_error("Connection error", str(error))

    def _on_disconnect_finished(self) -> None:
        self.window.set_connection_state(False)
        self.window.set_status("Disconnected")
        self.window.append_output(f"Disconnected from {self.settings.gpib_resource_name}")

    def _on_measurement(self, text: str) -> None:
        self.window.append_output(f"Time: {self._elapsed.elapsed()}ms - Reading: {text}")

    def _on_error(self, failure: FailureInfo) -> None:
        if failure.terminal:
            self.window.set_status(f"Error: {failure.message}")
            self._show_error("Error during reading", failure.message)
        else:
            self.window.append_output(f"Error during reading ({failure.kind.value}): {failure.message}")

    def _on_run_finished(self, result: Optional[ReadLoopResult]) -> None:
        connected = self._service is not None and self._service.is_connected
        self.window.set_measuring(False)
        self.window.set_connection_state(connected)
        if not connected:
            self.window.set_status("Disconnected")
            return
        if result is not None and result.stop_reason in (StopReason.STOPPED, StopReason.DEADLINE):
            self.window.set_status("Connected")
            self.window.append_output("Measurement complete")

    # --- Internal helpers ----------------------------------------------------

    def _ensure_service(self) -> MeasurementService:
        resource = self.settings.gpib_resource_name
        if self._service is not None and self._service.resource_name != resource:
            self._service.close()
            self._service = None
        if self._service is None:
            self._service = MeasurementService(resource, self._sink)
        return self._service

    def _wire_signals(self) -> None:
        self.window.connect_requested.connect(self.handle_connect)
        self.window.disconnect_requested.connect(self.handle_disconnect)
        self.window.start_requested.connect(self.handle_start)
        self.window.stop_requested.connect(self.handle_stop)
        self.window.settings_requested.connect(self.handle_settings)
        self._sink.measurement_received.connect(self._on_measurement)
        self._sink.error_occurred.connect(self._on_error)
        self._sink.run_finished.connect(self._on_run_finished)
        self._sink.connect_finished.connect(self._on_connect_finished)
        self._sink.disconnect_finished.connect(self._on_disconnect_finished)

    def _show_error(self, title: str, message: str) -> None:
        logger.error("{}: {}", title, message)
        QMessageBox.critical(self.window, title, message)
        self.window.status_bar.showMessage(message, 5000)


def run_gui() -> int:
    start_log(log_to_stdout=True)
    app: Optional[Application] = None
    try:
        app = Application()
        return app.run()
    finally:
        if app is not None:
            app.shutdown()
        shutdown_log()
