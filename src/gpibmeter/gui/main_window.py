"""Main window for the GPIB current measurement GUI."""
from __future__ import annotations

from PyQt6.QtCore import Qt, pyqtSignal
from PyQt6.QtGui import QAction
from PyQt6.QtWidgets import (
    QApplication,
    QCheckBox,
    QDoubleSpinBox,
    QGroupBox,
    QHBoxLayout,
    QLabel,
    QMainWindow,
    QPlainTextEdit,
    QPushButton,
    QStatusBar,
    QVBoxLayout,
    QWidget,
)


def create_application() -> QApplication:
    app = QApplication.instance()
    if app is None:
        app = QApplication([])
        app.setApplicationName("GPIB Current Measurement")
    return app


class MainWindow(QMainWindow):
    """Top-level window exposing signals for the application controller."""

    connect_requested = pyqtSignal()
    disconnect_requested = pyqtSignal()
    start_requested = pyqtSignal(float, bool)
    stop_requested = pyqtSignal()
    settings_requested = pyqtSignal()

    def __init__(self) -> None:
        super().__init__()
        self.setWindowTitle("GPIB Current Measurement")
        self._build_ui()

    def set_resource(self, resource: str) -> None:
        self.resource_label.setText(resource)

    def set_connection_state(self, connected: bool) -> None:
        self.connect_button.setEnabled(not connected)
        self.disconnect_button.setEnabled(connected)
        self.settings_action.setEnabled(not connected)
        self.start_button.setEnabled(connected)
        self.stop_button.setEnabled(False)
        self.duration_spin.setEnabled(connected and not self.continuous_check.isChecked())
        self.continuous_check.setEnabled(connected)

    def set_connecting(self) -> None:
        self.connect_button.setEnabled(False)
        self.disconnect_button.setEnabled(False)
        self.settings_action.setEnabled(False)
        self.set_status("Connecting...")

    def set_measuring(self, measuring: bool) -> None:
        self.start_button.setEnabled(not measuring)
        self.stop_button.setEnabled(measuring)
        self.disconnect_button.setEnabled(not measuring)
        self.continuous_check.setEnabled(not measuring)
        self.duration_spin.setEnabled(not measuring and not self.continuous_check.isChecked())

    def set_status(self, message: str) -> None:
        self.status_label.setText(message)

    def clear_output(self) -> None:
        self.output_view.clear()

    def append_output(self, message: str) -> None:
        self.output_view.appendPlainText(message)
        self.output_view.verticalScrollBar().setValue(self.output_view.verticalScrollBar().maximum())

    def _build_ui(self) -> None:
        central = QWidget()
        layout = QVBoxLayout(central)
        layout.addWidget(self._build_connection_group())
        layout.addWidget(self._build_measurement_group())
        layout.addWidget(self._build_output_group(), stretch=1)
        self.setCentralWidget(central)

        self.settings_action = QAction("Settings...", self)
        self.settings_action.triggered.connect(self.settings_requested.emit)
        self.menuBar().addMenu("&File").addAction(self.settings_action)

        self.status_bar = QStatusBar()
        self.setStatusBar(self.status_bar)
        self.status_label = QLabel("Disconnected")
        self.status_label.setAlignment(Qt.AlignmentFlag.AlignLeft | Qt.AlignmentFlag.AlignVCenter)
        self.status_bar.addPermanentWidget(self.status_label, 1)
        self.set_connection_state(False)

    def _build_connection_group(self) -> QGroupBox:
        group = QGroupBox("Instrument Connection")
        layout = QHBoxLayout(group)
        layout.addWidget(QLabel("GPIB Address:"))
        self.resource_label = QLabel("")
        layout.addWidget(self.resource_label, stretch=1)
        self.connect_button = QPushButton("Connect")
        layout.addWidget(self.connect_button)
        self.disconnect_button = QPushButton("Disconnect")
        layout.addWidget(self.disconnect_button)
        self.connect_button.clicked.connect(self.connect_requested.emit)
        self.disconnect_button.clicked.connect(self.disconnect_requested.emit)
        return group

    def _build_measurement_group(self) -> QGroupBox:
        group = QGroupBox("Measurement")
        layout = QHBoxLayout(group)
        layout.addWidget(QLabel("Duration"))
        self.duration_spin = QDoubleSpinBox()
        self.duration_spin.setRange(0.1, 86400.0)
        self.duration_spin.setDecimals(1)
        self.duration_spin.setValue(10.0)
        self.duration_spin.setSuffix(" s")
        layout.addWidget(self.duration_spin)
        self.continuous_check = QCheckBox("Continuous")
        self.continuous_check.toggled.connect(
            lambda checked: self.duration_spin.setEnabled(not checked and self.start_button.isEnabled())
        )
        layout.addWidget(self.continuous_check)
        self.start_button = QPushButton("Start")
        layout.addWidget(self.start_button)
        self.stop_button = QPushButton("Stop")
        layout.addWidget(self.stop_button)
        layout.addStretch()
        self.start_button.clicked.connect(self._emit_start)
        self.stop_button.clicked.connect(self.stop_requested.emit)
        return group

    def _emit_start(self) -> None:
        self.start_requested.emit(self.duration_spin.value(), self.continuous_check.isChecked())

    def _build_output_group(self) -> QGroupBox:
        group = QGroupBox("Readings")
        layout = QVBoxLayout(group)
        self.output_view = QPlainTextEdit()
        self.output_view.setReadOnly(True)
        layout.addWidget(self.output_view)
        return group
