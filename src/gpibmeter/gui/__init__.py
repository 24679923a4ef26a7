"""PyQt6 GUI components for the GPIB measurement application."""

from .main_window import MainWindow, create_application
from .settings_dialog import SettingsDialog

__all__ = ["MainWindow", "SettingsDialog", "create_application"]
