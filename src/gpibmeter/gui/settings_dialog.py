"""Dialog for editing the persisted instrument address."""
from __future__ import annotations

from typing import Optional

from PyQt6.QtWidgets import (
    QDialog,
    QDialogButtonBox,
    QFormLayout,
    QLineEdit,
    QVBoxLayout,
    QWidget,
)


class SettingsDialog(QDialog):
    def __init__(self, resource_name: str, parent: Optional[QWidget] = None) -> None:
        super().__init__(parent)
        self.setWindowTitle("Settings")
        layout = QVBoxLayout(self)
        form = QFormLayout()
        self.resource_edit = QLineEdit(resource_name)
        self.resource_edit.setPlaceholderText("GPIB0::1::INSTR")
        form.addRow("GPIB Resource:", self.resource_edit)
        layout.addLayout(form)
        buttons = QDialogButtonBox(QDialogButtonBox.StandardButton.Save | QDialogButtonBox.StandardButton.Cancel)
        buttons.accepted.connect(self._accept_if_valid)
        buttons.rejected.connect(self.reject)
        layout.addWidget(buttons)

    def resource_name(self) -> str:
        return self.resource_edit.text().strip()

    def _accept_if_valid(self) -> None:
        if self.resource_name():
            self.accept()
