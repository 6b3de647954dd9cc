import asyncio
import concurrent.futures
import logging

from PySide6.QtCore import QDate, QObject, Qt, Signal, Slot
from PySide6.QtWidgets import (QApplication, QCheckBox, QComboBox, QDateEdit, QDialog,
                               QDialogButtonBox, QFormLayout, QLineEdit, QMessageBox,
                               QTextEdit, QVBoxLayout)

logger = logging.getLogger(__name__)


class FormDialog(QDialog):
    def __init__(self, fields, parent=None):
        super().__init__(parent)
        self.setWindowTitle("Fill in snippet")
        self.resize(420, 200)
        self.fields = fields
        self.widgets = {}
        self.setup_ui()

        # Center on screen
        screen = QApplication.primaryScreen().geometry()
        self.move(screen.width() // 2 - 210, screen.height() // 2 - 100)

    def setup_ui(self):
        layout = QVBoxLayout(self)
        form_layout = QFormLayout()

        for field in self.fields:
            if field.name in self.widgets:
                continue  # Same field used twice in one snippet
            widget = self._make_widget(field)
            label = f"{field.label} *" if field.required else field.label
            form_layout.addRow(f"{label}:", widget)
            self.widgets[field.name] = (field, widget)

        layout.addLayout(form_layout)

        buttons = QDialogButtonBox(QDialogButtonBox.Ok | QDialogButtonBox.Cancel)
        buttons.accepted.connect(self.accept)
        buttons.rejected.connect(self.reject)
        layout.addWidget(buttons)

    def _make_widget(self, field):
        default = field.default_value
        if field.kind == "paragraph":
            widget = QTextEdit(default or "")
        elif field.kind == "menu":
            widget = QComboBox()
            widget.addItems(field.options or [])
            if default:
                widget.setCurrentText(default)
        elif field.kind == "date":
            widget = QDateEdit(QDate.currentDate())
            widget.setCalendarPopup(True)
            widget.setDisplayFormat("yyyy-MM-dd")
            if default:
                parsed = QDate.fromString(default, "yyyy-MM-dd")
                if parsed.isValid():
                    widget.setDate(parsed)
        elif field.kind == "toggle":
            widget = QCheckBox()
            widget.setChecked(bool(default))
        else:
            widget = QLineEdit(default or "")
        return widget

    def values(self) -> dict:
        result = {}
        for name, (field, widget) in self.widgets.items():
            if field.kind == "paragraph":
                result[name] = widget.toPlainText()
            elif field.kind == "menu":
                result[name] = widget.currentText()
            elif field.kind == "date":
                result[name] = widget.date().toString("yyyy-MM-dd")
            elif field.kind == "toggle":
                result[name] = widget.isChecked()
            else:
                result[name] = widget.text()
        return result

    def accept(self):
        missing = [field.label for field, _ in self.widgets.values()
                   if field.required and self.values().get(field.name) in (None, "")]
        if missing:
            QMessageBox.warning(self, "Missing values", "Please fill in: " + ", ".join(missing))
            return
        super().accept()


def ask_form_values(fields):
    """Shows the form and returns the values, or None when cancelled. Qt thread only."""
    dialog = FormDialog(fields)
    dialog.setWindowFlags(dialog.windowFlags() | Qt.WindowStaysOnTopHint)
    if dialog.exec() == QDialog.Accepted:
        return dialog.values()
    return None


class FormRequestBridge(QObject):
    """Lets the expansion loop thread ask the Qt thread for form values."""

    requested = Signal(object)

    def __init__(self):
        super().__init__()
        self.requested.connect(self._show)

    @Slot(object)
    def _show(self, request):
        fields, future = request
        try:
            future.set_result(ask_form_values(fields))
        except Exception as e:
            logger.error(f"Form dialog failed: {e}")
            future.set_result(None)

    async def collect(self, fields):
        future = concurrent.futures.Future()
        self.requested.emit((fields, future))
        return await asyncio.wrap_future(future)
