"""Transcript window with a Start/Stop button."""

from __future__ import annotations

from typing import Callable

try:
    from PySide6.QtCore import Qt
    from PySide6.QtWidgets import QLabel, QPushButton, QScrollArea, QVBoxLayout, QWidget
except Exception:  # pragma: no cover
    Qt = None  # type: ignore
    QLabel = object  # type: ignore
    QPushButton = object  # type: ignore
    QScrollArea = object  # type: ignore
    QVBoxLayout = object  # type: ignore
    QWidget = object  # type: ignore

PLACEHOLDER = "Press Start to Transcribe"
TEXT_STYLE = "color: #222; font-size: 18px; padding: 16px;"
ERROR_STYLE = "color: #D93025; font-size: 14px; padding: 4px 16px;"


class TranscriptWindow(QWidget):
    def __init__(self, on_toggle: Callable[[], None]) -> None:
        if Qt is None:
            raise RuntimeError("PySide6 is not installed")
        super().__init__()
        self.setWindowTitle("Live Transcribe")
        self.resize(600, 400)

        self._label = QLabel(PLACEHOLDER)
        self._label.setWordWrap(True)
        self._label.setAlignment(Qt.AlignHCenter | Qt.AlignTop)
        self._label.setStyleSheet(TEXT_STYLE)

        scroll = QScrollArea()
        scroll.setWidgetResizable(True)
        scroll.setWidget(self._label)
        self._scroll = scroll

        self._error = QLabel("")
        self._error.setStyleSheet(ERROR_STYLE)
        self._error.hide()

        self._button = QPushButton("Start Listening")
        self._button.clicked.connect(on_toggle)

        layout = QVBoxLayout()
        layout.addWidget(scroll, 1)
        layout.addWidget(self._error)
        layout.addWidget(self._button)
        self.setLayout(layout)

    def set_text(self, text: str) -> None:
        self._label.setText(text or PLACEHOLDER)
        bar = self._scroll.verticalScrollBar()
        bar.setValue(bar.maximum())

    def set_recording(self, recording: bool, connecting: bool = False) -> None:
        if connecting:
            self._button.setText("Cancel")
        else:
            self._button.setText("Stop Listening" if recording else "Start Listening")
        if recording:
            self._error.hide()

    def show_error(self, text: str) -> None:
        self._error.setText(f"⚠️ {text}")
        self._error.show()
