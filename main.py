"""Application entrypoint."""

from __future__ import annotations

import logging
import os
import sys

from clipboard import ClipboardService
from config import JsonConfigStore
from dispatcher import EventDispatcher
from errors import SpeechBridgeError
from hotkey import GlobalHotkeyAdapter
from models import RecordingState
from permissions import SoundDevicePermissionGate
from recorder import SoundDeviceCaptureSource
from session_controller import SessionController
from transport import DeepgramTransportSession
from window import TranscriptWindow

try:
    from PySide6.QtCore import QSize, QTimer
    from PySide6.QtGui import QAction, QBrush, QColor, QIcon, QPainter, QPixmap
    from PySide6.QtWidgets import QApplication, QInputDialog, QMenu, QSystemTrayIcon
except Exception as exc:  # pragma: no cover
    raise SystemExit(f"PySide6 is required to run the desktop app: {exc}")

logger = logging.getLogger(__name__)

DISPATCH_INTERVAL_MS = 20


def _create_icon(color: str = "#888888", size: int = 22) -> QIcon:
    """Generate a simple circular tray icon with the given color."""
    pixmap = QPixmap(QSize(size, size))
    pixmap.fill(QColor(0, 0, 0, 0))
    painter = QPainter(pixmap)
    painter.setRenderHint(QPainter.Antialiasing, True)
    painter.setBrush(QBrush(QColor(color)))
    painter.setPen(QColor(color))
    painter.drawEllipse(2, 2, size - 4, size - 4)
    painter.end()
    return QIcon(pixmap)


ICON_IDLE = "#888888"      # grey
ICON_RECORDING = "#FF4444"  # red
ICON_ERROR = "#FF8800"     # orange


class App:
    def __init__(self) -> None:
        self.app = QApplication(sys.argv)
        self.config_store = JsonConfigStore()
        self.clipboard = ClipboardService()
        # The Qt main thread is the control thread: it alone drains the dispatcher.
        self.dispatcher = EventDispatcher()
        self.window = TranscriptWindow(on_toggle=self.toggle)
        self.controller = SessionController(
            capture=SoundDeviceCaptureSource(),
            transport_factory=self._new_transport,
            dispatcher=self.dispatcher,
            permission_gate=SoundDevicePermissionGate(),
            on_transcript=self.window.set_text,
            on_recording_change=self._on_recording_change,
            on_error=self._on_error,
        )
        self.hotkey = GlobalHotkeyAdapter(hotkey_name=self.config_store.get_hotkey())

        self.timer = QTimer()
        self.timer.timeout.connect(self.dispatcher.run_pending)
        self.timer.start(DISPATCH_INTERVAL_MS)

        self.tray = QSystemTrayIcon()
        self.tray.setIcon(_create_icon(ICON_IDLE))
        self.tray.setToolTip("Live Transcribe — Ready")
        self._setup_menu()
        self.tray.show()

    def _new_transport(self) -> DeepgramTransportSession:
        return DeepgramTransportSession(
            api_key=self.config_store.get_api_key(),
            dispatcher=self.dispatcher,
            endpoint=self.config_store.get_endpoint(),
            interim_results=self.config_store.get_interim_results(),
        )

    def _setup_menu(self) -> None:
        menu = QMenu()

        copy_action = QAction("Copy Transcript", menu)
        copy_action.triggered.connect(self._copy_transcript)
        menu.addAction(copy_action)

        clear_action = QAction("Clear Transcript", menu)
        clear_action.triggered.connect(self.controller.clear_transcript)
        menu.addAction(clear_action)

        api_action = QAction("Set API Key", menu)
        api_action.triggered.connect(self._set_api_key)
        menu.addAction(api_action)

        menu.addSeparator()
        quit_action = QAction("Quit", menu)
        quit_action.triggered.connect(self.quit)
        menu.addAction(quit_action)

        self.tray.setContextMenu(menu)

    def _set_api_key(self) -> None:
        value, ok = QInputDialog.getText(None, "API Key", "Deepgram API Key")
        if not ok:
            return
        # Picked up by the next transport session.
        self.config_store.set_api_key(value)

    def _copy_transcript(self) -> None:
        if self.clipboard.copy_text(self.controller.transcript):
            self.tray.showMessage("Live Transcribe", "Transcript copied")

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def toggle(self) -> None:
        try:
            self.controller.toggle()
        except SpeechBridgeError as exc:
            self._on_error(exc)
            return
        self._refresh_controls()

    def _refresh_controls(self) -> None:
        recording = self.controller.recording_state == RecordingState.RECORDING
        connecting = self.controller.connecting
        self.window.set_recording(recording, connecting=connecting)
        if connecting:
            self.tray.setToolTip("Live Transcribe — Connecting...")
        elif recording:
            self.tray.setToolTip("Live Transcribe — Listening...")
        else:
            self.tray.setToolTip("Live Transcribe — Ready")

    def _on_recording_change(self, state: RecordingState) -> None:
        recording = state == RecordingState.RECORDING
        self.tray.setIcon(_create_icon(ICON_RECORDING if recording else ICON_IDLE))
        self._refresh_controls()

    def _on_error(self, error: SpeechBridgeError) -> None:
        logger.error("%s: %s", error.code, error)
        self.tray.setIcon(_create_icon(ICON_ERROR))
        self.window.show_error(error.user_message)
        self._refresh_controls()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def run(self) -> int:
        self.window.show()
        try:
            # The listener thread only posts; the toggle runs on the Qt thread.
            self.hotkey.start(on_toggle=lambda: self.dispatcher.post(self.toggle))
        except Exception as exc:
            logger.warning("Hotkey disabled: %s", exc)
        return self.app.exec()

    def quit(self) -> None:
        self.hotkey.stop()
        self.controller.cancel()
        self.app.quit()


def main() -> int:
    logging.basicConfig(
        level=os.getenv("LIVE_TRANSCRIBE_LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    app = App()
    return app.run()


if __name__ == "__main__":
    raise SystemExit(main())
