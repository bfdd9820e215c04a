"""Session orchestration between capture, transport and transcript.

All public methods and every callback below run on the dispatcher's control
thread. The only exception is the capture frame callback, which merely posts
the frame back onto the dispatcher.
"""

from __future__ import annotations

import logging
from typing import Callable, Optional

from dispatcher import EventDispatcher
from errors import AlreadyRecordingError, CaptureStopError, PermissionDenied, SpeechBridgeError
from interfaces import CaptureSource, PermissionGate, TransportSession
from models import AudioFrame, CaptureConfig, PermissionStatus, RecognitionEvent, RecordingState
from transcript import TranscriptAssembler

logger = logging.getLogger(__name__)

TransportFactory = Callable[[], TransportSession]
TranscriptCallback = Callable[[str], None]
RecordingCallback = Callable[[RecordingState], None]
ErrorCallback = Callable[[SpeechBridgeError], None]


class SessionController:
    def __init__(
        self,
        capture: CaptureSource,
        transport_factory: TransportFactory,
        dispatcher: EventDispatcher,
        capture_config: Optional[CaptureConfig] = None,
        permission_gate: Optional[PermissionGate] = None,
        on_transcript: Optional[TranscriptCallback] = None,
        on_recording_change: Optional[RecordingCallback] = None,
        on_error: Optional[ErrorCallback] = None,
        max_pending_frames: int = 100,
    ) -> None:
        self._capture = capture
        self._transport_factory = transport_factory
        self._dispatcher = dispatcher
        self._capture_config = capture_config or CaptureConfig()
        self._permission_gate = permission_gate
        self._on_transcript = on_transcript
        self._on_recording_change = on_recording_change
        self._on_error = on_error
        self._max_pending_frames = max_pending_frames

        self._assembler = TranscriptAssembler()
        self._recording_state = RecordingState.NOT_RECORDING
        self._session: Optional[TransportSession] = None
        self._capturing = False
        self._transcript = ""
        self.dropped_frames = 0

    @property
    def transcript(self) -> str:
        return self._transcript

    @property
    def recording_state(self) -> RecordingState:
        return self._recording_state

    @property
    def session(self) -> Optional[TransportSession]:
        return self._session

    @property
    def connecting(self) -> bool:
        return self._session is not None and self._recording_state != RecordingState.RECORDING

    def start(self) -> None:
        if self._recording_state == RecordingState.RECORDING or self._session is not None:
            raise AlreadyRecordingError("a session is already in progress")
        if self._permission_gate is not None:
            status = self._permission_gate.request_microphone_access()
            if status != PermissionStatus.GRANTED:
                raise PermissionDenied("microphone access denied")
        self._capture.init(self._capture_config)

        session = self._transport_factory()
        self._session = session
        session.open(
            on_ready=lambda: self._handle_ready(session),
            on_event=lambda event: self._handle_event(session, event),
            on_error=lambda error: self._handle_error(session, error),
            on_closed=lambda: self._handle_closed(session),
        )

    def stop(self) -> None:
        if self._recording_state != RecordingState.RECORDING:
            return
        self._stop_capture()
        if self._session is not None:
            self._session.close()
            self._session = None
        self._set_recording(RecordingState.NOT_RECORDING)

    def cancel(self) -> None:
        """Abandon the current session whatever state it is in."""
        if self._session is None:
            return
        logger.info("Cancelling session")
        self._stop_capture()
        self._release_capture()
        self._session.close()
        self._session = None
        self._set_recording(RecordingState.NOT_RECORDING)

    def toggle(self) -> None:
        """Stop when recording, abandon a pending handshake, otherwise start."""
        if self._recording_state == RecordingState.RECORDING:
            self.stop()
        elif self._session is not None:
            self.cancel()
        else:
            self.start()

    def clear_transcript(self) -> None:
        self._assembler.clear()
        self._publish_transcript()

    # ------------------------------------------------------------------
    # Transport callbacks
    # ------------------------------------------------------------------

    def _handle_ready(self, session: TransportSession) -> None:
        if session is not self._session:
            return

        def on_frame(frame: AudioFrame) -> None:
            # Audio thread: hand the frame to the control thread and return.
            posted = self._dispatcher.try_post(
                self._forward_frame, session, frame, max_pending=self._max_pending_frames
            )
            if not posted:
                self.dropped_frames += 1

        try:
            self._capture.start(on_frame)
        except SpeechBridgeError as exc:
            logger.error("Capture failed to start: %s", exc)
            self._release_capture()
            session.close()
            self._session = None
            self._emit_error(exc)
            return
        self._capturing = True
        self._set_recording(RecordingState.RECORDING)

    def _forward_frame(self, session: TransportSession, frame: AudioFrame) -> None:
        session.send(frame)

    def _handle_event(self, session: TransportSession, event: RecognitionEvent) -> None:
        self._assembler.apply(event)
        self._publish_transcript()

    def _handle_error(self, session: TransportSession, error: SpeechBridgeError) -> None:
        if session is self._session:
            self._stop_capture()
            self._session = None
            self._release_capture()
            self._set_recording(RecordingState.NOT_RECORDING)
        self._emit_error(error)

    def _handle_closed(self, session: TransportSession) -> None:
        if session is self._session:
            self._session = None
            self._release_capture()

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _stop_capture(self) -> None:
        if not self._capturing:
            return
        self._capturing = False
        try:
            self._capture.stop()
        except CaptureStopError as exc:
            logger.warning("Capture stop failed: %s", exc)
        except Exception:
            logger.exception("Capture stop failed unexpectedly")

    def _release_capture(self) -> None:
        if self._capturing:
            return
        try:
            self._capture.release()
        except Exception:
            logger.exception("Releasing capture device failed")

    def _publish_transcript(self) -> None:
        text = self._assembler.snapshot()
        if text == self._transcript:
            return
        self._transcript = text
        if self._on_transcript:
            self._on_transcript(text)

    def _set_recording(self, state: RecordingState) -> None:
        if state == self._recording_state:
            return
        self._recording_state = state
        if self._on_recording_change:
            self._on_recording_change(state)

    def _emit_error(self, error: SpeechBridgeError) -> None:
        if self._on_error:
            self._on_error(error)
