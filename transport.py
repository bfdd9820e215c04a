"""Transport session streaming PCM to Deepgram over a websocket.

One instance owns one connection. A receiver thread performs the handshake and
reads inbound messages, a sender thread drains the bounded outbound buffer.
Neither thread touches session state: they post to the ``EventDispatcher`` and
every transition happens on the control thread that drains it.
"""

from __future__ import annotations

import logging
import threading
from queue import Empty, Full, Queue
from typing import Callable, Optional

from websockets.sync.client import connect as ws_connect

from dispatcher import EventDispatcher
from errors import ConnectError, SpeechBridgeError, TransportError
from interfaces import Connection
from models import AudioFrame, Malformed, RecognitionEvent, SessionState
from protocol import (
    CLOSE_STREAM_MESSAGE,
    DEFAULT_ENDPOINT,
    auth_headers,
    build_listen_url,
    decode_message,
)

logger = logging.getLogger(__name__)

Connector = Callable[..., Connection]
StateCallback = Callable[[SessionState, SessionState], None]


class DeepgramTransportSession:
    def __init__(
        self,
        api_key: str,
        dispatcher: EventDispatcher,
        endpoint: str = DEFAULT_ENDPOINT,
        sample_rate: int = 16000,
        channels: int = 1,
        interim_results: bool = False,
        open_timeout_s: Optional[float] = None,
        finalize_timeout_s: float = 3.0,
        outbound_maxsize: int = 50,
        poll_s: float = 0.05,
        connector: Connector = ws_connect,
        on_state_change: Optional[StateCallback] = None,
    ) -> None:
        self._api_key = api_key
        self._dispatcher = dispatcher
        self._url = build_listen_url(endpoint, sample_rate, channels, interim_results)
        self._open_timeout_s = open_timeout_s
        self._finalize_timeout_s = finalize_timeout_s
        self._poll_s = poll_s
        self._connector = connector
        self._on_state_change = on_state_change

        self._state = SessionState.IDLE
        self._ws: Optional[Connection] = None
        self._outbound: Queue[AudioFrame] = Queue(maxsize=outbound_maxsize)
        self._close_requested = threading.Event()
        self._terminated = threading.Event()
        self._receiver: Optional[threading.Thread] = None
        self._sender: Optional[threading.Thread] = None

        self._on_ready: Callable[[], None] = _noop
        self._on_event: Callable[[RecognitionEvent], None] = _noop_event
        self._on_error: Callable[[SpeechBridgeError], None] = _noop_error
        self._on_closed: Callable[[], None] = _noop

        self.rejected_frames = 0
        self.dropped_frames = 0
        self.sent_frames = 0

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def url(self) -> str:
        return self._url

    def open(
        self,
        on_ready: Callable[[], None],
        on_event: Callable[[RecognitionEvent], None],
        on_error: Callable[[SpeechBridgeError], None],
        on_closed: Optional[Callable[[], None]] = None,
    ) -> None:
        if self._state != SessionState.IDLE:
            raise RuntimeError(f"session cannot be reopened from {self._state.value}")
        self._on_ready = on_ready
        self._on_event = on_event
        self._on_error = on_error
        self._on_closed = on_closed or _noop
        self._transition(SessionState.CONNECTING)
        logger.info("Connecting to %s", self._url)
        self._receiver = threading.Thread(
            target=self._receive_worker, name="transport-recv", daemon=True
        )
        self._receiver.start()

    def send(self, frame: AudioFrame) -> None:
        """Queue a frame for the wire. Never blocks.

        Frames outside STREAMING are discarded, as are frames that do not fit
        in the outbound buffer.
        """
        if self._state != SessionState.STREAMING:
            self.rejected_frames += 1
            return
        try:
            self._outbound.put_nowait(frame)
        except Full:
            self.dropped_frames += 1

    def close(self) -> None:
        state = self._state
        if state == SessionState.IDLE:
            self._transition(SessionState.CLOSED)
        elif state == SessionState.CONNECTING:
            self._close_requested.set()
        elif state == SessionState.STREAMING:
            self._transition(SessionState.STOPPING)
            self._close_requested.set()

    # ------------------------------------------------------------------
    # Control thread handlers
    # ------------------------------------------------------------------

    def _handle_connected(self, ws: Connection) -> None:
        self._ws = ws
        if self._close_requested.is_set():
            logger.info("Session closed during handshake, dropping connection")
            self._close_quietly(ws)
            return
        self._transition(SessionState.STREAMING)
        self._sender = threading.Thread(
            target=self._send_worker, args=(ws,), name="transport-send", daemon=True
        )
        self._sender.start()
        logger.info("Connected, streaming audio")
        self._on_ready()

    def _handle_connect_failed(self, exc: Exception) -> None:
        if self._close_requested.is_set():
            self._finish()
            return
        logger.error("Handshake failed: %s", exc)
        self._transition(SessionState.FAILED)
        self._on_error(ConnectError(str(exc) or type(exc).__name__))
        self._finish()

    def _handle_message(self, raw: bytes | str) -> None:
        if self._state not in (SessionState.STREAMING, SessionState.STOPPING):
            return
        event = decode_message(raw)
        if isinstance(event, Malformed):
            logger.warning("Ignoring malformed message: %s", event.reason)
        self._on_event(event)

    def _handle_terminated(self, error: Optional[Exception]) -> None:
        self._close_requested.set()
        if self._state == SessionState.STREAMING:
            reason = str(error) if error is not None else "connection closed by server"
            logger.error("Connection lost: %s", reason)
            self._transition(SessionState.FAILED)
            self._on_error(TransportError(reason))
        elif error is not None:
            logger.debug("Connection ended with %s while %s", error, self._state.value)
        self._finish()

    def _finish(self) -> None:
        self._ws = None
        self._transition(SessionState.CLOSED)
        logger.info(
            "Session closed (sent=%d dropped=%d rejected=%d)",
            self.sent_frames,
            self.dropped_frames,
            self.rejected_frames,
        )
        self._on_closed()

    # ------------------------------------------------------------------
    # Worker threads
    # ------------------------------------------------------------------

    def _receive_worker(self) -> None:
        try:
            ws = self._connector(
                self._url,
                additional_headers=auth_headers(self._api_key),
                open_timeout=self._open_timeout_s,
            )
        except Exception as exc:
            self._terminated.set()
            self._dispatcher.post(self._handle_connect_failed, exc)
            return

        self._dispatcher.post(self._handle_connected, ws)
        error: Optional[Exception] = None
        try:
            for message in ws:
                self._dispatcher.post(self._handle_message, message)
        except Exception as exc:
            error = exc
        self._terminated.set()
        self._dispatcher.post(self._handle_terminated, error)

    def _send_worker(self, ws: Connection) -> None:
        try:
            self._drain_outbound(ws)
            if self._terminated.is_set():
                return
            # Ask the service to flush its last results; it closes afterwards.
            ws.send(CLOSE_STREAM_MESSAGE)
            if not self._terminated.wait(self._finalize_timeout_s):
                logger.warning(
                    "Server did not close within %.1fs, closing", self._finalize_timeout_s
                )
            ws.close()
        except Exception as exc:
            # The receiver observes the same failure and reports it.
            logger.debug("Sender stopped: %s", exc)

    def _drain_outbound(self, ws: Connection) -> None:
        while not self._terminated.is_set():
            try:
                frame = self._outbound.get(timeout=self._poll_s)
            except Empty:
                if self._close_requested.is_set():
                    return
                continue
            ws.send(frame.pcm16_bytes)
            self.sent_frames += 1

    def _close_quietly(self, ws: Connection) -> None:
        try:
            ws.close()
        except Exception as exc:
            logger.debug("Close failed: %s", exc)

    def _transition(self, to_state: SessionState) -> None:
        from_state = self._state
        if from_state == to_state:
            return
        self._state = to_state
        logger.debug("Transport %s -> %s", from_state.value, to_state.value)
        if self._on_state_change:
            self._on_state_change(from_state, to_state)


def _noop() -> None:
    return None


def _noop_event(event: RecognitionEvent) -> None:
    return None


def _noop_error(error: SpeechBridgeError) -> None:
    return None
