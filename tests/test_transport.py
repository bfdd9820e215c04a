"""Tests for DeepgramTransportSession."""

from __future__ import annotations

import threading

import pytest

from dispatcher import EventDispatcher
from errors import ConnectError, SpeechBridgeError, TransportError
from fakes import FakeConnection, FakeConnector, make_frame, results, wait_for
from models import Final, Malformed, Partial, RecognitionEvent, SessionState
from protocol import CLOSE_STREAM_MESSAGE
from transport import DeepgramTransportSession


class Recorder:
    """Collects every callback a session makes."""

    def __init__(self) -> None:
        self.ready = 0
        self.closed = 0
        self.events: list[RecognitionEvent] = []
        self.errors: list[SpeechBridgeError] = []
        self.transitions: list[tuple[SessionState, SessionState]] = []

    def on_ready(self) -> None:
        self.ready += 1

    def on_closed(self) -> None:
        self.closed += 1

    def open(self, session: DeepgramTransportSession) -> None:
        session.open(
            on_ready=self.on_ready,
            on_event=self.events.append,
            on_error=self.errors.append,
            on_closed=self.on_closed,
        )


def _make_session(
    connector: FakeConnector, recorder: Recorder, **kwargs
) -> tuple[DeepgramTransportSession, EventDispatcher]:
    dispatcher = EventDispatcher()
    session = DeepgramTransportSession(
        api_key="test-key",
        dispatcher=dispatcher,
        connector=connector,
        poll_s=0.01,
        finalize_timeout_s=1.0,
        on_state_change=lambda f, t: recorder.transitions.append((f, t)),
        **kwargs,
    )
    return session, dispatcher


def _streaming_session(**kwargs):
    connector = FakeConnector()
    recorder = Recorder()
    session, dispatcher = _make_session(connector, recorder, **kwargs)
    recorder.open(session)
    assert dispatcher.run_until(lambda: session.state == SessionState.STREAMING)
    return session, dispatcher, connector.connection, recorder


# ---------------------------------------------------------------
# Handshake
# ---------------------------------------------------------------

def test_open_sends_format_and_credentials_in_handshake() -> None:
    session, dispatcher, _, recorder = _streaming_session()
    url, kwargs = session._connector.calls[0]

    assert "encoding=linear16" in url
    assert "sample_rate=16000" in url
    assert "channels=1" in url
    assert kwargs["additional_headers"] == {"Authorization": "Token test-key"}
    assert kwargs["open_timeout"] is None
    assert recorder.ready == 1
    assert recorder.transitions == [
        (SessionState.IDLE, SessionState.CONNECTING),
        (SessionState.CONNECTING, SessionState.STREAMING),
    ]

    session.close()
    dispatcher.run_until(lambda: session.state == SessionState.CLOSED)


def test_handshake_failure_reports_connect_error_and_closes() -> None:
    connector = FakeConnector(error=OSError("401 Unauthorized"))
    recorder = Recorder()
    session, dispatcher = _make_session(connector, recorder)
    recorder.open(session)

    assert dispatcher.run_until(lambda: session.state == SessionState.CLOSED)
    assert recorder.ready == 0
    assert len(recorder.errors) == 1
    assert isinstance(recorder.errors[0], ConnectError)
    assert "401" in str(recorder.errors[0])
    assert (SessionState.CONNECTING, SessionState.FAILED) in recorder.transitions
    assert (SessionState.FAILED, SessionState.CLOSED) in recorder.transitions
    assert recorder.closed == 1


def test_close_during_handshake_drops_connection() -> None:
    gate = threading.Event()
    connector = FakeConnector(gate=gate)
    recorder = Recorder()
    session, dispatcher = _make_session(connector, recorder)
    recorder.open(session)

    session.close()
    assert session.state == SessionState.CONNECTING
    gate.set()

    assert dispatcher.run_until(lambda: session.state == SessionState.CLOSED)
    assert connector.connection.closed is True
    assert recorder.ready == 0
    assert recorder.errors == []
    assert (SessionState.CONNECTING, SessionState.CLOSED) in recorder.transitions


def test_close_during_failed_handshake_reports_nothing() -> None:
    gate = threading.Event()
    connector = FakeConnector(error=OSError("refused"), gate=gate)
    recorder = Recorder()
    session, dispatcher = _make_session(connector, recorder)
    recorder.open(session)

    session.close()
    gate.set()

    assert dispatcher.run_until(lambda: session.state == SessionState.CLOSED)
    assert recorder.errors == []


def test_close_from_idle_is_terminal() -> None:
    recorder = Recorder()
    session, _ = _make_session(FakeConnector(), recorder)
    session.close()

    assert session.state == SessionState.CLOSED
    with pytest.raises(RuntimeError):
        recorder.open(session)


# ---------------------------------------------------------------
# Outbound frames
# ---------------------------------------------------------------

def test_frames_outside_streaming_never_reach_the_wire() -> None:
    connector = FakeConnector()
    recorder = Recorder()
    session, dispatcher = _make_session(connector, recorder)
    connection = connector.connection

    session.send(make_frame(0))  # IDLE
    recorder.open(session)
    session.send(make_frame(1))  # CONNECTING
    assert dispatcher.run_until(lambda: session.state == SessionState.STREAMING)

    session.send(make_frame(2))
    session.send(make_frame(3))
    assert wait_for(lambda: len(connection.audio) == 2)

    session.close()
    assert session.state == SessionState.STOPPING
    session.send(make_frame(4))  # STOPPING

    assert dispatcher.run_until(lambda: session.state == SessionState.CLOSED)
    session.send(make_frame(5))  # CLOSED

    assert connection.audio == [make_frame(2).pcm16_bytes, make_frame(3).pcm16_bytes]
    assert session.sent_frames == 2
    assert session.rejected_frames == 4


def test_graceful_close_flushes_then_sends_close_stream() -> None:
    session, dispatcher, connection, recorder = _streaming_session()
    for index in range(5):
        session.send(make_frame(index))
    session.close()

    assert dispatcher.run_until(lambda: session.state == SessionState.CLOSED)
    assert connection.sent[-1] == CLOSE_STREAM_MESSAGE
    assert connection.audio == [make_frame(i).pcm16_bytes for i in range(5)]
    assert recorder.errors == []
    assert recorder.closed == 1
    assert (SessionState.STREAMING, SessionState.STOPPING) in recorder.transitions
    assert (SessionState.STOPPING, SessionState.CLOSED) in recorder.transitions


def test_full_outbound_buffer_drops_frames_without_blocking() -> None:
    session, dispatcher, connection, _ = _streaming_session(outbound_maxsize=2)
    connection.send_gate = threading.Event()

    session.send(make_frame(0))
    assert connection.send_entered.wait(1.0)  # sender is stuck on frame 0
    for index in range(1, 4):
        session.send(make_frame(index))

    assert session.dropped_frames == 1
    connection.send_gate.set()
    assert wait_for(lambda: len(connection.audio) == 3)
    assert connection.audio == [make_frame(i).pcm16_bytes for i in range(3)]

    session.close()
    dispatcher.run_until(lambda: session.state == SessionState.CLOSED)


def test_close_without_server_close_times_out_and_closes() -> None:
    connector = FakeConnector(connection=FakeConnection(close_on_close_stream=False))
    recorder = Recorder()
    session, dispatcher = _make_session(connector, recorder)
    session._finalize_timeout_s = 0.1
    recorder.open(session)
    assert dispatcher.run_until(lambda: session.state == SessionState.STREAMING)

    session.close()

    assert dispatcher.run_until(lambda: session.state == SessionState.CLOSED)
    assert connector.connection.closed is True
    assert recorder.errors == []


# ---------------------------------------------------------------
# Inbound events
# ---------------------------------------------------------------

def test_inbound_messages_are_decoded_in_order() -> None:
    session, dispatcher, connection, recorder = _streaming_session()
    connection.push(results("hel", is_final=False))
    connection.push(results("hello", is_final=False))
    connection.push(results("hello world"))

    assert dispatcher.run_until(lambda: len(recorder.events) == 3)
    assert recorder.events == [Partial("hel"), Partial("hello"), Final("hello world")]

    session.close()
    dispatcher.run_until(lambda: session.state == SessionState.CLOSED)


def test_malformed_message_keeps_streaming() -> None:
    session, dispatcher, connection, recorder = _streaming_session()
    connection.push("not json")
    connection.push(results("still here"))

    assert dispatcher.run_until(lambda: len(recorder.events) == 2)
    assert isinstance(recorder.events[0], Malformed)
    assert recorder.events[1] == Final("still here")
    assert session.state == SessionState.STREAMING
    assert recorder.errors == []

    session.close()
    dispatcher.run_until(lambda: session.state == SessionState.CLOSED)


def test_results_arriving_while_stopping_are_forwarded() -> None:
    connector = FakeConnector(connection=FakeConnection(close_on_close_stream=False))
    recorder = Recorder()
    session, dispatcher = _make_session(connector, recorder)
    recorder.open(session)
    assert dispatcher.run_until(lambda: session.state == SessionState.STREAMING)

    session.close()
    assert wait_for(lambda: CLOSE_STREAM_MESSAGE in connector.connection.sent)
    connector.connection.push(results("last words"))
    connector.connection.close()

    assert dispatcher.run_until(lambda: session.state == SessionState.CLOSED)
    assert recorder.events == [Final("last words")]


# ---------------------------------------------------------------
# Transport failures
# ---------------------------------------------------------------

def test_network_drop_while_streaming_fails_then_closes() -> None:
    session, dispatcher, connection, recorder = _streaming_session()
    connection.drop(ConnectionResetError("network down"))

    assert dispatcher.run_until(lambda: session.state == SessionState.CLOSED)
    assert len(recorder.errors) == 1
    assert isinstance(recorder.errors[0], TransportError)
    assert (SessionState.STREAMING, SessionState.FAILED) in recorder.transitions
    assert (SessionState.FAILED, SessionState.CLOSED) in recorder.transitions
    assert recorder.closed == 1

    session.send(make_frame())
    assert session.rejected_frames == 1


def test_server_close_while_streaming_is_a_transport_error() -> None:
    session, dispatcher, connection, recorder = _streaming_session()
    connection.close()

    assert dispatcher.run_until(lambda: session.state == SessionState.CLOSED)
    assert len(recorder.errors) == 1
    assert isinstance(recorder.errors[0], TransportError)
    assert "closed by server" in str(recorder.errors[0])
