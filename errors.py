"""Shared error types, codes and user-facing messages."""

from __future__ import annotations

PERMISSION_DENIED = "PERMISSION_DENIED"
CAPTURE_INIT_FAILED = "CAPTURE_INIT_FAILED"
CAPTURE_STOP_FAILED = "CAPTURE_STOP_FAILED"
CONNECT_FAILED = "CONNECT_FAILED"
NETWORK_ERROR = "NETWORK_ERROR"
ASR_PROTOCOL_ERROR = "ASR_PROTOCOL_ERROR"
ALREADY_RECORDING = "ALREADY_RECORDING"

ERROR_MESSAGES = {
    PERMISSION_DENIED: "Microphone permission is required.",
    CAPTURE_INIT_FAILED: "Microphone could not be opened.",
    CAPTURE_STOP_FAILED: "Microphone was not recording.",
    CONNECT_FAILED: "Could not connect to the transcription service.",
    NETWORK_ERROR: "Connection lost, please retry.",
    ASR_PROTOCOL_ERROR: "ASR response format is invalid.",
    ALREADY_RECORDING: "Already listening.",
}


class SpeechBridgeError(Exception):
    code = ""

    @property
    def user_message(self) -> str:
        return ERROR_MESSAGES.get(self.code, str(self))


class PermissionDenied(SpeechBridgeError):
    code = PERMISSION_DENIED


class CaptureInitError(SpeechBridgeError):
    code = CAPTURE_INIT_FAILED


class CaptureStopError(SpeechBridgeError):
    code = CAPTURE_STOP_FAILED


class ConnectError(SpeechBridgeError):
    code = CONNECT_FAILED


class TransportError(SpeechBridgeError):
    code = NETWORK_ERROR


class MalformedMessage(SpeechBridgeError):
    code = ASR_PROTOCOL_ERROR


class AlreadyRecordingError(SpeechBridgeError):
    code = ALREADY_RECORDING
