"""Core data models for the app."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Union


class SessionState(str, Enum):
    IDLE = "IDLE"
    CONNECTING = "CONNECTING"
    STREAMING = "STREAMING"
    STOPPING = "STOPPING"
    CLOSED = "CLOSED"
    FAILED = "FAILED"


class RecordingState(str, Enum):
    NOT_RECORDING = "NOT_RECORDING"
    RECORDING = "RECORDING"


class PermissionStatus(str, Enum):
    GRANTED = "GRANTED"
    DENIED = "DENIED"


@dataclass(frozen=True)
class CaptureConfig:
    sample_rate: int = 16000
    channels: int = 1
    bits_per_sample: int = 16
    raw_format: str = "pcm"


@dataclass(frozen=True)
class AudioFrame:
    pcm16_bytes: bytes
    sample_rate: int = 16000
    channels: int = 1
    timestamp_ms: int = 0


@dataclass(frozen=True)
class Partial:
    """Segment the service may still revise."""

    text: str


@dataclass(frozen=True)
class Final:
    """Segment the service considers stable."""

    text: str


@dataclass(frozen=True)
class Malformed:
    """Inbound message that could not be decoded."""

    reason: str = ""


RecognitionEvent = Union[Partial, Final, Malformed]
