"""Protocol interfaces used by SessionController."""

from __future__ import annotations

from typing import Callable, Iterator, Optional, Protocol

from errors import SpeechBridgeError
from models import AudioFrame, CaptureConfig, PermissionStatus, RecognitionEvent, SessionState

FrameCallback = Callable[[AudioFrame], None]


class CaptureSource(Protocol):
    def init(self, config: CaptureConfig) -> None: ...

    def start(self, on_frame: FrameCallback) -> None: ...

    def stop(self) -> None: ...

    def release(self) -> None: ...


class TransportSession(Protocol):
    @property
    def state(self) -> SessionState: ...

    def open(
        self,
        on_ready: Callable[[], None],
        on_event: Callable[[RecognitionEvent], None],
        on_error: Callable[[SpeechBridgeError], None],
        on_closed: Optional[Callable[[], None]] = None,
    ) -> None: ...

    def send(self, frame: AudioFrame) -> None: ...

    def close(self) -> None: ...


class Connection(Protocol):
    """The subset of ``websockets.sync.client.ClientConnection`` we rely on."""

    def send(self, message: bytes | str) -> None: ...

    def close(self) -> None: ...

    def __iter__(self) -> Iterator[bytes | str]: ...


class PermissionGate(Protocol):
    def request_microphone_access(self) -> PermissionStatus: ...

