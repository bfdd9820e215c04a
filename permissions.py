"""Microphone permission gate."""

from __future__ import annotations

import logging

from models import PermissionStatus

try:
    import sounddevice as sd
except Exception:  # pragma: no cover - PortAudio missing
    sd = None  # type: ignore

logger = logging.getLogger(__name__)


class SoundDevicePermissionGate:
    """Reports DENIED when no usable input device is visible.

    Desktop platforms prompt for microphone access when the stream is first
    opened; a revoked permission then surfaces as ``CaptureInitError``.
    """

    def __init__(self, device: int | str | None = None) -> None:
        self.device = device

    def request_microphone_access(self) -> PermissionStatus:
        if sd is None:
            return PermissionStatus.DENIED
        try:
            info = sd.query_devices(self.device, kind="input")
        except Exception as exc:
            logger.warning("No input device available: %s", exc)
            return PermissionStatus.DENIED
        if int(info.get("max_input_channels", 0)) < 1:
            return PermissionStatus.DENIED
        return PermissionStatus.GRANTED
