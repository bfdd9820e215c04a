"""Microphone capture source built on sounddevice."""

from __future__ import annotations

import logging
import threading
import time
from typing import Any, Optional

import numpy as np

from errors import CaptureInitError, CaptureStopError
from interfaces import FrameCallback
from models import AudioFrame, CaptureConfig

try:
    import sounddevice as sd
except Exception:  # pragma: no cover - PortAudio missing
    sd = None  # type: ignore

logger = logging.getLogger(__name__)


class SoundDeviceCaptureSource:
    def __init__(self, device: Optional[int | str] = None, chunk_ms: int = 100) -> None:
        self.device = device
        self.chunk_ms = chunk_ms
        self._config: Optional[CaptureConfig] = None
        self._stream: Any = None
        self._on_frame: Optional[FrameCallback] = None
        self._running = False
        self._lock = threading.Lock()
        self.frames_captured = 0

    @property
    def running(self) -> bool:
        return self._running

    def init(self, config: CaptureConfig) -> None:
        if config.bits_per_sample != 16 or config.raw_format != "pcm":
            raise CaptureInitError(
                f"unsupported format {config.raw_format}/{config.bits_per_sample}-bit"
            )
        if sd is None:
            raise CaptureInitError("sounddevice is not installed")
        with self._lock:
            if self._running:
                raise CaptureInitError("capture device is busy")
            self._close_stream()
            try:
                sd.check_input_settings(
                    device=self.device,
                    channels=config.channels,
                    dtype="int16",
                    samplerate=config.sample_rate,
                )
                self._stream = sd.InputStream(
                    device=self.device,
                    samplerate=config.sample_rate,
                    channels=config.channels,
                    dtype="int16",
                    blocksize=int(config.sample_rate * (self.chunk_ms / 1000.0)),
                    callback=self._on_audio,
                )
            except Exception as exc:
                raise CaptureInitError(str(exc)) from exc
            self._config = config

    def start(self, on_frame: FrameCallback) -> None:
        with self._lock:
            if self._running:
                return
            if self._stream is None:
                raise CaptureInitError("capture source is not initialised")
            self._on_frame = on_frame
            self._running = True
            try:
                self._stream.start()
            except Exception as exc:
                self._running = False
                self._on_frame = None
                raise CaptureInitError(str(exc)) from exc
        logger.info("Capture started (%d Hz, %d ch)", self._config.sample_rate, self._config.channels)

    def stop(self) -> None:
        with self._lock:
            if not self._running:
                raise CaptureStopError("no active capture session")
            self._running = False
            self._on_frame = None
            try:
                self._stream.stop()
            except Exception as exc:
                raise CaptureStopError(str(exc) or type(exc).__name__) from exc
            finally:
                self._close_stream()
        logger.info("Capture stopped after %d frames", self.frames_captured)

    def release(self) -> None:
        """Close a stream that was initialised but never started."""
        with self._lock:
            if self._running:
                return
            self._close_stream()

    def _close_stream(self) -> None:
        stream, self._stream = self._stream, None
        if stream is None:
            return
        try:
            stream.close()
        except Exception as exc:
            logger.warning("Closing input stream failed: %s", exc)

    def _on_audio(self, indata: Any, frames: int, time_info: Any, status: Any) -> None:
        if status:
            logger.debug("Input status: %s", status)
        on_frame = self._on_frame
        if not self._running or on_frame is None or self._config is None:
            return
        frame = AudioFrame(
            pcm16_bytes=np.asarray(indata, dtype=np.int16).tobytes(),
            sample_rate=self._config.sample_rate,
            channels=self._config.channels,
            timestamp_ms=int(time.time() * 1000),
        )
        self.frames_captured += 1
        on_frame(frame)
