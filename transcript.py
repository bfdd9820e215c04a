"""Incremental transcript assembly from recognition events."""

from __future__ import annotations

from typing import Optional

from models import Final, Malformed, Partial, RecognitionEvent


class TranscriptAssembler:
    """Committed segments in arrival order plus one pending segment.

    ``Partial`` results replace the pending slot, ``Final`` results are
    appended to the committed sequence and clear it. Committed segments are
    never reordered or removed.
    """

    def __init__(self) -> None:
        self._committed: list[str] = []
        self._pending: Optional[str] = None

    @property
    def committed(self) -> tuple[str, ...]:
        return tuple(self._committed)

    @property
    def pending(self) -> Optional[str]:
        return self._pending

    def apply(self, event: RecognitionEvent) -> None:
        if isinstance(event, Partial):
            self._pending = event.text
        elif isinstance(event, Final):
            self._committed.append(event.text)
            self._pending = None
        elif isinstance(event, Malformed):
            return
        else:
            raise TypeError(f"unsupported recognition event: {event!r}")

    def snapshot(self) -> str:
        parts = [segment.strip() for segment in self._committed]
        if self._pending is not None:
            parts.append(self._pending.strip())
        return " ".join(part for part in parts if part)

    def clear(self) -> None:
        self._committed.clear()
        self._pending = None
