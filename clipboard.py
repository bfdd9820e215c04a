"""Copy the transcript to the system clipboard."""

from __future__ import annotations

import logging

try:
    import pyperclip
except Exception:  # pragma: no cover
    pyperclip = None  # type: ignore

logger = logging.getLogger(__name__)


class ClipboardService:
    def copy_text(self, text: str) -> bool:
        if not text.strip():
            return False
        if pyperclip is None:
            logger.warning("pyperclip is not installed, cannot copy transcript")
            return False
        try:
            pyperclip.copy(text)
        except pyperclip.PyperclipException as exc:
            logger.warning("Clipboard unavailable: %s", exc)
            return False
        return True
