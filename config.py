"""Simple JSON-based config store."""

from __future__ import annotations

import json
import os
from pathlib import Path

from protocol import DEFAULT_ENDPOINT

API_KEY_ENV = "DEEPGRAM_API_KEY"


class JsonConfigStore:
    def __init__(self, path: Path | None = None) -> None:
        self._path = path or Path.home() / ".config" / "live_transcribe" / "config.json"
        self._path.parent.mkdir(parents=True, exist_ok=True)

    def get_api_key(self) -> str:
        data = self._read_all()
        return str(data.get("api_key", "")) or os.getenv(API_KEY_ENV, "")

    def set_api_key(self, key: str) -> None:
        data = self._read_all()
        data["api_key"] = key
        self._write_all(data)

    def get_endpoint(self) -> str:
        data = self._read_all()
        return str(data.get("endpoint", DEFAULT_ENDPOINT))

    def get_hotkey(self) -> str:
        data = self._read_all()
        return str(data.get("hotkey", "Key.f8"))

    def set_hotkey(self, hotkey: str) -> None:
        data = self._read_all()
        data["hotkey"] = hotkey
        self._write_all(data)

    def get_interim_results(self) -> bool:
        data = self._read_all()
        return bool(data.get("interim_results", False))

    def _read_all(self) -> dict:
        if not self._path.exists():
            return {}
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError):
            return {}
        return data if isinstance(data, dict) else {}

    def _write_all(self, data: dict) -> None:
        self._path.write_text(json.dumps(data, ensure_ascii=False, indent=2), encoding="utf-8")
