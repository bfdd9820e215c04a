"""Wire format of the Deepgram live transcription endpoint.

Outbound audio is raw linear16 PCM sent as binary frames. Inbound results are
JSON text messages::

    {"type": "Results", "is_final": true,
     "channel": {"alternatives": [{"transcript": "hello world", ...}]}}

Anything that does not carry ``channel.alternatives[0].transcript`` decodes to
``Malformed``.
"""

from __future__ import annotations

import json
from typing import Any
from urllib.parse import urlencode

from errors import MalformedMessage
from models import Final, Malformed, Partial, RecognitionEvent

DEFAULT_ENDPOINT = "wss://api.deepgram.com/v1/listen"
ENCODING = "linear16"
CLOSE_STREAM_MESSAGE = json.dumps({"type": "CloseStream"})


def build_listen_url(
    endpoint: str = DEFAULT_ENDPOINT,
    sample_rate: int = 16000,
    channels: int = 1,
    interim_results: bool = False,
) -> str:
    params: dict[str, Any] = {
        "encoding": ENCODING,
        "sample_rate": sample_rate,
        "channels": channels,
    }
    if interim_results:
        params["interim_results"] = "true"
    separator = "&" if "?" in endpoint else "?"
    return f"{endpoint}{separator}{urlencode(params)}"


def auth_headers(api_key: str) -> dict[str, str]:
    return {"Authorization": f"Token {api_key}"}


def decode_message(raw: bytes | str) -> RecognitionEvent:
    try:
        return _parse(raw)
    except MalformedMessage as exc:
        return Malformed(reason=str(exc))


def _parse(raw: bytes | str) -> RecognitionEvent:
    if isinstance(raw, bytes):
        try:
            raw = raw.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise MalformedMessage(f"not utf-8 text: {exc}") from exc
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise MalformedMessage(f"not json: {exc.msg}") from exc

    if not isinstance(data, dict):
        raise MalformedMessage("top level is not an object")
    channel = data.get("channel")
    if not isinstance(channel, dict):
        raise MalformedMessage(f"no channel in {data.get('type', 'message')!s}")
    alternatives = channel.get("alternatives")
    if not isinstance(alternatives, list) or not alternatives:
        raise MalformedMessage("no alternatives")
    first = alternatives[0]
    if not isinstance(first, dict) or not isinstance(first.get("transcript"), str):
        raise MalformedMessage("alternative has no transcript")

    text = first["transcript"]
    if data.get("is_final", True) is False:
        return Partial(text)
    return Final(text)
