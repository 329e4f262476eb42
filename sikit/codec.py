"""JSON encoding and decoding over streams, and HMAC-SHA256 helpers."""

from __future__ import annotations

import dataclasses
import hashlib
import hmac
import io
import json
from typing import Any

_ESCAPES = {
    "<": "\\u003c",
    ">": "\\u003e",
    "&": "\\u0026",
    "\u2028": "\\u2028",
    "\u2029": "\\u2029",
}


def _default(value: Any) -> Any:
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return dataclasses.asdict(value)
    raise TypeError(f"object of type {type(value).__name__} is not JSON serializable")


def _json_line(value: Any) -> bytes:
    text = json.dumps(
        value,
        separators=(",", ":"),
        ensure_ascii=False,
        allow_nan=False,
        default=_default,
    )
    for char, escaped in _ESCAPES.items():
        text = text.replace(char, escaped)
    return (text + "\n").encode("utf-8")


def _read_all(reader: Any) -> bytes:
    data = reader.read()
    if isinstance(data, str):
        return data.encode("utf-8")
    return bytes(data)


def _decode_first(raw: bytes) -> Any:
    text = raw.decode("utf-8")
    start = len(text) - len(text.lstrip(" \t\r\n"))
    value, _ = json.JSONDecoder().raw_decode(text, start)
    return value


def encode_json(dst: Any, src: Any) -> None:
    """Encode ``src`` as a compact JSON line and write it to ``dst``."""
    dst.write(_json_line(src))


def encode_json_copied(dst: Any, src: Any) -> bytes:
    """Encode ``src`` to ``dst`` and also return the bytes written."""
    copy = io.BytesIO()
    data = _json_line(src)
    dst.write(data)
    copy.write(data)
    return copy.getvalue()


def hmac_sha256_hex(secret: str, message: bytes) -> str:
    """Return the hex-encoded HMAC-SHA256 of ``message`` keyed by ``secret``."""
    return hmac.new(secret.encode("utf-8"), message, hashlib.sha256).hexdigest()


def hmac_sha256_hex_from_reader(secret: str, reader: Any) -> str:
    """Read everything from ``reader`` and return its hex HMAC-SHA256."""
    return hmac_sha256_hex(secret, _read_all(reader))


def decode_json(src: Any) -> Any:
    """Read ``src`` and decode the first JSON value in it."""
    return _decode_first(_read_all(src))


def decode_json_copied(src: Any) -> tuple[Any, bytes]:
    """Decode the first JSON value from ``src``; also return the bytes read."""
    raw = _read_all(src)
    return _decode_first(raw), raw