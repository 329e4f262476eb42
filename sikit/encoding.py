"""Plain encoders and decoders that pass bytes and text through file-like objects."""

from __future__ import annotations

from typing import Any


class DefaultEncoder:
    """Writes ``bytes`` or ``str`` values to an underlying binary writer."""

    def __init__(self, writer: Any = None) -> None:
        self.writer = writer

    def reset(self, writer: Any) -> None:
        """Replace the underlying writer."""
        self.writer = writer

    def encode(self, value: Any) -> None:
        """Write ``value`` to the writer; ``None`` writes nothing.

        Raises ``TypeError`` for anything other than bytes-like or text.
        """
        if value is None:
            return
        if isinstance(value, (bytes, bytearray, memoryview)):
            data = bytes(value)
        elif isinstance(value, str):
            data = value.encode("utf-8")
        else:
            raise TypeError(
                f"unable to encode value of type {type(value).__name__}"
            )
        self.writer.write(data)


class DefaultDecoder:
    """Reads everything from an underlying reader as ``bytes`` or ``str``."""

    def __init__(self, reader: Any = None) -> None:
        self.reader = reader

    def reset(self, reader: Any) -> None:
        """Replace the underlying reader."""
        self.reader = reader

    def decode(self, kind: type = bytes) -> bytes | str:
        """Read the whole reader and return it as ``kind`` (``bytes`` or ``str``)."""
        if kind not in (bytes, str):
            raise TypeError("not supported")
        if self.reader is None:
            raise ValueError("decoder has no reader")
        data = self.reader.read()
        if isinstance(data, str):
            data = data.encode("utf-8")
        data = bytes(data)
        if kind is bytes:
            return data
        return data.decode("utf-8", errors="replace")