"""Buffered files with pluggable encoders, and directory listing."""

from __future__ import annotations

import dataclasses
import io
import json
import os
from collections.abc import Iterator
from dataclasses import dataclass
from enum import Enum
from typing import Any

from sikit.codec import encode_json
from sikit.encoding import DefaultDecoder, DefaultEncoder

_BUFFER_SIZE = 4096
_BINARY = getattr(os, "O_BINARY", 0)


class Codec(Enum):
    """How values are encoded to and decoded from a file."""

    RAW = "raw"
    JSON = "json"


class File:
    """A file with buffered reads and writes and value encoding."""

    def __init__(
        self,
        fd: int,
        name: str,
        flags: int = 0,
        reader_codec: Codec = Codec.RAW,
        writer_codec: Codec = Codec.RAW,
    ) -> None:
        self._fd = fd
        self.name = name
        self._flags = flags
        self.reader_codec = reader_codec
        self.writer_codec = writer_codec
        self._rbuf = bytearray()
        self._wbuf = bytearray()
        self._dir_iter: Iterator[os.DirEntry] | None = None
        self._dir_scan: Any = None
        self.closed = False

    def __enter__(self) -> File:
        return self

    def __exit__(self, *args: Any) -> None:
        if not self.closed:
            self.close()

    def close(self) -> None:
        """Flush pending writes and close the file."""
        if self.closed:
            raise ValueError("file already closed")
        try:
            self.flush()
        finally:
            if self._dir_scan is not None:
                self._dir_scan.close()
                self._dir_scan = None
            self.closed = True
            os.close(self._fd)

    def fileno(self) -> int:
        return self._fd

    def chdir(self) -> None:
        """Make this file, which must be a directory, the working directory."""
        os.fchdir(self._fd)

    def chmod(self, mode: int) -> None:
        os.fchmod(self._fd, mode)

    def read(self, size: int = -1) -> bytes:
        """Read up to ``size`` bytes; a negative size reads everything."""
        if size < 0:
            return self.read_all()
        if self._rbuf:
            chunk = bytes(self._rbuf[:size])
            del self._rbuf[:size]
            return chunk
        return os.read(self._fd, size)

    def read_at(self, size: int, offset: int) -> bytes:
        """Read up to ``size`` bytes at ``offset`` without moving the position."""
        return os.pread(self._fd, size, offset)

    def _scandir(self) -> Iterator[os.DirEntry]:
        if self._dir_iter is None:
            self._dir_scan = os.scandir(self.name)
            self._dir_iter = iter(self._dir_scan)
        return self._dir_iter

    def read_dir(self, n: int = -1) -> list[os.DirEntry]:
        """Return up to ``n`` directory entries, or all remaining when ``n <= 0``.

        Raises ``EOFError`` when ``n > 0`` and no entries remain.
        """
        entries = self._scandir()
        if n <= 0:
            return list(entries)
        result = [entry for _, entry in zip(range(n), entries)]
        if not result:
            raise EOFError("no more directory entries")
        return result

    def read_dir_names(self, n: int = -1) -> list[str]:
        """Like :meth:`read_dir` but returns only the entry names."""
        return [entry.name for entry in self.read_dir(n)]

    def read_from(self, reader: Any) -> int:
        """Copy everything from ``reader`` into the file; return the byte count."""
        self.flush()
        total = 0
        while True:
            chunk = reader.read(65536)
            if not chunk:
                return total
            if isinstance(chunk, str):
                chunk = chunk.encode("utf-8")
            view = memoryview(chunk)
            while view:
                written = os.write(self._fd, view)
                view = view[written:]
                total += written

    def seek(self, offset: int, whence: int = os.SEEK_SET) -> int:
        """Move the file position, discarding buffered reads."""
        self.flush()
        position = os.lseek(self._fd, offset, whence)
        self._rbuf.clear()
        return position

    def write(self, data: bytes) -> int:
        """Buffer ``data`` for writing; return its length."""
        self._wbuf.extend(data)
        if len(self._wbuf) >= _BUFFER_SIZE:
            self.flush()
        return len(data)

    def write_at(self, data: bytes, offset: int) -> int:
        """Write ``data`` at ``offset`` directly, bypassing the buffer."""
        if self._flags & os.O_APPEND:
            raise ValueError("invalid use of write_at on file opened with O_APPEND")
        return os.pwrite(self._fd, data, offset)

    def write_string(self, text: str) -> int:
        return self.write(text.encode("utf-8"))

    def read_all(self) -> bytes:
        """Read everything up to the end of the file."""
        parts = [bytes(self._rbuf)]
        self._rbuf.clear()
        while True:
            chunk = os.read(self._fd, _BUFFER_SIZE)
            if not chunk:
                return b"".join(parts)
            parts.append(chunk)

    def read_all_at(self, offset: int) -> bytes:
        """Seek to ``offset`` and read everything from there."""
        self.seek(offset, os.SEEK_SET)
        return self.read_all()

    def write_flush(self, data: bytes) -> int:
        written = self.write(data)
        self.flush()
        return written

    def flush(self) -> None:
        """Write out all buffered data."""
        while self._wbuf:
            written = os.write(self._fd, self._wbuf)
            del self._wbuf[:written]

    def encode(self, value: Any) -> None:
        """Encode ``value`` with the writer codec into the write buffer."""
        if self.writer_codec is Codec.JSON:
            encode_json(self, value)
        else:
            DefaultEncoder(self).encode(value)

    def encode_flush(self, value: Any) -> None:
        self.encode(value)
        self.flush()

    def decode(self, kind: Any = bytes) -> Any:
        """Decode the next value with the reader codec.

        With the raw codec the rest of the file is returned as ``kind``
        (``bytes`` or ``str``). With the JSON codec one value is decoded; a
        dataclass ``kind`` is built from a decoded object.
        """
        if self.reader_codec is Codec.JSON:
            return self._decode_json(kind)
        if kind not in (bytes, str):
            raise TypeError("not supported")
        return DefaultDecoder(io.BytesIO(self.read_all())).decode(kind)

    def _decode_json(self, kind: Any) -> Any:
        data = self.read_all()
        text = data.decode("utf-8")
        start = len(text) - len(text.lstrip(" \t\r\n"))
        if start == len(text):
            raise EOFError("no JSON value to decode")
        value, end = json.JSONDecoder().raw_decode(text, start)
        consumed = len(text[:end].encode("utf-8"))
        self._rbuf.extend(data[consumed:])
        if dataclasses.is_dataclass(kind) and isinstance(kind, type) and isinstance(value, dict):
            names = {f.name for f in dataclasses.fields(kind)}
            return kind(**{k: v for k, v in value.items() if k in names})
        return value

    def read_line(self) -> str:
        """Read up to and including the next newline.

        Returns the remaining text when no newline follows; raises
        ``EOFError`` at the end of the file.
        """
        while True:
            index = self._rbuf.find(b"\n")
            if index >= 0:
                line = bytes(self._rbuf[: index + 1])
                del self._rbuf[: index + 1]
                return line.decode("utf-8")
            chunk = os.read(self._fd, _BUFFER_SIZE)
            if not chunk:
                rest = bytes(self._rbuf)
                self._rbuf.clear()
                if not rest:
                    raise EOFError("end of file")
                return rest.decode("utf-8")
            self._rbuf.extend(chunk)


def open_file(
    name: str,
    flags: int,
    perm: int = 0o666,
    *,
    reader_codec: Codec = Codec.RAW,
    writer_codec: Codec = Codec.RAW,
) -> File:
    """Open ``name`` with ``os.open`` flags and permission bits."""
    fd = os.open(name, flags | _BINARY, perm)
    return File(fd, name, flags, reader_codec, writer_codec)


def create_file(
    name: str, *, reader_codec: Codec = Codec.RAW, writer_codec: Codec = Codec.RAW
) -> File:
    """Create or truncate ``name`` for reading and writing."""
    return open_file(
        name,
        os.O_RDWR | os.O_CREAT | os.O_TRUNC,
        0o666,
        reader_codec=reader_codec,
        writer_codec=writer_codec,
    )


def open_existing(
    name: str, *, reader_codec: Codec = Codec.RAW, writer_codec: Codec = Codec.RAW
) -> File:
    """Open ``name`` read-only."""
    return open_file(
        name, os.O_RDONLY, 0, reader_codec=reader_codec, writer_codec=writer_codec
    )


@dataclass(frozen=True)
class DirEntryWithPath:
    """A directory entry together with its path below the walked root."""

    path: str
    entry: os.DirEntry

    @property
    def name(self) -> str:
        return self.entry.name

    def is_dir(self) -> bool:
        return self.entry.is_dir(follow_symlinks=False)

    def info(self) -> os.stat_result:
        return self.entry.stat(follow_symlinks=False)


def _walk(directory: str) -> Iterator[DirEntryWithPath]:
    with os.scandir(directory) as scan:
        children = sorted(scan, key=lambda entry: entry.name)
    for entry in children:
        path = os.path.normpath(os.path.join(directory, entry.name))
        yield DirEntryWithPath(path, entry)
        if entry.is_dir(follow_symlinks=False):
            yield from _walk(path)


def list_dir(root: str) -> list[DirEntryWithPath]:
    """Walk the tree under ``root`` in lexical order, excluding ``root`` itself."""
    import stat

    if not stat.S_ISDIR(os.lstat(root).st_mode):
        return []
    return list(_walk(root))