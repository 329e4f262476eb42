"""A byte buffer with explicit length and capacity, and helpers to grow it."""

from __future__ import annotations

MAX_INT = (1 << 63) - 1


class TooLargeError(ValueError):
    """Raised when growing a buffer would exceed the largest size allowed."""

    def __init__(self, message: str = "buf too large") -> None:
        super().__init__(message)


class ByteSlice:
    """A growable byte buffer that tracks its capacity separately from its length."""

    def __init__(self, data: bytes = b"", capacity: int | None = None) -> None:
        self._data = bytearray(data)
        cap = len(self._data) if capacity is None else capacity
        if cap < len(self._data):
            raise ValueError("capacity smaller than data length")
        self.capacity = cap

    def __len__(self) -> int:
        return len(self._data)

    def __bytes__(self) -> bytes:
        return bytes(self._data)

    @property
    def data(self) -> bytes:
        """The bytes currently in the buffer."""
        return bytes(self._data)

    def append(self, data: bytes) -> None:
        """Append ``data``, doubling the capacity when it does not fit."""
        needed = len(self._data) + len(data)
        if needed > self.capacity:
            self.capacity = max(needed, self.capacity * 2)
        self._data.extend(data)


def grow_byte_slice(buf: ByteSlice, n: int) -> int:
    """Extend ``buf`` by ``n`` zero bytes, growing capacity if needed.

    Returns the previous length. Raises ``TooLargeError`` when the new
    capacity would overflow.
    """
    cap = buf.capacity
    length = len(buf)
    if n <= cap - length:
        buf._data.extend(bytes(n))
        return length
    if cap > MAX_INT - cap - n:
        raise TooLargeError()
    buf.capacity = cap * 2 + n
    buf._data.extend(bytes(n))
    return length


def grow_byte_slice_cap(buf: ByteSlice, n: int) -> None:
    """Make room for ``n`` more bytes without changing the length."""
    cap = buf.capacity
    length = len(buf)
    if n <= cap - length:
        return
    if cap > MAX_INT - cap - n:
        raise TooLargeError()
    buf.capacity = cap + n