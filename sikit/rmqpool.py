"""Pools of broker connections and channels, and a multi-channel consumer."""

from __future__ import annotations

import queue
import threading
from typing import Any, Callable

from sikit import rmqlog
from sikit.rmqchannel import Channel
from sikit.rmqconn import Conn


class ConnPool:
    """A fixed number of connections handed out and returned in turn."""

    def __init__(
        self,
        size: int,
        addr: str,
        prefetch: int,
        *,
        conn_factory: Callable[[str, int], Any] | None = None,
    ) -> None:
        factory = conn_factory if conn_factory is not None else Conn
        self._size = size
        self._pool: queue.Queue[Any] = queue.Queue(maxsize=max(size, 1))
        for _ in range(size):
            self._pool.put(factory(addr, prefetch))

    def get(self) -> Any:
        """Take a connection, blocking until one is free."""
        return self._pool.get()

    def put(self, conn: Any) -> None:
        """Return a connection to the pool."""
        self._pool.put(conn)

    def size(self) -> int:
        return self._size

    def close(self) -> list[Exception]:
        """Close every connection; return the errors raised while closing."""
        errors: list[Exception] = []
        for _ in range(self._size):
            conn = self.get()
            try:
                conn.close()
            except Exception as exc:
                errors.append(exc)
        return errors


class ChannelPool:
    """``size`` channels on each connection of a :class:`ConnPool`."""

    def __init__(
        self,
        size: int,
        conn_pool: ConnPool,
        *,
        channel_factory: Callable[[Any], Any] | None = None,
    ) -> None:
        factory = channel_factory if channel_factory is not None else Channel
        self.pool_size = size
        self.conn_pool = conn_pool
        self._pool: queue.Queue[Any] = queue.Queue(maxsize=max(size * conn_pool.size(), 1))
        for _ in range(conn_pool.size()):
            conn = conn_pool.get()
            for _ in range(size):
                self._pool.put(factory(conn))
            conn_pool.put(conn)

    def get(self) -> Any:
        """Take a channel, blocking until one is free."""
        return self._pool.get()

    def put(self, channel: Any) -> None:
        """Return a channel to the pool."""
        self._pool.put(channel)

    def close(self) -> None:
        """Close the connections underneath every channel."""
        self.conn_pool.close()


class Consumer:
    """Consumes one queue over several channels sharing one connection."""

    def __init__(
        self,
        addr: str,
        num_channels: int,
        prefetch: int,
        *,
        conn_factory: Callable[[str, int], Any] | None = None,
        channel_factory: Callable[[Any, int], Any] | None = None,
    ) -> None:
        make_conn = conn_factory if conn_factory is not None else Conn
        make_channel = channel_factory if channel_factory is not None else Channel
        self.addr = addr
        self.num_channels = num_channels
        self.conn = make_conn(addr, prefetch)
        self.channels = [make_channel(self.conn, prefetch) for _ in range(num_channels)]

    def close(self) -> list[Exception]:
        """Close every channel and then the connection; return the errors raised."""
        errors: list[Exception] = []
        for channel in self.channels:
            try:
                channel.close()
            except Exception as exc:
                errors.append(exc)
        try:
            self.conn.close()
        except Exception as exc:
            errors.append(exc)
        return errors

    def consume_with_message_handler(
        self,
        queue_name: str,
        handler: Any,
        stop_event: threading.Event | None = None,
    ) -> None:
        """Consume on every channel in parallel until all of them have finished."""

        def consume(channel: Any) -> None:
            try:
                channel.consume_with_message_handler(queue_name, handler, stop_event)
            except Exception as exc:
                rmqlog.error("consumer channel stopped: %s", exc)

        threads = [
            threading.Thread(target=consume, args=(channel,), daemon=True)
            for channel in self.channels
        ]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()