"""A message-broker connection that reconnects in the background."""

from __future__ import annotations

import threading
from typing import Any, Callable

import pika

from sikit import rmqlog
from sikit.rmqlog import generate_id

DEFAULT_RECONNECT_DELAY = 3.0


class NotConnectedError(ConnectionError):
    def __init__(self, message: str = "not connected to a server") -> None:
        super().__init__(message)


class AlreadyClosedError(ConnectionError):
    def __init__(
        self, message: str = "already closed: not connected to the server"
    ) -> None:
        super().__init__(message)


class ShutdownError(ConnectionError):
    def __init__(self, message: str = "client is shutting down") -> None:
        super().__init__(message)


def _dial(addr: str) -> Any:
    return pika.BlockingConnection(pika.URLParameters(addr))


def _is_open(connection: Any) -> bool:
    return bool(getattr(connection, "is_open", True))


class Conn:
    """Keeps one broker connection alive, reconnecting when it drops.

    The constructor blocks until the first connection succeeds.
    """

    _poll_interval = 0.05

    def __init__(
        self,
        addr: str,
        prefetch: int,
        *,
        connect: Callable[[str], Any] | None = None,
        reconnect_delay: float = DEFAULT_RECONNECT_DELAY,
    ) -> None:
        self.id = generate_id()
        self.addr = addr
        self._prefetch = prefetch
        self.reconnect_delay = reconnect_delay
        self._connect = connect if connect is not None else _dial
        self._connection: Any = None
        self._done = threading.Event()
        self._ready = threading.Event()
        self.is_ready = False
        self._thread = threading.Thread(
            target=self._handle_reconnect, name=f"rmq-conn-{self.id}", daemon=True
        )
        self._thread.start()
        self._ready.wait()

    def _handle_reconnect(self) -> None:
        while True:
            self.is_ready = False
            try:
                connection = self._connect(self.addr)
            except Exception:
                rmqlog.error("failed to connect")
                if self._done.wait(self.reconnect_delay):
                    return
                rmqlog.error("retrying to connect")
                continue

            self._connection = connection
            rmqlog.info("connection(%s) has been initialized", self.id)
            self.is_ready = True
            self._ready.set()

            if self._wait_close(connection):
                return

    def _wait_close(self, connection: Any) -> bool:
        """Return True when shutting down, False when the connection dropped."""
        while not self._done.wait(self._poll_interval):
            if not _is_open(connection):
                rmqlog.info("connection has been closed. reconnecting...")
                return False
        return True

    def close(self) -> None:
        """Stop reconnecting and close the current connection."""
        if not self.is_ready:
            raise AlreadyClosedError()
        self._done.set()
        self._connection.close()
        self.is_ready = False
        rmqlog.info("closing connection, %s", self.id)

    @property
    def connection(self) -> Any:
        """The current underlying connection."""
        return self._connection

    @property
    def done(self) -> threading.Event:
        """Set once the connection has been closed for good."""
        return self._done

    @property
    def prefetch(self) -> int:
        return self._prefetch