"""A publisher-confirming broker channel that re-opens itself when it closes."""

from __future__ import annotations

import threading
import time
from typing import Any, Iterator

import pika
from pika.exceptions import NackError

from sikit import rmqlog
from sikit.rmqconn import AlreadyClosedError, NotConnectedError, ShutdownError
from sikit.rmqlog import generate_id

DEFAULT_REINIT_DELAY = 2.0
DEFAULT_RESEND_DELAY = 5.0
DEFAULT_CONSUME_DELAY = 1.0
DEFAULT_CONSUME_MAX_RETRY = 30
ONE_TIME_QUEUE_EXPIRES = 60000
CONTENT_TYPE = "text/plain"

_POLL = 0.05


class MaxRetryError(ConnectionError):
    """Raised when re-consuming after a channel close failed too many times."""


def _wait_any(delay: float, *events: threading.Event) -> bool:
    """Wait up to ``delay`` seconds; return True as soon as any event is set."""
    deadline = time.monotonic() + delay
    while True:
        if any(event.is_set() for event in events):
            return True
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            return False
        events[0].wait(min(_POLL, remaining))


def _is_open(channel: Any) -> bool:
    return bool(getattr(channel, "is_open", True))


class Channel:
    """A channel on a :class:`~sikit.rmqconn.Conn` with publisher confirms.

    A background thread opens the channel and opens a new one whenever the
    current one closes. The constructor blocks until the first channel is
    ready.
    """

    _poll_interval = _POLL

    def __init__(self, conn: Any, prefetch: int = 1) -> None:
        self.id = generate_id()
        self.conn = conn
        self.prefetch = prefetch
        self.prefetch_size = 0
        self.global_qos = False
        self.fail_count = 0
        self.is_connected = False
        self._channel: Any = None
        self._done = threading.Event()
        self._ready = threading.Event()
        self._thread = threading.Thread(
            target=self._handle_reinit, name=f"rmq-channel-{self.id}", daemon=True
        )
        self._thread.start()
        while not self._ready.wait(self._poll_interval):
            if not self._thread.is_alive() and not self._ready.is_set():
                raise ShutdownError()

    def _handle_reinit(self) -> None:
        while True:
            self.is_connected = False
            try:
                self._init()
            except Exception:
                rmqlog.warn("failed to initialize a channel")
                if _wait_any(DEFAULT_REINIT_DELAY, self._done, self.conn.done):
                    return
                rmqlog.warn("attempting to re-initialize a channel")
                continue

            rmqlog.info("channel(%s) has been initialized", self.id)
            self.is_connected = True
            self._ready.set()

            if self._wait_close():
                return
            rmqlog.warn("channel(%s) has been closed, re-initializing...", self.id)

    def _init(self) -> None:
        channel = self.conn.connection.channel()
        channel.confirm_delivery()
        self._channel = channel

    def _wait_close(self) -> bool:
        """Return True when shutting down, False when the channel closed."""
        while not (self._done.is_set() or self.conn.done.is_set()):
            if not _is_open(self._channel):
                return False
            self._done.wait(self._poll_interval)
        return True

    def close(self) -> None:
        """Stop re-opening and close the current channel."""
        if not self.is_connected:
            raise AlreadyClosedError()
        self._done.set()
        self._channel.close()
        self.is_connected = False
        rmqlog.info("closing channel, %s", self.id)

    @property
    def channel(self) -> Any:
        """The current underlying channel."""
        return self._channel

    def declare_queue(self, queue_name: str) -> Any:
        """Declare a durable queue."""
        return self._channel.queue_declare(
            queue=queue_name,
            durable=True,
            exclusive=False,
            auto_delete=False,
            arguments=None,
        )

    def declare_one_time_queue(self, queue_name: str) -> Any:
        """Declare a durable queue that expires after a minute of disuse."""
        return self._channel.queue_declare(
            queue=queue_name,
            durable=True,
            exclusive=False,
            auto_delete=False,
            arguments={"x-expires": ONE_TIME_QUEUE_EXPIRES},
        )

    def push_once(self, queue_name: str, data: bytes) -> None:
        """Declare a one-time queue and push ``data`` onto it."""
        self.declare_one_time_queue(queue_name)
        self.push(queue_name, data)

    def _publish(self, queue_name: str, data: bytes, reply_to: str | None) -> None:
        if not self.is_connected:
            raise NotConnectedError()
        properties = pika.BasicProperties(content_type=CONTENT_TYPE, reply_to=reply_to)
        self._channel.basic_publish(
            exchange="",
            routing_key=queue_name,
            body=bytes(data),
            properties=properties,
            mandatory=False,
        )

    def _push_confirmed(self, queue_name: str, data: bytes, reply_to: str | None) -> None:
        if not self.is_connected:
            raise NotConnectedError()
        while True:
            try:
                self._publish(queue_name, data, reply_to)
            except NackError:
                rmqlog.warn("push was not acknowledged, pushing again")
                continue
            except Exception:
                rmqlog.error("failed to push")
                if _wait_any(DEFAULT_RESEND_DELAY, self.conn.done):
                    raise ShutdownError() from None
                rmqlog.error("attempting to push again")
                continue
            rmqlog.info("push has been confirmed")
            return

    def push(self, queue_name: str, data: bytes) -> None:
        """Push ``data`` and block until the broker confirms it, retrying on failure."""
        self._push_confirmed(queue_name, data, None)

    def push_with_reply_to(self, queue_name: str, reply_to: str, data: bytes) -> None:
        """Like :meth:`push`, with a reply-to route on the message."""
        self._push_confirmed(queue_name, data, reply_to)

    def _consume(
        self, queue_name: str, auto_ack: bool, inactivity_timeout: float | None
    ) -> Iterator[Any]:
        if not self.is_connected:
            raise NotConnectedError()
        self._channel.basic_qos(
            prefetch_size=self.prefetch_size,
            prefetch_count=self.prefetch,
            global_qos=self.global_qos,
        )
        return self._channel.consume(
            queue_name, auto_ack=auto_ack, inactivity_timeout=inactivity_timeout
        )

    def consume_ack(self, queue_name: str) -> Iterator[Any]:
        """Consume with automatic acknowledgement; yields ``(method, properties, body)``."""
        return self._consume(queue_name, True, None)

    def consume(self, queue_name: str) -> Iterator[Any]:
        """Consume with manual acknowledgement; yields ``(method, properties, body)``."""
        return self._consume(queue_name, False, None)

    def consume_once(self, queue_name: str, timeout: float | None = None) -> bytes:
        """Receive one message from a one-time queue, then delete the queue.

        Raises ``TimeoutError`` when nothing arrives within ``timeout`` seconds.
        """
        self.declare_one_time_queue(queue_name)
        deliveries = self._consume(queue_name, False, timeout)
        item = next(deliveries, None)
        if item is None:
            raise ConnectionError("channel closed before a message arrived")
        method, _properties, body = item
        if method is None:
            self._channel.cancel()
            raise TimeoutError(f"no message on {queue_name} within {timeout} seconds")
        self._channel.basic_ack(delivery_tag=method.delivery_tag, multiple=False)
        self._channel.cancel()
        self._channel.queue_delete(queue=queue_name, if_unused=False, if_empty=False)
        return body

    @staticmethod
    def _sleep(delay: float, stop_event: threading.Event | None) -> None:
        if stop_event is None:
            time.sleep(delay)
        else:
            stop_event.wait(delay)

    def consume_with_message_handler(
        self,
        queue_name: str,
        handler: Any,
        stop_event: threading.Event | None = None,
    ) -> None:
        """Pass each message to ``handler.handle(route, body)`` and acknowledge it.

        Runs until ``stop_event`` is set. When the channel closes, consuming
        is restarted; ``MaxRetryError`` is raised after too many failures.
        """
        deliveries: Iterator[Any] | None = self._consume(queue_name, False, _POLL)
        last_close = "channel closed"

        def stopped() -> bool:
            return stop_event is not None and stop_event.is_set()

        while not stopped():
            if deliveries is None:
                try:
                    deliveries = self._consume(queue_name, False, _POLL)
                except Exception as exc:
                    self.fail_count += 1
                    if self.fail_count > DEFAULT_CONSUME_MAX_RETRY:
                        raise MaxRetryError(
                            "max retry has been reached.\n" + last_close + "\n" + str(exc)
                        ) from exc
                    rmqlog.error("failed to consume, trying again... %s", exc)
                    self._sleep(DEFAULT_CONSUME_DELAY, stop_event)
                continue

            try:
                item = next(deliveries)
            except StopIteration:
                last_close = "channel closed"
                deliveries = None
                continue
            except Exception as exc:
                last_close = str(exc)
                rmqlog.error("channel has been closed due to: %s", exc)
                deliveries = None
                continue

            method, properties, body = item
            if method is None:
                continue
            route = getattr(properties, "reply_to", None) or ""
            try:
                handler.handle(route, body)
            except Exception as exc:
                rmqlog.error("failed to handle message: %s", exc)
            try:
                self._channel.basic_ack(delivery_tag=method.delivery_tag, multiple=False)
            except Exception as exc:
                rmqlog.error("failed to acknowledging message: %s", exc)