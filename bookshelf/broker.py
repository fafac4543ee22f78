"""In-process message broker with topics, consumer groups and offsets.

Each topic keeps an append-only log. A consumer group has one offset per
topic and starts reading from the earliest message; consumers in the same
group share that offset, so every message reaches each group once.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Callable, TypeVar

from bookshelf.errors import BookshelfError, KafkaConsumerError, KafkaProducerError

T = TypeVar("T")


@dataclass(frozen=True)
class Message:
    topic: str
    value: bytes
    offset: int


def _as_bytes(value: bytes | bytearray | memoryview | str) -> bytes:
    if isinstance(value, str):
        return value.encode("utf-8")
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value)
    raise TypeError("message value must be bytes or str")


class Broker:
    """A set of topics shared by producers and consumers."""

    def __init__(self) -> None:
        self._cond = threading.Condition()
        self._logs: dict[str, list[Message]] = {}
        self._offsets: dict[tuple[str, str], int] = {}

    def publish(self, topic: str, value: bytes | str) -> Message:
        """Append ``value`` to ``topic`` and return the stored message."""
        if not topic:
            raise KafkaProducerError("topic must not be empty")
        payload = _as_bytes(value)
        with self._cond:
            log = self._logs.setdefault(topic, [])
            message = Message(topic=topic, value=payload, offset=len(log))
            log.append(message)
            self._cond.notify_all()
        return message

    def subscribe(self, topic: str, group_id: str) -> Consumer:
        """Return a new consumer in ``group_id`` subscribed to ``topic``."""
        consumer = Consumer(self, group_id)
        consumer.subscribe(topic)
        return consumer

    def _join(self, topic: str, group_id: str) -> None:
        with self._cond:
            self._offsets.setdefault((topic, group_id), 0)

    def _take(
        self,
        topic: str,
        group_id: str,
        timeout: float | None,
        closed: Callable[[], bool],
    ) -> Message:
        key = (topic, group_id)

        def ready() -> bool:
            return closed() or self._offsets[key] < len(self._logs.get(topic, ()))

        with self._cond:
            arrived = self._cond.wait_for(ready, timeout)
            if closed():
                raise KafkaConsumerError("consumer is closed")
            if not arrived:
                raise KafkaConsumerError("timed out waiting for a message")
            position = self._offsets[key]
            self._offsets[key] = position + 1
            return self._logs[topic][position]

    def _wake(self) -> None:
        with self._cond:
            self._cond.notify_all()


class Producer:
    """Publishes messages to a broker."""

    def __init__(self, broker: Broker) -> None:
        self.broker = broker

    def produce(self, topic: str, value: bytes | str) -> Message:
        """Deliver ``value`` to ``topic``; returns the delivered message."""
        return self.broker.publish(topic, value)


class Consumer:
    """Reads messages of one topic on behalf of a consumer group."""

    def __init__(self, broker: Broker, group_id: str) -> None:
        if not group_id:
            raise KafkaConsumerError("group id must not be empty")
        self.broker = broker
        self.group_id = group_id
        self.topic: str | None = None
        self._closed = False

    def subscribe(self, topic: str) -> None:
        if self._closed:
            raise KafkaConsumerError("consumer is closed")
        if not topic:
            raise KafkaConsumerError("topic must not be empty")
        self.broker._join(topic, self.group_id)
        self.topic = topic

    def read_message(self, timeout: float | None = None) -> Message:
        """Return the group's next message.

        ``timeout`` of ``None`` or a negative number waits forever. Raises
        ``KafkaConsumerError`` on timeout, when closed or when unsubscribed.
        """
        if self._closed:
            raise KafkaConsumerError("consumer is closed")
        if self.topic is None:
            raise KafkaConsumerError("consumer is not subscribed")
        wait = None if timeout is None or timeout < 0 else timeout
        return self.broker._take(self.topic, self.group_id, wait, lambda: self._closed)

    def close(self) -> None:
        """Close the consumer, waking any reader blocked on it."""
        self._closed = True
        self.broker._wake()


_brokers: dict[str, Broker] = {}
_brokers_lock = threading.Lock()


def _broker_for(address: str) -> Broker:
    with _brokers_lock:
        broker = _brokers.get(address)
        if broker is None:
            broker = _brokers[address] = Broker()
        return broker


class _Once:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._done = False
        self._result: object = None
        self._error: BookshelfError | None = None

    def call(self, factory: Callable[[], T]) -> T:
        with self._lock:
            if not self._done:
                try:
                    self._result = factory()
                except BookshelfError as exc:
                    self._error = exc
                self._done = True
        if self._error is not None:
            raise self._error
        return self._result  # type: ignore[return-value]


_producer_once = _Once()
_consumer_once = _Once()


def get_producer(address: str) -> Producer:
    """Return the process-wide producer, created on first call for ``address``."""
    return _producer_once.call(lambda: Producer(_broker_for(address)))


def get_consumer(address: str, group_id: str) -> Consumer:
    """Return the process-wide consumer, created on first call."""
    return _consumer_once.call(lambda: Consumer(_broker_for(address), group_id))