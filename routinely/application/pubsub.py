"""
Latest-value publish/subscribe channel.

A Channel holds one immutable snapshot. Subscribing delivers the current
snapshot immediately, then every published snapshot until the subscription
is closed.

Listeners run on the publishing thread after the channel lock is released,
so a listener may call back into the code that published. A snapshot that
has already been replaced by a newer one is not delivered.
"""
import logging
import threading
from typing import Callable, Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Subscription(Generic[T]):
    def __init__(self, channel: "Channel[T]", listener: Callable[[T], None]):
        self._channel = channel
        self._listener = listener
        self.closed = False

    def close(self) -> None:
        if not self.closed:
            self.closed = True
            self._channel._remove(self)

    def _deliver(self, value: T) -> None:
        if self.closed:
            return
        try:
            self._listener(value)
        except Exception:
            logger.exception("Subscriber failed on %s", self._channel.name)

    def __enter__(self) -> "Subscription[T]":
        return self

    def __exit__(self, *exc) -> None:
        self.close()


class Channel(Generic[T]):
    def __init__(self, initial: T, name: str = "channel"):
        self.name = name
        self._value = initial
        self._subscriptions: list[Subscription[T]] = []
        self._version = 0
        self._lock = threading.RLock()

    @property
    def value(self) -> T:
        return self._value

    def subscribe(self, listener: Callable[[T], None]) -> Subscription[T]:
        subscription = Subscription(self, listener)
        with self._lock:
            self._subscriptions.append(subscription)
            value, version = self._value, self._version
        if version == self._version:
            subscription._deliver(value)
        return subscription

    def publish(self, value: T) -> None:
        with self._lock:
            self._value = value
            self._version += 1
            version = self._version
            subscriptions = list(self._subscriptions)
        for subscription in subscriptions:
            if version != self._version:
                break
            subscription._deliver(value)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)

    def _remove(self, subscription: Subscription[T]) -> None:
        with self._lock:
            if subscription in self._subscriptions:
                self._subscriptions.remove(subscription)
