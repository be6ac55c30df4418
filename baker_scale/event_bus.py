"""Typed publish/subscribe channel between scale producers and consumers."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
import itertools
import logging
from typing import Generic, TypeVar

from .models import ConnectionStatus, WeightSample

_LOGGER = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class Topic(Generic[T]):
    """A named channel whose payloads are all of type ``T``."""

    name: str


CONNECTION_STATUS: Topic[ConnectionStatus] = Topic("connectionStatus")
WEIGHT_UPDATE: Topic[WeightSample] = Topic("weightUpdate")


class Subscription:
    """Handle returned by :meth:`EventBus.subscribe`.

    Releasing it more than once is harmless.
    """

    def __init__(self, bus: EventBus, topic: Topic, token: int) -> None:
        self._bus = bus
        self.topic = topic
        self._token = token
        self._active = True

    @property
    def active(self) -> bool:
        return self._active and self._bus._is_registered(self.topic, self._token)

    def unsubscribe(self) -> None:
        """Stop receiving events on this subscription."""
        if not self._active:
            return
        self._active = False
        self._bus._remove(self.topic, self._token)

    def __call__(self) -> None:
        self.unsubscribe()


class EventBus:
    """Synchronous in-process event bus.

    Subscribers of one topic are called in registration order. A subscriber
    that raises is logged and skipped; the remaining subscribers still run.
    """

    def __init__(self) -> None:
        self._listeners: dict[str, dict[int, Callable[[object], None]]] = {}
        self._tokens = itertools.count(1)

    def subscribe(self, topic: Topic[T], callback: Callable[[T], None]) -> Subscription:
        """Register ``callback`` for every future payload on ``topic``.

        Args:
            topic: Channel to listen on.
            callback: Called with each payload.

        Returns:
            Subscription handle; call ``unsubscribe()`` to release it.
        """
        token = next(self._tokens)
        self._listeners.setdefault(topic.name, {})[token] = callback
        return Subscription(self, topic, token)

    def publish(self, topic: Topic[T], payload: T) -> None:
        """Deliver ``payload`` to the current subscribers of ``topic``."""
        listeners = list(self._listeners.get(topic.name, {}).values())
        for callback in listeners:
            try:
                callback(payload)
            except Exception:
                _LOGGER.exception("Subscriber of %s failed", topic.name)

    def clear(self, topic: Topic | None = None) -> None:
        """Drop every subscriber of ``topic``, or of all topics when omitted."""
        if topic is None:
            self._listeners.clear()
        else:
            self._listeners.pop(topic.name, None)

    def listener_count(self, topic: Topic) -> int:
        return len(self._listeners.get(topic.name, {}))

    def _is_registered(self, topic: Topic, token: int) -> bool:
        return token in self._listeners.get(topic.name, {})

    def _remove(self, topic: Topic, token: int) -> None:
        listeners = self._listeners.get(topic.name)
        if listeners is None:
            return
        listeners.pop(token, None)
        if not listeners:
            del self._listeners[topic.name]
