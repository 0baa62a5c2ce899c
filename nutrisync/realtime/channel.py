# -*- coding: utf-8 -*-
"""Change notifications for remote collections.

Delivery is at-least-once and unordered across rows. Consumers must treat an
event as "the collection may have changed", nothing more.
"""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Callable, Dict, List, Mapping, Protocol

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


class ChangeKind(str, Enum):
    inserted = "inserted"
    updated = "updated"
    deleted = "deleted"


class ChangeEvent(BaseModel):
    kind: ChangeKind
    collection: str
    filter: Dict[str, str] = Field(default_factory=dict, description="Column values of the changed row")

    def matches(self, collection: str, filter: Mapping[str, str]) -> bool:
        if collection != self.collection:
            return False
        return all(self.filter.get(k) == v for k, v in filter.items())


EventHandler = Callable[[ChangeEvent], None]


class Subscription(Protocol):
    def close(self) -> None: ...


class PushChannel(Protocol):
    def subscribe(self, collection: str, filter: Mapping[str, str], on_event: EventHandler) -> Subscription: ...


class _ChannelSubscription:
    def __init__(self, channel: "InMemoryChannel", collection: str, filter: Mapping[str, str], on_event: EventHandler) -> None:
        self._channel = channel
        self.collection = collection
        self.filter = dict(filter)
        self.on_event = on_event
        self.closed = False

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self._channel._detach(self)

    def _deliver(self, event: ChangeEvent) -> None:
        if self.closed:
            return
        try:
            self.on_event(event)
        except Exception as exc:
            logger.error("Change handler failed for %s: %s", self.collection, exc)


class InMemoryChannel:
    """In-process broker; events are delivered on the next loop iteration."""

    def __init__(self) -> None:
        self._subscriptions: List[_ChannelSubscription] = []

    def subscribe(self, collection: str, filter: Mapping[str, str], on_event: EventHandler) -> _ChannelSubscription:
        sub = _ChannelSubscription(self, collection, filter, on_event)
        self._subscriptions.append(sub)
        logger.debug("Subscribed to %s %s", collection, sub.filter)
        return sub

    def publish(self, event: ChangeEvent) -> int:
        """Schedule delivery to every matching subscription; returns the count."""
        loop = asyncio.get_running_loop()
        targets = [s for s in self._subscriptions if event.matches(s.collection, s.filter)]
        for sub in targets:
            loop.call_soon(sub._deliver, event)
        return len(targets)

    def subscription_count(self, collection: str | None = None) -> int:
        if collection is None:
            return len(self._subscriptions)
        return sum(1 for s in self._subscriptions if s.collection == collection)

    def _detach(self, sub: _ChannelSubscription) -> None:
        if sub in self._subscriptions:
            self._subscriptions.remove(sub)
