# -*- coding: utf-8 -*-
"""Push invalidation channel."""

from .channel import ChangeEvent, ChangeKind, InMemoryChannel, PushChannel, Subscription

__all__ = [
    "ChangeEvent",
    "ChangeKind",
    "InMemoryChannel",
    "PushChannel",
    "Subscription",
]
