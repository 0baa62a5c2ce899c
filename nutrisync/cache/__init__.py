# -*- coding: utf-8 -*-
"""Durable, expiring key-value cache used for cold-start reads."""

from .keys import collection_key, key_identity
from .models import CacheEntry
from .storage import DurableCache

__all__ = [
    "CacheEntry",
    "DurableCache",
    "collection_key",
    "key_identity",
]
