# -*- coding: utf-8 -*-
"""nutrisync — client-side sync and cache-consistency layer for the tracker app."""

from .sync.models import Delete, Insert, ReplaceAll, SyncResult, Update
from .sync.registry import Identity, StoreRegistry
from .sync.store import SyncedStore

__all__ = [
    "Delete",
    "Identity",
    "Insert",
    "ReplaceAll",
    "StoreRegistry",
    "SyncResult",
    "SyncedStore",
    "Update",
]
