# -*- coding: utf-8 -*-
"""Synchronized cached stores and their registry."""

from .models import (
    CollectionSpec,
    Delete,
    Insert,
    MutationKind,
    PendingMutation,
    Record,
    ReplaceAll,
    StoreState,
    SyncResult,
    Update,
)
from .registry import Identity, StoreRegistry
from .store import SyncedStore

__all__ = [
    "CollectionSpec",
    "Delete",
    "Identity",
    "Insert",
    "MutationKind",
    "PendingMutation",
    "Record",
    "ReplaceAll",
    "StoreRegistry",
    "StoreState",
    "SyncResult",
    "SyncedStore",
    "Update",
]
