# -*- coding: utf-8 -*-
"""Store registry — one live store per (identity, collection), tied to the session."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Tuple

from ..cache.storage import DurableCache
from ..errors import NotAuthenticated, StorageFailure
from ..realtime.channel import PushChannel
from ..remote.gateway import RemoteGateway
from .models import CollectionSpec
from .store import SyncedStore

logger = logging.getLogger(__name__)

GatewayFactory = Callable[["Identity"], RemoteGateway]
StoreKey = Tuple[str, str, Optional[str]]


@dataclass(frozen=True)
class Identity:
    """What the auth layer tells us about the current user."""

    user_id: str
    authenticated: bool = True


class StoreRegistry:
    """Creates stores on demand and tears them down on release or sign-out.

    ``acquire`` for a pair that already has a live store returns that store;
    the existing subscription is reused, never duplicated.
    """

    def __init__(
        self,
        cache: DurableCache,
        gateway_factory: GatewayFactory,
        channel: Optional[PushChannel] = None,
    ) -> None:
        self.cache = cache
        self.gateway_factory = gateway_factory
        self.channel = channel
        self._stores: Dict[StoreKey, SyncedStore] = {}

    @staticmethod
    def _key(identity: Identity, spec: CollectionSpec) -> StoreKey:
        return (identity.user_id, *spec.slot)

    def __contains__(self, item: Tuple[Identity, CollectionSpec]) -> bool:
        identity, spec = item
        return self._key(identity, spec) in self._stores

    def stores(self, identity: Optional[Identity] = None) -> List[SyncedStore]:
        if identity is None:
            return list(self._stores.values())
        return [s for (user_id, _, _), s in self._stores.items() if user_id == identity.user_id]

    def acquire(self, identity: Identity, spec: CollectionSpec) -> SyncedStore:
        if not identity.authenticated or not identity.user_id:
            raise NotAuthenticated("Sign in before reading synced collections")
        key = self._key(identity, spec)
        store = self._stores.get(key)
        if store is not None:
            return store

        store = SyncedStore(
            identity.user_id,
            spec,
            self.gateway_factory(identity),
            self.cache,
            channel=self.channel,
        )
        store.open()
        self._stores[key] = store
        store.load()
        return store

    def release(self, identity: Identity, spec: CollectionSpec) -> None:
        """Close the store; its cache entry stays for the next cold start."""
        store = self._stores.pop(self._key(identity, spec), None)
        if store is not None:
            store.close()

    def release_all(self, identity: Identity) -> None:
        """Sign-out: close every store of ``identity`` and wipe its cached data."""
        for key in [k for k in self._stores if k[0] == identity.user_id]:
            self._stores.pop(key).close()
        try:
            removed = self.cache.remove_identity(identity.user_id)
        except StorageFailure as exc:
            logger.error("Could not wipe cached data for %s: %s", identity.user_id, exc)
            raise
        logger.info("Signed out %s: removed %d cache entries", identity.user_id, removed)

    def close(self) -> None:
        """App shutdown: close every store, keep the cache."""
        for store in self._stores.values():
            store.close()
        self._stores.clear()
