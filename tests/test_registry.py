# -*- coding: utf-8 -*-

from __future__ import annotations

import shutil
import tempfile
import unittest
from datetime import date
from pathlib import Path

from nutrisync.cache import DurableCache, collection_key
from nutrisync.collections import GOALS, daily_stats_spec
from nutrisync.errors import NotAuthenticated
from nutrisync.realtime import InMemoryChannel
from nutrisync.remote import InMemoryDatabase
from nutrisync.sync import Identity, StoreRegistry, StoreState

ALICE = Identity("alice")
BOB = Identity("bob")


class TestStoreRegistry(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self._tmp = Path(tempfile.mkdtemp(prefix="nutrisync-registry-"))
        self.cache = DurableCache(self._tmp / "cache.db", ttl_seconds=300)
        self.channel = InMemoryChannel()
        self.db = InMemoryDatabase(self.channel)
        self.registry = StoreRegistry(
            self.cache,
            lambda identity: self.db.gateway(identity.user_id),
            channel=self.channel,
        )

    def tearDown(self) -> None:
        shutil.rmtree(self._tmp, ignore_errors=True)

    async def test_acquire_reuses_the_live_store(self) -> None:
        first = self.registry.acquire(ALICE, GOALS)
        second = self.registry.acquire(ALICE, GOALS)

        self.assertIs(first, second)
        self.assertIn((ALICE, GOALS), self.registry)
        self.assertNotIn((BOB, GOALS), self.registry)
        self.assertEqual(self.channel.subscription_count("goals"), 1)
        result = await first.ready
        self.assertTrue(result.ok)
        self.assertEqual(first.state, StoreState.ready)

    async def test_reacquire_serves_cached_rows_immediately(self) -> None:
        self.db.seed("goals", [{"user_id": "alice", "type": "calories", "target": 2000}])
        store = self.registry.acquire(ALICE, GOALS)
        await store.ready

        self.registry.release(ALICE, GOALS)
        self.assertTrue(store.closed)
        self.assertNotIn((ALICE, GOALS), self.registry)
        self.assertEqual(self.channel.subscription_count(), 0)

        again = self.registry.acquire(ALICE, GOALS)
        self.assertIsNot(again, store)
        self.assertEqual([r.target for r in again.snapshot()], [2000])
        await again.ready

    async def test_release_all_wipes_only_that_identity(self) -> None:
        day = daily_stats_spec(date(2026, 10, 19))
        goals = self.registry.acquire(ALICE, GOALS)
        stats = self.registry.acquire(ALICE, day)
        bobs = self.registry.acquire(BOB, GOALS)
        for store in (goals, stats, bobs):
            await store.ready
        # Left behind by an earlier session; never acquired in this one.
        self.cache.set(collection_key("meals", "alice"), [])

        self.registry.release_all(ALICE)

        self.assertTrue(goals.closed)
        self.assertTrue(stats.closed)
        self.assertEqual(self.registry.stores(), [bobs])
        self.assertEqual(self.registry.stores(ALICE), [])
        self.assertEqual(self.cache.keys(), [GOALS.key_for("bob")])
        self.assertEqual(self.channel.subscription_count(), 1)

    async def test_unauthenticated_identity_is_refused(self) -> None:
        with self.assertRaises(NotAuthenticated):
            self.registry.acquire(Identity("alice", authenticated=False), GOALS)
        with self.assertRaises(NotAuthenticated):
            self.registry.acquire(Identity(""), GOALS)
        self.assertEqual(self.registry.stores(), [])

    async def test_close_keeps_the_cache(self) -> None:
        store = self.registry.acquire(ALICE, GOALS)
        await store.ready

        self.registry.close()

        self.assertTrue(store.closed)
        self.assertEqual(self.registry.stores(), [])
        self.assertEqual(self.cache.keys(), [GOALS.key_for("alice")])


if __name__ == "__main__":
    unittest.main()
