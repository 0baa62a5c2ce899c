# -*- coding: utf-8 -*-

from __future__ import annotations

import shutil
import tempfile
import unittest
from datetime import date
from pathlib import Path

from pydantic import ValidationError

from nutrisync.cache import DurableCache
from nutrisync.collections import (
    GOALS,
    DailyStats,
    GoalType,
    Meal,
    daily_stats_spec,
    set_goals,
    unit_label,
    update_goal_progress,
    upsert_daily_stats,
)
from nutrisync.remote import InMemoryDatabase
from nutrisync.sync import SyncedStore

USER = "user-1"
DAY = date(2026, 10, 19)


class TestDailyStats(unittest.TestCase):
    def test_negative_consumption_is_clamped(self) -> None:
        stats = DailyStats(user_id=USER, date="2026-10-19", calories_consumed=-120, protein_consumed="12.5")
        self.assertEqual(stats.calories_consumed, 0)
        self.assertEqual(stats.protein_consumed, 12.5)

    def test_missing_goals_fall_back_to_defaults(self) -> None:
        stats = DailyStats(user_id=USER, date="2026-10-19", calories_goal=0, fat_goal=None, protein_goal=-3)
        self.assertEqual(stats.calories_goal, 2000)
        self.assertEqual(stats.fat_goal, 70)
        self.assertEqual(stats.carbs_goal, 250)
        self.assertEqual(stats.protein_goal, 1)

    def test_meal_calories_cannot_be_negative(self) -> None:
        with self.assertRaises(ValidationError):
            Meal(user_id=USER, name="Oats", meal_type="breakfast", date="2026-10-19", calories=-1)

    def test_unit_labels(self) -> None:
        self.assertEqual(unit_label("calories"), "cal")
        self.assertEqual(unit_label(GoalType.protein), "g")


class TestDailyStatsSpec(unittest.TestCase):
    def test_day_scopes_key_and_filter(self) -> None:
        spec = daily_stats_spec(DAY)
        self.assertEqual(spec.key_for(USER), "daily_stats:2026-10-19:user-1")
        self.assertEqual(spec.filter_for(USER), {"date": "2026-10-19", "user_id": USER})
        self.assertNotEqual(spec.slot, daily_stats_spec(date(2026, 10, 20)).slot)


class TestWriteHelpers(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self._tmp = Path(tempfile.mkdtemp(prefix="nutrisync-collections-"))
        self.cache = DurableCache(self._tmp / "cache.db", ttl_seconds=300)
        self.db = InMemoryDatabase()

    async def asyncTearDown(self) -> None:
        shutil.rmtree(self._tmp, ignore_errors=True)

    async def open_store(self, spec) -> SyncedStore:
        store = SyncedStore(USER, spec, self.db.gateway(USER), self.cache)
        store.open()
        await store.load()
        return store

    async def test_upsert_inserts_then_updates_the_days_row(self) -> None:
        store = await self.open_store(daily_stats_spec(DAY))

        result = await upsert_daily_stats(store, calories_consumed=500)
        self.assertTrue(result.ok)
        result = await upsert_daily_stats(store, calories_consumed=800, protein_consumed=40)
        self.assertTrue(result.ok)

        rows = self.db.rows("daily_stats", {"user_id": USER})
        self.assertEqual(len(rows), 1)
        self.assertEqual(rows[0]["date"], "2026-10-19")
        self.assertEqual((rows[0]["calories_consumed"], rows[0]["protein_consumed"]), (800, 40))
        self.assertEqual(store.snapshot()[0].id, rows[0]["id"])

    async def test_upsert_while_insert_is_in_flight_keeps_one_row(self) -> None:
        store = await self.open_store(daily_stats_spec(DAY))

        first = upsert_daily_stats(store, calories_consumed=500)
        second = upsert_daily_stats(store, calories_consumed=650)
        self.assertTrue((await first).ok)
        self.assertTrue((await second).ok)
        await store.wait_idle()

        rows = self.db.rows("daily_stats", {"user_id": USER})
        self.assertEqual([r["calories_consumed"] for r in rows], [650])
        self.assertEqual([r.calories_consumed for r in store.snapshot()], [650])

    async def test_set_goals_and_progress(self) -> None:
        store = await self.open_store(GOALS)

        await set_goals(store, [
            {"type": "calories", "target": 2000},
            {"type": "protein", "target": 150},
        ])
        calories = store.snapshot()[0]
        await update_goal_progress(store, calories.id, 1250)

        self.assertEqual([(r.type, r.current) for r in store.snapshot()], [(GoalType.calories, 1250), (GoalType.protein, 0)])
        stored = {r["type"]: r["current"] for r in self.db.rows("goals")}
        self.assertEqual(stored["calories"], 1250)


if __name__ == "__main__":
    unittest.main()
