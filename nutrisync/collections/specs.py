# -*- coding: utf-8 -*-
"""Collection specs and the write helpers the screens use."""

from __future__ import annotations

import asyncio
from datetime import date
from typing import Any, Iterable, Mapping, Optional

from ..sync.models import CollectionSpec, Insert, ReplaceAll, SyncResult, Update
from ..sync.store import SyncedStore
from .models import DailyStats, Goal, Meal

GOALS = CollectionSpec(name="goals", model=Goal)
MEALS = CollectionSpec(name="meals", model=Meal)


def daily_stats_spec(day: Optional[date] = None) -> CollectionSpec:
    """Daily stats are one row per user and day; the day scopes filter and cache key."""
    iso = (day or date.today()).isoformat()
    return CollectionSpec(name="daily_stats", model=DailyStats, scope=iso, filters={"date": iso})


def set_goals(store: SyncedStore, goals: Iterable[Mapping[str, Any]]) -> "asyncio.Future[SyncResult]":
    """Replace the whole goal list, as the goal editor does."""
    return store.mutate(ReplaceAll(rows=[dict(g) for g in goals]))


def update_goal_progress(store: SyncedStore, goal_id: str, current: float) -> "asyncio.Future[SyncResult]":
    return store.mutate(Update(id=goal_id, fields={"current": current}))


def upsert_daily_stats(store: SyncedStore, **values: Any) -> "asyncio.Future[SyncResult]":
    """Update the day's row when it exists, otherwise insert it.

    While the day's row is still being inserted it has no id to update, so the
    write waits for the store to settle and is applied to the confirmed row.
    """
    day = store.spec.filters.get("date") or date.today().isoformat()
    rows = store.snapshot()
    existing = next((r for r in rows if r.id is not None), None)
    if existing is not None:
        return store.mutate(Update(id=existing.id, fields=values))
    if any(r.pending for r in rows):
        return asyncio.get_running_loop().create_task(_upsert_when_settled(store, values))
    return store.mutate(Insert(fields={**values, "date": day}))


async def _upsert_when_settled(store: SyncedStore, values: Mapping[str, Any]) -> SyncResult:
    await store.wait_idle()
    return await upsert_daily_stats(store, **values)
