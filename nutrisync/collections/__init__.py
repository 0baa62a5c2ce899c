# -*- coding: utf-8 -*-
"""Collections synced by the tracker: goals, daily stats and meals."""

from .models import DailyStats, Goal, GoalType, Meal, MealType, unit_label
from .specs import (
    GOALS,
    MEALS,
    daily_stats_spec,
    set_goals,
    update_goal_progress,
    upsert_daily_stats,
)

__all__ = [
    "DailyStats",
    "GOALS",
    "Goal",
    "GoalType",
    "MEALS",
    "Meal",
    "MealType",
    "daily_stats_spec",
    "set_goals",
    "unit_label",
    "update_goal_progress",
    "upsert_daily_stats",
]
