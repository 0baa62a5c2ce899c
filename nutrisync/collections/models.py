# -*- coding: utf-8 -*-
"""Collections — Pydantic models for the synced rows."""

from __future__ import annotations

from enum import Enum
from typing import Any, Optional

from pydantic import Field, ValidationInfo, field_validator

from ..sync.models import Record


class GoalType(str, Enum):
    calories = "calories"
    protein = "protein"
    carbs = "carbs"
    fat = "fat"


def unit_label(goal_type: GoalType | str) -> str:
    return "cal" if GoalType(goal_type) is GoalType.calories else "g"


class Goal(Record):
    type: GoalType
    target: float = Field(..., gt=0)
    current: float = Field(0.0, ge=0)


# Defaults used when a goal is missing or not positive.
DEFAULT_DAILY_GOALS = {
    "calories_goal": 2000.0,
    "protein_goal": 150.0,
    "carbs_goal": 250.0,
    "fat_goal": 70.0,
}


class DailyStats(Record):
    date: str = Field(..., description="YYYY-MM-DD")
    calories_consumed: float = 0.0
    calories_goal: float = DEFAULT_DAILY_GOALS["calories_goal"]
    protein_consumed: float = 0.0
    protein_goal: float = DEFAULT_DAILY_GOALS["protein_goal"]
    carbs_consumed: float = 0.0
    carbs_goal: float = DEFAULT_DAILY_GOALS["carbs_goal"]
    fat_consumed: float = 0.0
    fat_goal: float = DEFAULT_DAILY_GOALS["fat_goal"]

    @field_validator("calories_consumed", "protein_consumed", "carbs_consumed", "fat_consumed", mode="before")
    @classmethod
    def _clamp_consumed(cls, value: Any) -> float:
        try:
            return max(0.0, float(value or 0))
        except (TypeError, ValueError):
            return 0.0

    @field_validator("calories_goal", "protein_goal", "carbs_goal", "fat_goal", mode="before")
    @classmethod
    def _clamp_goal(cls, value: Any, info: ValidationInfo) -> float:
        try:
            number = float(value or 0)
        except (TypeError, ValueError):
            number = 0.0
        if not number:
            return DEFAULT_DAILY_GOALS[info.field_name]
        return max(1.0, number)


class MealType(str, Enum):
    breakfast = "breakfast"
    lunch = "lunch"
    dinner = "dinner"
    snack = "snack"


class Meal(Record):
    name: str = Field(..., min_length=1)
    meal_type: MealType
    date: str = Field(..., description="YYYY-MM-DD")
    calories: float = Field(..., ge=0)
    protein: Optional[float] = Field(None, ge=0)
    carbs: Optional[float] = Field(None, ge=0)
    fat: Optional[float] = Field(None, ge=0)
    serving_size: str = "1 serving"
