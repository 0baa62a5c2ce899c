# -*- coding: utf-8 -*-
"""Cache — Pydantic models."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class CacheEntry(BaseModel):
    value: Any = None
    stored_at: float = Field(..., description="Epoch seconds at write time")

    def is_valid(self, now: float, ttl_seconds: float) -> bool:
        return now - self.stored_at <= ttl_seconds
