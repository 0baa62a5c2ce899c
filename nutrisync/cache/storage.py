# -*- coding: utf-8 -*-
"""Cache — SQLite storage with lazy TTL expiry."""

from __future__ import annotations

import logging
import sqlite3
import time
from pathlib import Path
from typing import Any, Callable, List, Optional

from pydantic import ValidationError

from ..cache_db import db_conn, init_cache_db
from ..config import settings
from ..errors import StorageFailure
from .keys import key_identity
from .models import CacheEntry

logger = logging.getLogger(__name__)


class DurableCache:
    """Persistent key-value store whose entries expire after ``ttl_seconds``.

    Expired entries are removed when they are observed by ``get``; nothing runs
    on a timer. Reads never refresh ``stored_at``.
    """

    def __init__(
        self,
        db_path: Path | None = None,
        ttl_seconds: float | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.db_path = db_path or settings.cache_db_path
        self.ttl_seconds = settings.cache_ttl_seconds if ttl_seconds is None else ttl_seconds
        self._clock = clock
        try:
            init_cache_db(self.db_path)
        except (sqlite3.Error, OSError) as exc:
            raise StorageFailure(f"Cannot open cache at {self.db_path}: {exc}") from exc

    def set(self, key: str, value: Any) -> None:
        entry = CacheEntry(value=value, stored_at=self._clock())
        try:
            payload = entry.model_dump_json()
        except (TypeError, ValueError) as exc:
            raise StorageFailure(f"Value for {key!r} is not serializable: {exc}") from exc
        try:
            with db_conn(self.db_path) as conn:
                conn.execute(
                    "INSERT OR REPLACE INTO cache_entries (key, payload) VALUES (?, ?)",
                    (key, payload),
                )
        except (sqlite3.Error, OSError) as exc:
            raise StorageFailure(f"Cannot write cache entry {key!r}: {exc}") from exc

    def get(self, key: str) -> Optional[Any]:
        try:
            with db_conn(self.db_path) as conn:
                row = conn.execute(
                    "SELECT payload FROM cache_entries WHERE key = ?", (key,)
                ).fetchone()
        except (sqlite3.Error, OSError) as exc:
            raise StorageFailure(f"Cannot read cache entry {key!r}: {exc}") from exc
        if row is None:
            return None

        try:
            entry = CacheEntry.model_validate_json(row["payload"])
        except ValidationError as exc:
            raise StorageFailure(f"Corrupt cache entry {key!r}") from exc

        if not entry.is_valid(self._clock(), self.ttl_seconds):
            logger.debug("Cache entry %s expired", key)
            self.remove(key)
            return None
        return entry.value

    def remove(self, key: str) -> None:
        try:
            with db_conn(self.db_path) as conn:
                conn.execute("DELETE FROM cache_entries WHERE key = ?", (key,))
        except (sqlite3.Error, OSError) as exc:
            raise StorageFailure(f"Cannot remove cache entry {key!r}: {exc}") from exc

    def keys(self) -> List[str]:
        try:
            with db_conn(self.db_path) as conn:
                rows = conn.execute("SELECT key FROM cache_entries ORDER BY key").fetchall()
        except (sqlite3.Error, OSError) as exc:
            raise StorageFailure(f"Cannot list cache entries: {exc}") from exc
        return [row["key"] for row in rows]

    def remove_identity(self, identity: str) -> int:
        """Delete every entry belonging to ``identity``; returns how many."""
        doomed = [k for k in self.keys() if key_identity(k) == identity]
        for key in doomed:
            self.remove(key)
        return len(doomed)

    def clear(self) -> None:
        try:
            with db_conn(self.db_path) as conn:
                conn.execute("DELETE FROM cache_entries")
        except (sqlite3.Error, OSError) as exc:
            raise StorageFailure(f"Cannot clear cache: {exc}") from exc
