# -*- coding: utf-8 -*-
"""In-process remote service.

``InMemoryDatabase`` holds the server truth for every identity and publishes
change events; ``InMemoryGateway`` is one identity's authenticated view of it.
The gateway can be told to fail or to hold specific calls, which is how the
ordering races in the test-suite are staged.
"""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict, deque
from datetime import datetime, timezone
from typing import Any, Deque, Dict, List, Optional, Sequence, Tuple
from uuid import uuid4

from ..errors import RejectedByServer, SyncFailure
from ..realtime.channel import ChangeEvent, ChangeKind, InMemoryChannel
from .gateway import Filter, Row, row_matches

logger = logging.getLogger(__name__)

OWNER_FIELD = "user_id"


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def _event_filter(row: Row) -> Dict[str, str]:
    return {
        k: str(v)
        for k, v in row.items()
        if v is not None and isinstance(v, (str, int, float, bool))
    }


class InMemoryDatabase:
    def __init__(self, channel: Optional[InMemoryChannel] = None) -> None:
        self.channel = channel
        self.tables: Dict[str, List[Row]] = defaultdict(list)

    def gateway(self, user_id: str) -> "InMemoryGateway":
        return InMemoryGateway(self, user_id)

    def rows(self, collection: str, filter: Filter | None = None) -> List[Row]:
        return [dict(r) for r in self.tables[collection] if row_matches(r, filter or {})]

    def seed(self, collection: str, rows: Sequence[Row]) -> List[Row]:
        """Insert rows directly, without publishing change events."""
        stored = []
        for row in rows:
            record = {"id": str(uuid4()), "created_at": _utc_now(), **row}
            self.tables[collection].append(record)
            stored.append(dict(record))
        return stored

    # ---- server-side writes (used by gateways and by tests acting as another device) ----

    def insert(self, collection: str, user_id: str, row: Row) -> Row:
        record = {k: v for k, v in row.items() if k != "id"}
        record["id"] = str(uuid4())
        record[OWNER_FIELD] = user_id
        record.setdefault("created_at", _utc_now())
        self.tables[collection].append(record)
        self._publish(ChangeKind.inserted, collection, record)
        return dict(record)

    def update(self, collection: str, user_id: str, id: str, patch: Row) -> Row:
        record = self._owned(collection, user_id, id)
        record.update({k: v for k, v in patch.items() if k not in ("id", OWNER_FIELD)})
        self._publish(ChangeKind.updated, collection, record)
        return dict(record)

    def delete(self, collection: str, user_id: str, id: str) -> None:
        record = self._owned(collection, user_id, id)
        self.tables[collection].remove(record)
        self._publish(ChangeKind.deleted, collection, record)

    def _owned(self, collection: str, user_id: str, id: str) -> Row:
        for record in self.tables[collection]:
            if record.get("id") == id and record.get(OWNER_FIELD) == user_id:
                return record
        raise RejectedByServer(f"No {collection} row {id} for this user", status_code=404)

    def _publish(self, kind: ChangeKind, collection: str, record: Row) -> None:
        if self.channel is None:
            return
        self.channel.publish(ChangeEvent(kind=kind, collection=collection, filter=_event_filter(record)))


class InMemoryGateway:
    """Authenticated view of an ``InMemoryDatabase`` for one user."""

    def __init__(self, database: InMemoryDatabase, user_id: str) -> None:
        self.database = database
        self.user_id = user_id
        self.calls: List[str] = []
        self._failures: Dict[str, Deque[SyncFailure]] = defaultdict(deque)
        self._holds: Dict[str, Deque[Tuple[asyncio.Event, bool]]] = defaultdict(deque)

    def fail_next(self, operation: str, failure: SyncFailure) -> None:
        self._failures[operation].append(failure)

    def hold(self, operation: str, *, after_apply: bool = False) -> asyncio.Event:
        """Make the next ``operation`` call wait until the returned event is set.

        With ``after_apply`` the server-side change happens first and only the
        response is held back.
        """
        gate = asyncio.Event()
        self._holds[operation].append((gate, after_apply))
        return gate

    async def _enter(self, operation: str) -> Optional[asyncio.Event]:
        self.calls.append(operation)
        holds = self._holds.get(operation)
        gate, after_apply = holds.popleft() if holds else (None, False)
        if gate is not None and not after_apply:
            await gate.wait()
        else:
            await asyncio.sleep(0)
        failures = self._failures.get(operation)
        if failures:
            failure = failures.popleft()
            logger.debug("Injected %s failure: %s", operation, failure)
            raise failure
        return gate if after_apply else None

    @staticmethod
    async def _respond(gate: Optional[asyncio.Event], result: Any) -> Any:
        if gate is not None:
            await gate.wait()
        return result

    def _scoped(self, filter: Filter) -> Dict[str, str]:
        owner = filter.get(OWNER_FIELD)
        if owner is not None and owner != self.user_id:
            raise RejectedByServer("Cannot read rows of another user", status_code=403)
        return {**filter, OWNER_FIELD: self.user_id}

    async def fetch_all(self, collection: str, filter: Filter) -> List[Row]:
        gate = await self._enter("fetch_all")
        return await self._respond(gate, self.database.rows(collection, self._scoped(filter)))

    async def insert(self, collection: str, row: Row) -> Row:
        gate = await self._enter("insert")
        owner = row.get(OWNER_FIELD)
        if owner is not None and owner != self.user_id:
            raise RejectedByServer("Cannot insert rows for another user", status_code=403)
        return await self._respond(gate, self.database.insert(collection, self.user_id, row))

    async def update(self, collection: str, id: str, patch: Row) -> Row:
        gate = await self._enter("update")
        return await self._respond(gate, self.database.update(collection, self.user_id, id, patch))

    async def delete(self, collection: str, id: str) -> None:
        gate = await self._enter("delete")
        self.database.delete(collection, self.user_id, id)
        await self._respond(gate, None)

    async def replace_all(self, collection: str, filter: Filter, rows: Sequence[Row]) -> List[Row]:
        gate = await self._enter("replace_all")
        scoped = self._scoped(filter)
        for record in self.database.rows(collection, scoped):
            self.database.delete(collection, self.user_id, record["id"])
        inserted = [self.database.insert(collection, self.user_id, row) for row in rows]
        return await self._respond(gate, inserted)
