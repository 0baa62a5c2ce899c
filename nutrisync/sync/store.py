# -*- coding: utf-8 -*-
"""Synchronized cached store.

One store holds the snapshot of one collection for one identity. Reads are
served from memory; the durable cache is only consulted on cold start. Writes
are applied optimistically and reconciled when the gateway answers. Any push
event, and any failed write, is answered by re-fetching the whole collection.

Every commit bumps ``version``. Async tails remember the version they were
derived from and are discarded when a newer commit has happened since, so an
old completion can never overwrite a newer snapshot.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Callable, Coroutine, Dict, Iterable, List, Optional, Set, Tuple
from uuid import uuid4

from pydantic import ValidationError

from ..cache.storage import DurableCache
from ..errors import RecordNotFound, RejectedByServer, StorageFailure, StoreStateError, SyncFailure
from ..realtime.channel import ChangeEvent, PushChannel, Subscription
from ..remote.gateway import RemoteGateway, Row
from .models import (
    CollectionSpec,
    Delete,
    Insert,
    Intent,
    MutationKind,
    PendingMutation,
    Record,
    ReplaceAll,
    Snapshot,
    StoreState,
    SyncResult,
    Update,
)

logger = logging.getLogger(__name__)

Listener = Callable[[Snapshot], None]

_PROTECTED_FIELDS = ("id", "user_id", "pending_op")


class SyncedStore:
    def __init__(
        self,
        identity: str,
        spec: CollectionSpec,
        gateway: RemoteGateway,
        cache: DurableCache,
        channel: Optional[PushChannel] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.identity = identity
        self.spec = spec
        self.gateway = gateway
        self.cache = cache
        self.channel = channel
        self.key = spec.key_for(identity)
        self.filter = spec.filter_for(identity)
        self.ready: Optional["asyncio.Future[SyncResult]"] = None
        self.last_error: Optional[SyncFailure] = None

        self._clock = clock
        self._state = StoreState.uninitialized
        self._snapshot: Snapshot = ()
        # Last snapshot that was pure server truth; the fallback when a rollback fetch fails.
        self._synced: Snapshot = ()
        self._version = 0
        self._pending: Dict[str, PendingMutation] = {}
        self._listeners: Dict[int, Listener] = {}
        self._listener_seq = 0
        self._opened = False
        self._subscription: Optional[Subscription] = None
        self._dirty = False
        self._reconcile_task: Optional[asyncio.Task] = None
        self._tasks: Set[asyncio.Task] = set()

    # ---- read side ----

    @property
    def state(self) -> StoreState:
        return self._state

    @property
    def version(self) -> int:
        return self._version

    @property
    def closed(self) -> bool:
        return self._state is StoreState.closed

    def snapshot(self) -> Snapshot:
        return self._snapshot

    def pending(self) -> Dict[str, PendingMutation]:
        return dict(self._pending)

    def on_change(self, listener: Listener) -> Callable[[], None]:
        """Call ``listener(snapshot)`` after every commit; returns the deregistration."""
        self._ensure_open()
        self._listener_seq += 1
        token = self._listener_seq
        self._listeners[token] = listener

        def unsubscribe() -> None:
            self._listeners.pop(token, None)

        return unsubscribe

    # ---- lifecycle ----

    def open(self) -> None:
        """Open the push subscription. A store is opened exactly once."""
        self._ensure_open()
        if self._opened:
            raise StoreStateError(f"Store {self.key} is already open")
        self._opened = True
        if self.channel is not None:
            self._subscription = self.channel.subscribe(self.spec.name, self.filter, self._on_event)
        logger.info("Opened store %s", self.key)

    def close(self) -> None:
        if self.closed:
            return
        self._state = StoreState.closed
        # In-flight completions see a newer version and are ignored.
        self._version += 1
        if self._subscription is not None:
            self._subscription.close()
            self._subscription = None
        self._snapshot = ()
        self._synced = ()
        self._pending.clear()
        self._listeners.clear()
        logger.info("Closed store %s", self.key)

    async def wait_idle(self) -> None:
        """Wait until no async tail or scheduled push delivery is outstanding."""
        while True:
            if self._tasks:
                await asyncio.gather(*list(self._tasks), return_exceptions=True)
                continue
            await asyncio.sleep(0)
            if not self._tasks:
                return

    # ---- operations ----

    def load(self) -> "asyncio.Future[SyncResult]":
        """Prime the snapshot from the cache now, then refresh from the remote."""
        self._ensure_open()
        loop = asyncio.get_running_loop()
        if self._state is StoreState.uninitialized:
            self._state = StoreState.loading
        cached = self._read_cache()
        if cached is not None:
            logger.debug("Cold start for %s served from cache (%d rows)", self.key, len(cached))
            self._commit(cached, synced=True)
        self.ready = self._spawn(loop, self._finish_load())
        return self.ready

    def refresh(self) -> "asyncio.Future[SyncResult]":
        self._ensure_open()
        return self._spawn(asyncio.get_running_loop(), self._settled_refresh("manual"))

    def mutate(self, intent: Intent) -> "asyncio.Future[SyncResult]":
        """Apply ``intent`` to the snapshot immediately and confirm it remotely.

        Raises ``RecordNotFound`` or a pydantic ``ValidationError`` before
        anything is committed when the intent cannot be applied locally.
        """
        self._ensure_open()
        loop = asyncio.get_running_loop()
        op_id = uuid4().hex
        snapshot, payload = self._apply(intent, op_id)
        mutation = PendingMutation(op_id=op_id, kind=intent.kind, payload=payload, applied_at=self._clock())
        self._pending[op_id] = mutation
        self._commit(snapshot)
        return self._spawn(loop, self._settle_mutation(mutation, intent, self._version))

    # ---- optimistic application ----

    def _apply(self, intent: Intent, op_id: str) -> Tuple[List[Record], Any]:
        current = list(self._snapshot)
        if isinstance(intent, Insert):
            record = self._build({k: v for k, v in intent.fields.items() if k != "id"}, op_id)
            current.append(record)
            return current, record.to_row()
        if isinstance(intent, Update):
            idx = self._index_of(current, intent.id)
            patch = {k: v for k, v in intent.fields.items() if k not in _PROTECTED_FIELDS}
            record = self._build({**current[idx].model_dump(), **patch}, op_id)
            current[idx] = record
            row = record.to_row()
            return current, {k: row[k] for k in patch if k in row}
        if isinstance(intent, Delete):
            idx = self._index_of(current, intent.id)
            del current[idx]
            return current, intent.id
        if isinstance(intent, ReplaceAll):
            records = [self._build({k: v for k, v in row.items() if k != "id"}, op_id) for row in intent.rows]
            return records, [r.to_row() for r in records]
        raise TypeError(f"Unsupported intent: {intent!r}")

    def _build(self, data: Dict[str, Any], op_id: str) -> Record:
        data["user_id"] = self.identity
        data["pending_op"] = op_id
        return self.spec.model.model_validate(data)

    def _index_of(self, records: List[Record], id: str) -> int:
        for idx, record in enumerate(records):
            if record.id == id:
                return idx
        raise RecordNotFound(f"No {self.spec.name} record {id}")

    # ---- async tails ----

    async def _finish_load(self) -> SyncResult:
        result = await self._refresh("load")
        if self._state is StoreState.loading:
            self._state = StoreState.ready
        self._after_settle()
        return result

    async def _settled_refresh(self, reason: str) -> SyncResult:
        result = await self._refresh(reason)
        self._after_settle()
        return result

    async def _refresh(self, reason: str) -> SyncResult:
        base = self._version
        try:
            rows = await self.gateway.fetch_all(self.spec.name, self.filter)
        except SyncFailure as exc:
            logger.warning("Fetching %s failed (%s): %s", self.key, reason, exc)
            self.last_error = exc
            return SyncResult.failed(exc)
        if self.closed:
            return SyncResult(applied=False)
        if self._version != base:
            logger.debug("Discarding stale %s fetch for %s (v%d, now v%d)", reason, self.key, base, self._version)
            self._dirty = True
            return SyncResult(applied=False)
        try:
            records = self._parse(rows)
        except ValidationError as exc:
            failure = RejectedByServer(f"Malformed {self.spec.name} rows: {exc.error_count()} errors")
            self.last_error = failure
            return SyncResult.failed(failure)
        self._dirty = False
        self._commit(records, synced=True)
        self._write_cache()
        return SyncResult()

    async def _settle_mutation(self, mutation: PendingMutation, intent: Intent, base: int) -> SyncResult:
        try:
            rows = await self._call_gateway(intent, mutation.payload)
        except SyncFailure as exc:
            if self.closed:
                return SyncResult.failed(exc)
            logger.warning("%s on %s rejected, re-fetching: %s", mutation.kind.value, self.key, exc)
            self.last_error = exc
            rollback = await self._refresh("rollback")
            self._pending.pop(mutation.op_id, None)
            if not rollback.applied and not self.closed:
                # The re-fetch failed or was overtaken; take this op back out by hand.
                self._undo(mutation, intent)
                if self._pending:
                    self._dirty = True
            self._after_settle()
            return SyncResult(ok=False, applied=rollback.applied, errors=[exc, *rollback.errors])

        self._pending.pop(mutation.op_id, None)
        if self.closed:
            return SyncResult(applied=False)
        try:
            confirmed = self._parse(rows)
        except ValidationError as exc:
            self._dirty = True
            self._undo(mutation, intent)
            self._after_settle()
            return SyncResult.failed(RejectedByServer(f"Malformed confirmation: {exc}"))

        stale = self._version != base
        if stale:
            # Newer commits happened; only records still carrying this op are swapped.
            logger.debug("Stale %s confirmation for %s", mutation.kind.value, self.key)
            self._dirty = True
        else:
            self._fold_synced(intent, confirmed)
        snapshot, placed = self._confirm(mutation.op_id, confirmed, append=not stale)
        if stale and not placed:
            self._after_settle()
            return SyncResult(applied=False)
        self._commit(snapshot, synced=not any(r.pending for r in snapshot))
        self._write_cache()
        self._after_settle()
        return SyncResult()

    async def _call_gateway(self, intent: Intent, payload: Any) -> List[Row]:
        name = self.spec.name
        if isinstance(intent, Insert):
            return [await self.gateway.insert(name, payload)]
        if isinstance(intent, Update):
            return [await self.gateway.update(name, intent.id, payload)]
        if isinstance(intent, Delete):
            await self.gateway.delete(name, intent.id)
            return []
        return list(await self.gateway.replace_all(name, self.filter, payload))

    def _confirm(self, op_id: str, confirmed: List[Record], *, append: bool) -> Tuple[List[Record], bool]:
        out: List[Record] = []
        placed = False
        for record in self._snapshot:
            if record.pending_op == op_id:
                if not placed:
                    out.extend(confirmed)
                    placed = True
                continue
            out.append(record)
        if not placed and append:
            out.extend(confirmed)
        return out, placed

    def _fold_synced(self, intent: Intent, confirmed: List[Record]) -> None:
        """Apply a confirmed write to the last known server state."""
        if isinstance(intent, ReplaceAll):
            self._synced = tuple(confirmed)
            return
        by_id = {r.id: r for r in confirmed}
        out: List[Record] = []
        for record in self._synced:
            if isinstance(intent, Delete) and record.id == intent.id:
                continue
            out.append(by_id.pop(record.id, record))
        out.extend(by_id.values())
        self._synced = tuple(out)

    def _undo(self, mutation: PendingMutation, intent: Intent) -> None:
        """Take a settled op's optimistic records out of the current snapshot.

        Records it touched fall back to their last known server version;
        records of other ops, pending or confirmed, stay as they are.
        """
        synced = {r.id: r for r in self._synced}
        snapshot: List[Record] = []
        for record in self._snapshot:
            if record.pending_op != mutation.op_id:
                snapshot.append(record)
            elif record.id is not None and record.id in synced:
                snapshot.append(synced[record.id])
        if isinstance(intent, Delete):
            restore = {intent.id}
        elif isinstance(intent, ReplaceAll):
            restore = set(synced) - {
                m.payload for m in self._pending.values() if m.kind is MutationKind.delete
            }
        else:
            restore = set()
        present = {r.id for r in snapshot}
        snapshot.extend(r for r in self._synced if r.id in restore and r.id not in present)
        if tuple(snapshot) != self._snapshot:
            self._commit(snapshot)

    # ---- push reconciliation ----

    def _on_event(self, event: ChangeEvent) -> None:
        if self.closed:
            return
        logger.debug("%s %s event for %s", event.collection, event.kind.value, self.key)
        if self._reconcile_task is not None:
            self._dirty = True
            return
        self._start_reconcile(event.kind.value)

    def _after_settle(self) -> None:
        if self.closed or self._pending or not self._dirty or self._reconcile_task is not None:
            return
        self._start_reconcile("dirty")

    def _start_reconcile(self, reason: str) -> None:
        self._dirty = False
        self._reconcile_task = self._spawn(asyncio.get_running_loop(), self._reconcile(reason))

    async def _reconcile(self, reason: str) -> SyncResult:
        try:
            return await self._refresh(reason)
        finally:
            self._reconcile_task = None
            self._after_settle()

    # ---- helpers ----

    def _ensure_open(self) -> None:
        if self.closed:
            raise StoreStateError(f"Store {self.key} is closed")

    def _spawn(self, loop: asyncio.AbstractEventLoop, coro: Coroutine[Any, Any, SyncResult]) -> asyncio.Task:
        task = loop.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def _parse(self, rows: Iterable[Row]) -> List[Record]:
        return [self.spec.model.model_validate(row) for row in rows]

    def _commit(self, snapshot: Iterable[Record], *, synced: bool = False) -> None:
        self._snapshot = tuple(snapshot)
        self._version += 1
        if synced:
            self._synced = self._snapshot
        for listener in list(self._listeners.values()):
            try:
                listener(self._snapshot)
            except Exception as exc:
                logger.warning("Change listener failed for %s: %s", self.key, exc)

    def _read_cache(self) -> Optional[List[Record]]:
        try:
            raw = self.cache.get(self.key)
        except StorageFailure as exc:
            logger.warning("Cache read for %s failed, treating as miss: %s", self.key, exc)
            return None
        if raw is None:
            return None
        try:
            return self._parse(raw)
        except (ValidationError, TypeError) as exc:
            logger.warning("Discarding unreadable cache entry %s: %s", self.key, exc)
            return None

    def _write_cache(self) -> None:
        rows = [r.to_row() for r in self._snapshot if not r.pending]
        try:
            self.cache.set(self.key, rows)
        except StorageFailure as exc:
            logger.warning("Cache write for %s failed: %s", self.key, exc)
