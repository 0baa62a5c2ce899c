# -*- coding: utf-8 -*-
"""Sync — records, mutation intents and results."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Type, Union

from pydantic import BaseModel, ConfigDict, Field

from ..cache.keys import collection_key
from ..errors import SyncFailure


class Record(BaseModel):
    """A row of a server-owned collection.

    ``id`` is assigned by the server; optimistic records carry ``pending_op``
    (never serialized) until the mutation that created them settles.
    """

    model_config = ConfigDict(extra="allow")

    id: Optional[str] = None
    user_id: str = Field(..., min_length=1)
    pending_op: Optional[str] = Field(None, exclude=True)

    @property
    def pending(self) -> bool:
        return self.pending_op is not None

    def to_row(self) -> Dict[str, Any]:
        data = self.model_dump(mode="json")
        if data.get("id") is None:
            data.pop("id", None)
        return data


Snapshot = Tuple[Record, ...]


class StoreState(str, Enum):
    uninitialized = "uninitialized"
    loading = "loading"
    ready = "ready"
    closed = "closed"


class MutationKind(str, Enum):
    insert = "insert"
    update = "update"
    delete = "delete"
    replace_all = "replace_all"


@dataclass(frozen=True)
class Insert:
    fields: Mapping[str, Any]
    kind = MutationKind.insert


@dataclass(frozen=True)
class Update:
    id: str
    fields: Mapping[str, Any]
    kind = MutationKind.update


@dataclass(frozen=True)
class Delete:
    id: str
    kind = MutationKind.delete


@dataclass(frozen=True)
class ReplaceAll:
    rows: Sequence[Mapping[str, Any]]
    kind = MutationKind.replace_all


Intent = Union[Insert, Update, Delete, ReplaceAll]


@dataclass
class PendingMutation:
    op_id: str
    kind: MutationKind
    payload: Any
    applied_at: float


@dataclass
class SyncResult:
    """Outcome of an async tail (load, refresh or mutation).

    ``applied`` is False when the completion arrived stale and was discarded,
    or when the store was closed in the meantime.
    """

    ok: bool = True
    applied: bool = True
    errors: List[SyncFailure] = field(default_factory=list)

    @classmethod
    def failed(cls, *errors: SyncFailure) -> "SyncResult":
        return cls(ok=False, applied=False, errors=list(errors))

    def raise_for_error(self) -> None:
        if self.errors:
            raise self.errors[0]


@dataclass(frozen=True)
class CollectionSpec:
    """Describes one server-owned collection and how it is scoped.

    ``scope`` narrows both the remote filter and the cache key (for example a
    date for daily stats); ``filters`` are the extra equality filters.
    """

    name: str
    model: Type[Record] = Record
    scope: Optional[str] = None
    filters: Mapping[str, str] = field(default_factory=dict)

    @property
    def slot(self) -> Tuple[str, Optional[str]]:
        return (self.name, self.scope)

    def filter_for(self, identity: str) -> Dict[str, str]:
        return {**self.filters, "user_id": identity}

    def key_for(self, identity: str) -> str:
        return collection_key(self.name, identity, self.scope)
