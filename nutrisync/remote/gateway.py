# -*- coding: utf-8 -*-
"""Remote collection gateway interface.

Every call is scoped to the authenticated identity; the implementation is
responsible for refusing rows the caller does not own. Failures are raised as
``NetworkFailure`` or ``RejectedByServer``.
"""

from __future__ import annotations

from typing import Any, Dict, List, Mapping, Protocol, Sequence

Row = Dict[str, Any]
Filter = Mapping[str, str]


class RemoteGateway(Protocol):
    async def fetch_all(self, collection: str, filter: Filter) -> List[Row]: ...

    async def insert(self, collection: str, row: Row) -> Row: ...

    async def update(self, collection: str, id: str, patch: Row) -> Row: ...

    async def delete(self, collection: str, id: str) -> None: ...

    async def replace_all(self, collection: str, filter: Filter, rows: Sequence[Row]) -> List[Row]: ...


def row_matches(row: Mapping[str, Any], filter: Filter) -> bool:
    return all(row.get(k) is not None and str(row.get(k)) == v for k, v in filter.items())
