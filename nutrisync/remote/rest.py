# -*- coding: utf-8 -*-
"""HTTP gateway speaking the PostgREST dialect of the hosted data service."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List, Optional, Sequence

import httpx

from ..config import settings
from ..errors import NetworkFailure, RejectedByServer
from .gateway import Filter, Row

logger = logging.getLogger(__name__)

_UNAVAILABLE = {502, 503, 504}


def _eq(filter: Filter) -> Dict[str, str]:
    return {k: f"eq.{v}" for k, v in filter.items()}


def _error_message(resp: httpx.Response) -> str:
    try:
        data = resp.json()
    except ValueError:
        return (resp.text or resp.reason_phrase or "").strip()[:500]
    if isinstance(data, dict):
        for key in ("message", "detail", "error", "hint"):
            value = data.get(key)
            if value:
                return str(value)
    return str(data)[:500]


class RestGateway:
    """Authenticated client for ``/rest/v1/{collection}`` endpoints.

    Pass ``client`` to reuse a connection pool (or an ASGI transport in tests);
    otherwise a short-lived ``httpx.AsyncClient`` is opened per call.
    """

    def __init__(
        self,
        *,
        user_id: str,
        access_token: str,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout: Optional[float] = None,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.user_id = user_id
        self.base_url = (base_url or settings.remote_url).rstrip("/")
        self.timeout = settings.remote_timeout if timeout is None else timeout
        self._client = client
        self._headers = {
            "apikey": api_key if api_key is not None else settings.remote_api_key,
            "Authorization": f"Bearer {access_token}",
            "Accept": "application/json",
        }

    def _url(self, collection: str) -> str:
        return f"{self.base_url}/rest/v1/{collection}"

    @asynccontextmanager
    async def _session(self) -> AsyncIterator[httpx.AsyncClient]:
        if self._client is not None:
            yield self._client
            return
        async with httpx.AsyncClient(timeout=self.timeout, follow_redirects=True) as client:
            yield client

    async def _request(
        self,
        method: str,
        collection: str,
        *,
        params: Optional[Dict[str, str]] = None,
        json: Any = None,
        returning: bool = False,
    ) -> Any:
        headers = dict(self._headers)
        if returning:
            headers["Prefer"] = "return=representation"
        try:
            async with self._session() as client:
                resp = await client.request(method, self._url(collection), params=params, json=json, headers=headers)
        except httpx.TimeoutException as exc:
            raise NetworkFailure(f"{method} {collection} timed out") from exc
        except httpx.TransportError as exc:
            raise NetworkFailure(f"{method} {collection} failed: {exc}") from exc

        if resp.status_code in _UNAVAILABLE:
            raise NetworkFailure(f"{method} {collection}: service unavailable ({resp.status_code})")
        if resp.status_code >= 400:
            message = _error_message(resp)
            logger.warning("%s %s rejected (%s): %s", method, collection, resp.status_code, message)
            raise RejectedByServer(message, status_code=resp.status_code)
        if resp.status_code == 204 or not resp.content:
            return None
        return resp.json()

    def _owned(self, id: str) -> Dict[str, str]:
        return _eq({"id": id, "user_id": self.user_id})

    async def fetch_all(self, collection: str, filter: Filter) -> List[Row]:
        params = {"select": "*", **_eq(filter)}
        data = await self._request("GET", collection, params=params)
        return list(data or [])

    async def insert(self, collection: str, row: Row) -> Row:
        payload = {**row, "user_id": self.user_id}
        data = await self._request("POST", collection, json=[payload], returning=True)
        if not data:
            raise RejectedByServer(f"Insert into {collection} returned no row")
        return data[0]

    async def update(self, collection: str, id: str, patch: Row) -> Row:
        data = await self._request("PATCH", collection, params=self._owned(id), json=patch, returning=True)
        if not data:
            raise RejectedByServer(f"No {collection} row {id} for this user", status_code=404)
        return data[0]

    async def delete(self, collection: str, id: str) -> None:
        data = await self._request("DELETE", collection, params=self._owned(id), returning=True)
        if not data:
            raise RejectedByServer(f"No {collection} row {id} for this user", status_code=404)

    async def replace_all(self, collection: str, filter: Filter, rows: Sequence[Row]) -> List[Row]:
        # Not atomic on the server: a failed insert leaves the filter empty,
        # which the store repairs by re-fetching.
        await self._request("DELETE", collection, params=_eq({**filter, "user_id": self.user_id}))
        if not rows:
            return []
        payload = [{**row, "user_id": self.user_id} for row in rows]
        data = await self._request("POST", collection, json=payload, returning=True)
        return list(data or [])
