# -*- coding: utf-8 -*-
"""Development data service — API endpoints.

Serves ``/rest/v1/{collection}`` over an ``InMemoryDatabase`` so the HTTP
gateway can be exercised without the hosted service. The bearer token is taken
as the user id; this is a development tool, not an auth layer.

    uvicorn nutrisync.devserver.api:app --port 54321
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Body, Depends, FastAPI, HTTPException, Request, Response

from ..realtime.channel import InMemoryChannel
from ..remote.memory import OWNER_FIELD, InMemoryDatabase

router = APIRouter(prefix="/rest/v1", tags=["Collections"])


def get_current_user(request: Request) -> str:
    auth = request.headers.get("authorization") or ""
    scheme, _, token = auth.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise HTTPException(status_code=401, detail="Not authenticated")
    return token.strip()


def get_database(request: Request) -> InMemoryDatabase:
    return request.app.state.database


def _filters(request: Request, user_id: str) -> Dict[str, str]:
    filters: Dict[str, str] = {}
    for key, value in request.query_params.items():
        if key == "select":
            continue
        op, _, operand = value.partition(".")
        if op != "eq":
            raise HTTPException(status_code=400, detail=f"Unsupported operator {op!r} for {key}")
        filters[key] = operand
    owner = filters.get(OWNER_FIELD)
    if owner is not None and owner != user_id:
        raise HTTPException(status_code=403, detail="Forbidden")
    filters[OWNER_FIELD] = user_id
    return filters


def _wants_rows(request: Request) -> bool:
    return "return=representation" in (request.headers.get("prefer") or "")


@router.get("/{collection}", summary="List rows owned by the caller")
async def list_rows(
    collection: str,
    request: Request,
    user_id: str = Depends(get_current_user),
    database: InMemoryDatabase = Depends(get_database),
) -> List[Dict[str, Any]]:
    return database.rows(collection, _filters(request, user_id))


@router.post("/{collection}", status_code=201, summary="Insert one or more rows")
async def insert_rows(
    collection: str,
    request: Request,
    payload: Any = Body(...),
    user_id: str = Depends(get_current_user),
    database: InMemoryDatabase = Depends(get_database),
):
    rows = payload if isinstance(payload, list) else [payload]
    if not all(isinstance(r, dict) for r in rows):
        raise HTTPException(status_code=400, detail="Rows must be JSON objects")
    for row in rows:
        owner = row.get(OWNER_FIELD)
        if owner is not None and owner != user_id:
            raise HTTPException(status_code=403, detail="Cannot insert rows for another user")
    inserted = [database.insert(collection, user_id, row) for row in rows]
    if not _wants_rows(request):
        return Response(status_code=201)
    return inserted


@router.patch("/{collection}", summary="Update rows matching the filter")
async def update_rows(
    collection: str,
    request: Request,
    patch: Dict[str, Any] = Body(...),
    user_id: str = Depends(get_current_user),
    database: InMemoryDatabase = Depends(get_database),
):
    filters = _filters(request, user_id)
    updated = [
        database.update(collection, user_id, row["id"], patch)
        for row in database.rows(collection, filters)
    ]
    if not _wants_rows(request):
        return Response(status_code=204)
    return updated


@router.delete("/{collection}", summary="Delete rows matching the filter")
async def delete_rows(
    collection: str,
    request: Request,
    user_id: str = Depends(get_current_user),
    database: InMemoryDatabase = Depends(get_database),
):
    filters = _filters(request, user_id)
    doomed = database.rows(collection, filters)
    for row in doomed:
        database.delete(collection, user_id, row["id"])
    if not _wants_rows(request):
        return Response(status_code=204)
    return doomed


def create_app(database: Optional[InMemoryDatabase] = None) -> FastAPI:
    app = FastAPI(
        title="nutrisync dev data service",
        description="In-memory stand-in for the hosted collection service.",
        version="0.1.0",
    )
    app.state.database = database or InMemoryDatabase(InMemoryChannel())
    app.include_router(router)
    return app


app = create_app()
