"""Manual sync triggers."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from routers.auth_scope import AuthContext, get_auth_context
from routers.errors import http_error
from services.errors import SyncError
from services.scheduler import sync_scheduler
from services.sync import resolve_sync_options, sync_connection_by_id

router = APIRouter()


class BatchSyncResponse(BaseModel):
    message: str
    connections_count: int
    succeeded: int
    failed: int
    skipped: int


class ConnectionSyncResponse(BaseModel):
    message: str
    connection_id: str
    posts_fetched: int
    posts_created: int
    posts_redelivered: int
    posts_skipped: int
    window: Optional[int] = None
    offset: Optional[int] = None
    limit: Optional[int] = None


@router.post("/sync", response_model=BatchSyncResponse)
async def trigger_batch_sync(
    auth: AuthContext = Depends(get_auth_context),
):
    """Run one full batch now. Rejected while a batch is already running."""
    result = await sync_scheduler.run_once()
    if result is None:
        raise HTTPException(status_code=409, detail="A sync batch is already in progress.")
    return BatchSyncResponse(
        message="Sync completed",
        connections_count=result.connections_count,
        succeeded=result.succeeded,
        failed=result.failed,
        skipped=result.skipped,
    )


@router.get("/sync/{connection_id}", response_model=ConnectionSyncResponse)
async def trigger_connection_sync(
    connection_id: str,
    window: Optional[int] = Query(default=None),
    offset: Optional[int] = Query(default=None),
    limit: Optional[int] = Query(default=None),
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
):
    """Sync one connection; `window`/`offset`/`limit` select a slice of the latest posts."""
    try:
        options = resolve_sync_options(window, offset, limit)
        result = await sync_connection_by_id(db, connection_id, auth.user_id, options)
    except SyncError as exc:
        raise http_error(exc) from exc

    return ConnectionSyncResponse(
        message=f"Sync completed for connection {connection_id}",
        connection_id=connection_id,
        posts_fetched=result.posts_fetched,
        posts_created=result.posts_created,
        posts_redelivered=result.posts_redelivered,
        posts_skipped=result.posts_skipped,
        window=options.window if options else None,
        offset=options.offset if options else None,
        limit=options.limit if options else None,
    )
