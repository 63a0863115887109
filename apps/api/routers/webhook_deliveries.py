"""Read-only views over the webhook delivery ledger."""

from __future__ import annotations

from datetime import datetime
from typing import List, Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from models.webhook_delivery import WebhookDelivery
from routers.auth_scope import AuthContext, get_auth_context
from services.deliveries import get_delivery, list_deliveries

router = APIRouter()


class DeliveryResponse(BaseModel):
    id: str
    post_id: str
    website_id: str
    status: str
    status_code: Optional[int] = None
    error_message: Optional[str] = None
    sent_at: Optional[datetime] = None


class DeliveryListResponse(BaseModel):
    items: List[DeliveryResponse]
    total: int
    page: int
    limit: int


def serialize_delivery(delivery: WebhookDelivery) -> DeliveryResponse:
    return DeliveryResponse(
        id=delivery.id,
        post_id=delivery.post_id,
        website_id=delivery.website_id,
        status=delivery.status,
        status_code=delivery.status_code,
        error_message=delivery.error_message,
        sent_at=delivery.sent_at,
    )


@router.get("", response_model=DeliveryListResponse)
async def list_webhook_deliveries(
    post_id: Optional[str] = Query(default=None),
    website_id: Optional[str] = Query(default=None),
    status: Optional[Literal["success", "failed"]] = Query(default=None),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
):
    """Deliveries for posts in the caller's organizations, newest first."""
    organization_ids = await auth.organization_ids()

    result = await list_deliveries(
        db,
        organization_ids,
        post_id=post_id,
        website_id=website_id,
        status=status,
        page=page,
        limit=limit,
    )
    return DeliveryListResponse(
        items=[serialize_delivery(delivery) for delivery in result.items],
        total=result.total,
        page=result.page,
        limit=result.limit,
    )


@router.get("/{delivery_id}", response_model=DeliveryResponse)
async def get_webhook_delivery(
    delivery_id: str,
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
):
    delivery = await get_delivery(db, delivery_id)
    if delivery is None:
        raise HTTPException(status_code=404, detail="Webhook delivery not found")
    await auth.require_member(delivery.post.organization_id)
    return serialize_delivery(delivery)
