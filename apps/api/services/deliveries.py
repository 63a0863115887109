"""Append-only webhook delivery ledger."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional, Sequence

from sqlalchemy import func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy.orm import selectinload

from models.post import Post
from models.webhook_delivery import (
    DELIVERY_STATUS_FAILED,
    DELIVERY_STATUS_SUCCESS,
    WebhookDelivery,
)

DELIVERY_STATUSES = (DELIVERY_STATUS_SUCCESS, DELIVERY_STATUS_FAILED)


@dataclass
class DeliveryPage:
    items: List[WebhookDelivery]
    total: int
    page: int
    limit: int


def record_delivery(
    db: AsyncSession,
    *,
    post_id: str,
    website_id: str,
    status: str,
    sent_at: datetime,
    status_code: Optional[int] = None,
    error_message: Optional[str] = None,
) -> WebhookDelivery:
    """Stage a new ledger row. Existing rows are never touched."""
    if status not in DELIVERY_STATUSES:
        raise ValueError(f"Unknown delivery status: {status}")
    delivery = WebhookDelivery(
        post_id=post_id,
        website_id=website_id,
        status=status,
        status_code=status_code,
        error_message=error_message,
        sent_at=sent_at,
    )
    db.add(delivery)
    return delivery


async def get_delivery(db: AsyncSession, delivery_id: str) -> Optional[WebhookDelivery]:
    result = await db.execute(
        select(WebhookDelivery)
        .options(selectinload(WebhookDelivery.post), selectinload(WebhookDelivery.website))
        .where(WebhookDelivery.id == delivery_id)
    )
    return result.scalar_one_or_none()


async def deliveries_for_post(db: AsyncSession, post_id: str) -> List[WebhookDelivery]:
    """Full delivery history for a post, oldest first."""
    result = await db.execute(
        select(WebhookDelivery)
        .where(WebhookDelivery.post_id == post_id)
        .order_by(WebhookDelivery.sent_at.asc())
    )
    return list(result.scalars().all())


async def list_deliveries(
    db: AsyncSession,
    organization_ids: Sequence[str],
    *,
    post_id: Optional[str] = None,
    website_id: Optional[str] = None,
    status: Optional[str] = None,
    page: int = 1,
    limit: int = 20,
) -> DeliveryPage:
    """Page through deliveries of posts owned by the given organizations, newest first."""
    page = max(1, int(page or 1))
    limit = min(100, max(1, int(limit or 20)))
    if not organization_ids:
        return DeliveryPage(items=[], total=0, page=page, limit=limit)

    filters = [Post.organization_id.in_(list(organization_ids))]
    if post_id:
        filters.append(WebhookDelivery.post_id == post_id)
    if website_id:
        filters.append(WebhookDelivery.website_id == website_id)
    if status:
        filters.append(WebhookDelivery.status == status)

    total_result = await db.execute(
        select(func.count(WebhookDelivery.id)).join(Post, WebhookDelivery.post_id == Post.id).where(*filters)
    )
    total = int(total_result.scalar_one() or 0)

    result = await db.execute(
        select(WebhookDelivery)
        .join(Post, WebhookDelivery.post_id == Post.id)
        .options(selectinload(WebhookDelivery.post), selectinload(WebhookDelivery.website))
        .where(*filters)
        .order_by(WebhookDelivery.sent_at.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    return DeliveryPage(items=list(result.scalars().all()), total=total, page=page, limit=limit)
