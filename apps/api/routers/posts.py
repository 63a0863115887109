"""Post resend and delivery history."""

from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from models.post import Post
from routers.auth_scope import AuthContext, get_auth_context
from routers.errors import http_error
from routers.webhook_deliveries import DeliveryResponse, serialize_delivery
from services.deliveries import deliveries_for_post
from services.errors import SyncError
from services.sync import resend_post

router = APIRouter()


class ResendResponse(BaseModel):
    message: str
    post_id: str
    deliveries: List[DeliveryResponse]


@router.post("/{post_id}/resend", response_model=ResendResponse)
async def resend_post_webhooks(
    post_id: str,
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
):
    """Re-fetch a post from the platform and deliver it to every active website again."""
    try:
        deliveries = await resend_post(db, post_id, auth.user_id)
    except SyncError as exc:
        raise http_error(exc) from exc

    return ResendResponse(
        message=f"Webhooks resent for post {post_id}",
        post_id=post_id,
        deliveries=[serialize_delivery(delivery) for delivery in deliveries],
    )


@router.get("/{post_id}/deliveries", response_model=List[DeliveryResponse])
async def get_post_deliveries(
    post_id: str,
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
):
    post = await db.get(Post, post_id)
    if post is None:
        raise HTTPException(status_code=404, detail="Post not found")
    await auth.require_member(post.organization_id)

    return [serialize_delivery(delivery) for delivery in await deliveries_for_post(db, post_id)]
