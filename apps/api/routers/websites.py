"""Subscriber website checks."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from models.website import Website
from routers.auth_scope import AuthContext, get_auth_context
from services.webhooks import send_test_webhook

router = APIRouter()


class WebhookTestResponse(BaseModel):
    website_id: str
    success: bool
    status_code: Optional[int] = None
    message: str


@router.post("/{website_id}/test", response_model=WebhookTestResponse)
async def test_website_webhook(
    website_id: str,
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
):
    """Send a signed test event to the website. The delivery ledger is not touched."""
    website = await db.get(Website, website_id)
    if website is None:
        raise HTTPException(status_code=404, detail="Website not found")
    await auth.require_member(website.organization_id)

    result = await send_test_webhook(website)
    return WebhookTestResponse(
        website_id=result.website_id,
        success=result.success,
        status_code=result.status_code,
        message=result.message,
    )
