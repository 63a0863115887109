"""Signed webhook fan-out to subscriber websites."""

from __future__ import annotations

import hashlib
import hmac
import json
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Dict, List, Optional

import httpx
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from config import settings
from models.post import Post
from models.webhook_delivery import DELIVERY_STATUS_FAILED, DELIVERY_STATUS_SUCCESS, WebhookDelivery
from models.website import Website
from models.website_connection import WebsiteConnection
from services.crypto import TokenDecryptionError, decrypt_token
from services.deliveries import record_delivery
from services.errors import (
    ConfigurationError,
    DeliveryNetworkFailure,
    DeliveryServerFailure,
    DeliveryValidationFailure,
    WebhookDeliveryError,
)
from services.tokens import as_utc

logger = logging.getLogger(__name__)

NEW_POST_EVENT = "new_post"
TEST_EVENT = "test"
TEST_MESSAGE = "This is a test webhook from Social Importer API"


@dataclass
class PostPayload:
    """Post content assembled from the platform for one delivery run."""

    content: str
    post_type: str
    metadata: Dict[str, Any]
    attachments: Optional[List[Dict[str, Any]]]
    posted_at: datetime


@dataclass
class WebhookTestResult:
    website_id: str
    success: bool
    status_code: Optional[int]
    message: str


def isoformat(value: datetime) -> str:
    """Render `2024-05-01T10:00:00.000Z`."""
    value = as_utc(value) or datetime.now(timezone.utc)
    return value.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def canonical_json(body: Dict[str, Any]) -> bytes:
    """Compact, insertion-ordered JSON; subscribers recompute the HMAC over this form."""
    return json.dumps(body, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


def sign_payload(body: Dict[str, Any], signing_key: str) -> str:
    return hmac.new(signing_key.encode("utf-8"), canonical_json(body), hashlib.sha256).hexdigest()


def signed_body(body: Dict[str, Any], signing_key: str) -> bytes:
    """Serialize `body` with its `signature` field appended."""
    return canonical_json({**body, "signature": sign_payload(body, signing_key)})


def verify_signature(body: Dict[str, Any], signing_key: str) -> bool:
    """Subscriber-side check: HMAC over the body without its `signature` field."""
    signature = body.get("signature")
    if not isinstance(signature, str):
        return False
    unsigned = {key: value for key, value in body.items() if key != "signature"}
    return hmac.compare_digest(signature, sign_payload(unsigned, signing_key))


def _join_url(base_url: str, path: str) -> str:
    return f"{base_url.rstrip('/')}/{path.lstrip('/')}"


def build_webhook_url(base_url: str) -> str:
    return _join_url(base_url, settings.WEBHOOK_IMPORT_PATH)


def build_test_url(base_url: str) -> str:
    return _join_url(base_url, settings.WEBHOOK_TEST_PATH)


def build_post_event(post: Post, payload: PostPayload) -> Dict[str, Any]:
    return {
        "event": NEW_POST_EVENT,
        "timestamp": isoformat(datetime.now(timezone.utc)),
        "post": {
            "id": post.id,
            "platformPostId": post.platform_post_id,
            "content": payload.content,
            "postType": payload.post_type,
            "metadata": payload.metadata,
            "attachments": payload.attachments,
            "postedAt": isoformat(payload.posted_at),
        },
    }


def _get_webhook_client() -> httpx.AsyncClient:
    return httpx.AsyncClient(timeout=settings.WEBHOOK_TIMEOUT_SECONDS, follow_redirects=False)


@asynccontextmanager
async def _client_scope(client: Optional[httpx.AsyncClient]) -> AsyncIterator[httpx.AsyncClient]:
    if client is not None:
        yield client
        return
    async with _get_webhook_client() as owned:
        yield owned


def _resolve_signing_key(website: Website) -> str:
    if not website.signing_key_encrypted or not website.signing_key_encrypted.strip():
        raise ConfigurationError("Missing encrypted signing key - cannot generate signature")
    try:
        signing_key = decrypt_token(website.signing_key_encrypted)
    except TokenDecryptionError as exc:
        raise ConfigurationError(f"Failed to decrypt signing key: {exc}") from exc
    if not signing_key.strip():
        raise ConfigurationError("Failed to decrypt signing key: Decrypted signing key is empty")
    return signing_key


def _response_error_detail(response: httpx.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        return ""
    if not isinstance(data, dict):
        return ""
    detail = data.get("error") or data.get("message")
    if isinstance(detail, dict):
        detail = detail.get("message")
    return f" - {detail}" if detail else ""


async def _post_signed(client: httpx.AsyncClient, url: str, body: bytes) -> int:
    """POST a signed body once. Returns the 2xx status or raises a delivery failure."""
    try:
        response = await client.post(url, content=body, headers={"Content-Type": "application/json"})
    except httpx.RequestError as exc:
        raise DeliveryNetworkFailure(f"Network error: {str(exc) or exc.__class__.__name__}") from exc
    except (httpx.InvalidURL, ValueError) as exc:
        # Unusable stored base URL, including IDNA encoding errors.
        raise DeliveryNetworkFailure(f"Invalid webhook URL: {str(exc) or exc.__class__.__name__}") from exc

    status_code = response.status_code
    if 200 <= status_code < 300:
        return status_code
    if 400 <= status_code < 500:
        raise DeliveryValidationFailure(
            f"Validation failure: HTTP {status_code}{_response_error_detail(response)}",
            status_code=status_code,
        )
    if status_code >= 500:
        raise DeliveryServerFailure(
            f"Server error: HTTP {status_code}{_response_error_detail(response)}",
            status_code=status_code,
        )
    raise WebhookDeliveryError(f"HTTP {status_code}", status_code=status_code)


async def get_active_websites_for_connection(db: AsyncSession, connection_id: str) -> List[Website]:
    result = await db.execute(
        select(Website)
        .join(WebsiteConnection, WebsiteConnection.website_id == Website.id)
        .where(WebsiteConnection.connection_id == connection_id, Website.is_active.is_(True))
        .order_by(Website.created_at.asc(), Website.id.asc())
    )
    return list(result.scalars().all())


async def _deliver_to_website(
    client: httpx.AsyncClient,
    db: AsyncSession,
    post: Post,
    website: Website,
    payload: PostPayload,
) -> WebhookDelivery:
    sent_at = datetime.now(timezone.utc)
    try:
        signing_key = _resolve_signing_key(website)
    except ConfigurationError as exc:
        logger.error("Webhook for post %s to website %s not sent: %s", post.id, website.id, exc)
        return record_delivery(
            db,
            post_id=post.id,
            website_id=website.id,
            status=DELIVERY_STATUS_FAILED,
            error_message=str(exc),
            sent_at=sent_at,
        )

    url = build_webhook_url(website.webhook_url)
    body = signed_body(build_post_event(post, payload), signing_key)
    try:
        status_code = await _post_signed(client, url, body)
    except WebhookDeliveryError as exc:
        logger.warning("Webhook for post %s to %s failed: %s", post.id, url, exc)
        return record_delivery(
            db,
            post_id=post.id,
            website_id=website.id,
            status=DELIVERY_STATUS_FAILED,
            status_code=exc.status_code,
            error_message=str(exc),
            sent_at=sent_at,
        )
    except Exception as exc:
        logger.exception("Webhook for post %s to website %s failed unexpectedly", post.id, website.id)
        return record_delivery(
            db,
            post_id=post.id,
            website_id=website.id,
            status=DELIVERY_STATUS_FAILED,
            error_message=f"Unexpected error: {str(exc) or exc.__class__.__name__}",
            sent_at=sent_at,
        )

    logger.info("Webhook for post %s delivered to %s - Status: %s", post.id, url, status_code)
    return record_delivery(
        db,
        post_id=post.id,
        website_id=website.id,
        status=DELIVERY_STATUS_SUCCESS,
        status_code=status_code,
        sent_at=sent_at,
    )


async def deliver_post(
    db: AsyncSession,
    post: Post,
    payload: PostPayload,
    client: Optional[httpx.AsyncClient] = None,
) -> List[WebhookDelivery]:
    """
    Send `post` to every active website linked to its connection.

    Websites are processed one after another; each gets exactly one ledger row.
    The post's `webhook_sent` flag is set once any attempt has been made.
    """
    websites = await get_active_websites_for_connection(db, post.connection_id)
    if not websites:
        logger.info("No active websites for connection %s, post %s not delivered", post.connection_id, post.id)
        return []

    deliveries: List[WebhookDelivery] = []
    async with _client_scope(client) as http:
        for website in websites:
            delivery = await _deliver_to_website(http, db, post, website, payload)
            await db.commit()
            deliveries.append(delivery)

    success_count = sum(1 for delivery in deliveries if delivery.status == DELIVERY_STATUS_SUCCESS)
    logger.info(
        "Webhook delivery completed for post %s - Success: %s, Failed: %s",
        post.id,
        success_count,
        len(deliveries) - success_count,
    )

    if not post.webhook_sent:
        post.webhook_sent = True
        await db.commit()
    return deliveries


async def redeliver_post(
    db: AsyncSession,
    post: Post,
    payload: PostPayload,
    client: Optional[httpx.AsyncClient] = None,
) -> List[WebhookDelivery]:
    """User-triggered resend; appends new ledger rows next to the previous ones."""
    logger.info("Resending webhooks for post %s", post.id)
    return await deliver_post(db, post, payload, client=client)


async def send_test_webhook(
    website: Website,
    client: Optional[httpx.AsyncClient] = None,
) -> WebhookTestResult:
    """Post a fixed test event to the website's test path. Nothing is written to the ledger."""
    try:
        signing_key = _resolve_signing_key(website)
    except ConfigurationError as exc:
        return WebhookTestResult(website_id=website.id, success=False, status_code=None, message=str(exc))

    body = {
        "event": TEST_EVENT,
        "timestamp": isoformat(datetime.now(timezone.utc)),
        "message": TEST_MESSAGE,
    }
    url = build_test_url(website.webhook_url)
    async with _client_scope(client) as http:
        try:
            status_code = await _post_signed(http, url, signed_body(body, signing_key))
        except WebhookDeliveryError as exc:
            logger.warning("Test webhook to %s failed: %s", url, exc)
            return WebhookTestResult(
                website_id=website.id,
                success=False,
                status_code=exc.status_code,
                message=str(exc),
            )
    return WebhookTestResult(
        website_id=website.id,
        success=True,
        status_code=status_code,
        message="Test webhook delivered successfully",
    )
