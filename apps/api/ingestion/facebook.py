"""
Facebook Graph API client for token exchange, feed, and attachment retrieval.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional, Type, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from config import settings
from ingestion.schemas import (
    AttachmentPage,
    FeedPage,
    FeedPost,
    PageAccessToken,
    TokenExchange,
    graph_error_code,
    graph_error_message,
)
from services.errors import AuthExpiredError, PlatformResponseError, TransientPlatformError

logger = logging.getLogger(__name__)

FEED_FIELDS = "id,message,story,created_time,permalink_url,status_type"
POST_FIELDS = "id,message,story,created_time,permalink_url,link,status_type"
# OAuthException: the token is invalid or expired, usually sent with HTTP 400.
INVALID_TOKEN_ERROR_CODE = 190

SchemaT = TypeVar("SchemaT", bound=BaseModel)


def _redact(params: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    redacted = dict(params or {})
    for secret in ("access_token", "client_secret", "fb_exchange_token"):
        if secret in redacted:
            redacted[secret] = "[REDACTED]"
    return redacted


class FacebookGraphClient:
    """Async client for the Facebook Graph API."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        app_id: Optional[str] = None,
        app_secret: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize Graph client.

        Args:
            base_url: Versioned Graph API root, e.g. https://graph.facebook.com/v20.0
            app_id: Facebook app id used for token exchange
            app_secret: Facebook app secret used for token exchange
            timeout: Per-request timeout in seconds
            transport: Optional httpx transport (tests)
        """
        self.app_id = app_id if app_id is not None else settings.FACEBOOK_APP_ID
        self.app_secret = app_secret if app_secret is not None else settings.FACEBOOK_APP_SECRET
        self._client = httpx.AsyncClient(
            base_url=(base_url or settings.FACEBOOK_GRAPH_API_URL).rstrip("/"),
            timeout=timeout or settings.PLATFORM_TIMEOUT_SECONDS,
            transport=transport,
        )

    async def __aenter__(self) -> "FacebookGraphClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _get(self, url: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """GET a Graph resource and map failures onto the error taxonomy."""
        try:
            response = await self._client.get(url, params=params)
        except httpx.RequestError as exc:
            logger.warning("Graph request failed url=%s params=%s: %s", url, _redact(params), exc)
            raise TransientPlatformError(f"Platform request failed: {exc}") from exc

        try:
            payload = response.json()
        except ValueError:
            payload = None

        if response.status_code >= 400:
            detail = graph_error_message(payload) or response.reason_phrase or "unknown"
            logger.error(
                "Graph request failed url=%s status=%s error=%s params=%s",
                url,
                response.status_code,
                detail,
                _redact(params),
            )
            if response.status_code in (401, 403) or graph_error_code(payload) == INVALID_TOKEN_ERROR_CODE:
                raise AuthExpiredError(
                    f"Platform rejected credentials: HTTP {response.status_code} - {detail}",
                    status_code=response.status_code,
                )
            raise TransientPlatformError(
                f"Platform error: HTTP {response.status_code} - {detail}",
                status_code=response.status_code,
            )

        if not isinstance(payload, dict):
            raise PlatformResponseError(f"Platform returned a non-object response for {url}")
        return payload

    async def _get_model(
        self,
        schema: Type[SchemaT],
        url: str,
        params: Optional[Dict[str, Any]] = None,
    ) -> SchemaT:
        payload = await self._get(url, params)
        try:
            return schema.model_validate(payload)
        except ValidationError as exc:
            raise PlatformResponseError(f"Unexpected {schema.__name__} response: {exc}") from exc

    async def exchange_long_lived_token(self, token: str) -> TokenExchange:
        """Exchange a short- or long-lived user token for a fresh long-lived one."""
        return await self._get_model(
            TokenExchange,
            "/oauth/access_token",
            {
                "grant_type": "fb_exchange_token",
                "client_id": self.app_id,
                "client_secret": self.app_secret,
                "fb_exchange_token": token,
            },
        )

    async def get_page_access_token(self, user_token: str, page_id: str) -> str:
        """Exchange a user token for a page-scoped token."""
        page = await self._get_model(
            PageAccessToken,
            f"/{page_id}",
            {"access_token": user_token, "fields": "access_token"},
        )
        if not page.access_token:
            raise PlatformResponseError(f"Page access token not found in response for page {page_id}")
        return page.access_token

    async def get_feed_page(
        self,
        target_id: str,
        token: str,
        *,
        since: int,
        limit: int,
        is_page: bool,
    ) -> FeedPage:
        """Fetch the first feed page; pages use `published_posts`, users use `feed`."""
        endpoint = f"/{target_id}/published_posts" if is_page else f"/{target_id}/feed"
        return await self._get_model(
            FeedPage,
            endpoint,
            {
                "access_token": token,
                "fields": FEED_FIELDS,
                "since": since,
                "limit": limit,
            },
        )

    async def get_feed_page_by_url(self, next_url: str) -> FeedPage:
        """Follow a `paging.next` cursor; the URL already carries the token."""
        return await self._get_model(FeedPage, next_url)

    async def get_post(self, platform_post_id: str, token: str) -> FeedPost:
        return await self._get_model(
            FeedPost,
            f"/{platform_post_id}",
            {"access_token": token, "fields": POST_FIELDS},
        )

    async def get_attachments_page(self, platform_post_id: str, token: str) -> AttachmentPage:
        return await self._get_model(
            AttachmentPage,
            f"/{platform_post_id}/attachments",
            {"access_token": token},
        )

    async def get_attachments_page_by_url(self, next_url: str) -> AttachmentPage:
        return await self._get_model(AttachmentPage, next_url)


def create_graph_client() -> FacebookGraphClient:
    """Create a Graph client from application settings."""
    return FacebookGraphClient()
