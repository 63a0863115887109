"""Identity service client: organization membership lookups."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import List, Optional
from urllib.parse import quote

import httpx
from pydantic import BaseModel, ConfigDict, TypeAdapter, ValidationError

from config import settings
from services.errors import AccessDeniedError, ConfigurationError, IdentityServiceError

logger = logging.getLogger(__name__)

TOKEN_SAFETY_BUFFER_SECONDS = 60
DEFAULT_TOKEN_LIFETIME_SECONDS = 3600


class OrganizationRef(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str


_organizations_adapter = TypeAdapter(List[OrganizationRef])


@dataclass
class CachedToken:
    token: str
    expires_at: float  # epoch seconds

    def is_fresh(self, now: float, buffer_seconds: int = TOKEN_SAFETY_BUFFER_SECONDS) -> bool:
        return self.expires_at > now + buffer_seconds


class IdentityClient:
    """Client-credentials client for the identity service management API."""

    def __init__(
        self,
        endpoint: Optional[str] = None,
        app_id: Optional[str] = None,
        app_secret: Optional[str] = None,
        api_resource: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.endpoint = (endpoint if endpoint is not None else settings.IDENTITY_ENDPOINT).rstrip("/")
        self.app_id = app_id if app_id is not None else settings.IDENTITY_APP_ID
        self.app_secret = app_secret if app_secret is not None else settings.IDENTITY_APP_SECRET
        self.api_resource = (
            api_resource or settings.IDENTITY_API_RESOURCE or f"{self.endpoint}/api"
        )
        self._transport = transport
        self._token: Optional[CachedToken] = None
        self._token_lock = asyncio.Lock()

    def _client(self) -> httpx.AsyncClient:
        if not self.endpoint:
            raise ConfigurationError("IDENTITY_ENDPOINT is not configured")
        return httpx.AsyncClient(
            base_url=self.endpoint,
            timeout=settings.IDENTITY_TIMEOUT_SECONDS,
            transport=self._transport,
        )

    @staticmethod
    async def _send(method, url: str, **kwargs) -> httpx.Response:
        try:
            response = await method(url, **kwargs)
        except httpx.RequestError as exc:
            raise IdentityServiceError(f"Identity service request failed: {exc}") from exc
        if response.status_code >= 400:
            raise IdentityServiceError(f"Identity service returned HTTP {response.status_code} for {url}")
        return response

    async def get_access_token(self) -> str:
        """Return a cached M2M token, fetching at most one replacement at a time."""
        cached = self._token
        if cached and cached.is_fresh(time.time()):
            return cached.token

        async with self._token_lock:
            cached = self._token
            if cached and cached.is_fresh(time.time()):
                return cached.token

            async with self._client() as client:
                response = await self._send(
                    client.post,
                    "/oidc/token",
                    data={
                        "grant_type": "client_credentials",
                        "client_id": self.app_id,
                        "client_secret": self.app_secret,
                        "resource": self.api_resource,
                        "scope": "all",
                    },
                )
                payload = response.json()

            access_token = payload.get("access_token") if isinstance(payload, dict) else None
            if not access_token:
                raise IdentityServiceError("Identity service token response missing access_token")
            expires_in = int(payload.get("expires_in") or DEFAULT_TOKEN_LIFETIME_SECONDS)
            self._token = CachedToken(token=access_token, expires_at=time.time() + expires_in)
            logger.debug("Fetched identity service token, expires in %ss", expires_in)
            return self._token.token

    async def organizations_for_user(self, user_id: str) -> List[OrganizationRef]:
        token = await self.get_access_token()
        async with self._client() as client:
            response = await self._send(
                client.get,
                f"/api/users/{quote(user_id, safe='')}/organizations",
                headers={"Authorization": f"Bearer {token}"},
            )
            try:
                return _organizations_adapter.validate_python(response.json() or [])
            except ValidationError as exc:
                raise IdentityServiceError(f"Unexpected organizations response: {exc}") from exc


_identity_client: Optional[IdentityClient] = None


def get_identity_client() -> IdentityClient:
    global _identity_client
    if _identity_client is None:
        _identity_client = IdentityClient()
    return _identity_client


async def organization_ids_for_user(user_id: str) -> List[str]:
    organizations = await get_identity_client().organizations_for_user(user_id)
    return [organization.id for organization in organizations]


async def ensure_organization_access(user_id: str, organization_id: str) -> None:
    """Reject users who are not members of `organization_id`."""
    if organization_id not in await organization_ids_for_user(user_id):
        raise AccessDeniedError("You do not have access to this organization's resources")
