from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from database import Base
import models  # noqa: F401
from ingestion.facebook import FacebookGraphClient
from models.connection import Connection
from models.website import Website
from models.website_connection import WebsiteConnection
from services import identity
from services.crypto import encrypt_token


ORG_ID = "org-1"
OTHER_ORG_ID = "org-2"
USER_ID = "user-1"
GRAPH_BASE_URL = "https://graph.test/v20.0"

Route = Union[Tuple[int, Any], Callable[[httpx.Request], Tuple[int, Any]]]


class GraphStub:
    """In-memory Graph API keyed by path (without the version prefix)."""

    def __init__(self):
        self.routes: Dict[str, Route] = {}
        self.requests: List[httpx.Request] = []

    def add(self, path: str, payload: Any = None, status_code: int = 200) -> None:
        self.routes[path] = (status_code, payload)

    def add_handler(self, path: str, handler: Callable[[httpx.Request], Tuple[int, Any]]) -> None:
        self.routes[path] = handler

    def _handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if path.startswith("/v20.0"):
            path = path[len("/v20.0"):]
        route = self.routes.get(path)
        if route is None:
            return httpx.Response(404, json={"error": {"message": f"Unknown path {path}"}})
        status_code, payload = route(request) if callable(route) else route
        return httpx.Response(status_code, json=payload)

    def calls(self, path: str) -> List[httpx.Request]:
        return [request for request in self.requests if request.url.path.endswith(path)]

    def client(self) -> FacebookGraphClient:
        return FacebookGraphClient(
            base_url=GRAPH_BASE_URL,
            app_id="app-id",
            app_secret="app-secret",
            transport=httpx.MockTransport(self._handle),
        )


class WebhookStub:
    """Subscriber endpoint that records every request and answers with a fixed status."""

    def __init__(self, status_code: int = 200, body: Optional[Dict[str, Any]] = None):
        self.status_code = status_code
        self.body = body if body is not None else {"success": True}
        self.requests: List[httpx.Request] = []
        self.fail_with: Optional[Exception] = None

    def _handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.fail_with is not None:
            raise self.fail_with
        return httpx.Response(self.status_code, json=self.body)

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self._handle))


@pytest_asyncio.fixture
async def session_maker(tmp_path):
    db_path = tmp_path / "importer.db"
    engine = create_async_engine(f"sqlite+aiosqlite:///{db_path}")
    maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield maker
    await engine.dispose()


@pytest.fixture
def graph_stub():
    return GraphStub()


@pytest.fixture
def webhook_stub(monkeypatch):
    stub = WebhookStub()
    monkeypatch.setattr("services.webhooks._get_webhook_client", stub.client)
    return stub


@pytest.fixture
def identity_stub(monkeypatch):
    """Identity service where USER_ID belongs to ORG_ID only."""
    memberships: Dict[str, List[str]] = {USER_ID: [ORG_ID]}
    token_requests: List[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/oidc/token":
            token_requests.append(request)
            return httpx.Response(200, json={"access_token": "m2m-token", "expires_in": 3600})
        user_id = request.url.path.split("/")[3]
        return httpx.Response(200, json=[{"id": org} for org in memberships.get(user_id, [])])

    client = identity.IdentityClient(
        endpoint="https://identity.test",
        app_id="m2m-app",
        app_secret="m2m-secret",
        transport=httpx.MockTransport(handler),
    )
    monkeypatch.setattr(identity, "_identity_client", client)
    client.memberships = memberships
    client.token_requests = token_requests
    return client


_DEFAULT_EXPIRY = object()


async def seed_connection(
    maker,
    *,
    connection_id: str = "conn-1",
    organization_id: str = ORG_ID,
    page_id: Optional[str] = "page-1",
    access_token: str = "page-token",
    token_expires_at: Any = _DEFAULT_EXPIRY,
    last_sync_at: Optional[datetime] = None,
    is_active: bool = True,
) -> Connection:
    if token_expires_at is _DEFAULT_EXPIRY:
        token_expires_at = datetime.now(timezone.utc) + timedelta(days=30)
    async with maker() as session:
        connection = Connection(
            id=connection_id,
            organization_id=organization_id,
            platform_user_id=f"user-{connection_id}",
            page_id=page_id,
            name="Test Page",
            access_token_encrypted=encrypt_token(access_token),
            token_expires_at=token_expires_at,
            last_sync_at=last_sync_at,
            is_active=is_active,
        )
        session.add(connection)
        await session.commit()
        return connection


async def seed_website(
    maker,
    connection_id: str,
    *,
    website_id: str = "site-1",
    organization_id: str = ORG_ID,
    webhook_url: str = "https://site.test",
    signing_key: Optional[str] = "site-secret",
    signing_key_encrypted: Optional[str] = None,
    is_active: bool = True,
) -> Website:
    if signing_key_encrypted is None and signing_key is not None:
        signing_key_encrypted = encrypt_token(signing_key)
    async with maker() as session:
        website = Website(
            id=website_id,
            organization_id=organization_id,
            name=f"Site {website_id}",
            webhook_url=webhook_url,
            signing_key_encrypted=signing_key_encrypted,
            is_active=is_active,
        )
        session.add(website)
        session.add(WebsiteConnection(website_id=website_id, connection_id=connection_id))
        await session.commit()
        return website
