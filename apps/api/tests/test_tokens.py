from datetime import datetime, timedelta, timezone

import pytest

from models.connection import Connection
from services.crypto import decrypt_token, encrypt_token
from services.errors import AuthExpiredError
from services.tokens import (
    DEFAULT_LONG_LIVED_TOKEN_SECONDS,
    as_utc,
    create_connection,
    ensure_fresh_token,
    refresh_connection_token,
    should_refresh_token,
)
from conftest import ORG_ID, seed_connection


def _connection(expires_at):
    return Connection(
        id="conn-x",
        organization_id=ORG_ID,
        platform_user_id="fb-user",
        access_token_encrypted=encrypt_token("token"),
        token_expires_at=expires_at,
    )


def test_should_refresh_when_expiry_missing():
    assert should_refresh_token(_connection(None)) is True


def test_should_refresh_threshold_boundaries():
    now = datetime(2024, 5, 1, tzinfo=timezone.utc)
    assert should_refresh_token(_connection(now + timedelta(days=8)), now=now) is False
    assert should_refresh_token(_connection(now + timedelta(days=7)), now=now) is True
    assert should_refresh_token(_connection(now + timedelta(days=3)), now=now) is True
    assert should_refresh_token(_connection(now - timedelta(days=1)), now=now) is True


def test_should_refresh_accepts_naive_database_values():
    now = datetime(2024, 5, 1, tzinfo=timezone.utc)
    naive = (now + timedelta(days=30)).replace(tzinfo=None)
    assert should_refresh_token(_connection(naive), now=now) is False
    assert as_utc(naive).tzinfo == timezone.utc


@pytest.mark.asyncio
async def test_refresh_exchanges_user_token_then_page_token(session_maker, graph_stub):
    await seed_connection(session_maker, token_expires_at=datetime.now(timezone.utc) + timedelta(days=2))
    graph_stub.add("/oauth/access_token", {"access_token": "long-user-token", "expires_in": 5184000})
    graph_stub.add("/page-1", {"id": "page-1", "access_token": "fresh-page-token"})

    async with session_maker() as session, graph_stub.client() as graph:
        connection = await session.get(Connection, "conn-1")
        before = datetime.now(timezone.utc)
        refreshed = await refresh_connection_token(session, graph, connection)

    assert decrypt_token(refreshed.access_token_encrypted) == "fresh-page-token"
    assert as_utc(refreshed.token_expires_at) >= before + timedelta(seconds=5184000 - 5)
    exchange = graph_stub.calls("/oauth/access_token")[0]
    assert exchange.url.params["grant_type"] == "fb_exchange_token"
    assert exchange.url.params["fb_exchange_token"] == "page-token"
    assert graph_stub.calls("/page-1")[0].url.params["access_token"] == "long-user-token"

    async with session_maker() as session:
        stored = await session.get(Connection, "conn-1")
        assert decrypt_token(stored.access_token_encrypted) == "fresh-page-token"
        assert stored.is_active is True


@pytest.mark.asyncio
async def test_refresh_defaults_expiry_when_platform_omits_it(session_maker, graph_stub):
    await seed_connection(session_maker, page_id=None, token_expires_at=None)
    graph_stub.add("/oauth/access_token", {"access_token": "long-user-token"})

    async with session_maker() as session, graph_stub.client() as graph:
        connection = await session.get(Connection, "conn-1")
        before = datetime.now(timezone.utc)
        refreshed = await refresh_connection_token(session, graph, connection)

    assert decrypt_token(refreshed.access_token_encrypted) == "long-user-token"
    assert as_utc(refreshed.token_expires_at) >= before + timedelta(seconds=DEFAULT_LONG_LIVED_TOKEN_SECONDS - 5)


@pytest.mark.asyncio
async def test_refresh_rejected_deactivates_connection(session_maker, graph_stub):
    await seed_connection(session_maker, token_expires_at=None)
    graph_stub.add(
        "/oauth/access_token",
        {"error": {"message": "Error validating access token", "code": 190}},
        status_code=401,
    )

    async with session_maker() as session, graph_stub.client() as graph:
        connection = await session.get(Connection, "conn-1")
        with pytest.raises(AuthExpiredError) as exc_info:
            await ensure_fresh_token(session, graph, connection)

    assert exc_info.value.status_code == 401
    async with session_maker() as session:
        stored = await session.get(Connection, "conn-1")
        assert stored.is_active is False
        assert decrypt_token(stored.access_token_encrypted) == "page-token"


@pytest.mark.asyncio
async def test_transient_refresh_failure_keeps_existing_token(session_maker, graph_stub):
    await seed_connection(session_maker, token_expires_at=None)
    graph_stub.add("/oauth/access_token", {"error": {"message": "Service unavailable"}}, status_code=503)

    async with session_maker() as session, graph_stub.client() as graph:
        connection = await session.get(Connection, "conn-1")
        result = await ensure_fresh_token(session, graph, connection)

    assert result.is_active is True
    assert len(graph_stub.calls("/oauth/access_token")) == 1
    assert decrypt_token(result.access_token_encrypted) == "page-token"


@pytest.mark.asyncio
async def test_fresh_token_skips_platform(session_maker, graph_stub):
    await seed_connection(session_maker)

    async with session_maker() as session, graph_stub.client() as graph:
        connection = await session.get(Connection, "conn-1")
        await ensure_fresh_token(session, graph, connection)

    assert graph_stub.requests == []


@pytest.mark.asyncio
async def test_create_connection_stores_encrypted_page_token(session_maker, graph_stub):
    graph_stub.add("/oauth/access_token", {"access_token": "long-user-token", "expires_in": 3600})
    graph_stub.add("/page-9", {"id": "page-9", "access_token": "page-9-token"})

    async with session_maker() as session, graph_stub.client() as graph:
        connection = await create_connection(
            session,
            graph,
            organization_id=ORG_ID,
            platform_user_id="fb-user",
            access_token="short-token",
            page_id="page-9",
            name="Page Nine",
        )

    assert connection.is_active is True
    assert connection.access_token_encrypted != "page-9-token"
    assert decrypt_token(connection.access_token_encrypted) == "page-9-token"
