import json
from datetime import datetime, timezone

import httpx
import pytest
from sqlalchemy.future import select

from models.post import Post
from models.webhook_delivery import WebhookDelivery
from models.website import Website
from services.webhooks import (
    PostPayload,
    TEST_MESSAGE,
    build_test_url,
    build_webhook_url,
    canonical_json,
    deliver_post,
    redeliver_post,
    send_test_webhook,
    sign_payload,
    verify_signature,
)
from conftest import ORG_ID, seed_connection, seed_website


def _payload():
    return PostPayload(
        content="Hello from the page",
        post_type="mobile_status_update",
        metadata={"permalinkUrl": "https://facebook.com/1", "link": None, "story": None},
        attachments=None,
        posted_at=datetime(2024, 5, 1, 10, 0, tzinfo=timezone.utc),
    )


async def _seed_post(maker, post_id="post-1"):
    async with maker() as session:
        post = Post(
            id=post_id,
            organization_id=ORG_ID,
            connection_id="conn-1",
            platform_post_id=f"page-1_{post_id}",
            content="Hello from the page",
            post_type="mobile_status_update",
            posted_at=datetime(2024, 5, 1, 10, 0, tzinfo=timezone.utc),
            webhook_sent=False,
        )
        session.add(post)
        await session.commit()
        return post


async def _deliveries(maker):
    async with maker() as session:
        result = await session.execute(select(WebhookDelivery).order_by(WebhookDelivery.sent_at))
        return list(result.scalars().all())


def test_signature_covers_canonical_body_without_signature():
    body = {"event": "new_post", "timestamp": "2024-05-01T10:00:00.000Z", "post": {"content": "Café ☕"}}
    signature = sign_payload(body, "secret")

    assert canonical_json(body) == '{"event":"new_post","timestamp":"2024-05-01T10:00:00.000Z","post":{"content":"Café ☕"}}'.encode("utf-8")
    assert len(signature) == 64
    assert verify_signature({**body, "signature": signature}, "secret") is True
    assert verify_signature({**body, "signature": signature}, "other-secret") is False
    assert verify_signature(body, "secret") is False


def test_webhook_urls_join_base_and_paths():
    assert build_webhook_url("https://site.test/") == "https://site.test/wp-json/social-importer/v1/import"
    assert build_test_url("https://site.test") == "https://site.test/wp-json/social-importer/v1/test"


@pytest.mark.asyncio
async def test_successful_delivery_is_signed_and_recorded(session_maker, webhook_stub):
    await seed_connection(session_maker)
    await seed_website(session_maker, "conn-1")
    await _seed_post(session_maker)

    async with session_maker() as session:
        post = await session.get(Post, "post-1")
        deliveries = await deliver_post(session, post, _payload())

    assert [delivery.status for delivery in deliveries] == ["success"]
    request = webhook_stub.requests[0]
    assert str(request.url) == "https://site.test/wp-json/social-importer/v1/import"
    assert request.headers["content-type"] == "application/json"
    body = json.loads(request.content)
    assert list(body.keys())[-1] == "signature"
    assert verify_signature(body, "site-secret")
    assert body["event"] == "new_post"
    assert body["post"]["id"] == "post-1"
    assert body["post"]["platformPostId"] == "page-1_post-1"
    assert body["post"]["postedAt"] == "2024-05-01T10:00:00.000Z"
    assert body["post"]["attachments"] is None

    rows = await _deliveries(session_maker)
    assert len(rows) == 1
    assert rows[0].status_code == 200
    assert rows[0].error_message is None
    async with session_maker() as session:
        assert (await session.get(Post, "post-1")).webhook_sent is True


@pytest.mark.asyncio
async def test_validation_failure_is_recorded_and_post_still_marked_sent(session_maker, webhook_stub):
    webhook_stub.status_code = 422
    webhook_stub.body = {"error": "Invalid signature"}
    await seed_connection(session_maker)
    await seed_website(session_maker, "conn-1")
    await _seed_post(session_maker)

    async with session_maker() as session:
        post = await session.get(Post, "post-1")
        await deliver_post(session, post, _payload())

    rows = await _deliveries(session_maker)
    assert len(rows) == 1
    assert rows[0].status == "failed"
    assert rows[0].status_code == 422
    assert rows[0].error_message == "Validation failure: HTTP 422 - Invalid signature"
    async with session_maker() as session:
        assert (await session.get(Post, "post-1")).webhook_sent is True


@pytest.mark.asyncio
async def test_server_error_is_recorded(session_maker, webhook_stub):
    webhook_stub.status_code = 503
    webhook_stub.body = {"message": "Maintenance"}
    await seed_connection(session_maker)
    await seed_website(session_maker, "conn-1")
    await _seed_post(session_maker)

    async with session_maker() as session:
        post = await session.get(Post, "post-1")
        await deliver_post(session, post, _payload())

    rows = await _deliveries(session_maker)
    assert rows[0].status == "failed"
    assert rows[0].status_code == 503
    assert rows[0].error_message.startswith("Server error: HTTP 503")


@pytest.mark.asyncio
async def test_missing_signing_key_fails_without_network_call(session_maker, webhook_stub):
    await seed_connection(session_maker)
    await seed_website(session_maker, "conn-1", signing_key=None)
    await _seed_post(session_maker)

    async with session_maker() as session:
        post = await session.get(Post, "post-1")
        await deliver_post(session, post, _payload())

    assert webhook_stub.requests == []
    rows = await _deliveries(session_maker)
    assert rows[0].status == "failed"
    assert rows[0].status_code is None
    assert rows[0].error_message == "Missing encrypted signing key - cannot generate signature"


@pytest.mark.asyncio
async def test_undecryptable_signing_key_fails_without_network_call(session_maker, webhook_stub):
    await seed_connection(session_maker)
    await seed_website(session_maker, "conn-1", signing_key_encrypted="not-a-fernet-token")
    await _seed_post(session_maker)

    async with session_maker() as session:
        post = await session.get(Post, "post-1")
        await deliver_post(session, post, _payload())

    assert webhook_stub.requests == []
    rows = await _deliveries(session_maker)
    assert rows[0].status == "failed"
    assert rows[0].error_message.startswith("Failed to decrypt signing key:")


@pytest.mark.asyncio
async def test_network_error_is_recorded(session_maker, webhook_stub):
    webhook_stub.fail_with = httpx.ConnectError("connection refused")
    await seed_connection(session_maker)
    await seed_website(session_maker, "conn-1")
    await _seed_post(session_maker)

    async with session_maker() as session:
        post = await session.get(Post, "post-1")
        await deliver_post(session, post, _payload())

    rows = await _deliveries(session_maker)
    assert rows[0].status == "failed"
    assert rows[0].status_code is None
    assert rows[0].error_message == "Network error: connection refused"


@pytest.mark.asyncio
async def test_one_failing_website_does_not_block_others(session_maker, webhook_stub):
    await seed_connection(session_maker)
    await seed_website(session_maker, "conn-1", website_id="site-1", signing_key=None)
    await seed_website(session_maker, "conn-1", website_id="site-2", webhook_url="https://other.test")
    await seed_website(session_maker, "conn-1", website_id="site-3", webhook_url="https://off.test", is_active=False)
    await _seed_post(session_maker)

    async with session_maker() as session:
        post = await session.get(Post, "post-1")
        deliveries = await deliver_post(session, post, _payload())

    statuses = {delivery.website_id: delivery.status for delivery in deliveries}
    assert statuses == {"site-1": "failed", "site-2": "success"}
    assert [str(request.url.host) for request in webhook_stub.requests] == ["other.test"]


@pytest.mark.asyncio
async def test_malformed_webhook_url_does_not_block_later_websites(session_maker, webhook_stub):
    await seed_connection(session_maker)
    await seed_website(session_maker, "conn-1", website_id="site-1", webhook_url="https://xn--")
    await seed_website(session_maker, "conn-1", website_id="site-2", webhook_url="https://other.test")
    await _seed_post(session_maker)

    async with session_maker() as session:
        post = await session.get(Post, "post-1")
        deliveries = await deliver_post(session, post, _payload())

    statuses = {delivery.website_id: delivery.status for delivery in deliveries}
    assert statuses == {"site-1": "failed", "site-2": "success"}
    assert [str(request.url.host) for request in webhook_stub.requests] == ["other.test"]
    rows = {row.website_id: row for row in await _deliveries(session_maker)}
    assert rows["site-1"].status_code is None
    assert rows["site-1"].error_message
    async with session_maker() as session:
        assert (await session.get(Post, "post-1")).webhook_sent is True


@pytest.mark.asyncio
async def test_unexpected_transport_error_is_recorded_as_failure(session_maker, webhook_stub):
    webhook_stub.fail_with = RuntimeError("transport exploded")
    await seed_connection(session_maker)
    await seed_website(session_maker, "conn-1")
    await _seed_post(session_maker)

    async with session_maker() as session:
        post = await session.get(Post, "post-1")
        deliveries = await deliver_post(session, post, _payload())

    assert [delivery.status for delivery in deliveries] == ["failed"]
    rows = await _deliveries(session_maker)
    assert rows[0].status_code is None
    assert rows[0].error_message == "Unexpected error: transport exploded"
    async with session_maker() as session:
        assert (await session.get(Post, "post-1")).webhook_sent is True


@pytest.mark.asyncio
async def test_no_active_websites_leaves_post_unsent(session_maker, webhook_stub):
    await seed_connection(session_maker)
    await _seed_post(session_maker)

    async with session_maker() as session:
        post = await session.get(Post, "post-1")
        deliveries = await deliver_post(session, post, _payload())

    assert deliveries == []
    assert webhook_stub.requests == []
    async with session_maker() as session:
        assert (await session.get(Post, "post-1")).webhook_sent is False


@pytest.mark.asyncio
async def test_redelivery_appends_rows(session_maker, webhook_stub):
    await seed_connection(session_maker)
    await seed_website(session_maker, "conn-1", website_id="site-1")
    await seed_website(session_maker, "conn-1", website_id="site-2", webhook_url="https://other.test")
    await _seed_post(session_maker)

    async with session_maker() as session:
        post = await session.get(Post, "post-1")
        await deliver_post(session, post, _payload())
        await redeliver_post(session, post, _payload())

    rows = await _deliveries(session_maker)
    assert len(rows) == 4
    assert sorted(row.website_id for row in rows) == ["site-1", "site-1", "site-2", "site-2"]


@pytest.mark.asyncio
async def test_send_test_webhook_does_not_touch_ledger(session_maker, webhook_stub):
    await seed_connection(session_maker)
    await seed_website(session_maker, "conn-1")

    async with session_maker() as session:
        website = await session.get(Website, "site-1")
        result = await send_test_webhook(website, client=webhook_stub.client())

    assert result.success is True
    assert result.status_code == 200
    request = webhook_stub.requests[0]
    assert str(request.url) == "https://site.test/wp-json/social-importer/v1/test"
    body = json.loads(request.content)
    assert body["event"] == "test"
    assert body["message"] == TEST_MESSAGE
    assert verify_signature(body, "site-secret")
    assert await _deliveries(session_maker) == []


@pytest.mark.asyncio
async def test_send_test_webhook_reports_rejection(session_maker, webhook_stub):
    webhook_stub.status_code = 401
    webhook_stub.body = {"message": "Bad signature"}
    await seed_connection(session_maker)
    await seed_website(session_maker, "conn-1")

    async with session_maker() as session:
        website = await session.get(Website, "site-1")
        result = await send_test_webhook(website)

    assert result.success is False
    assert result.status_code == 401
    assert result.message == "Validation failure: HTTP 401 - Bad signature"
