"""Scheduled and on-demand post synchronization for platform connections."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import List, Optional, Set, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from config import settings
from database import async_session_maker
from ingestion.facebook import FacebookGraphClient, create_graph_client
from ingestion.schemas import FeedPost, GraphAttachment
from models.connection import Connection
from models.post import Post
from models.webhook_delivery import WebhookDelivery
from services.attachments import (
    fetch_post_attachments,
    flatten_attachments,
    is_known_attachment,
    record_attachment_mappings,
)
from services.errors import AuthExpiredError, InvalidSyncOptionsError, NotFoundError, SyncError
from services.identity import ensure_organization_access
from services.tokens import as_utc, ensure_fresh_token, get_decrypted_access_token
from services.webhooks import PostPayload, deliver_post, redeliver_post

logger = logging.getLogger(__name__)

DEFAULT_WINDOW = 10
MAX_WINDOW = 100
DEFAULT_LIMIT = 10


@dataclass(frozen=True)
class SyncOptions:
    """Bounded "inspect the last N posts" cycle: fetch `window` posts, process `[offset, offset+limit)`."""

    window: int
    offset: int
    limit: int


@dataclass
class SyncResult:
    connection_id: str
    posts_fetched: int = 0
    posts_created: int = 0
    posts_redelivered: int = 0
    posts_skipped: int = 0

    @property
    def posts_processed(self) -> int:
        return self.posts_created + self.posts_redelivered


@dataclass
class BatchResult:
    connections_count: int = 0
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0


def _non_negative(value: Optional[int], default: int) -> int:
    if value is None or value < 0:
        return default
    return value


def resolve_sync_options(
    window: Optional[int] = None,
    offset: Optional[int] = None,
    limit: Optional[int] = None,
) -> Optional[SyncOptions]:
    """Validate on-demand pagination parameters; None means a routine cycle."""
    if window is None and offset is None and limit is None:
        return None

    resolved_window = min(max(_non_negative(window, DEFAULT_WINDOW), 1), MAX_WINDOW)
    resolved_offset = _non_negative(offset, 0)
    if resolved_offset >= resolved_window:
        raise InvalidSyncOptionsError("offset must be less than window")

    remaining = resolved_window - resolved_offset
    default_limit = min(DEFAULT_LIMIT, remaining)
    resolved_limit = min(max(_non_negative(limit, default_limit), 1), remaining)
    if resolved_offset + resolved_limit > resolved_window:
        raise InvalidSyncOptionsError("offset + limit must not exceed window")

    return SyncOptions(window=resolved_window, offset=resolved_offset, limit=resolved_limit)


def _get_graph_client() -> FacebookGraphClient:
    return create_graph_client()


def build_post_payload(
    feed_post: FeedPost,
    attachments: Optional[List[GraphAttachment]],
    posted_at: datetime,
) -> PostPayload:
    flattened = flatten_attachments(attachments)
    return PostPayload(
        content=feed_post.message or feed_post.story or "",
        post_type=feed_post.status_type or "status",
        metadata={
            "permalinkUrl": feed_post.permalink_url,
            "link": feed_post.link,
            "story": feed_post.story,
        },
        attachments=flattened or None,
        posted_at=posted_at,
    )


async def fetch_feed_posts(
    graph: FacebookGraphClient,
    connection: Connection,
    token: str,
    *,
    since: int,
    max_posts: Optional[int] = None,
) -> List[FeedPost]:
    """Follow feed cursors until the platform runs out of pages or `max_posts` is reached."""
    page_size = settings.SYNC_PAGE_SIZE
    if max_posts is not None:
        page_size = max(1, min(max_posts, page_size))

    page = await graph.get_feed_page(
        connection.page_id or connection.platform_user_id,
        token,
        since=since,
        limit=page_size,
        is_page=bool(connection.page_id),
    )
    posts = list(page.data)
    while page.next_url and page.data and (max_posts is None or len(posts) < max_posts):
        page = await graph.get_feed_page_by_url(page.next_url)
        posts.extend(page.data)

    if max_posts is not None:
        posts = posts[:max_posts]
    return posts


async def _find_post(db: AsyncSession, platform_post_id: str) -> Optional[Post]:
    result = await db.execute(select(Post).where(Post.platform_post_id == platform_post_id))
    return result.scalar_one_or_none()


async def _get_or_create_post(
    db: AsyncSession,
    connection: Connection,
    feed_post: FeedPost,
) -> Tuple[Post, bool]:
    existing = await _find_post(db, feed_post.id)
    if existing is not None:
        return existing, False

    post = Post(
        organization_id=connection.organization_id,
        connection_id=connection.id,
        platform_post_id=feed_post.id,
        content=feed_post.message or feed_post.story,
        post_type=feed_post.status_type or "status",
        posted_at=feed_post.posted_at() or datetime.now(timezone.utc),
        webhook_sent=False,
    )
    db.add(post)
    try:
        await db.commit()
    except IntegrityError:
        # Another sync for the same post won the insert.
        await db.rollback()
        await db.refresh(connection)
        existing = await _find_post(db, feed_post.id)
        if existing is None:
            raise
        return existing, False
    return post, True


async def _deactivate(db: AsyncSession, connection: Connection, reason: Exception) -> None:
    logger.warning("Token rejected for connection %s, marking as inactive: %s", connection.id, reason)
    connection.is_active = False
    await db.commit()


async def _process_feed_post(
    db: AsyncSession,
    graph: FacebookGraphClient,
    connection: Connection,
    token: str,
    feed_post: FeedPost,
    result: SyncResult,
) -> None:
    if await is_known_attachment(db, connection.id, feed_post.id):
        logger.debug("Feed item %s is an attachment of an imported post, skipping", feed_post.id)
        result.posts_skipped += 1
        return

    post, created = await _get_or_create_post(db, connection, feed_post)
    if not created and not settings.SYNC_REDELIVER_EXISTING_POSTS:
        result.posts_skipped += 1
        return

    attachments = await fetch_post_attachments(graph, feed_post.id, token)
    if created:
        await record_attachment_mappings(db, connection.id, feed_post.id, attachments)

    payload = build_post_payload(feed_post, attachments, as_utc(post.posted_at))
    try:
        await deliver_post(db, post, payload)
    except Exception:
        logger.exception("Webhook dispatch for post %s failed, continuing with connection %s", post.id, connection.id)
        await db.rollback()
        await db.refresh(connection)
    if created:
        result.posts_created += 1
    else:
        result.posts_redelivered += 1


async def sync_connection(
    db: AsyncSession,
    graph: FacebookGraphClient,
    connection: Connection,
    options: Optional[SyncOptions] = None,
) -> SyncResult:
    """
    Run one sync cycle for a connection.

    Routine cycles read from `last_sync_at` (or the default lookback) and advance
    it afterwards. Capped cycles read the latest `options.window` posts, process
    the `offset`/`limit` slice, and never move the watermark.
    """
    result = SyncResult(connection_id=connection.id)
    connection = await ensure_fresh_token(db, graph, connection)
    token = get_decrypted_access_token(connection)

    cycle_started_at = datetime.now(timezone.utc)
    capped = options is not None
    if capped:
        since = 0
        max_posts: Optional[int] = options.window
    else:
        last_sync_at = as_utc(connection.last_sync_at)
        window_start = last_sync_at or cycle_started_at - timedelta(hours=settings.SYNC_DEFAULT_LOOKBACK_HOURS)
        since = int(window_start.timestamp())
        max_posts = None

    try:
        posts = await fetch_feed_posts(graph, connection, token, since=since, max_posts=max_posts)
    except AuthExpiredError as exc:
        await _deactivate(db, connection, exc)
        raise

    if capped:
        posts = posts[options.offset:options.offset + options.limit]
    result.posts_fetched = len(posts)
    logger.info("Found %s posts to process for connection %s", len(posts), connection.id)

    seen: Set[str] = set()
    for feed_post in posts:
        if feed_post.id in seen:
            continue
        seen.add(feed_post.id)
        await _process_feed_post(db, graph, connection, token, feed_post, result)

    if not capped:
        connection.last_sync_at = cycle_started_at
        await db.commit()

    logger.info(
        "Connection %s synced: fetched=%s created=%s redelivered=%s skipped=%s",
        connection.id,
        result.posts_fetched,
        result.posts_created,
        result.posts_redelivered,
        result.posts_skipped,
    )
    return result


async def sync_all_connections() -> BatchResult:
    """Sync every active connection, one at a time. One failure never blocks the rest."""
    async with async_session_maker() as db:
        id_result = await db.execute(
            select(Connection.id)
            .where(Connection.is_active.is_(True))
            .order_by(Connection.created_at.asc(), Connection.id.asc())
        )
        connection_ids = list(id_result.scalars().all())

    logger.info("Found %s active connections to sync", len(connection_ids))
    batch = BatchResult(connections_count=len(connection_ids))
    if not connection_ids:
        return batch

    async with _get_graph_client() as graph:
        for connection_id in connection_ids:
            try:
                async with async_session_maker() as db:
                    connection = await db.get(Connection, connection_id)
                    if connection is None or not connection.is_active:
                        logger.info("Connection %s no longer active, skipping", connection_id)
                        batch.skipped += 1
                        continue
                    await sync_connection(db, graph, connection)
                batch.succeeded += 1
            except SyncError as exc:
                batch.failed += 1
                logger.error("Failed to sync connection %s: %s", connection_id, exc)
            except Exception:
                batch.failed += 1
                logger.exception("Unexpected error while syncing connection %s", connection_id)
    return batch


async def sync_connection_by_id(
    db: AsyncSession,
    connection_id: str,
    user_id: str,
    options: Optional[SyncOptions] = None,
) -> SyncResult:
    """On-demand sync of one connection on behalf of an organization member."""
    connection = await db.get(Connection, connection_id)
    if connection is None:
        raise NotFoundError("Connection not found")
    await ensure_organization_access(user_id, connection.organization_id)

    async with _get_graph_client() as graph:
        return await sync_connection(db, graph, connection, options)


async def resend_post(db: AsyncSession, post_id: str, user_id: str) -> List[WebhookDelivery]:
    """Re-fetch a post from the platform and deliver it again, appending new ledger rows."""
    post = await db.get(Post, post_id)
    if post is None:
        raise NotFoundError("Post not found")
    await ensure_organization_access(user_id, post.organization_id)

    connection = await db.get(Connection, post.connection_id)
    if connection is None:
        raise NotFoundError("Connection not found")

    async with _get_graph_client() as graph:
        connection = await ensure_fresh_token(db, graph, connection)
        token = get_decrypted_access_token(connection)
        try:
            feed_post = await graph.get_post(post.platform_post_id, token)
        except AuthExpiredError as exc:
            await _deactivate(db, connection, exc)
            raise
        attachments = await fetch_post_attachments(graph, post.platform_post_id, token)

    payload = build_post_payload(feed_post, attachments, as_utc(post.posted_at))
    return await redeliver_post(db, post, payload)
