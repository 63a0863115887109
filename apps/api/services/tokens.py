"""Access-token lifecycle for platform connections."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from ingestion.facebook import FacebookGraphClient
from models.connection import Connection
from services.crypto import decrypt_token, encrypt_token
from services.errors import AuthExpiredError, TransientPlatformError

logger = logging.getLogger(__name__)

# Graph omits expires_in for some long-lived tokens; they last about 60 days.
DEFAULT_LONG_LIVED_TOKEN_SECONDS = 60 * 24 * 60 * 60


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Normalize datetimes read back from the database (SQLite drops tzinfo)."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def should_refresh_token(connection: Connection, now: Optional[datetime] = None) -> bool:
    """Return True when the token has no expiry, is expired, or expires within the threshold."""
    expires_at = as_utc(connection.token_expires_at)
    if expires_at is None:
        logger.debug("Connection %s has no token expiry, will refresh", connection.id)
        return True

    now = now or datetime.now(timezone.utc)
    threshold = timedelta(days=settings.FACEBOOK_TOKEN_REFRESH_THRESHOLD_DAYS)
    remaining = expires_at - now
    if remaining <= threshold:
        logger.debug(
            "Connection %s token expires in %.1f days, will refresh",
            connection.id,
            remaining.total_seconds() / 86400,
        )
        return True
    return False


def get_decrypted_access_token(connection: Connection) -> str:
    """Decrypt the stored access token. The plaintext is never logged."""
    return decrypt_token(connection.access_token_encrypted)


def _expiry_from(expires_in: Optional[int], now: Optional[datetime] = None) -> datetime:
    now = now or datetime.now(timezone.utc)
    seconds = expires_in if expires_in and expires_in > 0 else DEFAULT_LONG_LIVED_TOKEN_SECONDS
    return now + timedelta(seconds=seconds)


async def _exchange_for_connection_token(
    graph: FacebookGraphClient,
    token: str,
    page_id: Optional[str],
) -> tuple[str, datetime]:
    long_lived = await graph.exchange_long_lived_token(token)
    final_token = long_lived.access_token
    if page_id:
        final_token = await graph.get_page_access_token(long_lived.access_token, page_id)
    return final_token, _expiry_from(long_lived.expires_in)


async def refresh_connection_token(
    db: AsyncSession,
    graph: FacebookGraphClient,
    connection: Connection,
) -> Connection:
    """
    Exchange the connection's token for a fresh long-lived one and persist it.

    Returns the updated connection. On 401/403 the connection is deactivated and
    AuthExpiredError is re-raised; other failures leave it active.
    """
    logger.info(
        "Refreshing token for connection %s (platform user %s)",
        connection.id,
        connection.platform_user_id,
    )
    try:
        current_token = get_decrypted_access_token(connection)
        new_token, expires_at = await _exchange_for_connection_token(
            graph, current_token, connection.page_id
        )
    except AuthExpiredError as exc:
        logger.warning(
            "Token refresh rejected with %s for connection %s, marking as inactive",
            exc.status_code,
            connection.id,
        )
        connection.is_active = False
        await db.commit()
        raise
    except TransientPlatformError as exc:
        logger.error("Failed to refresh token for connection %s: %s", connection.id, exc)
        raise

    connection.access_token_encrypted = encrypt_token(new_token)
    connection.token_expires_at = expires_at
    await db.commit()
    logger.info(
        "Token refreshed for connection %s. New expiration: %s",
        connection.id,
        expires_at.isoformat(),
    )
    return connection


async def ensure_fresh_token(
    db: AsyncSession,
    graph: FacebookGraphClient,
    connection: Connection,
) -> Connection:
    """Refresh when due. Auth failures propagate; transient failures keep the existing token."""
    if not should_refresh_token(connection):
        return connection
    try:
        return await refresh_connection_token(db, graph, connection)
    except AuthExpiredError:
        logger.error(
            "Token refresh failed for connection %s, connection marked as inactive",
            connection.id,
        )
        raise
    except TransientPlatformError as exc:
        logger.warning(
            "Token refresh failed for connection %s, continuing with existing token: %s",
            connection.id,
            exc,
        )
        return connection


async def create_connection(
    db: AsyncSession,
    graph: FacebookGraphClient,
    *,
    organization_id: str,
    platform_user_id: str,
    access_token: str,
    page_id: Optional[str] = None,
    name: Optional[str] = None,
) -> Connection:
    """Persist a new connection from an OAuth token, upgraded to a long-lived (page) token."""
    final_token, expires_at = await _exchange_for_connection_token(graph, access_token, page_id)
    connection = Connection(
        organization_id=organization_id,
        platform_user_id=platform_user_id,
        page_id=page_id or None,
        name=name,
        access_token_encrypted=encrypt_token(final_token),
        token_expires_at=expires_at,
        is_active=True,
    )
    db.add(connection)
    await db.commit()
    await db.refresh(connection)
    logger.info(
        "Saved connection %s for organization %s (page %s)",
        connection.id,
        organization_id,
        page_id or "none",
    )
    return connection
