"""Post attachment retrieval, flattening, and attachment-to-post mapping."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from ingestion.facebook import FacebookGraphClient
from ingestion.schemas import GraphAttachment
from models.post_attachment_mapping import PostAttachmentMapping
from services.errors import SyncError

logger = logging.getLogger(__name__)


async def fetch_post_attachments(
    graph: FacebookGraphClient,
    platform_post_id: str,
    token: str,
) -> Optional[List[GraphAttachment]]:
    """
    Fetch every attachment page for a post.

    Returns None when the post has no attachments or the call fails; a missing
    attachment list never fails the sync.
    """
    attachments: List[GraphAttachment] = []
    try:
        page = await graph.get_attachments_page(platform_post_id, token)
        attachments.extend(page.data)
        while page.next_url:
            page = await graph.get_attachments_page_by_url(page.next_url)
            attachments.extend(page.data)
    except SyncError as exc:
        logger.warning("Failed to fetch attachments for post %s: %s", platform_post_id, exc)
        return None
    return attachments or None


def _normalize(attachment: GraphAttachment, parent: Optional[GraphAttachment] = None) -> Dict[str, Any]:
    media = attachment.media
    image = media.image if media else None
    media_url = (media.source if media else None) or (image.src if image else None) or attachment.url
    return {
        "kind": attachment.media_type or attachment.type or "unknown",
        "mediaUrl": media_url,
        "url": attachment.url or (parent.url if parent else None),
        "targetId": attachment.target.id if attachment.target else None,
        "title": attachment.title or (parent.title if parent else None),
        "description": attachment.description,
        "width": image.width if image else None,
        "height": image.height if image else None,
    }


def flatten_attachments(attachments: Optional[List[GraphAttachment]]) -> List[Dict[str, Any]]:
    """Normalize attachments into a flat list; album children replace their parent."""
    flattened: List[Dict[str, Any]] = []
    for attachment in attachments or []:
        children = attachment.subattachments.data if attachment.subattachments else []
        if children:
            flattened.extend(_normalize(child, parent=attachment) for child in children)
        else:
            flattened.append(_normalize(attachment))
    return flattened


def _target_ids(attachments: Optional[List[GraphAttachment]]) -> List[str]:
    ids: List[str] = []
    for attachment in attachments or []:
        candidates = [attachment]
        if attachment.subattachments:
            candidates.extend(attachment.subattachments.data)
        for candidate in candidates:
            target_id = candidate.target.id if candidate.target else None
            if target_id and target_id not in ids:
                ids.append(target_id)
    return ids


async def record_attachment_mappings(
    db: AsyncSession,
    connection_id: str,
    platform_post_id: str,
    attachments: Optional[List[GraphAttachment]],
) -> int:
    """Remember which post each attachment object belongs to. Returns rows added."""
    target_ids = [tid for tid in _target_ids(attachments) if tid != platform_post_id]
    if not target_ids:
        return 0

    result = await db.execute(
        select(PostAttachmentMapping.attachment_platform_id).where(
            PostAttachmentMapping.connection_id == connection_id,
            PostAttachmentMapping.attachment_platform_id.in_(target_ids),
        )
    )
    existing = set(result.scalars().all())
    added = 0
    for target_id in target_ids:
        if target_id in existing:
            continue
        db.add(
            PostAttachmentMapping(
                connection_id=connection_id,
                attachment_platform_id=target_id,
                platform_post_id=platform_post_id,
            )
        )
        added += 1
    if added:
        await db.commit()
    return added


async def is_known_attachment(db: AsyncSession, connection_id: str, platform_id: str) -> bool:
    """True when `platform_id` was already imported as another post's attachment."""
    candidates = {platform_id}
    # Feed ids are `{owner}_{object}`; attachment targets carry the bare object id.
    if "_" in platform_id:
        candidates.add(platform_id.rsplit("_", 1)[-1])
    result = await db.execute(
        select(PostAttachmentMapping).where(
            PostAttachmentMapping.connection_id == connection_id,
            PostAttachmentMapping.attachment_platform_id.in_(candidates),
            PostAttachmentMapping.platform_post_id != platform_id,
        )
    )
    return result.scalars().first() is not None
