"""Response schemas for the Facebook Graph API endpoints the importer calls."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError


class GraphModel(BaseModel):
    model_config = ConfigDict(extra="ignore")


class GraphPaging(GraphModel):
    next: Optional[str] = None


class GraphErrorBody(GraphModel):
    message: Optional[str] = None
    type: Optional[str] = None
    code: Optional[int] = None


class GraphErrorEnvelope(GraphModel):
    error: Optional[GraphErrorBody] = None


class TokenExchange(GraphModel):
    """`/oauth/access_token` response."""

    access_token: str = Field(min_length=1)
    token_type: Optional[str] = None
    expires_in: Optional[int] = None


class PageAccessToken(GraphModel):
    """`/{page-id}?fields=access_token` response; the token is absent without page permissions."""

    id: Optional[str] = None
    access_token: Optional[str] = None


class FeedPost(GraphModel):
    id: str = Field(min_length=1)
    message: Optional[str] = None
    story: Optional[str] = None
    created_time: Optional[str] = None
    permalink_url: Optional[str] = None
    link: Optional[str] = None
    status_type: Optional[str] = None

    def posted_at(self) -> Optional[datetime]:
        return parse_graph_time(self.created_time)


class FeedPage(GraphModel):
    data: List[FeedPost] = Field(default_factory=list)
    paging: Optional[GraphPaging] = None

    @property
    def next_url(self) -> Optional[str]:
        return self.paging.next if self.paging else None


class AttachmentImage(GraphModel):
    src: Optional[str] = None
    width: Optional[int] = None
    height: Optional[int] = None


class AttachmentMedia(GraphModel):
    image: Optional[AttachmentImage] = None
    source: Optional[str] = None


class AttachmentTarget(GraphModel):
    id: Optional[str] = None
    url: Optional[str] = None


class GraphAttachment(GraphModel):
    type: Optional[str] = None
    media_type: Optional[str] = None
    url: Optional[str] = None
    title: Optional[str] = None
    description: Optional[str] = None
    media: Optional[AttachmentMedia] = None
    target: Optional[AttachmentTarget] = None
    subattachments: Optional["AttachmentPage"] = None


class AttachmentPage(GraphModel):
    data: List[GraphAttachment] = Field(default_factory=list)
    paging: Optional[GraphPaging] = None

    @property
    def next_url(self) -> Optional[str]:
        return self.paging.next if self.paging else None


GraphAttachment.model_rebuild()


def parse_graph_time(value: Optional[str]) -> Optional[datetime]:
    """Parse Graph timestamps (`2024-05-01T10:00:00+0000`) into aware UTC datetimes."""
    if not value:
        return None
    for fmt in ("%Y-%m-%dT%H:%M:%S%z", "%Y-%m-%dT%H:%M:%S.%f%z"):
        try:
            return datetime.strptime(value, fmt).astimezone(timezone.utc)
        except ValueError:
            continue
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def _graph_error(payload: Any) -> Optional[GraphErrorBody]:
    if not isinstance(payload, dict):
        return None
    try:
        return GraphErrorEnvelope.model_validate(payload).error
    except ValidationError:
        return None


def graph_error_message(payload: Any) -> Optional[str]:
    """Extract the `error.message` of a Graph error response, if any."""
    error = _graph_error(payload)
    return error.message if error and error.message else None


def graph_error_code(payload: Any) -> Optional[int]:
    error = _graph_error(payload)
    return error.code if error else None
