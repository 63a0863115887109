"""Imported social post model."""

from sqlalchemy import Boolean, Column, String, DateTime, ForeignKey, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import uuid

from database import Base


class Post(Base):
    """One platform post, stored once per platform post id."""

    __tablename__ = "posts"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    organization_id = Column(String, nullable=False, index=True)
    connection_id = Column(String, ForeignKey("connections.id"), nullable=False, index=True)
    platform_post_id = Column(String, nullable=False, unique=True, index=True)
    content = Column(Text, nullable=True)
    post_type = Column(String, nullable=True)
    posted_at = Column(DateTime(timezone=True), nullable=False)
    webhook_sent = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    connection = relationship("Connection", back_populates="posts")
    deliveries = relationship(
        "WebhookDelivery",
        back_populates="post",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
