"""Connection model for linked social-platform accounts."""

from sqlalchemy import Boolean, Column, String, DateTime, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import uuid

from database import Base


class Connection(Base):
    """Linked Facebook page or user profile, polled by the sync engine."""

    __tablename__ = "connections"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    organization_id = Column(String, nullable=False, index=True)
    platform = Column(String, nullable=False, default="facebook")
    platform_user_id = Column(String, nullable=False, index=True)
    page_id = Column(String, nullable=True)
    name = Column(String, nullable=True)
    access_token_encrypted = Column(Text, nullable=False)
    token_expires_at = Column(DateTime(timezone=True), nullable=True)
    last_sync_at = Column(DateTime(timezone=True), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    # Relationships
    posts = relationship("Post", back_populates="connection")
    websites = relationship(
        "Website",
        secondary="website_connections",
        back_populates="connections",
        viewonly=True,
    )
