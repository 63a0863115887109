"""Webhook delivery ledger model."""

from sqlalchemy import Column, String, DateTime, ForeignKey, Integer, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import uuid

from database import Base


DELIVERY_STATUS_SUCCESS = "success"
DELIVERY_STATUS_FAILED = "failed"


class WebhookDelivery(Base):
    """Outcome of one (post, website) delivery attempt. Rows are never updated."""

    __tablename__ = "webhook_deliveries"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    post_id = Column(String, ForeignKey("posts.id", ondelete="CASCADE"), nullable=False, index=True)
    website_id = Column(String, ForeignKey("websites.id"), nullable=False, index=True)
    status = Column(String(20), nullable=False, index=True)
    status_code = Column(Integer, nullable=True)
    error_message = Column(Text, nullable=True)
    sent_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), index=True)

    post = relationship("Post", back_populates="deliveries")
    website = relationship("Website", back_populates="deliveries")
