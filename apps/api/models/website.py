"""Subscriber website model."""

from sqlalchemy import Boolean, Column, String, DateTime, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import uuid

from database import Base


class Website(Base):
    """Registered webhook target that receives imported posts."""

    __tablename__ = "websites"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    organization_id = Column(String, nullable=False, index=True)
    name = Column(String, nullable=True)
    webhook_url = Column(String, nullable=False)  # base URL, import/test paths are appended
    signing_key_encrypted = Column(Text, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    connections = relationship(
        "Connection",
        secondary="website_connections",
        back_populates="websites",
        viewonly=True,
    )
    deliveries = relationship("WebhookDelivery", back_populates="website")
