"""Website <-> connection link table."""

from sqlalchemy import Column, String, DateTime, ForeignKey
from sqlalchemy.sql import func

from database import Base


class WebsiteConnection(Base):
    """A post reaching a connection is delivered to every linked active website."""

    __tablename__ = "website_connections"

    website_id = Column(String, ForeignKey("websites.id", ondelete="CASCADE"), primary_key=True)
    connection_id = Column(String, ForeignKey("connections.id", ondelete="CASCADE"), primary_key=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
