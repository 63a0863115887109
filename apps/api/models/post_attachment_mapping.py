"""Attachment -> post mapping used to skip media objects already imported as attachments."""

from sqlalchemy import Column, String

from database import Base


class PostAttachmentMapping(Base):
    __tablename__ = "post_attachment_mappings"

    connection_id = Column(String, primary_key=True)
    attachment_platform_id = Column(String, primary_key=True)
    platform_post_id = Column(String, nullable=False)
