"""Models package."""

from .connection import Connection
from .post import Post
from .website import Website
from .website_connection import WebsiteConnection
from .webhook_delivery import WebhookDelivery
from .post_attachment_mapping import PostAttachmentMapping
