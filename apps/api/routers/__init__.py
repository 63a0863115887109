"""Routers package."""

from . import (
    health,
    auth,
    scheduler,
    posts,
    websites,
    webhook_deliveries,
)
