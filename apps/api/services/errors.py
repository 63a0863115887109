"""Error taxonomy for the sync and delivery pipeline."""

from __future__ import annotations

from typing import Optional


class SyncError(Exception):
    """Base class for pipeline errors."""


class AuthExpiredError(SyncError):
    """Platform rejected the connection's credentials (401/403)."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class TransientPlatformError(SyncError):
    """Network failure or 5xx from the platform; the next tick retries."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class PlatformResponseError(TransientPlatformError):
    """Platform response did not match the expected schema."""


class ConfigurationError(SyncError):
    """Missing or unusable secret material."""


class WebhookDeliveryError(SyncError):
    """A subscriber endpoint did not accept a webhook."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class DeliveryValidationFailure(WebhookDeliveryError):
    """Endpoint reachable but rejected the payload or signature (4xx)."""


class DeliveryServerFailure(WebhookDeliveryError):
    """Endpoint answered with a 5xx."""


class DeliveryNetworkFailure(WebhookDeliveryError):
    """Endpoint unreachable: timeout, DNS, connection refused."""


class NotFoundError(SyncError):
    pass


class AccessDeniedError(SyncError):
    pass


class InvalidSyncOptionsError(SyncError):
    pass


class IdentityServiceError(SyncError):
    """Organization membership could not be resolved."""
