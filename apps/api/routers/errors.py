"""Translate pipeline errors into HTTP responses."""

from fastapi import HTTPException

from services.errors import (
    AccessDeniedError,
    AuthExpiredError,
    ConfigurationError,
    IdentityServiceError,
    InvalidSyncOptionsError,
    NotFoundError,
    SyncError,
    TransientPlatformError,
)


def http_error(exc: SyncError) -> HTTPException:
    if isinstance(exc, NotFoundError):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, AccessDeniedError):
        return HTTPException(status_code=403, detail=str(exc))
    if isinstance(exc, InvalidSyncOptionsError):
        return HTTPException(status_code=400, detail=str(exc))
    if isinstance(exc, AuthExpiredError):
        return HTTPException(
            status_code=409,
            detail=f"Platform connection needs to be re-authorized: {exc}",
        )
    if isinstance(exc, IdentityServiceError):
        return HTTPException(status_code=502, detail=str(exc))
    if isinstance(exc, TransientPlatformError):
        return HTTPException(status_code=502, detail=str(exc))
    if isinstance(exc, ConfigurationError):
        return HTTPException(status_code=503, detail=str(exc))
    return HTTPException(status_code=500, detail=str(exc))
