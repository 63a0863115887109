"""Authentication and organization-scope dependencies for on-demand routes."""

from dataclasses import dataclass
from typing import List, Optional

from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from routers.errors import http_error
from services.errors import SyncError
from services.identity import ensure_organization_access, organization_ids_for_user
from services.session_token import decode_session_token


auth_scheme = HTTPBearer(auto_error=False)


@dataclass
class AuthContext:
    user_id: str
    email: Optional[str] = None
    expires_at: Optional[int] = None

    async def require_member(self, organization_id: str) -> None:
        """Raise 403 unless the user belongs to `organization_id`."""
        try:
            await ensure_organization_access(self.user_id, organization_id)
        except SyncError as exc:
            raise http_error(exc) from exc

    async def organization_ids(self) -> List[str]:
        try:
            return await organization_ids_for_user(self.user_id)
        except SyncError as exc:
            raise http_error(exc) from exc


async def get_auth_context(
    credentials: HTTPAuthorizationCredentials = Depends(auth_scheme),
) -> AuthContext:
    """Resolve the calling user from a Bearer session token."""
    if not credentials or credentials.scheme.lower() != "bearer":
        raise HTTPException(status_code=401, detail="Missing Bearer session token.")

    try:
        payload = decode_session_token(credentials.credentials)
    except ValueError as exc:
        raise HTTPException(status_code=401, detail=str(exc)) from exc

    return AuthContext(
        user_id=str(payload.get("sub", "")),
        email=str(payload.get("email", "")) or None,
        expires_at=payload.get("exp"),
    )
