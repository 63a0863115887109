"""
Current session introspection.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from routers.auth_scope import AuthContext, get_auth_context

router = APIRouter()


class CurrentUserResponse(BaseModel):
    user_id: str
    email: Optional[str] = None
    organization_ids: List[str]


@router.get("/me", response_model=CurrentUserResponse)
async def get_current_user(auth: AuthContext = Depends(get_auth_context)):
    """Return the session's user and the organizations they can act on."""
    organization_ids = await auth.organization_ids()
    return CurrentUserResponse(
        user_id=auth.user_id,
        email=auth.email,
        organization_ids=organization_ids,
    )
