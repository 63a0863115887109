"""Session tokens identifying the calling user for on-demand operations."""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from jose import JWTError, jwt

from config import settings


SESSION_TOKEN_TYPE = "importer_session"
SESSION_TOKEN_ISSUER = "social-importer"
SESSION_TOKEN_AUDIENCE = "social-importer-api"


@dataclass
class SessionToken:
    token: str
    user_id: str
    expires_at: int  # epoch seconds


def issue_session_token(
    user_id: str,
    email: Optional[str] = None,
    expires_hours: Optional[int] = None,
) -> SessionToken:
    """Sign a session token for `user_id`; the identity service decides what it may touch."""
    if not user_id or not user_id.strip():
        raise ValueError("Session token requires a user id.")
    now = datetime.now(timezone.utc)
    ttl_hours = max(int(expires_hours or settings.JWT_EXPIRATION_HOURS or 24), 1)
    expires_at = int((now + timedelta(hours=ttl_hours)).timestamp())
    claims: Dict[str, Any] = {
        "sub": user_id.strip(),
        "type": SESSION_TOKEN_TYPE,
        "iss": SESSION_TOKEN_ISSUER,
        "aud": SESSION_TOKEN_AUDIENCE,
        "iat": int(now.timestamp()),
        "exp": expires_at,
    }
    if email:
        claims["email"] = email
    token = jwt.encode(claims, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)
    return SessionToken(token=token, user_id=claims["sub"], expires_at=expires_at)


def decode_session_token(token: str) -> Dict[str, Any]:
    """Validate signature, expiry, issuer, audience and token type. Raises ValueError."""
    try:
        payload = jwt.decode(
            token,
            settings.JWT_SECRET,
            algorithms=[settings.JWT_ALGORITHM],
            audience=SESSION_TOKEN_AUDIENCE,
            issuer=SESSION_TOKEN_ISSUER,
        )
    except JWTError as exc:
        raise ValueError("Invalid or expired session token.") from exc

    if str(payload.get("type", "")).strip() != SESSION_TOKEN_TYPE:
        raise ValueError("Invalid session token type.")
    if not str(payload.get("sub", "")).strip():
        raise ValueError("Session token missing subject.")
    return payload
