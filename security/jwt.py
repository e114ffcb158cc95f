from datetime import datetime, timezone
from typing import Any, Dict

import jwt

from core.config import settings


def create_session_token(sub: str, sid: str, expires_at: datetime) -> str:
    """Sign the session cookie value; `sid` names the row in the sessions table."""
    now = datetime.now(timezone.utc)
    if expires_at.tzinfo is None:
        expires_at = expires_at.replace(tzinfo=timezone.utc)
    payload = {
        "sub": sub,
        "sid": sid,
        "type": "session",
        "iat": int(now.timestamp()),
        "exp": int(expires_at.timestamp()),
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALG)


def decode_session(token: str) -> Dict[str, Any]:
    payload = jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALG])
    if payload.get("type") != "session" or not payload.get("sid"):
        raise jwt.InvalidTokenError("Not a session token")
    return payload
