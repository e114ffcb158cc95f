from datetime import datetime, timezone
from typing import Optional

from fastapi import Cookie, Depends, Header, HTTPException, Response, status
from sqlalchemy.orm import Session

from core.config import settings
from core.db import get_db
from models.user import User
from services import auth
from services.auth import Actor
from services.errors import StorefrontError


def get_session_token(
    session_cookie: Optional[str] = Cookie(default=None, alias=settings.SESSION_COOKIE_NAME),
    authorization: Optional[str] = Header(default=None, alias="Authorization"),
) -> Optional[str]:
    """Session token from the cookie, or a Bearer header for API clients."""
    if authorization and authorization.lower().startswith("bearer "):
        return authorization.split(" ", 1)[1]
    return session_cookie


def get_actor(db: Session = Depends(get_db), token: Optional[str] = Depends(get_session_token)) -> Actor:
    return auth.resolve_actor(db, token)


def get_current_user(db: Session = Depends(get_db), token: Optional[str] = Depends(get_session_token)) -> User:
    user = auth.get_current_user(db, token)
    if not user:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthenticated")
    return user


def get_cart_token(
    cart_cookie: Optional[str] = Cookie(default=None, alias=settings.CART_COOKIE_NAME),
    x_cart_token: Optional[str] = Header(default=None, alias="X-Cart-Token"),
) -> Optional[str]:
    return x_cart_token or cart_cookie


def _secure_cookies() -> bool:
    return not (settings.DEBUG or settings.TESTING)


def set_session_cookie(response: Response, token: str, expires_at: datetime) -> None:
    response.set_cookie(
        key=settings.SESSION_COOKIE_NAME,
        value=token,
        expires=expires_at.replace(tzinfo=timezone.utc),
        httponly=True,
        samesite="lax",
        secure=_secure_cookies(),
        path="/",
    )


def clear_session_cookie(response: Response) -> None:
    response.delete_cookie(settings.SESSION_COOKIE_NAME, path="/")


def set_cart_cookie(response: Response, token: str) -> None:
    response.set_cookie(
        key=settings.CART_COOKIE_NAME,
        value=token,
        httponly=True,
        samesite="lax",
        secure=_secure_cookies(),
        path="/",
    )


def http_error(exc: StorefrontError) -> HTTPException:
    return HTTPException(status_code=exc.status_code, detail=exc.message)
