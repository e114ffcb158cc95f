"""Session and account gateway.

Resolves the acting identity for a request, creates accounts and issues or
revokes cookie sessions. Callers pass the resolved actor on explicitly.
"""
import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Optional, Tuple, Union

import jwt
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from core.config import settings
from models.user import User, UserSession
from security import jwt as jwt_utils
from security.password import hash_password, verify_password
from services.errors import AuthenticationError, DuplicateAccountError, PasswordChangeError

logger = logging.getLogger(__name__)


class ActorStatus(str, Enum):
    LOADING = "loading"
    GUEST = "guest"
    AUTHENTICATED = "authenticated"


@dataclass(frozen=True)
class Guest:
    status: ActorStatus = ActorStatus.GUEST


@dataclass(frozen=True)
class AuthenticatedUser:
    id: int
    email: str
    full_name: str
    phone: Optional[str] = None
    session_id: Optional[str] = None
    status: ActorStatus = ActorStatus.AUTHENTICATED

    @classmethod
    def from_user(cls, user: User, session_id: Optional[str] = None) -> "AuthenticatedUser":
        return cls(
            id=user.id,
            email=user.email,
            full_name=user.full_name,
            phone=user.phone,
            session_id=session_id,
        )


Actor = Union[Guest, AuthenticatedUser]

GUEST = Guest()


def _find_session(db: Session, token: Optional[str]) -> Optional[UserSession]:
    if not token:
        return None
    try:
        payload = jwt_utils.decode_session(token)
    except jwt.PyJWTError:
        return None
    session = db.query(UserSession).filter(UserSession.token == payload["sid"]).one_or_none()
    if not session:
        return None
    if session.expires_at < datetime.utcnow():
        db.delete(session)
        db.commit()
        return None
    return session


def get_current_user(db: Session, token: Optional[str]) -> Optional[User]:
    session = _find_session(db, token)
    return session.user if session else None


def resolve_actor(db: Session, token: Optional[str]) -> Actor:
    """Who is making this request; lookup failures never block the caller."""
    try:
        session = _find_session(db, token)
        if not session:
            return GUEST
        return AuthenticatedUser.from_user(session.user, session_id=session.token)
    except SQLAlchemyError as e:
        db.rollback()
        logger.warning("Actor resolution failed, continuing as guest: %s", e)
        return GUEST


def create_account(
    db: Session,
    full_name: str,
    email: str,
    password: Optional[str] = None,
    phone: Optional[str] = None,
    password_hash: Optional[str] = None,
) -> User:
    email = email.lower()
    if db.query(User).filter(User.email == email).one_or_none():
        raise DuplicateAccountError()
    user = User(
        full_name=full_name.strip(),
        email=email,
        phone=phone,
        password_hash=password_hash or hash_password(password),
    )
    db.add(user)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise DuplicateAccountError()
    db.refresh(user)
    logger.info("Created account %s", user.id)
    return user


def authenticate(db: Session, email: str, password: str) -> User:
    user = db.query(User).filter(User.email == email.lower()).one_or_none()
    if not user or not verify_password(password, user.password_hash):
        raise AuthenticationError()
    return user


def issue_session(db: Session, user: User) -> Tuple[str, datetime]:
    """Persist a new session row and return the signed cookie value."""
    expires_at = datetime.utcnow() + timedelta(days=settings.SESSION_TTL_DAYS)
    session = UserSession(token=secrets.token_hex(16), user_id=user.id, expires_at=expires_at)
    db.add(session)
    db.commit()
    logger.info("Issued session for user %s", user.id)
    return jwt_utils.create_session_token(str(user.id), session.token, expires_at), expires_at


def revoke_session(db: Session, token: Optional[str]) -> None:
    session = _find_session(db, token)
    if session:
        db.delete(session)
        db.commit()
        logger.info("Revoked session for user %s", session.user_id)


def revoke_other_sessions(db: Session, user: User, keep_session_id: Optional[str]) -> int:
    query = db.query(UserSession).filter(UserSession.user_id == user.id)
    if keep_session_id:
        query = query.filter(UserSession.token != keep_session_id)
    count = query.delete(synchronize_session=False)
    db.commit()
    return count


def change_password(db: Session, user: User, current_password: str, new_password: str) -> None:
    if not verify_password(current_password, user.password_hash):
        raise PasswordChangeError("Your current password is incorrect")
    if verify_password(new_password, user.password_hash):
        raise PasswordChangeError("Choose a password you haven't used before")
    user.password_hash = hash_password(new_password)
    db.commit()
