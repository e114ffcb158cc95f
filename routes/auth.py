from typing import Optional

from fastapi import APIRouter, Depends, Response
from sqlalchemy.orm import Session

from core.db import get_db
from core.session import (
    clear_session_cookie,
    get_actor,
    get_current_user,
    get_session_token,
    http_error,
    set_session_cookie,
)
from models.user import User
from schemas.auth import AccountUpdate, ChangePasswordRequest, LoginRequest, SignupRequest
from schemas.users import UserOut
from services import auth as auth_service
from services.auth import Actor, AuthenticatedUser
from services.errors import StorefrontError

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/signup", status_code=201)
def signup(data: SignupRequest, response: Response, db: Session = Depends(get_db)):
    try:
        user = auth_service.create_account(
            db, full_name=data.full_name, email=data.email, password=data.password, phone=data.phone
        )
    except StorefrontError as e:
        raise http_error(e)
    token, expires_at = auth_service.issue_session(db, user)
    set_session_cookie(response, token, expires_at)
    return {"user": UserOut.model_validate(user)}


@router.post("/login")
def login(data: LoginRequest, response: Response, db: Session = Depends(get_db)):
    try:
        user = auth_service.authenticate(db, data.email, data.password)
    except StorefrontError as e:
        raise http_error(e)
    token, expires_at = auth_service.issue_session(db, user)
    set_session_cookie(response, token, expires_at)
    return {"user": UserOut.model_validate(user), "access_token": token, "token_type": "bearer"}


@router.post("/logout")
def logout(response: Response, token: Optional[str] = Depends(get_session_token), db: Session = Depends(get_db)):
    auth_service.revoke_session(db, token)
    clear_session_cookie(response)
    return {"message": "Signed out"}


@router.get("/me")
def me(current_user: User = Depends(get_current_user)):
    return {"user": UserOut.model_validate(current_user)}


@router.patch("/profile")
def update_account(
    data: AccountUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Update the account's name and phone; omitted fields are left alone."""
    update_data = data.model_dump(exclude_unset=True)
    if not update_data:
        raise http_error(StorefrontError("No changes provided"))
    if "full_name" in update_data:
        if update_data["full_name"] is None:
            raise http_error(StorefrontError("Full name is required"))
        update_data["full_name"] = update_data["full_name"].strip()

    for field, value in update_data.items():
        setattr(current_user, field, value)
    db.commit()
    db.refresh(current_user)
    return {"user": UserOut.model_validate(current_user)}


@router.patch("/password")
def change_password(
    data: ChangePasswordRequest,
    current_user: User = Depends(get_current_user),
    actor: Actor = Depends(get_actor),
    db: Session = Depends(get_db),
):
    try:
        auth_service.change_password(db, current_user, data.current_password, data.new_password)
    except StorefrontError as e:
        raise http_error(e)
    keep = actor.session_id if isinstance(actor, AuthenticatedUser) else None
    auth_service.revoke_other_sessions(db, current_user, keep)
    return {"message": "Password updated successfully"}
