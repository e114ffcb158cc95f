from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from core.db import get_db
from core.session import get_current_user
from models.profile import Profile
from models.user import User
from schemas.profile import ProfileEnvelope, ProfileResponse, ProfileUpdate
from services import profile_sync
from services.auth import AuthenticatedUser

router = APIRouter(prefix="/profile", tags=["profile"])


@router.get("/", response_model=ProfileEnvelope)
def get_profile(current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    """Saved delivery details of the current user"""
    profile = db.get(Profile, current_user.id)
    if profile is not None:
        return ProfileEnvelope(profile=ProfileResponse.model_validate(profile))
    stored = profile_sync.load_profile(db, current_user.id)
    return ProfileEnvelope(profile=ProfileResponse(**stored) if stored else None)


@router.put("/", response_model=ProfileEnvelope)
def update_profile(
    profile_data: ProfileUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Replace the saved delivery details and keep the account name/phone in step"""
    actor = AuthenticatedUser.from_user(current_user)
    profile = profile_sync.sync_profile(db, actor, profile_data)

    current_user.full_name = profile_data.full_name
    current_user.phone = profile_data.phone
    db.commit()
    return ProfileEnvelope(profile=ProfileResponse.model_validate(profile))
