import logging
from datetime import datetime, timezone
from typing import Dict, Optional

from sqlalchemy.orm import Session

from models.profile import Profile
from schemas.checkout import ShippingDetails
from services import local_store
from services.auth import Actor, AuthenticatedUser

logger = logging.getLogger(__name__)

PROFILE_FIELDS = tuple(ShippingDetails.model_fields)


def sync_profile(db: Session, actor: Actor, shipping: ShippingDetails) -> Optional[Profile]:
    """Upsert the actor's default delivery details.

    Guests have no identity yet; their profile is written once the account
    is created during confirmation, so this is a no-op for them.
    """
    if not isinstance(actor, AuthenticatedUser):
        return None

    data = shipping.model_dump()
    profile = db.get(Profile, actor.id)
    if profile is None:
        profile = Profile(user_id=actor.id, **data)
        db.add(profile)
    else:
        for field, value in data.items():
            setattr(profile, field, value)
    profile.updated_at = datetime.utcnow()
    db.commit()
    db.refresh(profile)

    local_store.cache_profile(
        actor.id, data, profile.updated_at.replace(tzinfo=timezone.utc).isoformat()
    )
    logger.debug("Synced profile for user %s", actor.id)
    return profile


def load_profile(db: Session, user_id: int) -> Optional[Dict[str, Optional[str]]]:
    """Stored delivery details, from the database or else the local cache."""
    profile = db.get(Profile, user_id)
    if profile is not None:
        return {field: getattr(profile, field) for field in PROFILE_FIELDS}
    cached = local_store.get_cached_profile(user_id)
    if cached:
        return {field: cached["data"].get(field) for field in PROFILE_FIELDS}
    return None


def prefill_for(db: Session, actor: Actor) -> Dict[str, Optional[str]]:
    """Form defaults: stored profile first, then the account's own fields."""
    blank: Dict[str, Optional[str]] = {field: "" for field in PROFILE_FIELDS}
    if not isinstance(actor, AuthenticatedUser):
        return blank
    stored = load_profile(db, actor.id) or {}
    blank.update({k: v for k, v in stored.items() if v is not None})
    blank["full_name"] = stored.get("full_name") or actor.full_name
    blank["email"] = actor.email
    blank["phone"] = stored.get("phone") or actor.phone or ""
    return blank
