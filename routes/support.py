import logging
from typing import Any, Dict

from fastapi import APIRouter, Body, Depends, HTTPException
from pydantic import ValidationError
from sqlalchemy.orm import Session

from core.db import get_db
from core.session import get_actor
from models.support import SupportMessage
from schemas.support import SupportRequest, SupportResponse
from services.auth import Actor, AuthenticatedUser
from services.checkout import field_errors
from services.email import notify_support_received

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/support", tags=["support"])


@router.post("/", response_model=SupportResponse, status_code=201)
def contact_support(
    data: Dict[str, Any] = Body(...),
    actor: Actor = Depends(get_actor),
    db: Session = Depends(get_db),
):
    try:
        request = SupportRequest.model_validate(data)
    except ValidationError as e:
        raise HTTPException(
            status_code=400,
            detail={"message": "Please correct the highlighted fields", "errors": field_errors(e)},
        )

    message = SupportMessage(
        user_id=actor.id if isinstance(actor, AuthenticatedUser) else None,
        full_name=request.full_name.strip(),
        email=request.email,
        subject=request.subject.strip(),
        message=request.message.strip(),
        order_number=request.order_number.strip() if request.order_number else None,
    )
    db.add(message)
    db.commit()
    logger.info("Support message %s received from %s", message.id, message.email)

    notify_support_received(message.email, message.full_name, message.subject)
    return SupportResponse(message="Thanks for reaching out. We'll get back to you shortly.")
