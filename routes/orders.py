from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from core.config import settings
from core.db import get_db
from core.session import get_actor, http_error
from schemas.order import OrderCreate, OrderOut
from services import order_store
from services.auth import Actor, AuthenticatedUser
from services.errors import OrderNotFoundError, StorefrontError

router = APIRouter(prefix="/orders", tags=["orders"])


@router.post("/", response_model=OrderOut, status_code=201)
def create_order(data: OrderCreate, actor: Actor = Depends(get_actor), db: Session = Depends(get_db)):
    user_id = actor.id if isinstance(actor, AuthenticatedUser) else None
    try:
        order, _ = order_store.persist_order(db, data, user_id=user_id)
    except StorefrontError as e:
        raise http_error(e)
    serialized = order_store.serialize_order(order)
    order_store.remember_order(order_store.cache_owner(actor), serialized)
    return serialized


@router.get("/recent", response_model=List[OrderOut])
def list_recent_orders(
    limit: int = Query(default=settings.RECENT_ORDERS_LIMIT, ge=1, le=20),
    actor: Actor = Depends(get_actor),
    db: Session = Depends(get_db),
):
    return order_store.recent_orders(db, actor, limit)


@router.get("/{order_number}", response_model=OrderOut)
def get_order(order_number: str, actor: Actor = Depends(get_actor), db: Session = Depends(get_db)):
    try:
        return order_store.lookup_order(db, order_number, order_store.cache_owner(actor))
    except OrderNotFoundError:
        raise HTTPException(status_code=404, detail="Order not found")
    except StorefrontError as e:
        raise http_error(e)
