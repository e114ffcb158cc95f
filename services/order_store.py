"""Order persistence and lookup.

The database is the source of truth. Every stored order is also mirrored
into the owner's local cache, and lookups fall back to that cache (and the
sample orders) when the database has no match or cannot be reached.
"""
import logging
from datetime import datetime, timezone
from typing import Iterable, List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from models.order import Order
from schemas.order import OrderCreate, OrderOut, ShippingAddress, TimelineStep
from services import local_store
from services.auth import Actor, AuthenticatedUser
from services.errors import (
    DuplicateOrderNumberError,
    OrderNotFoundError,
    OrderPersistenceError,
    StorefrontError,
)
from services.sample_orders import SAMPLE_ORDERS

logger = logging.getLogger(__name__)


def _naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def _aware(value: Optional[datetime]) -> Optional[datetime]:
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


def cache_owner(actor: Optional[Actor]) -> str:
    if isinstance(actor, AuthenticatedUser):
        return str(actor.id)
    return local_store.GUEST_OWNER


def serialize_order(order: Order) -> OrderOut:
    history = order.status_history if isinstance(order.status_history, list) else []
    return OrderOut(
        order_number=order.order_number,
        placed_on=_aware(order.placed_on),
        total_amount=order.total_amount,
        items_count=order.items_count,
        status=order.status,
        payment_method=order.payment_method,
        estimated_delivery=_aware(order.estimated_delivery),
        notes=order.notes,
        shipping_address=ShippingAddress(
            name=order.shipping_name,
            phone=order.shipping_phone,
            address_line1=order.shipping_address1,
            address_line2=order.shipping_address2,
            city=order.shipping_city,
            postal_code=order.shipping_postal,
        ),
        status_history=[TimelineStep.model_validate(step) for step in history],
    )


def order_number_exists(db: Session, order_number: str) -> bool:
    query = db.query(Order.id).filter(func.lower(Order.order_number) == order_number.lower())
    return db.query(query.exists()).scalar()


IDEMPOTENCY_KEY_MAX_LENGTH = 64


def scoped_idempotency_key(user_id: int, key: str) -> str:
    """Keys are stored per owner, so one buyer's key never matches another's order."""
    return f"{user_id}:{key}"


def find_by_idempotency_key(db: Session, key: str) -> Optional[Order]:
    return db.query(Order).filter(Order.idempotency_key == key).one_or_none()


def persist_order(
    db: Session,
    payload: OrderCreate,
    user_id: Optional[int] = None,
    idempotency_key: Optional[str] = None,
) -> Tuple[Order, bool]:
    """Insert the order row; returns (order, created).

    When another request already stored an order under the same idempotency
    key, that order is returned with created=False instead of a duplicate.
    """
    shipping = payload.shipping_address
    order = Order(
        order_number=payload.order_number,
        user_id=user_id,
        idempotency_key=idempotency_key,
        placed_on=_naive_utc(payload.placed_on) or datetime.utcnow(),
        total_amount=payload.total_amount,
        items_count=payload.items_count,
        status=payload.status,
        payment_method=payload.payment_method,
        estimated_delivery=_naive_utc(payload.estimated_delivery),
        notes=payload.notes,
        shipping_name=shipping.name,
        shipping_phone=shipping.phone,
        shipping_address1=shipping.address_line1,
        shipping_address2=shipping.address_line2,
        shipping_city=shipping.city,
        shipping_postal=shipping.postal_code,
        status_history=[step.model_dump(mode="json") for step in payload.status_history],
    )
    try:
        if order_number_exists(db, payload.order_number):
            raise DuplicateOrderNumberError()
        db.add(order)
        db.commit()
    except IntegrityError:
        db.rollback()
        existing = find_by_idempotency_key(db, idempotency_key) if idempotency_key else None
        if existing is not None:
            logger.info("Order %s already stored for this attempt", existing.order_number)
            return existing, False
        raise DuplicateOrderNumberError()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Failed to create order %s", payload.order_number)
        raise OrderPersistenceError()
    db.refresh(order)
    logger.info("Created order %s (total=%s, items=%s)", order.order_number, order.total_amount, order.items_count)
    return order, True


def remember_order(owner: str, order: OrderOut) -> None:
    local_store.cache_order(owner, order.model_dump(mode="json"))


def _cached_orders(owner: str) -> List[OrderOut]:
    orders = []
    for raw in local_store.get_cached_orders(owner):
        try:
            orders.append(OrderOut.model_validate(raw))
        except ValueError:
            logger.warning("Skipping unreadable cached order for %s", owner)
    return orders


def merge_orders(*sources: Iterable[OrderOut]) -> List[OrderOut]:
    """Union by order number, later sources winning, newest first."""
    merged = {}
    for source in sources:
        for order in source:
            merged[order.order_number.lower()] = order
    return sorted(merged.values(), key=lambda o: _aware(o.placed_on), reverse=True)


def lookup_order(db: Session, order_number: str, owner: str = local_store.GUEST_OWNER) -> OrderOut:
    number = (order_number or "").strip()
    if not number:
        raise StorefrontError("Enter a valid order ID to view its status.")

    try:
        order = db.query(Order).filter(func.lower(Order.order_number) == number.lower()).one_or_none()
    except SQLAlchemyError as e:
        db.rollback()
        logger.warning("Order lookup fell back to local data: %s", e)
        order = None
    if order is not None:
        return serialize_order(order)

    for candidate in merge_orders(SAMPLE_ORDERS, _cached_orders(owner)):
        if candidate.order_number.lower() == number.lower():
            return candidate
    raise OrderNotFoundError(f'We could not find any order with the ID "{number}".')


def recent_orders(db: Session, actor: Actor, limit: int) -> List[OrderOut]:
    remote: List[OrderOut] = []
    if isinstance(actor, AuthenticatedUser):
        try:
            rows = (
                db.query(Order)
                .filter(Order.user_id == actor.id)
                .order_by(Order.placed_on.desc())
                .limit(local_store.MAX_CACHED_ORDERS)
                .all()
            )
            remote = [serialize_order(row) for row in rows]
        except SQLAlchemyError as e:
            db.rollback()
            logger.warning("Recent orders fell back to local data: %s", e)
    return merge_orders(SAMPLE_ORDERS, _cached_orders(cache_owner(actor)), remote)[:limit]
