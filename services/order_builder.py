"""Pure derivation of an order record from a cart and a checkout snapshot."""
import random
from datetime import datetime, timedelta, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Callable, Iterable, List, Optional

from core.config import settings
from schemas.checkout import ShippingDetails
from schemas.order import OrderCreate, ShippingAddress, TimelineStep
from services.errors import EmptyCartError, OrderPersistenceError

ORDER_NUMBER_PREFIX = "TSR"

ORDER_STATUSES = ("placed", "processing", "shipped", "out-for-delivery", "delivered", "cancelled")

PAYMENT_METHODS = {
    "cod": {
        "title": "Cash on Delivery",
        "description": "Pay when your package arrives at your doorstep.",
    },
    "bkash": {
        "title": "bKash",
        "description": "Secure digital payment through your bKash wallet.",
    },
    "nagad": {
        "title": "Nagad",
        "description": "Instant payment using your Nagad mobile wallet.",
    },
    "card": {
        "title": "Credit / Debit Card",
        "description": "Use any Bangladeshi issued Visa, Mastercard or AMEX.",
    },
}
DEFAULT_PAYMENT_METHOD = "cod"

# (id, title, description); the first two are complete at placement
TIMELINE_STEPS = (
    ("placed", "Order Placed", "We have received your order details."),
    ("processing", "Processing", "We're preparing your items for dispatch."),
    ("shipped", "Shipped", "Your package will be handed over to the courier soon."),
    ("out-for-delivery", "Out for Delivery", "The courier will contact you before arriving."),
    ("delivered", "Delivered", "Enjoy your new styles from TSR Fashion!"),
)
INITIAL_STATUS = TIMELINE_STEPS[1][0]


def _to_decimal(value: float | int | Decimal) -> Decimal:
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def final_unit_price(price: int, percentage: int = 0, amount: int = 0) -> int:
    """Unit price after discount; a percentage discount wins over a flat one."""
    if percentage > 0:
        discounted = _to_decimal(price) - _to_decimal(price) * _to_decimal(percentage) / 100
        return int(discounted.quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    if amount > 0:
        return max(price - amount, 0)
    return price


def item_final_price(item) -> int:
    return final_unit_price(item.price, item.discount_percentage, item.discount_amount)


def cart_total(items: Iterable) -> int:
    return sum(item_final_price(item) * item.quantity for item in items)


def cart_quantity(items: Iterable) -> int:
    return sum(item.quantity for item in items)


def payment_label(method: str) -> str:
    return PAYMENT_METHODS.get(method, PAYMENT_METHODS[DEFAULT_PAYMENT_METHOD])["title"]


def generate_order_number() -> str:
    return f"{ORDER_NUMBER_PREFIX}-{random.randint(100000, 999999)}"


def unique_order_number(exists: Callable[[str], bool], attempts: Optional[int] = None) -> str:
    """Draw order numbers until one is not taken."""
    attempts = attempts or settings.ORDER_NUMBER_ATTEMPTS
    for _ in range(attempts):
        candidate = generate_order_number()
        if not exists(candidate):
            return candidate
    raise OrderPersistenceError("We couldn't allocate an order number. Please try again.")


def build_timeline(placed_on: datetime) -> List[TimelineStep]:
    completed = {"placed", INITIAL_STATUS}
    return [
        TimelineStep(
            id=step_id,
            title=title,
            description=description,
            date=placed_on if step_id in completed else None,
            is_completed=step_id in completed,
        )
        for step_id, title, description in TIMELINE_STEPS
    ]


def address_line2(shipping: ShippingDetails) -> Optional[str]:
    parts = [p.strip() for p in (shipping.apartment, shipping.road_no) if p and p.strip()]
    return ", ".join(parts) or None


def build_order(
    items: List,
    shipping: ShippingDetails,
    payment_method: str,
    order_number: str,
    placed_on: Optional[datetime] = None,
) -> OrderCreate:
    """Assemble the order payload for an already-authenticated buyer."""
    if not items:
        raise EmptyCartError()
    placed_on = placed_on or datetime.now(timezone.utc)
    return OrderCreate(
        order_number=order_number,
        placed_on=placed_on,
        total_amount=cart_total(items),
        items_count=cart_quantity(items),
        status=INITIAL_STATUS,
        payment_method=payment_label(payment_method),
        estimated_delivery=placed_on + timedelta(days=settings.ORDER_ESTIMATED_DELIVERY_DAYS),
        notes=shipping.additional_info,
        shipping_address=ShippingAddress(
            name=shipping.full_name,
            phone=shipping.phone,
            address_line1=shipping.address_line1,
            address_line2=address_line2(shipping),
            city=shipping.city,
            postal_code=shipping.postal_code,
        ),
        status_history=build_timeline(placed_on),
    )
