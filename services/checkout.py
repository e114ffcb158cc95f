"""Checkout step controller and the order confirmation pipeline.

The controller is a two-state machine, ``address`` -> ``payment``, bound
to the actor resolved for the request. Confirmation leaves the flow: it
runs ensure_identity -> build_order -> persist_order and clears the cart
in the same transaction as the order insert.
"""
import logging
import uuid
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from models.cart import Cart
from schemas.checkout import GuestShippingDetails, ShippingDetails
from schemas.order import OrderOut
from security.password import hash_password
from services import auth, local_store, profile_sync
from services.auth import Actor, ActorStatus, AuthenticatedUser
from services.cart import clear_cart
from services.email import notify_order_confirmed
from services.errors import (
    ActorUnresolvedError,
    CheckoutValidationError,
    ConfirmationInProgressError,
    DuplicateAccountError,
    EmptyCartError,
    InvalidStepError,
    MissingPasswordError,
    MissingPaymentMethodError,
    MissingShippingDetailsError,
    OrderPersistenceError,
)
from services.order_builder import PAYMENT_METHODS, build_order, unique_order_number
from services.order_store import (
    find_by_idempotency_key,
    order_number_exists,
    persist_order,
    remember_order,
    scoped_idempotency_key,
    serialize_order,
)

logger = logging.getLogger(__name__)

TRACKING_URL = "/order-tracking?orderId={order_number}"


class CheckoutStep(str, Enum):
    ADDRESS = "address"
    PAYMENT = "payment"


@dataclass
class CheckoutState:
    step: str = CheckoutStep.ADDRESS.value
    shipping: Optional[Dict[str, Any]] = None
    # Guests' chosen password, hashed at the address step
    password_hash: Optional[str] = None
    payment_method: Optional[str] = None
    attempt_token: str = field(default_factory=lambda: uuid.uuid4().hex)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "CheckoutState":
        if not data:
            return cls()
        known = {k: v for k, v in data.items() if k in cls.__dataclass_fields__}
        state = cls(**known)
        if state.step not in (CheckoutStep.ADDRESS.value, CheckoutStep.PAYMENT.value):
            state.step = CheckoutStep.ADDRESS.value
        return state


def field_errors(exc: ValidationError) -> Dict[str, str]:
    errors: Dict[str, str] = {}
    for error in exc.errors():
        name = str(error["loc"][-1]) if error["loc"] else "__root__"
        message = error["msg"]
        if message.startswith("Value error, "):
            message = message[len("Value error, "):]
        errors.setdefault(name, message)
    return errors


class CheckoutController:
    """Step transitions and confirmation guards for one checkout session.

    ``actor`` is None while it is still being resolved; nothing is
    actionable in that state.
    """

    def __init__(self, actor: Optional[Actor], state: Optional[CheckoutState] = None):
        self.actor = actor
        self.state = state or CheckoutState()
        self.issued_session: Optional[Tuple[str, Any]] = None

    @property
    def status(self) -> ActorStatus:
        return self.actor.status if self.actor is not None else ActorStatus.LOADING

    @property
    def step(self) -> CheckoutStep:
        return CheckoutStep(self.state.step)

    @property
    def requires_password(self) -> bool:
        return self.status != ActorStatus.AUTHENTICATED

    @property
    def shipping(self) -> Optional[ShippingDetails]:
        if not self.state.shipping:
            return None
        return ShippingDetails.model_validate(self.state.shipping)

    def _require_resolved(self) -> None:
        if self.actor is None:
            raise ActorUnresolvedError()

    def submit_address(self, data: Dict[str, Any]) -> ShippingDetails:
        """Validate the address form and advance to the payment step."""
        self._require_resolved()
        schema = GuestShippingDetails if self.requires_password else ShippingDetails
        try:
            form = schema.model_validate(data)
        except ValidationError as e:
            raise CheckoutValidationError(field_errors(e))

        if isinstance(form, GuestShippingDetails):
            shipping = form.shipping()
            self.state.password_hash = hash_password(form.password)
        else:
            shipping = form
        self.state.shipping = shipping.model_dump()
        self.state.step = CheckoutStep.PAYMENT.value
        return shipping

    def edit_address(self) -> None:
        self._require_resolved()
        if self.step != CheckoutStep.PAYMENT:
            raise InvalidStepError("Delivery details are already open for editing.")
        self.state.step = CheckoutStep.ADDRESS.value

    def select_payment(self, method: str) -> None:
        self._require_resolved()
        if self.step != CheckoutStep.PAYMENT:
            raise InvalidStepError("Provide delivery details before choosing a payment method.")
        if method not in PAYMENT_METHODS:
            raise CheckoutValidationError({"method": "Select a valid payment method"})
        self.state.payment_method = method

    def check_confirmable(self, items: List) -> None:
        """Raise the first failing confirmation guard."""
        self._require_resolved()
        if not self.state.shipping:
            self.state.step = CheckoutStep.ADDRESS.value
            raise MissingShippingDetailsError()
        if not self.state.payment_method:
            raise MissingPaymentMethodError()
        if not items:
            raise EmptyCartError()
        if self.requires_password and not self.state.password_hash:
            self.state.step = CheckoutStep.ADDRESS.value
            raise MissingPasswordError()

    def promote(self, identity: AuthenticatedUser, session: Optional[Tuple[str, Any]] = None) -> None:
        self.actor = identity
        self.state.password_hash = None
        if session is not None:
            self.issued_session = session

    def prefill(self, defaults: Dict[str, Optional[str]]) -> Dict[str, Optional[str]]:
        """Retained shipping details win over stored profile defaults."""
        if self.state.shipping:
            return {**defaults, **{k: v or "" for k, v in self.state.shipping.items()}}
        return defaults


def load_controller(cart_token: str, actor: Optional[Actor]) -> CheckoutController:
    return CheckoutController(actor, CheckoutState.from_dict(local_store.load_checkout_state(cart_token)))


def save_controller(cart_token: str, controller: CheckoutController) -> None:
    local_store.save_checkout_state(cart_token, controller.state.to_dict())


def ensure_identity(db: Session, controller: CheckoutController) -> AuthenticatedUser:
    """Guests become account holders before their order is created."""
    actor = controller.actor
    if isinstance(actor, AuthenticatedUser):
        return actor

    shipping = controller.shipping
    try:
        user = auth.create_account(
            db,
            full_name=shipping.full_name,
            email=shipping.email,
            phone=shipping.phone,
            password_hash=controller.state.password_hash,
        )
    except DuplicateAccountError:
        # Details and payment choice are kept; only the step moves back
        controller.state.step = CheckoutStep.ADDRESS.value
        raise
    session = auth.issue_session(db, user)
    identity = AuthenticatedUser.from_user(user)
    controller.promote(identity, session)
    profile_sync.sync_profile(db, identity, shipping)
    logger.info("Guest checkout created account %s", user.id)
    return identity


@dataclass
class Confirmation:
    order: OrderOut
    created: bool

    @property
    def tracking_url(self) -> str:
        return TRACKING_URL.format(order_number=self.order.order_number)


def confirm_order(
    db: Session,
    controller: CheckoutController,
    cart: Optional[Cart],
    cart_token: str,
    idempotency_key: Optional[str] = None,
) -> Confirmation:
    # Only the caller's own earlier confirmation is replayed; any other key
    # falls through to the guards
    if idempotency_key and isinstance(controller.actor, AuthenticatedUser):
        existing = find_by_idempotency_key(db, scoped_idempotency_key(controller.actor.id, idempotency_key))
        if existing is not None:
            return Confirmation(order=serialize_order(existing), created=False)

    items = list(cart.items) if cart else []
    controller.check_confirmable(items)
    key = idempotency_key or controller.state.attempt_token

    holder = local_store.acquire_checkout_lock(cart_token)
    if holder is None:
        raise ConfirmationInProgressError()
    try:
        identity = ensure_identity(db, controller)
        shipping = controller.shipping
        try:
            order_number = unique_order_number(lambda n: order_number_exists(db, n))
        except SQLAlchemyError:
            db.rollback()
            logger.exception("Order number allocation failed")
            raise OrderPersistenceError()
        payload = build_order(items, shipping, controller.state.payment_method, order_number)

        # Cart lines are deleted in the order's transaction
        clear_cart(db, cart, commit=False)
        order, created = persist_order(
            db, payload, user_id=identity.id, idempotency_key=scoped_idempotency_key(identity.id, key)
        )
        serialized = serialize_order(order)

        remember_order(str(identity.id), serialized)
        local_store.clear_checkout_state(cart_token)
        if created:
            notify_order_confirmed(shipping.email, shipping.full_name, serialized)
        return Confirmation(order=serialized, created=created)
    finally:
        local_store.release_checkout_lock(cart_token, holder)
