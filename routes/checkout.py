from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, Header, Response
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from core.db import get_db
from core.session import get_actor, get_cart_token, set_cart_cookie, set_session_cookie
from schemas.checkout import CheckoutOut, ConfirmationOut, PaymentMethodOut, PaymentSelection
from services import cart as cart_service
from services import profile_sync
from services.auth import Actor
from services.checkout import CheckoutController, confirm_order, load_controller, save_controller
from services.errors import CheckoutRuleError, CheckoutValidationError, StateStoreError, StorefrontError
from services.order_builder import PAYMENT_METHODS
from services.order_store import IDEMPOTENCY_KEY_MAX_LENGTH

router = APIRouter(prefix="/checkout", tags=["checkout"])


def _error_response(exc: StorefrontError, controller: CheckoutController) -> JSONResponse:
    detail: Dict[str, Any] = {"message": exc.message, "step": controller.state.step}
    if isinstance(exc, CheckoutValidationError):
        detail["errors"] = exc.field_errors
    if isinstance(exc, CheckoutRuleError) and exc.redirect:
        detail["redirect"] = exc.redirect
    response = JSONResponse(status_code=exc.status_code, content={"detail": detail})
    if controller.issued_session:
        set_session_cookie(response, *controller.issued_session)
    return response


def _persist(cart_token: str, controller: CheckoutController) -> Optional[JSONResponse]:
    try:
        save_controller(cart_token, controller)
    except StateStoreError as e:
        return _error_response(e, controller)
    return None


def _view(db: Session, controller: CheckoutController, cart, cart_token: str) -> CheckoutOut:
    defaults = profile_sync.prefill_for(db, controller.actor)
    return CheckoutOut(
        step=controller.state.step,
        actor=controller.status.value,
        requires_password=controller.requires_password,
        shipping_details=controller.shipping,
        prefill=controller.prefill(defaults),
        payment_method=controller.state.payment_method,
        payment_methods=[PaymentMethodOut(id=key, **value) for key, value in PAYMENT_METHODS.items()],
        attempt_token=controller.state.attempt_token,
        cart=cart_service.cart_summary(cart, cart_token),
    )


def _cart_for(response: Response, token: Optional[str], db: Session):
    """Cart for this checkout; a fresh token is issued when the caller has none."""
    cart = cart_service.get_or_create_cart(db, token)
    if cart.token != token:
        set_cart_cookie(response, cart.token)
    return cart


@router.get("/", response_model=CheckoutOut)
def get_checkout(
    response: Response,
    token: Optional[str] = Depends(get_cart_token),
    actor: Actor = Depends(get_actor),
    db: Session = Depends(get_db),
):
    cart = _cart_for(response, token, db)
    controller = load_controller(cart.token, actor)
    failed = _persist(cart.token, controller)
    if failed:
        return failed
    return _view(db, controller, cart, cart.token)


@router.post("/address", response_model=CheckoutOut)
def submit_address(
    response: Response,
    data: Dict[str, Any] = Body(...),
    token: Optional[str] = Depends(get_cart_token),
    actor: Actor = Depends(get_actor),
    db: Session = Depends(get_db),
):
    cart = _cart_for(response, token, db)
    controller = load_controller(cart.token, actor)
    try:
        shipping = controller.submit_address(data)
    except StorefrontError as e:
        return _error_response(e, controller)
    profile_sync.sync_profile(db, actor, shipping)
    failed = _persist(cart.token, controller)
    if failed:
        return failed
    return _view(db, controller, cart, cart.token)


@router.post("/edit", response_model=CheckoutOut)
def edit_address(
    response: Response,
    token: Optional[str] = Depends(get_cart_token),
    actor: Actor = Depends(get_actor),
    db: Session = Depends(get_db),
):
    cart = _cart_for(response, token, db)
    controller = load_controller(cart.token, actor)
    try:
        controller.edit_address()
    except StorefrontError as e:
        return _error_response(e, controller)
    failed = _persist(cart.token, controller)
    if failed:
        return failed
    return _view(db, controller, cart, cart.token)


@router.post("/payment", response_model=CheckoutOut)
def select_payment(
    data: PaymentSelection,
    response: Response,
    token: Optional[str] = Depends(get_cart_token),
    actor: Actor = Depends(get_actor),
    db: Session = Depends(get_db),
):
    cart = _cart_for(response, token, db)
    controller = load_controller(cart.token, actor)
    try:
        controller.select_payment(data.method)
    except StorefrontError as e:
        return _error_response(e, controller)
    failed = _persist(cart.token, controller)
    if failed:
        return failed
    return _view(db, controller, cart, cart.token)


@router.post("/confirm", response_model=ConfirmationOut)
def confirm(
    response: Response,
    token: Optional[str] = Depends(get_cart_token),
    idempotency_key: Optional[str] = Header(
        default=None, alias="Idempotency-Key", max_length=IDEMPOTENCY_KEY_MAX_LENGTH
    ),
    actor: Actor = Depends(get_actor),
    db: Session = Depends(get_db),
):
    cart = _cart_for(response, token, db)
    controller = load_controller(cart.token, actor)
    try:
        confirmation = confirm_order(db, controller, cart, cart.token, idempotency_key)
    except StorefrontError as e:
        # Keep whatever the attempt changed (step, new identity) for the retry
        _persist(cart.token, controller)
        return _error_response(e, controller)

    if controller.issued_session:
        set_session_cookie(response, *controller.issued_session)
    return ConfirmationOut(
        order_number=confirmation.order.order_number,
        tracking_url=confirmation.tracking_url,
        replayed=not confirmation.created,
        order=confirmation.order,
    )
