"""Domain errors raised by the storefront services.

Every error is recoverable: routes translate them into HTTP responses and
the checkout state they were raised from is left untouched.
"""
from typing import Dict, Optional


class StorefrontError(Exception):
    status_code: int = 400
    message: str = "Invalid request"

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.message)
        self.message = message or self.message


# Validation

class CheckoutValidationError(StorefrontError):
    status_code = 422
    message = "Please correct the highlighted fields"

    def __init__(self, field_errors: Dict[str, str], message: Optional[str] = None):
        super().__init__(message)
        self.field_errors = field_errors


# Authentication

class AuthenticationError(StorefrontError):
    status_code = 401
    message = "Incorrect email or password. Please try again."


class DuplicateAccountError(StorefrontError):
    status_code = 409
    message = "An account with this email already exists."


# Business rules

class CheckoutRuleError(StorefrontError):
    """A confirmation guard failed; `step` is where the user must go next."""

    step: Optional[str] = None
    redirect: Optional[str] = None


class EmptyCartError(CheckoutRuleError):
    message = "Your cart is empty."
    redirect = "/cart"


class MissingShippingDetailsError(CheckoutRuleError):
    message = "Please provide delivery details before confirming."
    step = "address"


class MissingPaymentMethodError(CheckoutRuleError):
    message = "Select a payment method to continue."
    step = "payment"


class MissingPasswordError(CheckoutRuleError):
    message = "Create a password to continue."
    step = "address"


class InvalidStepError(CheckoutRuleError):
    status_code = 409
    message = "This action is not available at the current checkout step."


class ActorUnresolvedError(CheckoutRuleError):
    status_code = 409
    message = "Checkout is still loading. Please try again."


class ConfirmationInProgressError(CheckoutRuleError):
    status_code = 409
    message = "Your order is already being confirmed."


# Persistence / transport

class OrderPersistenceError(StorefrontError):
    status_code = 503
    message = "We couldn't save your order. Please try again."


class DuplicateOrderNumberError(StorefrontError):
    status_code = 409
    message = "An order with this number already exists."


class StateStoreError(StorefrontError):
    status_code = 503
    message = "We couldn't save your checkout progress. Please try again."


class OrderNotFoundError(StorefrontError):
    status_code = 404
    message = "Order not found"


class PasswordChangeError(StorefrontError):
    message = "We couldn't update your password."
