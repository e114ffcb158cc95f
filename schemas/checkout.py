import re
from typing import Dict, List, Optional

from pydantic import BaseModel, EmailStr, Field, ValidationInfo, field_validator

from schemas.cart import CartOut
from schemas.order import OrderOut

PHONE_PATTERN = re.compile(r"^(?:\+?88)?01[3-9]\d{8}$")
POSTAL_CODE_PATTERN = re.compile(r"^[0-9]+$")


def _required(value: str, message: str) -> str:
    value = (value or "").strip()
    if not value:
        raise ValueError(message)
    return value


class ShippingDetails(BaseModel):
    """Delivery details captured at the address step."""

    full_name: str
    email: EmailStr
    phone: str
    city: str
    postal_code: str
    address_line1: str
    apartment: Optional[str] = None
    road_no: Optional[str] = None
    additional_info: Optional[str] = Field(None, max_length=1000)

    @field_validator("full_name")
    @classmethod
    def validate_full_name(cls, v: str) -> str:
        return _required(v, "Full name is required")

    @field_validator("phone")
    @classmethod
    def validate_phone(cls, v: str) -> str:
        v = (v or "").strip()
        if not 11 <= len(v) <= 15 or not PHONE_PATTERN.match(v):
            raise ValueError("Enter a valid Bangladeshi phone number")
        return v

    @field_validator("city")
    @classmethod
    def validate_city(cls, v: str) -> str:
        return _required(v, "City is required")

    @field_validator("postal_code")
    @classmethod
    def validate_postal_code(cls, v: str) -> str:
        v = (v or "").strip()
        if len(v) < 4:
            raise ValueError("Postal code must be at least 4 digits")
        if len(v) > 6:
            raise ValueError("Postal code must be at most 6 digits")
        if not POSTAL_CODE_PATTERN.match(v):
            raise ValueError("Postal code must only contain numbers")
        return v

    @field_validator("address_line1")
    @classmethod
    def validate_address_line1(cls, v: str) -> str:
        return _required(v, "Street address is required")

    @field_validator("apartment", "road_no", "additional_info")
    @classmethod
    def blank_to_none(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        v = v.strip()
        return v or None


class GuestShippingDetails(ShippingDetails):
    """Guests pick a password so an account is created when they confirm."""

    password: str
    confirm_password: str

    @field_validator("password")
    @classmethod
    def validate_password(cls, v: str) -> str:
        if len(v or "") < 6:
            raise ValueError("Password must be at least 6 characters")
        return v

    @field_validator("confirm_password")
    @classmethod
    def validate_confirm_password(cls, v: str, info: ValidationInfo) -> str:
        if len(v or "") < 6:
            raise ValueError("Password must be at least 6 characters")
        password = info.data.get("password")
        if password is not None and v != password:
            raise ValueError("Passwords do not match")
        return v

    def shipping(self) -> ShippingDetails:
        return ShippingDetails(**self.model_dump(exclude={"password", "confirm_password"}))


class PaymentSelection(BaseModel):
    method: str


class PaymentMethodOut(BaseModel):
    id: str
    title: str
    description: str


class CheckoutOut(BaseModel):
    step: str
    actor: str
    requires_password: bool
    shipping_details: Optional[ShippingDetails] = None
    prefill: Dict[str, Optional[str]] = {}
    payment_method: Optional[str] = None
    payment_methods: List[PaymentMethodOut]
    attempt_token: str
    cart: CartOut


class ConfirmationOut(BaseModel):
    order_number: str
    tracking_url: str
    replayed: bool = False
    order: OrderOut
