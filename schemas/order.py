from datetime import datetime
from pydantic import BaseModel, Field
from typing import List, Optional


class TimelineStep(BaseModel):
    id: str = Field(min_length=1)
    title: str = Field(min_length=1)
    description: str = Field(min_length=1)
    date: Optional[datetime] = None
    is_completed: bool


class ShippingAddress(BaseModel):
    name: str = Field(min_length=1)
    phone: str = Field(min_length=1)
    address_line1: str = Field(min_length=1)
    address_line2: Optional[str] = None
    city: str = Field(min_length=1)
    postal_code: str = Field(min_length=1)


class OrderCreate(BaseModel):
    order_number: str = Field(min_length=1)
    placed_on: Optional[datetime] = None
    total_amount: int = Field(ge=0)
    items_count: int = Field(ge=0)
    status: str = Field(min_length=1)
    payment_method: str = Field(min_length=1)
    estimated_delivery: Optional[datetime] = None
    notes: Optional[str] = Field(None, max_length=1000)
    shipping_address: ShippingAddress
    status_history: List[TimelineStep] = Field(min_length=1)


class OrderOut(BaseModel):
    order_number: str
    placed_on: datetime
    total_amount: int
    items_count: int
    status: str
    payment_method: str
    estimated_delivery: Optional[datetime] = None
    notes: Optional[str] = None
    shipping_address: ShippingAddress
    status_history: List[TimelineStep]
