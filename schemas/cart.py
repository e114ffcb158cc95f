from pydantic import BaseModel, Field
from typing import List, Optional


class DiscountIn(BaseModel):
    percentage: int = Field(0, ge=0, le=100)
    amount: int = Field(0, ge=0)


class CartItemIn(BaseModel):
    product_id: int
    name: str = Field(min_length=1, max_length=200)
    price: int = Field(ge=0)
    quantity: int = Field(1, ge=1, le=99)
    discount: DiscountIn = DiscountIn()
    size: Optional[str] = None
    color: Optional[str] = None


class CartItemUpdate(BaseModel):
    quantity: int = Field(ge=1, le=99)


class CartItemOut(BaseModel):
    id: int
    product_id: int
    name: str
    price: int
    discount: DiscountIn
    final_price: int
    quantity: int
    size: Optional[str] = None
    color: Optional[str] = None


class CartOut(BaseModel):
    token: str
    items: List[CartItemOut]
    total_quantity: int
    total_amount: int
