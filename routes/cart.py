from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Response
from sqlalchemy.orm import Session

from core.db import get_db
from core.session import get_cart_token, set_cart_cookie
from schemas.cart import CartItemIn, CartItemUpdate, CartOut
from services import cart as cart_service

router = APIRouter(prefix="/cart", tags=["cart"])


@router.get("/", response_model=CartOut)
def get_cart(token: Optional[str] = Depends(get_cart_token), db: Session = Depends(get_db)):
    return cart_service.cart_summary(cart_service.find_cart(db, token))


@router.post("/items", response_model=CartOut, status_code=201)
def add_item(
    data: CartItemIn,
    response: Response,
    token: Optional[str] = Depends(get_cart_token),
    db: Session = Depends(get_db),
):
    cart = cart_service.get_or_create_cart(db, token)
    if cart.token != token:
        set_cart_cookie(response, cart.token)
    cart_service.add_item(db, cart, data)
    return cart_service.cart_summary(cart)


@router.patch("/items/{item_id}", response_model=CartOut)
def update_item(
    item_id: int,
    data: CartItemUpdate,
    token: Optional[str] = Depends(get_cart_token),
    db: Session = Depends(get_db),
):
    cart = cart_service.find_cart(db, token)
    item = cart_service.find_item(cart, item_id) if cart else None
    if not item:
        raise HTTPException(status_code=404, detail="Cart item not found")
    cart_service.update_quantity(db, item, data.quantity)
    return cart_service.cart_summary(cart)


@router.delete("/items/{item_id}", response_model=CartOut)
def remove_item(item_id: int, token: Optional[str] = Depends(get_cart_token), db: Session = Depends(get_db)):
    cart = cart_service.find_cart(db, token)
    item = cart_service.find_item(cart, item_id) if cart else None
    if not item:
        raise HTTPException(status_code=404, detail="Cart item not found")
    cart_service.remove_item(db, cart, item)
    return cart_service.cart_summary(cart)


@router.delete("/", response_model=CartOut)
def clear_cart(token: Optional[str] = Depends(get_cart_token), db: Session = Depends(get_db)):
    cart = cart_service.find_cart(db, token)
    if cart:
        cart_service.clear_cart(db, cart)
    return cart_service.cart_summary(cart, token or "")
