import secrets
from typing import Optional

from sqlalchemy.orm import Session

from models.cart import Cart, CartItem
from schemas.cart import CartItemIn, CartItemOut, CartOut, DiscountIn
from services.order_builder import cart_quantity, cart_total, item_final_price


def find_cart(db: Session, token: Optional[str]) -> Optional[Cart]:
    if not token:
        return None
    return db.query(Cart).filter(Cart.token == token).one_or_none()


def get_or_create_cart(db: Session, token: Optional[str]) -> Cart:
    cart = find_cart(db, token)
    if cart is None:
        cart = Cart(token=secrets.token_hex(16))
        db.add(cart)
        db.commit()
        db.refresh(cart)
    return cart


def add_item(db: Session, cart: Cart, data: CartItemIn) -> CartItem:
    """Add a line, merging with an existing line for the same variant."""
    for item in cart.items:
        if (item.product_id, item.size, item.color) == (data.product_id, data.size, data.color):
            item.quantity += data.quantity
            db.commit()
            return item
    item = CartItem(
        product_id=data.product_id,
        name=data.name,
        price=data.price,
        discount_percentage=data.discount.percentage,
        discount_amount=data.discount.amount,
        quantity=data.quantity,
        size=data.size,
        color=data.color,
    )
    cart.items.append(item)
    db.commit()
    db.refresh(item)
    return item


def find_item(cart: Cart, item_id: int) -> Optional[CartItem]:
    return next((item for item in cart.items if item.id == item_id), None)


def update_quantity(db: Session, item: CartItem, quantity: int) -> CartItem:
    item.quantity = quantity
    db.commit()
    return item


def remove_item(db: Session, cart: Cart, item: CartItem) -> None:
    cart.items.remove(item)
    db.commit()


def clear_cart(db: Session, cart: Cart, commit: bool = True) -> None:
    """Drop every line; with commit=False the caller's transaction owns it."""
    cart.items.clear()
    if commit:
        db.commit()


def cart_summary(cart: Optional[Cart], token: str = "") -> CartOut:
    items = list(cart.items) if cart else []
    return CartOut(
        token=cart.token if cart else token,
        items=[
            CartItemOut(
                id=item.id,
                product_id=item.product_id,
                name=item.name,
                price=item.price,
                discount=DiscountIn(percentage=item.discount_percentage, amount=item.discount_amount),
                final_price=item_final_price(item),
                quantity=item.quantity,
                size=item.size,
                color=item.color,
            )
            for item in items
        ],
        total_quantity=cart_quantity(items),
        total_amount=cart_total(items),
    )
