from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..database import get_db
from ..errors import NotFound, ValidationFailed
from ..models.cart import Cart
from ..models.product import Product
from ..models.user import User
from ..schemas.base import dump, envelope
from ..schemas.cart import CartItemAdd, CartItemUpdate, CartResponse
from ..utils.security import get_current_user

router = APIRouter(prefix="/cart", tags=["Cart"])


def get_or_create_cart(db: Session, user: User) -> Cart:
    cart = db.query(Cart).filter(Cart.user_id == user.id).first()
    if cart is None:
        cart = Cart(user_id=user.id, items=[]).calculate_totals()
        db.add(cart)
        db.flush()
    return cart


def cart_response(db: Session, cart: Cart, message: str = None) -> dict:
    db.commit()
    db.refresh(cart)
    return envelope(dump(CartResponse, cart), message)


@router.get("")
async def get_cart(db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    """Get the current customer's cart"""
    return cart_response(db, get_or_create_cart(db, current_user))


@router.post("/items")
async def add_to_cart(
    payload: CartItemAdd,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Add a product, merging with an existing line"""
    product = db.query(Product).filter(Product.id == payload.product_id).first()
    if not product or not product.is_active:
        raise NotFound("Product not found")

    cart = get_or_create_cart(db, current_user)
    existing = cart.find_item(product.id)
    wanted = payload.quantity + (existing.quantity if existing else 0)
    if product.stock < wanted:
        raise ValidationFailed(
            f"Insufficient stock for {product.name}",
            errors=[{"productId": product.id, "requested": wanted, "available": product.stock}]
        )

    cart.add_item(product, payload.quantity)
    return cart_response(db, cart, "Item added to cart")


@router.put("/items/{product_id}")
async def update_cart_item(
    product_id: int,
    payload: CartItemUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Change a line quantity; zero or less removes the line"""
    cart = get_or_create_cart(db, current_user)

    if payload.quantity > 0:
        product = db.query(Product).filter(Product.id == product_id).first()
        if product and product.stock < payload.quantity:
            raise ValidationFailed(f"Insufficient stock for {product.name}")

    if not cart.update_item_quantity(product_id, payload.quantity):
        raise NotFound("Item not found in cart")
    return cart_response(db, cart, "Cart updated")


@router.delete("/items/{product_id}")
async def remove_cart_item(
    product_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Remove a product from the cart"""
    cart = get_or_create_cart(db, current_user)
    if not cart.find_item(product_id):
        raise NotFound("Item not found in cart")
    cart.remove_item(product_id)
    return cart_response(db, cart, "Item removed from cart")


@router.delete("")
async def clear_cart(db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    """Empty the cart"""
    cart = get_or_create_cart(db, current_user)
    cart.clear()
    return cart_response(db, cart, "Cart cleared")
