from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from constructmart.db import get_db
from constructmart.models.user import User
from constructmart.schemas.order_schema import CartItemIn, CartItemUpdate
from constructmart.security import get_current_user
from constructmart.services.cart_service import CartService, cart_dict

router = APIRouter(prefix="/api/cart", tags=["cart"])


@router.get("", summary="Get cart")
def get_cart(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    cart = CartService(db).get_or_create_cart(user)
    return {"success": True, "cart": cart_dict(cart)}


@router.post("/items", status_code=status.HTTP_201_CREATED, summary="Add item to cart")
def add_item(
    payload: CartItemIn,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    cart = CartService(db).add_item(user, payload.product_uid, payload.variant_uid, payload.quantity)
    return {"success": True, "message": "Item added to cart", "cart": cart_dict(cart)}


@router.put("/items/{item_uid}", summary="Update cart item")
def update_item(
    item_uid: str,
    payload: CartItemUpdate,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    cart = CartService(db).update_item(user, item_uid, payload.quantity, payload.is_saved_for_later)
    return {"success": True, "message": "Cart updated", "cart": cart_dict(cart)}


@router.delete("/items/{item_uid}", summary="Remove item")
def remove_item(item_uid: str, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    cart = CartService(db).remove_item(user, item_uid)
    return {"success": True, "message": "Item removed from cart", "cart": cart_dict(cart)}
