from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from constructmart.errors import InvalidRequestError, ResourceNotFoundError
from constructmart.models.cart import Cart
from constructmart.models.cart_item import CartItem
from constructmart.models.user import User
from constructmart.repositories.cart_repo import CartRepository
from constructmart.repositories.product_repo import ProductRepository
from constructmart.services.inventory_service import InventoryService
from constructmart.services.notification_service import NotificationService


def unit_price(product, variant=None) -> int:
    extra = variant.additional_price_cents if variant is not None else 0
    return product.base_price_cents + extra


def cart_item_dict(it: CartItem) -> Dict[str, Any]:
    product, variant = it.product, it.variant
    return {
        "uid": it.uid,
        "product_uid": product.uid,
        "product_name": product.name,
        "sku": product.sku,
        "short_description": product.short_description,
        "primary_image_url": product.primary_image_url,
        "variant_uid": variant.uid if variant else None,
        "variant_type": variant.variant_type if variant else None,
        "variant_value": variant.variant_value if variant else None,
        "quantity": it.quantity,
        "price_snapshot_cents": it.price_snapshot_cents,
        "current_price_cents": unit_price(product, variant),
        "line_total_cents": it.quantity * it.price_snapshot_cents,
        "quantity_available": variant.quantity_available if variant else product.quantity_available,
        "is_saved_for_later": it.is_saved_for_later,
        "added_at": it.added_at,
    }


def cart_dict(cart: Cart) -> Dict[str, Any]:
    return {
        "uid": cart.uid,
        "items": [cart_item_dict(it) for it in cart.items],
        "subtotal_cents": cart.subtotal_cents,
        "item_count": cart.item_count,
        "last_activity": cart.last_activity,
    }


class CartService:
    def __init__(self, db: Session, notifier: Optional[NotificationService] = None):
        self.db = db
        self.cart_repo = CartRepository(db)
        self.product_repo = ProductRepository(db)
        self.inventory = InventoryService(db)
        self.notifier = notifier or NotificationService(db)

    def get_or_create_cart(self, user: User) -> Cart:
        c = self.cart_repo.get_active(user)
        if c:
            return c
        c = self.cart_repo.create(user)
        self.db.commit()
        return c

    def _emit(self, user: User, cart: Cart, update_type: str, item_uid: str):
        self.notifier.queue_event(
            f"user:{user.uid}",
            "cart_update",
            {
                "cart_uid": cart.uid,
                "update_type": update_type,
                "item_uid": item_uid,
                "cart_summary": {
                    "subtotal_cents": cart.subtotal_cents,
                    "item_count": cart.item_count,
                },
            },
        )
        self.notifier.dispatch()

    def add_item(self, user: User, product_uid: str, variant_uid: Optional[str], qty: int) -> Cart:
        if qty <= 0:
            raise InvalidRequestError("Quantity must be positive")
        product = self.product_repo.get_by_uid(product_uid)
        if not product or not product.is_listed:
            raise ResourceNotFoundError("Product", product_uid)
        variant = None
        if variant_uid:
            variant = self.product_repo.get_variant(product, variant_uid)
            if not variant or not variant.is_active:
                raise ResourceNotFoundError("Product variant", variant_uid)

        cart = self.get_or_create_cart(user)
        item = self.cart_repo.find_line(cart, product.id, variant.id if variant else None)
        new_qty = qty + (item.quantity if item else 0)
        self.inventory.ensure_available(product, variant, new_qty)

        price = unit_price(product, variant)
        if item:
            item.quantity = new_qty
            item.price_snapshot_cents = price
            self.cart_repo.touch(cart)
        else:
            item = self.cart_repo.add_item(cart, product.id, variant.id if variant else None, qty, price)
        self.db.commit()
        self._emit(user, cart, "item_added", item.uid)
        return cart

    def update_item(
        self,
        user: User,
        item_uid: str,
        quantity: Optional[int] = None,
        is_saved_for_later: Optional[bool] = None,
    ) -> Cart:
        if quantity is None and is_saved_for_later is None:
            raise InvalidRequestError("Either quantity or is_saved_for_later is required")
        cart = self.get_or_create_cart(user)
        item = self.cart_repo.get_item(cart, item_uid)
        if not item:
            raise ResourceNotFoundError("Cart item", item_uid)

        update_type = "quantity_changed"
        new_qty = item.quantity if quantity is None else quantity
        moving = is_saved_for_later is not None and is_saved_for_later != item.is_saved_for_later
        saved = is_saved_for_later if moving else item.is_saved_for_later

        # a line moving between the cart and the saved list joins any existing line there
        target = None
        if moving:
            update_type = "moved_to_saved" if saved else "moved_to_cart"
            target = self.cart_repo.find_line(cart, item.product_id, item.variant_id, saved=saved)
        if target is not None:
            new_qty += target.quantity
        if quantity is not None or (moving and not saved):
            self.inventory.ensure_available(item.product, item.variant, new_qty)

        if target is not None:
            target.quantity = new_qty
            if not saved:
                target.price_snapshot_cents = unit_price(item.product, item.variant)
            self.cart_repo.remove_item(cart, item)
            item = target
        else:
            item.quantity = new_qty
            item.is_saved_for_later = saved
        self.cart_repo.touch(cart)
        self.db.commit()
        self._emit(user, cart, update_type, item.uid)
        return cart

    def remove_item(self, user: User, item_uid: str) -> Cart:
        cart = self.get_or_create_cart(user)
        item = self.cart_repo.get_item(cart, item_uid)
        if not item:
            raise ResourceNotFoundError("Cart item", item_uid)
        self.cart_repo.remove_item(cart, item)
        self.db.commit()
        self._emit(user, cart, "item_removed", item_uid)
        return cart
