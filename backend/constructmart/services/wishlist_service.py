import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from constructmart.errors import (
    ConflictError,
    InvalidRequestError,
    PermissionDeniedError,
    ResourceNotFoundError,
)
from constructmart.models.user import User
from constructmart.models.wishlist import Wishlist, WishlistItem
from constructmart.repositories.product_repo import ProductRepository
from constructmart.repositories.wishlist_repo import WishlistRepository
from constructmart.schemas.wishlist_schema import WishlistIn, WishlistItemIn, WishlistOut
from constructmart.services.cart_service import unit_price
from constructmart.services.notification_service import NotificationService
from constructmart.utils.identifiers import utcnow
from constructmart.utils.transactions import atomic

logger = logging.getLogger(__name__)


class WishlistServiceException(InvalidRequestError):
    pass


def wishlist_item_dict(it: WishlistItem) -> Dict[str, Any]:
    product, variant = it.product, it.variant
    available = variant.quantity_available if variant else product.quantity_available
    return {
        "uid": it.uid,
        "product_uid": product.uid,
        "product_name": product.name,
        "short_description": product.short_description,
        "price_cents": unit_price(product, variant),
        "currency": product.currency,
        "in_stock": available > 0 or bool(product.backorder_allowed),
        "primary_image_url": product.primary_image_url,
        "variant_uid": variant.uid if variant else None,
        "variant_type": variant.variant_type if variant else None,
        "variant_value": variant.variant_value if variant else None,
        "notes": it.notes,
        "added_at": it.added_at,
    }


def wishlist_dict(w: Wishlist, with_items: bool = False) -> Dict[str, Any]:
    data = WishlistOut.model_validate(w).model_dump()
    if with_items:
        data["items"] = [wishlist_item_dict(it) for it in w.items]
        data["owner"] = {
            "uid": w.user.uid,
            "first_name": w.user.first_name,
            "last_name": w.user.last_name,
        }
    return data


class WishlistService:
    def __init__(self, db: Session, notifier: Optional[NotificationService] = None):
        self.db = db
        self.repo = WishlistRepository(db)
        self.products = ProductRepository(db)
        self.notifier = notifier or NotificationService(db)

    def list(self, user: User) -> List[Wishlist]:
        return self.repo.for_user(user)

    def create(self, user: User, payload: WishlistIn) -> Wishlist:
        name = (payload.name or "").strip()
        if not name:
            raise WishlistServiceException("Wishlist name is required")
        with atomic(self.db):
            wishlist = Wishlist(
                user_id=user.id,
                name=name,
                description=payload.description,
                is_public=payload.is_public,
            )
            self.db.add(wishlist)
        return wishlist

    def get(self, uid: str, viewer: Optional[User] = None) -> Wishlist:
        wishlist = self.repo.get_by_uid(uid)
        if not wishlist:
            raise ResourceNotFoundError("Wishlist", uid)
        if not wishlist.is_public and (viewer is None or viewer.id != wishlist.user_id):
            raise PermissionDeniedError("You do not have permission to view this wishlist")
        return wishlist

    def _owned(self, user: User, uid: str) -> Wishlist:
        wishlist = self.repo.get_owned(user, uid)
        if not wishlist:
            raise ResourceNotFoundError("Wishlist", uid)
        return wishlist

    def add_item(self, user: User, uid: str, payload: WishlistItemIn) -> WishlistItem:
        wishlist = self._owned(user, uid)
        product = self.products.get_by_uid(payload.product_uid)
        if not product or not product.is_listed:
            raise ResourceNotFoundError("Product", payload.product_uid)
        variant = None
        if payload.variant_uid:
            variant = self.products.get_variant(product, payload.variant_uid)
            if not variant or not variant.is_active:
                raise ResourceNotFoundError("Product variant", payload.variant_uid)
        if self.repo.find_item(wishlist, product.id, variant.id if variant else None):
            raise ConflictError("This item is already in your wishlist")

        with atomic(self.db):
            item = WishlistItem(
                product_id=product.id,
                variant_id=variant.id if variant else None,
                notes=payload.notes,
            )
            wishlist.items.append(item)
            wishlist.updated_at = utcnow()
        self._emit(user, wishlist, "item_added", item.uid, product.uid)
        return item

    def remove_item(self, user: User, uid: str, item_uid: str) -> Wishlist:
        wishlist = self._owned(user, uid)
        item = self.repo.get_item(wishlist, item_uid)
        if not item:
            raise ResourceNotFoundError("Wishlist item", item_uid)
        product_uid = item.product.uid
        with atomic(self.db):
            wishlist.items.remove(item)
            wishlist.updated_at = utcnow()
        self._emit(user, wishlist, "item_removed", item_uid, product_uid)
        return wishlist

    def _emit(self, user: User, wishlist: Wishlist, update_type: str, item_uid: str, product_uid: str):
        self.notifier.queue_event(
            f"user:{user.uid}",
            "wishlist_update",
            {
                "wishlist_uid": wishlist.uid,
                "update_type": update_type,
                "item_uid": item_uid,
                "product_uid": product_uid,
                "item_count": wishlist.item_count,
            },
        )
        self.notifier.dispatch()
