from typing import List, Optional

from sqlalchemy.orm import Session

from constructmart.models.user import User
from constructmart.models.wishlist import Wishlist, WishlistItem


class WishlistRepository:
    def __init__(self, db: Session):
        self.db = db

    def for_user(self, user: User) -> List[Wishlist]:
        return (
            self.db.query(Wishlist)
            .filter(Wishlist.user_id == user.id)
            .order_by(Wishlist.created_at.desc(), Wishlist.id.desc())
            .all()
        )

    def get_by_uid(self, uid: str) -> Optional[Wishlist]:
        return self.db.query(Wishlist).filter(Wishlist.uid == uid).first()

    def get_owned(self, user: User, uid: str) -> Optional[Wishlist]:
        return (
            self.db.query(Wishlist)
            .filter(Wishlist.uid == uid, Wishlist.user_id == user.id)
            .first()
        )

    def find_item(self, wishlist: Wishlist, product_id: int, variant_id: Optional[int]) -> Optional[WishlistItem]:
        return next(
            (it for it in wishlist.items if it.product_id == product_id and it.variant_id == variant_id),
            None,
        )

    def get_item(self, wishlist: Wishlist, item_uid: str) -> Optional[WishlistItem]:
        return next((it for it in wishlist.items if it.uid == item_uid), None)
