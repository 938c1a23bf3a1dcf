from sqlalchemy.orm import Session
from typing import Optional
from constructmart.models.cart import Cart
from constructmart.models.cart_item import CartItem
from constructmart.models.user import User
from constructmart.utils.identifiers import utcnow

class CartRepository:
    def __init__(self, db: Session):
        self.db = db

    def get_active(self, user: User) -> Optional[Cart]:
        return (
            self.db.query(Cart)
            .filter(Cart.user_id == user.id, Cart.is_active == True)
            .order_by(Cart.last_activity.desc())
            .first()
        )

    def create(self, user: User) -> Cart:
        c = Cart(user_id=user.id, company_id=user.company_id)
        self.db.add(c)
        self.db.flush()
        return c

    def find_line(
        self, cart: Cart, product_id: int, variant_id: Optional[int], saved: bool = False
    ) -> Optional[CartItem]:
        return next(
            (
                it for it in cart.items
                if it.product_id == product_id
                and it.variant_id == variant_id
                and bool(it.is_saved_for_later) == saved
            ),
            None,
        )

    def add_item(self, cart: Cart, product_id: int, variant_id: Optional[int], qty: int, price_snapshot: int) -> CartItem:
        item = CartItem(
            product_id=product_id,
            variant_id=variant_id,
            quantity=qty,
            price_snapshot_cents=price_snapshot,
        )
        cart.items.append(item)
        self.touch(cart)
        self.db.flush()
        return item

    def get_item(self, cart: Cart, item_uid: str) -> Optional[CartItem]:
        return next((it for it in cart.items if it.uid == item_uid), None)

    def remove_item(self, cart: Cart, item: CartItem):
        cart.items.remove(item)
        self.touch(cart)
        self.db.flush()

    def remove_product_lines(self, product_id: int) -> int:
        n = self.db.query(CartItem).filter(CartItem.product_id == product_id).delete(
            synchronize_session=False
        )
        self.db.flush()
        return n

    def touch(self, cart: Cart):
        cart.last_activity = utcnow()
