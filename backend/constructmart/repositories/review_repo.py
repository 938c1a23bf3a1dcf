from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from constructmart.models.order import Order, OrderItem
from constructmart.models.product import Product
from constructmart.models.review import Review
from constructmart.models.user import User

SORT_COLUMNS = {
    "created_at": Review.created_at,
    "rating": Review.rating,
    "helpful_votes_count": Review.helpful_votes_count,
}
# orders in these states count as a completed purchase
PURCHASED_STATUSES = ("delivered",)


class ReviewRepository:
    def __init__(self, db: Session):
        self.db = db

    def approved_for_product(
        self,
        product: Product,
        rating: Optional[int] = None,
        sort_by: str = "created_at",
        sort_order: str = "desc",
    ):
        query = self.db.query(Review).filter(Review.product_id == product.id, Review.status == "approved")
        if rating is not None:
            query = query.filter(Review.rating == rating)
        column = SORT_COLUMNS[sort_by]
        order = column.asc() if sort_order == "asc" else column.desc()
        return query.order_by(order, Review.id.desc())

    def get_for_user(self, product: Product, user: User) -> Optional[Review]:
        return (
            self.db.query(Review)
            .filter(Review.product_id == product.id, Review.user_id == user.id)
            .first()
        )

    def purchased_item(self, product: Product, user: User, order_item_uid: Optional[str] = None) -> Optional[OrderItem]:
        """The buyer's order item for ``product``: the one named, or any from a delivered order."""
        query = (
            self.db.query(OrderItem)
            .join(Order, OrderItem.order_id == Order.id)
            .filter(Order.buyer_id == user.id, OrderItem.product_id == product.id)
        )
        if order_item_uid:
            return query.filter(OrderItem.uid == order_item_uid).first()
        return query.filter(Order.order_status.in_(PURCHASED_STATUSES)).order_by(OrderItem.id).first()

    def approved_stats(self, product: Product):
        """``(average_rating, count)`` over the approved reviews of ``product``."""
        avg, count = (
            self.db.query(func.avg(Review.rating), func.count(Review.id))
            .filter(Review.product_id == product.id, Review.status == "approved")
            .one()
        )
        return float(avg or 0), count or 0
