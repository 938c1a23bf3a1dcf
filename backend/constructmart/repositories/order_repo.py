from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from constructmart.models.order import Order, OrderItem
from constructmart.models.user import User


class OrderRepository:
    def __init__(self, db: Session):
        self.db = db

    def get_by_uid(self, uid: str) -> Optional[Order]:
        return self.db.query(Order).filter(Order.uid == uid).first()

    def number_exists(self, order_number: str) -> bool:
        return self.db.query(Order.id).filter(Order.order_number == order_number).first() is not None

    def for_buyer(self, user: User, status: Optional[str] = None):
        query = self.db.query(Order).filter(Order.buyer_id == user.id)
        if status:
            query = query.filter(Order.order_status == status)
        return query.order_by(Order.created_at.desc(), Order.id.desc())

    def for_seller(self, seller_id: int, status: Optional[str] = None):
        seller_orders = (
            self.db.query(OrderItem.order_id).filter(OrderItem.seller_id == seller_id).distinct()
        )
        query = self.db.query(Order).filter(Order.id.in_(seller_orders))
        if status:
            query = query.filter(Order.order_status == status)
        return query.order_by(Order.created_at.desc(), Order.id.desc())

    def count_for_buyer(self, user_id: int) -> int:
        return (
            self.db.query(func.count(Order.id))
            .filter(Order.buyer_id == user_id, Order.order_status != "cancelled")
            .scalar()
            or 0
        )

    def product_has_orders(self, product_id: int) -> bool:
        return (
            self.db.query(OrderItem.id).filter(OrderItem.product_id == product_id).first()
            is not None
        )
