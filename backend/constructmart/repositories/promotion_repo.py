from datetime import datetime
from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from constructmart.models.promotion import CouponCode, Promotion, PromotionUsage


class PromotionRepository:
    def __init__(self, db: Session):
        self.db = db

    def get_for_seller(self, uid: str, seller_id: int) -> Optional[Promotion]:
        return (
            self.db.query(Promotion)
            .filter(Promotion.uid == uid, Promotion.seller_id == seller_id)
            .first()
        )

    def list_for_seller(
        self,
        seller_id: int,
        status: Optional[str] = None,
        promotion_type: Optional[str] = None,
        search: Optional[str] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
    ):
        query = self.db.query(Promotion).filter(Promotion.seller_id == seller_id)
        if status:
            query = query.filter(Promotion.status == status)
        if promotion_type:
            query = query.filter(Promotion.promotion_type == promotion_type)
        if search:
            query = query.filter(
                Promotion.name.icontains(search, autoescape=True)
                | Promotion.description.icontains(search, autoescape=True)
                | Promotion.coupon_code.icontains(search, autoescape=True)
            )
        # overlap with [start_date, end_date]
        if start_date is not None:
            query = query.filter(Promotion.end_date >= start_date)
        if end_date is not None:
            query = query.filter(Promotion.start_date <= end_date)
        return query.order_by(Promotion.created_at.desc(), Promotion.id.desc())

    def code_taken(self, code: str, exclude_promotion_id: Optional[int] = None) -> bool:
        upper = code.upper()
        qry = self.db.query(Promotion.id).filter(func.upper(Promotion.coupon_code) == upper)
        if exclude_promotion_id is not None:
            qry = qry.filter(Promotion.id != exclude_promotion_id)
        if qry.first():
            return True
        return (
            self.db.query(CouponCode.id).filter(func.upper(CouponCode.code) == upper).first()
            is not None
        )

    def resolve_code(self, code: str):
        """Return ``(promotion, coupon)``; ``coupon`` is None for a promotion's own code."""
        upper = code.strip().upper()
        promotion = (
            self.db.query(Promotion).filter(func.upper(Promotion.coupon_code) == upper).first()
        )
        if promotion:
            return promotion, None
        coupon = self.db.query(CouponCode).filter(func.upper(CouponCode.code) == upper).first()
        if coupon:
            return coupon.promotion, coupon
        return None, None

    def customer_uses(self, promotion_id: int, user_id: int) -> int:
        return (
            self.db.query(func.count(PromotionUsage.id))
            .filter(PromotionUsage.promotion_id == promotion_id, PromotionUsage.user_id == user_id)
            .scalar()
            or 0
        )

    def all(self):
        return self.db.query(Promotion).all()
