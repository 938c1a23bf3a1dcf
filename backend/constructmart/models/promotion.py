from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import relationship

from constructmart.db import Base
from constructmart.utils.identifiers import new_uid, utcnow

PROMOTION_TYPES = ("percentage", "fixed_amount", "buy_x_get_y", "free_shipping", "bundle")
DISCOUNT_TYPES = ("percentage", "fixed_amount")
PROMOTION_STATUSES = ("active", "scheduled", "expired", "draft")
CUSTOMER_GROUPS = ("all", "new", "returning", "vip")


class Promotion(Base):
    __tablename__ = "promotions"

    id = Column(Integer, primary_key=True, index=True)
    uid = Column(String(32), unique=True, index=True, nullable=False, default=lambda: new_uid("promo"))
    seller_id = Column(Integer, ForeignKey("companies.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    promotion_type = Column(String(32), nullable=False, default="percentage")
    discount_type = Column(String(32), nullable=False, default="percentage")
    # percent for percentage discounts, cents for fixed amounts
    discount_value = Column(Float, nullable=False, default=0)
    minimum_purchase_cents = Column(Integer, nullable=True)
    maximum_discount_cents = Column(Integer, nullable=True)
    start_date = Column(DateTime(timezone=True), nullable=False)
    end_date = Column(DateTime(timezone=True), nullable=False)
    time_restrictions = Column(JSON, nullable=True)
    eligibility = Column(JSON, nullable=True)
    usage_limits = Column(JSON, nullable=True)
    coupon_code = Column(String(64), unique=True, nullable=True, index=True)
    is_active = Column(Boolean, nullable=False, default=False)
    status = Column(String(16), nullable=False, default="draft", index=True)
    buy_quantity = Column(Integer, nullable=True)
    get_quantity = Column(Integer, nullable=True)
    usage_count = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    seller = relationship("Company")
    coupon_codes = relationship(
        "CouponCode", back_populates="promotion", cascade="all, delete-orphan", order_by="CouponCode.id"
    )
    usages = relationship("PromotionUsage", back_populates="promotion", cascade="all, delete-orphan")


class CouponCode(Base):
    __tablename__ = "coupon_codes"

    id = Column(Integer, primary_key=True, index=True)
    uid = Column(String(32), unique=True, index=True, nullable=False, default=lambda: new_uid("coupon"))
    promotion_id = Column(
        Integer, ForeignKey("promotions.id", ondelete="CASCADE"), nullable=False, index=True
    )
    code = Column(String(64), unique=True, nullable=False, index=True)
    max_uses = Column(Integer, nullable=True)
    times_used = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    promotion = relationship("Promotion", back_populates="coupon_codes")


class PromotionUsage(Base):
    __tablename__ = "promotion_usages"

    id = Column(Integer, primary_key=True, index=True)
    promotion_id = Column(
        Integer, ForeignKey("promotions.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=True)
    discount_cents = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    promotion = relationship("Promotion", back_populates="usages")
