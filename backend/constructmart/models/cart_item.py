from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import relationship

from constructmart.db import Base
from constructmart.utils.identifiers import new_uid, utcnow


class CartItem(Base):
    __tablename__ = "cart_items"
    id = Column(Integer, primary_key=True, index=True)
    uid = Column(String(32), unique=True, index=True, nullable=False, default=lambda: new_uid("ci"))
    cart_id = Column(
        Integer, ForeignKey("carts.id", ondelete="CASCADE"), nullable=False, index=True
    )
    product_id = Column(
        Integer, ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True
    )
    variant_id = Column(
        Integer, ForeignKey("product_variants.id", ondelete="CASCADE"), nullable=True
    )
    quantity = Column(Integer, nullable=False, default=1)
    price_snapshot_cents = Column(
        Integer, nullable=False, default=0
    )  # unit price at time of add
    is_saved_for_later = Column(Boolean, nullable=False, default=False)
    added_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    cart = relationship("Cart", back_populates="items")
    product = relationship("Product")
    variant = relationship("ProductVariant")
