from constructmart.db import Base
from constructmart.utils.identifiers import new_uid, utcnow
from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import relationship


class Cart(Base):
    __tablename__ = "carts"
    id = Column(Integer, primary_key=True, index=True)
    uid = Column(String(32), unique=True, index=True, nullable=False, default=lambda: new_uid("cart"))
    user_id = Column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    last_activity = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    items = relationship(
        "CartItem",
        back_populates="cart",
        cascade="all, delete-orphan",
        order_by="CartItem.id",
    )

    @property
    def active_items(self):
        return [it for it in self.items if not it.is_saved_for_later]

    @property
    def subtotal_cents(self) -> int:
        return sum(it.quantity * it.price_snapshot_cents for it in self.active_items)

    @property
    def item_count(self) -> int:
        return sum(it.quantity for it in self.active_items)
