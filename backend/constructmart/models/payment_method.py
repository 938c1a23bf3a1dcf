from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import relationship

from constructmart.db import Base
from constructmart.utils.identifiers import new_uid, utcnow

PAYMENT_TYPES = ("credit_card", "debit_card", "purchase_order", "bank_transfer")
CARD_TYPES = ("credit_card", "debit_card")


class PaymentMethod(Base):
    __tablename__ = "payment_methods"

    id = Column(Integer, primary_key=True, index=True)
    uid = Column(String(32), unique=True, index=True, nullable=False, default=lambda: new_uid("pm"))
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=True)
    payment_type = Column(String(32), nullable=False)
    card_brand = Column(String(32), nullable=True)
    card_last_four = Column(String(4), nullable=True)
    card_holder_name = Column(String(255), nullable=True)
    expiry_date = Column(String(5), nullable=True)  # MM/YY
    billing_address_id = Column(Integer, ForeignKey("addresses.id", ondelete="SET NULL"), nullable=True)
    is_default = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    billing_address = relationship("Address")

    @property
    def billing_address_uid(self):
        return self.billing_address.uid if self.billing_address else None
