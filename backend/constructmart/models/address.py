from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship

from constructmart.db import Base
from constructmart.utils.identifiers import new_uid, utcnow

ADDRESS_TYPES = ("shipping", "billing", "both")


class Address(Base):
    __tablename__ = "addresses"

    id = Column(Integer, primary_key=True, index=True)
    uid = Column(String(32), unique=True, index=True, nullable=False, default=lambda: new_uid("addr"))
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=True, index=True)
    address_type = Column(String(16), nullable=False)
    recipient_name = Column(String(255), nullable=False)
    street_address_1 = Column(String(255), nullable=False)
    street_address_2 = Column(String(255), nullable=True)
    city = Column(String(128), nullable=False)
    state_province = Column(String(128), nullable=False)
    postal_code = Column(String(32), nullable=False)
    country = Column(String(64), nullable=False)
    phone_number = Column(String(32), nullable=True)
    is_default_shipping = Column(Boolean, default=False, nullable=False)
    is_default_billing = Column(Boolean, default=False, nullable=False)
    special_instructions = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    user = relationship("User")
    company = relationship("Company")
