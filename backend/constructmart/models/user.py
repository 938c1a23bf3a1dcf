from sqlalchemy import JSON, Boolean, Column, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import relationship

from constructmart.db import Base
from constructmart.utils.identifiers import new_uid, utcnow

BUYER_TYPES = ("individual_buyer", "professional_buyer")
STAFF_TYPES = ("system_admin", "customer_support")
USER_TYPES = BUYER_TYPES + ("vendor_admin",) + STAFF_TYPES
COMPANY_USER_TYPES = ("professional_buyer", "vendor_admin")


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    uid = Column(String(32), unique=True, index=True, nullable=False, default=lambda: new_uid("user"))
    email = Column(String(255), unique=True, index=True, nullable=False)
    password_hash = Column(String(255), nullable=False)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    phone_number = Column(String(32), nullable=True)
    user_type = Column(String(32), nullable=False, default="individual_buyer")
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=True, index=True)
    profile_picture_url = Column(String(512), nullable=True)
    communication_preferences = Column(JSON, nullable=True)
    is_verified = Column(Boolean, default=False, nullable=False)
    verification_token = Column(String(64), nullable=True, index=True)
    is_active = Column(Boolean, default=True, nullable=False)
    last_login = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    company = relationship("Company", back_populates="users")

    @property
    def company_uid(self):
        return self.company.uid if self.company else None

    @property
    def is_staff(self) -> bool:
        return self.user_type in STAFF_TYPES

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    def __repr__(self):
        return f"<User uid={self.uid} email={self.email}>"
