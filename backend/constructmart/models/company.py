from sqlalchemy import Boolean, Column, DateTime, Integer, String, Text
from sqlalchemy.orm import relationship

from constructmart.db import Base
from constructmart.utils.identifiers import new_uid, utcnow


class Company(Base):
    __tablename__ = "companies"

    id = Column(Integer, primary_key=True, index=True)
    uid = Column(String(32), unique=True, index=True, nullable=False, default=lambda: new_uid("comp"))
    name = Column(String(255), nullable=False)
    business_type = Column(String(64), nullable=False)
    tax_id = Column(String(64), nullable=True)
    industry = Column(String(128), nullable=True)
    website = Column(String(255), nullable=True)
    logo_url = Column(String(512), nullable=True)
    description = Column(Text, nullable=True)
    is_verified = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    users = relationship("User", back_populates="company")
    products = relationship("Product", back_populates="seller")
