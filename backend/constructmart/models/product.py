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
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from constructmart.db import Base
from constructmart.utils.identifiers import new_uid, utcnow

LISTING_STATUSES = ("draft", "active", "inactive")
INVENTORY_LEVELS = ("in_stock", "low_stock", "out_of_stock", "backorder")


def inventory_status(quantity: int, low_stock_threshold: int, backorder_allowed: bool = False) -> str:
    if quantity <= 0:
        return "backorder" if backorder_allowed else "out_of_stock"
    if quantity <= low_stock_threshold:
        return "low_stock"
    return "in_stock"


class Product(Base):
    __tablename__ = "products"

    id = Column(Integer, primary_key=True, index=True)
    uid = Column(String(32), unique=True, index=True, nullable=False, default=lambda: new_uid("prod"))
    seller_id = Column(Integer, ForeignKey("companies.id"), nullable=False, index=True)
    sku = Column(String(64), unique=True, index=True, nullable=False)
    upc = Column(String(32), nullable=True)
    name = Column(String(256), nullable=False)
    brand = Column(String(128), nullable=True, index=True)
    main_category_id = Column(Integer, ForeignKey("categories.id"), nullable=False, index=True)
    subcategory_id = Column(Integer, ForeignKey("categories.id"), nullable=True, index=True)
    short_description = Column(String(512), nullable=False)
    long_description = Column(Text, nullable=True)
    base_price_cents = Column(Integer, nullable=False, default=0)
    cost_cents = Column(Integer, nullable=True)
    currency = Column(String(3), nullable=False, default="USD")
    unit_of_measure = Column(String(32), nullable=True)
    quantity_available = Column(Integer, nullable=False, default=0)
    low_stock_threshold = Column(Integer, nullable=False, default=5)
    backorder_allowed = Column(Boolean, nullable=False, default=False)
    dimensions = Column(JSON, nullable=True)
    shipping_details = Column(JSON, nullable=True)
    seo = Column(JSON, nullable=True)
    listing_status = Column(String(16), nullable=False, default="draft")
    is_active = Column(Boolean, default=True, nullable=False)
    average_rating = Column(Float, nullable=False, default=0.0)
    total_reviews = Column(Integer, nullable=False, default=0)
    total_views = Column(Integer, nullable=False, default=0)
    total_orders = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    seller = relationship("Company", back_populates="products")
    main_category = relationship("Category", foreign_keys=[main_category_id])
    subcategory = relationship("Category", foreign_keys=[subcategory_id])
    images = relationship(
        "ProductImage",
        back_populates="product",
        cascade="all, delete-orphan",
        order_by="ProductImage.display_order",
    )
    variants = relationship(
        "ProductVariant", back_populates="product", cascade="all, delete-orphan"
    )
    specifications = relationship(
        "ProductSpecification",
        back_populates="product",
        cascade="all, delete-orphan",
        order_by="ProductSpecification.display_order",
    )
    reviews = relationship("Review", back_populates="product", cascade="all, delete-orphan")
    wishlist_items = relationship("WishlistItem", back_populates="product", cascade="all, delete-orphan")

    @property
    def seller_uid(self):
        return self.seller.uid if self.seller else None

    @property
    def main_category_uid(self):
        return self.main_category.uid if self.main_category else None

    @property
    def subcategory_uid(self):
        return self.subcategory.uid if self.subcategory else None

    @property
    def category_uids(self):
        return [uid for uid in (self.main_category_uid, self.subcategory_uid) if uid]

    @property
    def is_listed(self) -> bool:
        return bool(self.is_active) and self.listing_status == "active"

    @property
    def inventory_status(self) -> str:
        return inventory_status(
            self.quantity_available or 0,
            self.low_stock_threshold or 0,
            bool(self.backorder_allowed),
        )

    @property
    def primary_image_url(self):
        if not self.images:
            return None
        primary = next((img for img in self.images if img.is_primary), None)
        return (primary or self.images[0]).image_url

    def __repr__(self):
        return f"<Product sku={self.sku} name={self.name}>"


class ProductImage(Base):
    __tablename__ = "product_images"

    id = Column(Integer, primary_key=True, index=True)
    uid = Column(String(32), unique=True, index=True, nullable=False, default=lambda: new_uid("img"))
    product_id = Column(
        Integer, ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True
    )
    image_url = Column(String(512), nullable=False)
    file_path = Column(String(512), nullable=True)
    alt_text = Column(String(255), nullable=True)
    display_order = Column(Integer, nullable=False, default=0)
    is_primary = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    product = relationship("Product", back_populates="images")


class ProductVariant(Base):
    __tablename__ = "product_variants"
    __table_args__ = (UniqueConstraint("product_id", "sku", name="uq_variant_sku_per_product"),)

    id = Column(Integer, primary_key=True, index=True)
    uid = Column(String(32), unique=True, index=True, nullable=False, default=lambda: new_uid("var"))
    product_id = Column(
        Integer, ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True
    )
    variant_type = Column(String(64), nullable=False)
    variant_value = Column(String(128), nullable=False)
    sku = Column(String(64), nullable=True)
    additional_price_cents = Column(Integer, nullable=False, default=0)
    quantity_available = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)

    product = relationship("Product", back_populates="variants")


class ProductSpecification(Base):
    __tablename__ = "product_specifications"

    id = Column(Integer, primary_key=True, index=True)
    uid = Column(String(32), unique=True, index=True, nullable=False, default=lambda: new_uid("spec"))
    product_id = Column(
        Integer, ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name = Column(String(128), nullable=False)
    value = Column(String(255), nullable=False)
    unit = Column(String(32), nullable=True)
    group = Column(String(64), nullable=True)
    display_order = Column(Integer, nullable=False, default=0)

    product = relationship("Product", back_populates="specifications")
