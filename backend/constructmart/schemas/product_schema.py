# backend/constructmart/schemas/product_schema.py
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from constructmart.models.product import LISTING_STATUSES


class ImageOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    uid: str
    image_url: str
    alt_text: Optional[str] = None
    display_order: int
    is_primary: bool


class VariantOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    uid: str
    variant_type: str
    variant_value: str
    sku: Optional[str] = None
    additional_price_cents: int
    quantity_available: int
    is_active: bool


class SpecificationOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    uid: str
    name: str
    value: str
    unit: Optional[str] = None
    group: Optional[str] = None
    display_order: int


class ProductOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    uid: str
    sku: str
    name: str
    brand: Optional[str] = None
    seller_uid: Optional[str] = None
    main_category_uid: Optional[str] = None
    subcategory_uid: Optional[str] = None
    short_description: str
    base_price_cents: int
    currency: str
    quantity_available: int
    low_stock_threshold: int
    backorder_allowed: bool
    inventory_status: str
    listing_status: str
    is_active: bool
    average_rating: float
    total_reviews: int
    total_views: int
    total_orders: int
    primary_image_url: Optional[str] = None
    created_at: datetime


class ProductDetailOut(ProductOut):
    upc: Optional[str] = None
    long_description: Optional[str] = None
    cost_cents: Optional[int] = None
    unit_of_measure: Optional[str] = None
    dimensions: Optional[Dict[str, Any]] = None
    shipping_details: Optional[Dict[str, Any]] = None
    seo: Optional[Dict[str, Any]] = None
    updated_at: datetime
    images: List[ImageOut] = []
    variants: List[VariantOut] = []
    specifications: List[SpecificationOut] = []


class CategoryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    uid: str
    name: str
    description: Optional[str] = None
    image_url: Optional[str] = None
    display_order: int


class VariantIn(BaseModel):
    variant_type: str = Field(min_length=1)
    variant_value: str = Field(min_length=1)
    sku: Optional[str] = None
    additional_price_cents: int = 0
    quantity_available: int = Field(default=0, ge=0)
    is_active: bool = True


class VariantUpdate(BaseModel):
    variant_type: Optional[str] = Field(default=None, min_length=1)
    variant_value: Optional[str] = Field(default=None, min_length=1)
    sku: Optional[str] = None
    additional_price_cents: Optional[int] = None
    quantity_available: Optional[int] = Field(default=None, ge=0)
    is_active: Optional[bool] = None


class SpecificationIn(BaseModel):
    name: str = Field(min_length=1)
    value: str = Field(min_length=1)
    unit: Optional[str] = None
    group: Optional[str] = None
    display_order: int = 0


class ProductUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1)
    sku: Optional[str] = Field(default=None, min_length=1)
    brand: Optional[str] = None
    upc: Optional[str] = None
    main_category_uid: Optional[str] = None
    subcategory_uid: Optional[str] = None
    short_description: Optional[str] = Field(default=None, min_length=1)
    long_description: Optional[str] = None
    base_price_cents: Optional[int] = Field(default=None, gt=0)
    cost_cents: Optional[int] = Field(default=None, ge=0)
    currency: Optional[str] = Field(default=None, min_length=3, max_length=3)
    unit_of_measure: Optional[str] = None
    quantity_available: Optional[int] = Field(default=None, ge=0)
    low_stock_threshold: Optional[int] = Field(default=None, ge=0)
    backorder_allowed: Optional[bool] = None
    dimensions: Optional[Dict[str, Any]] = None
    shipping_details: Optional[Dict[str, Any]] = None
    seo: Optional[Dict[str, Any]] = None
    listing_status: Optional[str] = None
    is_active: Optional[bool] = None

    @field_validator("listing_status")
    @classmethod
    def check_listing_status(cls, v):
        if v is not None and v not in LISTING_STATUSES:
            raise ValueError(f"listing_status must be one of {', '.join(LISTING_STATUSES)}")
        return v


class ProductCreate(ProductUpdate):
    name: str = Field(min_length=1)
    sku: str = Field(min_length=1)
    main_category_uid: str = Field(min_length=1)
    short_description: str = Field(min_length=1)
    base_price_cents: int = Field(gt=0)
    currency: str = "USD"
    quantity_available: int = Field(default=0, ge=0)
    low_stock_threshold: int = Field(default=5, ge=0)
    backorder_allowed: bool = False
    listing_status: str = "draft"
    is_active: bool = True
    variants: List[VariantIn] = []
    specifications: List[SpecificationIn] = []


class InventoryUpdate(BaseModel):
    quantity_available: Optional[int] = Field(default=None, ge=0)
    adjustment: Optional[int] = None
    low_stock_threshold: Optional[int] = Field(default=None, ge=0)
    backorder_allowed: Optional[bool] = None


class PriceAdjustment(BaseModel):
    type: str
    value: float = Field(gt=0)
    operation: str

    @field_validator("type")
    @classmethod
    def check_type(cls, v):
        if v not in ("percentage", "fixed"):
            raise ValueError("type must be percentage or fixed")
        return v

    @field_validator("operation")
    @classmethod
    def check_operation(cls, v):
        if v not in ("increase", "decrease"):
            raise ValueError("operation must be increase or decrease")
        return v


class BulkPriceIn(BaseModel):
    product_uids: List[str] = Field(min_length=1)
    adjustment: PriceAdjustment


class BulkStatusIn(BaseModel):
    product_uids: List[str] = Field(min_length=1)
    status: str

    @field_validator("status")
    @classmethod
    def check_status(cls, v):
        if v not in LISTING_STATUSES:
            raise ValueError(f"status must be one of {', '.join(LISTING_STATUSES)}")
        return v


class ImageOrderIn(BaseModel):
    image_uids: List[str]
