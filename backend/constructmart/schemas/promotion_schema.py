from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from constructmart.models.promotion import CUSTOMER_GROUPS, DISCOUNT_TYPES, PROMOTION_TYPES


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class TimeRestrictions(CamelModel):
    days_of_week: List[int] = []
    start_time: Optional[str] = Field(default=None, pattern=r"^([01]\d|2[0-3]):[0-5]\d$")
    end_time: Optional[str] = Field(default=None, pattern=r"^([01]\d|2[0-3]):[0-5]\d$")

    @field_validator("days_of_week")
    @classmethod
    def check_days(cls, v):
        if any(d < 0 or d > 6 for d in v):
            raise ValueError("daysOfWeek entries must be between 0 (Sunday) and 6")
        return sorted(set(v))


class Eligibility(CamelModel):
    all_products: bool = True
    product_uids: List[str] = []
    category_uids: List[str] = []
    customer_groups: List[str] = ["all"]
    first_time_customers_only: bool = False

    @field_validator("customer_groups")
    @classmethod
    def check_groups(cls, v):
        unknown = [g for g in v if g not in CUSTOMER_GROUPS]
        if unknown:
            raise ValueError(f"unknown customer groups: {', '.join(unknown)}")
        return v or ["all"]


class UsageLimits(CamelModel):
    uses_per_customer: Optional[int] = Field(default=None, ge=1)
    total_uses: Optional[int] = Field(default=None, ge=1)
    combinable_with_other_promotions: bool = False


class PromotionFields(CamelModel):
    """Every promotion attribute, all optional; used for partial updates."""

    name: Optional[str] = None
    description: Optional[str] = None
    promotion_type: Optional[str] = Field(default=None, alias="type")
    discount_type: Optional[str] = None
    discount_value: Optional[float] = None
    minimum_purchase: Optional[int] = Field(default=None, ge=0)
    maximum_discount: Optional[int] = Field(default=None, ge=0)
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    time_restrictions: Optional[TimeRestrictions] = None
    eligibility: Optional[Eligibility] = None
    usage_limits: Optional[UsageLimits] = None
    coupon_code: Optional[str] = None
    is_active: Optional[bool] = None
    buy_quantity: Optional[int] = None
    get_quantity: Optional[int] = None

    @field_validator("promotion_type")
    @classmethod
    def check_type(cls, v):
        if v is not None and v not in PROMOTION_TYPES:
            raise ValueError(f"type must be one of {', '.join(PROMOTION_TYPES)}")
        return v

    @field_validator("discount_type")
    @classmethod
    def check_discount_type(cls, v):
        if v is not None and v not in DISCOUNT_TYPES:
            raise ValueError(f"discountType must be one of {', '.join(DISCOUNT_TYPES)}")
        return v

    @field_validator("coupon_code")
    @classmethod
    def normalize_code(cls, v):
        if v is None:
            return v
        v = v.strip().upper()
        return v or None


class PromotionCreate(PromotionFields):
    name: str = ""
    promotion_type: str = Field(default="percentage", alias="type")
    discount_type: str = "percentage"
    discount_value: float = 0
    start_date: datetime
    end_date: datetime
    eligibility: Eligibility = Eligibility()
    usage_limits: UsageLimits = UsageLimits()
    is_active: bool = False


class ImpactIn(CamelModel):
    promotion_type: str = Field(default="percentage", alias="type")
    discount_type: str = "percentage"
    discount_value: float = 0
    minimum_purchase: Optional[int] = None
    maximum_discount: Optional[int] = None
    buy_quantity: Optional[int] = None
    get_quantity: Optional[int] = None
    sample_price: int = Field(default=10000, gt=0)


class CouponGenerateIn(CamelModel):
    quantity: int = Field(ge=1, le=1000)
    length: int = Field(default=8, ge=6, le=16)
    prefix: str = Field(default="", max_length=8, pattern=r"^[A-Za-z0-9]*$")
    max_uses: Optional[int] = Field(default=None, ge=1)


class CouponCodeOut(CamelModel):
    model_config = ConfigDict(from_attributes=True, alias_generator=to_camel, populate_by_name=True)
    uid: str
    code: str
    max_uses: Optional[int] = None
    times_used: int
    is_active: bool
    created_at: datetime
