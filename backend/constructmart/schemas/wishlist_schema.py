from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class WishlistIn(BaseModel):
    name: Optional[str] = Field(default=None, max_length=255)
    description: Optional[str] = None
    is_public: bool = False


class WishlistItemIn(BaseModel):
    product_uid: str = Field(min_length=1)
    variant_uid: Optional[str] = None
    notes: Optional[str] = None


class WishlistOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    uid: str
    name: str
    description: Optional[str] = None
    is_public: bool
    item_count: int
    created_at: datetime
    updated_at: datetime
