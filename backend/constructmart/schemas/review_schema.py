from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class ReviewIn(BaseModel):
    # presence and range are checked by the service so the client gets one message
    rating: Optional[int] = None
    content: Optional[str] = None
    title: Optional[str] = Field(default=None, max_length=255)
    pros: Optional[str] = None
    cons: Optional[str] = None
    project_type: Optional[str] = Field(default=None, max_length=64)
    reviewer_type: Optional[str] = Field(default=None, max_length=64)
    order_item_uid: Optional[str] = None


class ReviewOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    uid: str
    rating: int
    title: Optional[str] = None
    content: str
    pros: Optional[str] = None
    cons: Optional[str] = None
    project_type: Optional[str] = None
    reviewer_type: Optional[str] = None
    verified_purchase: bool
    helpful_votes_count: int
    status: str
    created_at: datetime
