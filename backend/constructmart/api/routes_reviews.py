from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from constructmart.db import get_db
from constructmart.models.user import User
from constructmart.schemas.review_schema import ReviewIn
from constructmart.security import get_current_user
from constructmart.services.review_service import ReviewService

router = APIRouter(prefix="/api/products", tags=["reviews"])


@router.get("/{uid}/reviews", summary="List approved reviews for a product")
def list_reviews(
    uid: str,
    rating: Optional[int] = Query(None, ge=1, le=5),
    sort_by: str = Query("created_at"),
    sort_order: str = Query("desc"),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    db: Session = Depends(get_db),
):
    result = ReviewService(db).list_for_product(uid, rating, sort_by, sort_order, page, limit)
    return {"success": True, **result}


@router.post("/{uid}/reviews", status_code=status.HTTP_201_CREATED, summary="Review a product")
def create_review(
    uid: str,
    payload: ReviewIn,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    review = ReviewService(db).create(user, uid, payload)
    published = review.status == "approved"
    return {
        "success": True,
        "message": "Review published" if published else "Review submitted and awaiting moderation",
        "review_uid": review.uid,
        "status": review.status,
        "verified_purchase": review.verified_purchase,
    }
