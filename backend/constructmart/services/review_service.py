"""
Product reviews.

A review backed by a purchase of the product is published straight away; any
other review waits for moderation. ``Product.average_rating`` and
``Product.total_reviews`` only count approved reviews.
"""
import logging
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from constructmart.errors import ConflictError, InvalidRequestError, ResourceNotFoundError
from constructmart.models.product import Product
from constructmart.models.review import Review
from constructmart.models.user import User
from constructmart.repositories.product_repo import ProductRepository
from constructmart.repositories.review_repo import SORT_COLUMNS, ReviewRepository
from constructmart.schemas.review_schema import ReviewIn, ReviewOut
from constructmart.utils.pagination import paginate
from constructmart.utils.transactions import atomic

logger = logging.getLogger(__name__)


class ReviewServiceException(InvalidRequestError):
    pass


def review_dict(r: Review) -> Dict[str, Any]:
    data = ReviewOut.model_validate(r).model_dump()
    data["user_first_name"] = r.user.first_name if r.user else None
    data["user_last_name"] = r.user.last_name if r.user else None
    return data


class ReviewService:
    def __init__(self, db: Session):
        self.db = db
        self.reviews = ReviewRepository(db)
        self.products = ProductRepository(db)

    def _listed_product(self, uid: str) -> Product:
        product = self.products.get_by_uid(uid)
        if not product or not product.is_listed:
            raise ResourceNotFoundError("Product", uid)
        return product

    def list_for_product(
        self,
        product_uid: str,
        rating: Optional[int] = None,
        sort_by: str = "created_at",
        sort_order: str = "desc",
        page: int = 1,
        limit: int = 10,
    ) -> Dict[str, Any]:
        if sort_by not in SORT_COLUMNS:
            raise ReviewServiceException(f"sort_by must be one of {', '.join(SORT_COLUMNS)}")
        if sort_order not in ("asc", "desc"):
            raise ReviewServiceException("sort_order must be asc or desc")
        product = self._listed_product(product_uid)
        query = self.reviews.approved_for_product(product, rating, sort_by, sort_order)
        items, meta = paginate(query, page, limit)
        return {
            "product_name": product.name,
            "reviews": [review_dict(r) for r in items],
            "pagination": meta,
        }

    def create(self, user: User, product_uid: str, payload: ReviewIn) -> Review:
        content = (payload.content or "").strip()
        if payload.rating is None or not content:
            raise ReviewServiceException("Rating and review content are required")
        if not 1 <= payload.rating <= 5:
            raise ReviewServiceException("Rating must be between 1 and 5")
        product = self._listed_product(product_uid)
        if self.reviews.get_for_user(product, user):
            raise ConflictError("You have already reviewed this product")

        purchase = self.reviews.purchased_item(product, user, payload.order_item_uid)
        if payload.order_item_uid and purchase is None:
            raise ReviewServiceException("Order item does not match this product")
        verified = purchase is not None

        with atomic(self.db):
            review = Review(
                product_id=product.id,
                user_id=user.id,
                order_item_id=purchase.id if purchase else None,
                rating=payload.rating,
                title=payload.title,
                content=content,
                pros=payload.pros,
                cons=payload.cons,
                project_type=payload.project_type,
                reviewer_type=payload.reviewer_type,
                verified_purchase=verified,
                status="approved" if verified else "pending",
            )
            self.db.add(review)
            self.db.flush()
            self.refresh_rating(product)
        logger.info("Review %s on %s by %s (%s)", review.uid, product.uid, user.uid, review.status)
        return review

    def refresh_rating(self, product: Product) -> None:
        average, count = self.reviews.approved_stats(product)
        product.average_rating = round(average, 2)
        product.total_reviews = count
