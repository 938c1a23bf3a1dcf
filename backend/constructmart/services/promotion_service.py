import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from constructmart.config import settings
from constructmart.errors import ConflictError, InvalidRequestError, ResourceNotFoundError
from constructmart.models.promotion import PROMOTION_STATUSES, PROMOTION_TYPES, CouponCode, Promotion
from constructmart.models.user import User
from constructmart.repositories.category_repo import CategoryRepository
from constructmart.repositories.product_repo import ProductRepository
from constructmart.repositories.promotion_repo import PromotionRepository
from constructmart.schemas.promotion_schema import (
    CouponCodeOut,
    CouponGenerateIn,
    ImpactIn,
    PromotionCreate,
    PromotionFields,
)
from constructmart.services.discounts import DiscountRule, build_impact_preview, derive_status
from constructmart.services.product_csv import to_csv
from constructmart.utils.identifiers import as_utc, new_coupon_code, utcnow
from constructmart.utils.pagination import paginate
from constructmart.utils.transactions import atomic

logger = logging.getLogger(__name__)

# request field -> column
FIELD_COLUMNS = {
    "name": "name",
    "description": "description",
    "promotion_type": "promotion_type",
    "discount_type": "discount_type",
    "discount_value": "discount_value",
    "minimum_purchase": "minimum_purchase_cents",
    "maximum_discount": "maximum_discount_cents",
    "start_date": "start_date",
    "end_date": "end_date",
    "time_restrictions": "time_restrictions",
    "eligibility": "eligibility",
    "usage_limits": "usage_limits",
    "coupon_code": "coupon_code",
    "is_active": "is_active",
    "buy_quantity": "buy_quantity",
    "get_quantity": "get_quantity",
}
COPIED_COLUMNS = tuple(c for c in FIELD_COLUMNS.values() if c not in ("name", "coupon_code", "is_active"))
COUPON_CSV_COLUMNS = ["code", "max_uses", "times_used", "is_active", "created_at"]
MAX_CODE_ATTEMPTS = 20


def promotion_dict(p: Promotion) -> Dict[str, Any]:
    return {
        "uid": p.uid,
        "name": p.name,
        "description": p.description,
        "type": p.promotion_type,
        "discountType": p.discount_type,
        "discountValue": p.discount_value,
        "minimumPurchase": p.minimum_purchase_cents,
        "maximumDiscount": p.maximum_discount_cents,
        "startDate": as_utc(p.start_date),
        "endDate": as_utc(p.end_date),
        "timeRestrictions": p.time_restrictions,
        "eligibility": p.eligibility,
        "usageLimits": p.usage_limits,
        "couponCode": p.coupon_code,
        "isActive": p.is_active,
        "status": p.status,
        "buyQuantity": p.buy_quantity,
        "getQuantity": p.get_quantity,
        "usageCount": p.usage_count,
        "couponCodeCount": len(p.coupon_codes),
        "createdAt": as_utc(p.created_at),
        "updatedAt": as_utc(p.updated_at),
    }


def current_status(p: Promotion, now=None) -> str:
    limits = p.usage_limits or {}
    return derive_status(
        p.is_active,
        p.start_date,
        p.end_date,
        now or utcnow(),
        p.usage_count or 0,
        limits.get("totalUses"),
    )


def refresh_promotion_statuses(db: Session) -> int:
    """Recompute every promotion's stored status; returns how many changed."""
    now = utcnow()
    changed = 0
    with atomic(db):
        for p in PromotionRepository(db).all():
            status = current_status(p, now)
            if status != p.status:
                p.status = status
                changed += 1
    if changed:
        logger.info("Promotion status refresh updated %d promotions", changed)
    return changed


class PromotionService:
    def __init__(self, db: Session):
        self.db = db
        self.repo = PromotionRepository(db)

    def _get(self, seller: User, uid: str) -> Promotion:
        promotion = self.repo.get_for_seller(uid, seller.company_id)
        if not promotion:
            raise ResourceNotFoundError("Promotion", uid)
        return promotion

    def _columns(self, payload: PromotionFields, partial: bool) -> Dict[str, Any]:
        data = payload.model_dump(exclude_unset=partial)
        columns = {}
        for field, value in data.items():
            if field not in FIELD_COLUMNS:
                continue
            if field in ("time_restrictions", "eligibility", "usage_limits") and value is not None:
                value = getattr(payload, field).model_dump(by_alias=True)
            if field in ("start_date", "end_date"):
                value = as_utc(value)
            columns[FIELD_COLUMNS[field]] = value
        return columns

    def _validate(self, seller: User, state: Dict[str, Any], exclude_id: Optional[int] = None):
        errors: Dict[str, List[str]] = {}

        def add(field, message):
            errors.setdefault(field, []).append(message)

        if not (state.get("name") or "").strip():
            add("name", "Promotion name is required")

        ptype = state.get("promotion_type")
        if ptype is None:
            add("type", "Promotion type is required")
        if state.get("discount_type") is None:
            add("discountType", "Discount type is required")
        if state.get("is_active") is None:
            add("isActive", "isActive must be true or false")

        value = state.get("discount_value")
        if value is None:
            add("discountValue", "Discount value is required")
        elif ptype != "free_shipping":
            if value <= 0:
                add("discountValue", "Discount value must be greater than 0")
            elif (ptype == "percentage" or (ptype != "fixed_amount" and state.get("discount_type") == "percentage")) and value > 100:
                add("discountValue", "Percentage discount cannot exceed 100")

        start, end = state.get("start_date"), state.get("end_date")
        if start is None:
            add("startDate", "Start date is required")
        if end is None:
            add("endDate", "End date is required")
        if start is not None and end is not None and as_utc(start) > as_utc(end):
            add("endDate", "End date must be after start date")

        if ptype == "buy_x_get_y":
            if not state.get("buy_quantity") or state["buy_quantity"] < 1:
                add("buyQuantity", "Buy quantity must be at least 1")
            if not state.get("get_quantity") or state["get_quantity"] < 1:
                add("getQuantity", "Get quantity must be at least 1")

        eligibility = state.get("eligibility") or {}
        if not eligibility.get("allProducts", True):
            product_uids = eligibility.get("productUids") or []
            category_uids = eligibility.get("categoryUids") or []
            if not product_uids and not category_uids:
                add("eligibility", "Select at least one product or category")
            products = ProductRepository(self.db)
            for uid in product_uids:
                if not products.get_for_seller(uid, seller.company_id):
                    add("eligibility", f"Product {uid} does not belong to your catalog")
            categories = CategoryRepository(self.db)
            for uid in category_uids:
                if not categories.get_by_uid(uid):
                    add("eligibility", f"Category {uid} not found")

        if errors:
            raise InvalidRequestError("Validation failed", details={"errors": errors})

        code = state.get("coupon_code")
        if code and self.repo.code_taken(code, exclude_promotion_id=exclude_id):
            raise ConflictError(f"Coupon code {code} is already in use")

    # queries

    def list(
        self,
        seller: User,
        status: Optional[str] = None,
        promotion_type: Optional[str] = None,
        search: Optional[str] = None,
        start_date=None,
        end_date=None,
        page: int = 1,
        limit: int = 10,
    ):
        if status and status not in PROMOTION_STATUSES:
            raise InvalidRequestError(f"status must be one of {', '.join(PROMOTION_STATUSES)}")
        if promotion_type and promotion_type not in PROMOTION_TYPES:
            raise InvalidRequestError(f"type must be one of {', '.join(PROMOTION_TYPES)}")
        self._sync_statuses(seller)
        query = self.repo.list_for_seller(
            seller.company_id,
            status=status,
            promotion_type=promotion_type,
            search=search,
            start_date=as_utc(start_date),
            end_date=as_utc(end_date),
        )
        items, meta = paginate(query, page, limit)
        return {"promotions": [promotion_dict(p) for p in items], "pagination": meta}

    def _sync_statuses(self, seller: User):
        now = utcnow()
        dirty = False
        for p in self.repo.list_for_seller(seller.company_id).all():
            status = current_status(p, now)
            if status != p.status:
                p.status = status
                dirty = True
        if dirty:
            self.db.commit()

    def get(self, seller: User, uid: str) -> Promotion:
        return self._get(seller, uid)

    # writes

    def create(self, seller: User, payload: PromotionCreate) -> Promotion:
        state = self._columns(payload, partial=False)
        self._validate(seller, state)
        with atomic(self.db):
            promotion = Promotion(seller_id=seller.company_id, **state)
            promotion.status = current_status(promotion)
            self.db.add(promotion)
        logger.info("Seller %s created promotion %s", seller.company_uid, promotion.uid)
        return promotion

    def update(self, seller: User, uid: str, payload: PromotionFields) -> Promotion:
        promotion = self._get(seller, uid)
        changes = self._columns(payload, partial=True)
        state = {col: getattr(promotion, col) for col in FIELD_COLUMNS.values()}
        state.update(changes)
        self._validate(seller, state, exclude_id=promotion.id)
        with atomic(self.db):
            for col, value in changes.items():
                setattr(promotion, col, value)
            promotion.status = current_status(promotion)
        return promotion

    def delete(self, seller: User, uid: str) -> None:
        promotion = self._get(seller, uid)
        with atomic(self.db):
            self.db.delete(promotion)
        logger.info("Promotion %s deleted", uid)

    def duplicate(self, seller: User, uid: str) -> Promotion:
        source = self._get(seller, uid)
        with atomic(self.db):
            copy = Promotion(
                seller_id=source.seller_id,
                name=f"{source.name} (Copy)",
                coupon_code=None,
                is_active=False,
                status="draft",
                usage_count=0,
                **{col: getattr(source, col) for col in COPIED_COLUMNS},
            )
            self.db.add(copy)
        return copy

    def set_active(self, seller: User, uid: str, active: bool) -> Promotion:
        promotion = self._get(seller, uid)
        with atomic(self.db):
            promotion.is_active = active
            promotion.status = current_status(promotion)
        logger.info("Promotion %s %s", uid, "activated" if active else "deactivated")
        return promotion

    # coupon codes

    def _unique_code(self, length: int, prefix: str, batch: set) -> str:
        for _ in range(MAX_CODE_ATTEMPTS):
            code = new_coupon_code(length, prefix)
            if code not in batch and not self.repo.code_taken(code):
                return code
        raise ConflictError("Could not generate unique coupon codes; try a longer code length")

    def generate_codes(self, seller: User, uid: str, payload: CouponGenerateIn) -> List[CouponCode]:
        promotion = self._get(seller, uid)
        batch: set = set()
        created = []
        with atomic(self.db):
            for _ in range(payload.quantity):
                code = self._unique_code(payload.length, payload.prefix, batch)
                batch.add(code)
                coupon = CouponCode(code=code, max_uses=payload.max_uses)
                promotion.coupon_codes.append(coupon)
                created.append(coupon)
        logger.info("Generated %d coupon codes for %s", len(created), uid)
        return created

    def list_codes(self, seller: User, uid: str) -> List[CouponCode]:
        return list(self._get(seller, uid).coupon_codes)

    def export_codes(self, seller: User, uid: str) -> str:
        rows = (
            {
                "code": c.code,
                "max_uses": "" if c.max_uses is None else c.max_uses,
                "times_used": c.times_used,
                "is_active": str(bool(c.is_active)).lower(),
                "created_at": as_utc(c.created_at).isoformat(),
            }
            for c in self.list_codes(seller, uid)
        )
        return to_csv(rows, COUPON_CSV_COLUMNS)

    @staticmethod
    def coupon_dicts(codes: List[CouponCode]) -> List[Dict[str, Any]]:
        return [CouponCodeOut.model_validate(c).model_dump(by_alias=True) for c in codes]

    # preview

    def calculate_impact(self, payload: ImpactIn) -> Dict[str, Any]:
        if payload.promotion_type not in PROMOTION_TYPES:
            raise InvalidRequestError(f"type must be one of {', '.join(PROMOTION_TYPES)}")
        rule = DiscountRule(
            promotion_type=payload.promotion_type,
            discount_type=payload.discount_type,
            discount_value=payload.discount_value,
            minimum_purchase_cents=payload.minimum_purchase,
            maximum_discount_cents=payload.maximum_discount,
            buy_quantity=payload.buy_quantity,
            get_quantity=payload.get_quantity,
        )
        return build_impact_preview(rule, payload.sample_price, settings.FLAT_SHIPPING_CENTS)
