import io
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session

from constructmart.db import get_db
from constructmart.models.user import User
from constructmart.schemas.promotion_schema import (
    CouponGenerateIn,
    ImpactIn,
    PromotionCreate,
    PromotionFields,
)
from constructmart.security import require_seller
from constructmart.services.promotion_service import PromotionService, promotion_dict

router = APIRouter(prefix="/api/seller/promotions", tags=["promotions"])


@router.get("", summary="List promotions")
def list_promotions(
    status_filter: Optional[str] = Query(None, alias="status"),
    promotion_type: Optional[str] = Query(None, alias="type"),
    search: Optional[str] = Query(None),
    start_date: Optional[datetime] = Query(None, alias="startDate"),
    end_date: Optional[datetime] = Query(None, alias="endDate"),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    seller: User = Depends(require_seller),
    db: Session = Depends(get_db),
):
    result = PromotionService(db).list(
        seller,
        status=status_filter,
        promotion_type=promotion_type,
        search=search,
        start_date=start_date,
        end_date=end_date,
        page=page,
        limit=limit,
    )
    return {"success": True, **result}


@router.post("", status_code=status.HTTP_201_CREATED, summary="Create promotion")
def create_promotion(
    payload: PromotionCreate,
    seller: User = Depends(require_seller),
    db: Session = Depends(get_db),
):
    promotion = PromotionService(db).create(seller, payload)
    return {"success": True, "message": "Promotion created successfully", "promotion": promotion_dict(promotion)}


@router.post("/calculate-impact", summary="Preview a discount")
def calculate_impact(payload: ImpactIn, seller: User = Depends(require_seller), db: Session = Depends(get_db)):
    return {"success": True, "preview": PromotionService(db).calculate_impact(payload)}


@router.get("/{uid}", summary="Get promotion")
def get_promotion(uid: str, seller: User = Depends(require_seller), db: Session = Depends(get_db)):
    return {"success": True, "promotion": promotion_dict(PromotionService(db).get(seller, uid))}


@router.put("/{uid}", summary="Update promotion")
def update_promotion(
    uid: str,
    payload: PromotionFields,
    seller: User = Depends(require_seller),
    db: Session = Depends(get_db),
):
    promotion = PromotionService(db).update(seller, uid, payload)
    return {"success": True, "message": "Promotion updated successfully", "promotion": promotion_dict(promotion)}


@router.delete("/{uid}", summary="Delete promotion")
def delete_promotion(uid: str, seller: User = Depends(require_seller), db: Session = Depends(get_db)):
    PromotionService(db).delete(seller, uid)
    return {"success": True, "message": "Promotion deleted successfully"}


@router.post("/{uid}/duplicate", status_code=status.HTTP_201_CREATED, summary="Duplicate promotion")
def duplicate_promotion(uid: str, seller: User = Depends(require_seller), db: Session = Depends(get_db)):
    promotion = PromotionService(db).duplicate(seller, uid)
    return {"success": True, "message": "Promotion duplicated successfully", "promotion": promotion_dict(promotion)}


@router.post("/{uid}/activate", summary="Activate promotion")
def activate_promotion(uid: str, seller: User = Depends(require_seller), db: Session = Depends(get_db)):
    promotion = PromotionService(db).set_active(seller, uid, True)
    return {"success": True, "message": "Promotion activated", "promotion": promotion_dict(promotion)}


@router.post("/{uid}/deactivate", summary="Deactivate promotion")
def deactivate_promotion(uid: str, seller: User = Depends(require_seller), db: Session = Depends(get_db)):
    promotion = PromotionService(db).set_active(seller, uid, False)
    return {"success": True, "message": "Promotion deactivated", "promotion": promotion_dict(promotion)}


# coupon codes


@router.post("/{uid}/coupon-codes", status_code=status.HTTP_201_CREATED, summary="Generate coupon codes")
def generate_codes(
    uid: str,
    payload: CouponGenerateIn,
    seller: User = Depends(require_seller),
    db: Session = Depends(get_db),
):
    svc = PromotionService(db)
    codes = svc.generate_codes(seller, uid, payload)
    return {
        "success": True,
        "message": f"Generated {len(codes)} coupon codes",
        "generated_count": len(codes),
        "codes": svc.coupon_dicts(codes),
    }


@router.get("/{uid}/coupon-codes", summary="List coupon codes")
def list_codes(uid: str, seller: User = Depends(require_seller), db: Session = Depends(get_db)):
    svc = PromotionService(db)
    return {"success": True, "codes": svc.coupon_dicts(svc.list_codes(seller, uid))}


@router.get("/{uid}/coupon-codes/export", summary="Export coupon codes as CSV")
def export_codes(uid: str, seller: User = Depends(require_seller), db: Session = Depends(get_db)):
    content = PromotionService(db).export_codes(seller, uid)
    return StreamingResponse(
        io.BytesIO(content.encode("utf-8")),
        media_type="text/csv",
        headers={"Content-Disposition": f"attachment; filename=coupon-codes-{uid}.csv"},
    )
