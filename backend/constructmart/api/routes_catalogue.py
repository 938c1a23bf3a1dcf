from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from constructmart.db import get_db
from constructmart.models.user import User
from constructmart.security import get_current_user_optional
from constructmart.services.catalog_service import CatalogService

router = APIRouter(prefix="/api/products", tags=["catalogue"])
category_router = APIRouter(prefix="/api/categories", tags=["catalogue"])


@router.get("", summary="List products")
def list_products(
    category_uid: Optional[str] = Query(None),
    subcategory_uid: Optional[str] = Query(None),
    seller_uid: Optional[str] = Query(None),
    search: Optional[str] = Query(None, description="search term"),
    min_price: Optional[int] = Query(None, ge=0, description="cents"),
    max_price: Optional[int] = Query(None, ge=0, description="cents"),
    brand: Optional[str] = Query(None),
    in_stock: Optional[bool] = Query(None),
    sort_by: str = Query("created_at"),
    sort_order: str = Query("desc"),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
):
    result = CatalogService(db).list_products(
        category_uid=category_uid,
        subcategory_uid=subcategory_uid,
        seller_uid=seller_uid,
        search=search,
        min_price=min_price,
        max_price=max_price,
        brand=brand,
        in_stock=in_stock,
        sort_by=sort_by,
        sort_order=sort_order,
        page=page,
        limit=limit,
    )
    return {"success": True, **result}


@router.get("/{uid}", summary="Get product")
def get_product(
    uid: str,
    viewer: Optional[User] = Depends(get_current_user_optional),
    db: Session = Depends(get_db),
):
    return {"success": True, "product": CatalogService(db).get_product(uid, viewer)}


@category_router.get("", summary="List categories")
def list_categories(parent_uid: Optional[str] = Query(None), db: Session = Depends(get_db)):
    return {"success": True, "categories": CatalogService(db).list_categories(parent_uid)}


@category_router.get("/{uid}", summary="Get category")
def get_category(uid: str, db: Session = Depends(get_db)):
    return {"success": True, "category": CatalogService(db).get_category(uid)}
