import io
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Query, UploadFile, status
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session

from constructmart.db import get_db
from constructmart.models.user import User
from constructmart.schemas.product_schema import (
    BulkPriceIn,
    BulkStatusIn,
    ImageOrderIn,
    ImageOut,
    InventoryUpdate,
    ProductCreate,
    ProductUpdate,
    VariantIn,
    VariantOut,
    VariantUpdate,
)
from constructmart.security import require_seller
from constructmart.services.catalog_service import product_detail
from constructmart.services.seller_product_service import SellerProductService

router = APIRouter(prefix="/api/seller/products", tags=["seller-products"])


def _csv_response(content: str, filename: str) -> StreamingResponse:
    return StreamingResponse(
        io.BytesIO(content.encode("utf-8")),
        media_type="text/csv",
        headers={"Content-Disposition": f"attachment; filename={filename}"},
    )


@router.get("", summary="List the seller's products")
def list_products(
    status_filter: Optional[str] = Query(None, alias="status"),
    category: Optional[str] = Query(None, description="category uid (main or sub)"),
    search: Optional[str] = Query(None),
    inventory_level: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(25, ge=1, le=100),
    seller: User = Depends(require_seller),
    db: Session = Depends(get_db),
):
    products, meta = SellerProductService(db).list(
        seller, status_filter, category, search, inventory_level, page, limit
    )
    return {"success": True, "products": products, "pagination": meta}


@router.post("", status_code=status.HTTP_201_CREATED, summary="Create product")
def create_product(
    payload: ProductCreate,
    seller: User = Depends(require_seller),
    db: Session = Depends(get_db),
):
    product = SellerProductService(db).create(seller, payload)
    return {"success": True, "message": "Product created successfully", "product": product_detail(product)}


# bulk and file operations


@router.put("/bulk/prices", summary="Adjust prices of several products")
def bulk_prices(payload: BulkPriceIn, seller: User = Depends(require_seller), db: Session = Depends(get_db)):
    count = SellerProductService(db).bulk_update_prices(seller, payload)
    return {"success": True, "message": f"Updated prices for {count} products", "updated_count": count}


@router.put("/bulk/status", summary="Set listing status of several products")
def bulk_status(payload: BulkStatusIn, seller: User = Depends(require_seller), db: Session = Depends(get_db)):
    count = SellerProductService(db).bulk_update_status(seller, payload)
    return {"success": True, "message": f"Updated status for {count} products", "updated_count": count}


@router.get("/export", summary="Export products as CSV")
def export_products(
    status_filter: Optional[str] = Query(None, alias="status"),
    category: Optional[str] = Query(None),
    search: Optional[str] = Query(None),
    inventory_level: Optional[str] = Query(None),
    seller: User = Depends(require_seller),
    db: Session = Depends(get_db),
):
    content = SellerProductService(db).export_csv(seller, status_filter, category, search, inventory_level)
    return _csv_response(content, "products.csv")


@router.post("/import", summary="Import products from CSV")
async def import_products(
    file: UploadFile = File(...),
    seller: User = Depends(require_seller),
    db: Session = Depends(get_db),
):
    contents = await file.read()
    result = SellerProductService(db).import_csv(seller, contents)
    return {
        "success": True,
        "message": f"Imported {result['success_count']} of {result['total']} rows",
        "results": result,
    }


# single product


@router.get("/{uid}", summary="Get product")
def get_product(uid: str, seller: User = Depends(require_seller), db: Session = Depends(get_db)):
    return {"success": True, "product": SellerProductService(db).get(seller, uid)}


@router.put("/{uid}", summary="Update product")
def update_product(
    uid: str,
    payload: ProductUpdate,
    seller: User = Depends(require_seller),
    db: Session = Depends(get_db),
):
    product = SellerProductService(db).update(seller, uid, payload)
    return {"success": True, "message": "Product updated successfully", "product": product_detail(product)}


@router.delete("/{uid}", summary="Delete product")
def delete_product(uid: str, seller: User = Depends(require_seller), db: Session = Depends(get_db)):
    outcome = SellerProductService(db).delete(seller, uid)
    message = "Product deleted successfully"
    if outcome == "deactivated":
        message = "Product has existing orders and was deactivated instead"
    return {"success": True, "message": message, "result": outcome}


@router.post("/{uid}/duplicate", status_code=status.HTTP_201_CREATED, summary="Duplicate product")
def duplicate_product(uid: str, seller: User = Depends(require_seller), db: Session = Depends(get_db)):
    product = SellerProductService(db).duplicate(seller, uid)
    return {"success": True, "message": "Product duplicated successfully", "product": product_detail(product)}


@router.put("/{uid}/inventory", summary="Update stock")
def update_inventory(
    uid: str,
    payload: InventoryUpdate,
    seller: User = Depends(require_seller),
    db: Session = Depends(get_db),
):
    product = SellerProductService(db).update_inventory(seller, uid, payload)
    return {
        "success": True,
        "message": "Inventory updated successfully",
        "inventory": {
            "quantity_available": product.quantity_available,
            "low_stock_threshold": product.low_stock_threshold,
            "backorder_allowed": product.backorder_allowed,
            "inventory_status": product.inventory_status,
        },
    }


# images


@router.post("/{uid}/images", status_code=status.HTTP_201_CREATED, summary="Upload images")
async def upload_images(
    uid: str,
    files: List[UploadFile] = File(...),
    seller: User = Depends(require_seller),
    db: Session = Depends(get_db),
):
    uploads = [(f.filename, f.content_type, await f.read()) for f in files]
    images = SellerProductService(db).add_images(seller, uid, uploads)
    return {
        "success": True,
        "message": f"Uploaded {len(images)} images",
        "images": [ImageOut.model_validate(img).model_dump() for img in images],
    }


@router.put("/{uid}/images/order", summary="Reorder images")
def reorder_images(
    uid: str,
    payload: ImageOrderIn,
    seller: User = Depends(require_seller),
    db: Session = Depends(get_db),
):
    product = SellerProductService(db).reorder_images(seller, uid, payload.image_uids)
    return {
        "success": True,
        "images": [ImageOut.model_validate(img).model_dump() for img in product.images],
    }


@router.put("/{uid}/images/{image_uid}/primary", summary="Set primary image")
def set_primary_image(
    uid: str,
    image_uid: str,
    seller: User = Depends(require_seller),
    db: Session = Depends(get_db),
):
    product = SellerProductService(db).set_primary_image(seller, uid, image_uid)
    return {
        "success": True,
        "images": [ImageOut.model_validate(img).model_dump() for img in product.images],
    }


@router.delete("/{uid}/images/{image_uid}", summary="Delete image")
def delete_image(
    uid: str,
    image_uid: str,
    seller: User = Depends(require_seller),
    db: Session = Depends(get_db),
):
    product = SellerProductService(db).delete_image(seller, uid, image_uid)
    return {
        "success": True,
        "message": "Image deleted successfully",
        "images": [ImageOut.model_validate(img).model_dump() for img in product.images],
    }


# variants


@router.post("/{uid}/variants", status_code=status.HTTP_201_CREATED, summary="Add variant")
def add_variant(
    uid: str,
    payload: VariantIn,
    seller: User = Depends(require_seller),
    db: Session = Depends(get_db),
):
    variant = SellerProductService(db).add_variant(seller, uid, payload)
    return {"success": True, "variant": VariantOut.model_validate(variant).model_dump()}


@router.put("/{uid}/variants/{variant_uid}", summary="Update variant")
def update_variant(
    uid: str,
    variant_uid: str,
    payload: VariantUpdate,
    seller: User = Depends(require_seller),
    db: Session = Depends(get_db),
):
    variant = SellerProductService(db).update_variant(seller, uid, variant_uid, payload)
    return {"success": True, "variant": VariantOut.model_validate(variant).model_dump()}


@router.delete("/{uid}/variants/{variant_uid}", summary="Delete variant")
def delete_variant(
    uid: str,
    variant_uid: str,
    seller: User = Depends(require_seller),
    db: Session = Depends(get_db),
):
    SellerProductService(db).delete_variant(seller, uid, variant_uid)
    return {"success": True, "message": "Variant deleted successfully"}
