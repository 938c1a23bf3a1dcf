import logging
import os
from typing import Any, Dict, List, Optional, Tuple

from pydantic import ValidationError
from sqlalchemy.orm import Session

from constructmart.config import settings
from constructmart.errors import ConflictError, InvalidRequestError, ResourceNotFoundError
from constructmart.models.category import Category
from constructmart.models.product import (
    INVENTORY_LEVELS,
    Product,
    ProductImage,
    ProductSpecification,
    ProductVariant,
)
from constructmart.models.user import User
from constructmart.repositories.cart_repo import CartRepository
from constructmart.repositories.category_repo import CategoryRepository
from constructmart.repositories.order_repo import OrderRepository
from constructmart.repositories.product_repo import ProductRepository
from constructmart.schemas.product_schema import (
    BulkPriceIn,
    BulkStatusIn,
    InventoryUpdate,
    ProductCreate,
    ProductUpdate,
    VariantIn,
    VariantUpdate,
)
from constructmart.services import product_csv
from constructmart.services.catalog_service import product_detail, product_summary
from constructmart.services.discounts import percent_of
from constructmart.services.inventory_service import InventoryService
from constructmart.utils.identifiers import new_uid
from constructmart.utils.pagination import paginate
from constructmart.utils.transactions import atomic

logger = logging.getLogger(__name__)

IMAGE_TYPES = {
    "image/jpeg": ".jpg",
    "image/png": ".png",
    "image/webp": ".webp",
    "image/gif": ".gif",
}
MAX_IMAGE_BYTES = 5 * 1024 * 1024
COPIED_COLUMNS = (
    "brand", "upc", "main_category_id", "subcategory_id", "short_description",
    "long_description", "base_price_cents", "cost_cents", "currency", "unit_of_measure",
    "quantity_available", "low_stock_threshold", "backorder_allowed", "dimensions",
    "shipping_details", "seo",
)
# columns a partial update may change but never clear
REQUIRED_FIELDS = (
    "name", "sku", "main_category_uid", "short_description", "base_price_cents", "currency",
    "quantity_available", "low_stock_threshold", "backorder_allowed", "listing_status", "is_active",
)


class SellerProductServiceException(InvalidRequestError):
    pass


class SellerProductService:
    def __init__(self, db: Session):
        self.db = db
        self.products = ProductRepository(db)
        self.categories = CategoryRepository(db)
        self.inventory = InventoryService(db)

    def _get(self, seller: User, uid: str) -> Product:
        product = self.products.get_for_seller(uid, seller.company_id)
        if not product:
            raise ResourceNotFoundError("Product", uid)
        return product

    def _resolve_categories(
        self, main_uid: Optional[str], sub_uid: Optional[str]
    ) -> Tuple[Optional[Category], Optional[Category]]:
        main = sub = None
        if main_uid:
            main = self.categories.get_by_uid(main_uid)
            if not main:
                raise SellerProductServiceException("Main category not found")
        if sub_uid:
            sub = self.categories.get_by_uid(sub_uid)
            if not sub:
                raise SellerProductServiceException("Subcategory not found")
            if main is not None and sub.parent_id != main.id:
                raise SellerProductServiceException("Subcategory does not belong to the main category")
        return main, sub

    def _ensure_sku_free(self, sku: str, exclude_id: Optional[int] = None):
        if self.products.sku_taken(sku, exclude_id):
            raise ConflictError(f"A product with SKU {sku} already exists")

    # queries

    def list(
        self,
        seller: User,
        status: Optional[str] = None,
        category_uid: Optional[str] = None,
        search: Optional[str] = None,
        inventory_level: Optional[str] = None,
        page: int = 1,
        limit: int = 25,
    ):
        query = self._filtered(seller, status, category_uid, search, inventory_level)
        items, meta = paginate(query, page, limit)
        return [product_summary(p) for p in items], meta

    def _filtered(self, seller, status, category_uid, search, inventory_level):
        if inventory_level and inventory_level not in INVENTORY_LEVELS:
            raise SellerProductServiceException(
                f"inventory_level must be one of {', '.join(INVENTORY_LEVELS)}"
            )
        category_id = None
        if category_uid:
            category = self.categories.get_by_uid(category_uid)
            category_id = category.id if category else -1
        return self.products.list_for_seller(
            seller.company_id,
            status=status,
            category_id=category_id,
            search=search,
            inventory_level=inventory_level,
        )

    def get(self, seller: User, uid: str) -> Dict[str, Any]:
        return product_detail(self._get(seller, uid))

    # writes

    def create(self, seller: User, payload: ProductCreate) -> Product:
        self._ensure_sku_free(payload.sku)
        main, sub = self._resolve_categories(payload.main_category_uid, payload.subcategory_uid)
        data = payload.model_dump(
            exclude={"main_category_uid", "subcategory_uid", "variants", "specifications"}
        )
        with atomic(self.db):
            product = Product(
                seller_id=seller.company_id,
                main_category_id=main.id,
                subcategory_id=sub.id if sub else None,
                **data,
            )
            for v in payload.variants:
                product.variants.append(ProductVariant(**v.model_dump()))
            for s in payload.specifications:
                product.specifications.append(ProductSpecification(**s.model_dump()))
            self.db.add(product)
            self.db.flush()
        logger.info("Seller %s created product %s (%s)", seller.company_uid, product.uid, product.sku)
        return product

    def update(self, seller: User, uid: str, payload: ProductUpdate) -> Product:
        product = self._get(seller, uid)
        changes = payload.model_dump(exclude_unset=True)
        self._apply_changes(product, changes)
        self.db.commit()
        return product

    def _apply_changes(self, product: Product, changes: Dict[str, Any]):
        nulled = [field for field in REQUIRED_FIELDS if field in changes and changes[field] is None]
        if nulled:
            raise SellerProductServiceException(f"{', '.join(nulled)} cannot be empty")
        if "sku" in changes and changes["sku"] != product.sku:
            self._ensure_sku_free(changes["sku"], exclude_id=product.id)
        if "main_category_uid" in changes or "subcategory_uid" in changes:
            main_uid = changes.pop("main_category_uid", None) or product.main_category_uid
            sub_uid = changes.pop("subcategory_uid", product.subcategory_uid)
            main, sub = self._resolve_categories(main_uid, sub_uid)
            product.main_category_id = main.id
            product.subcategory_id = sub.id if sub else None
        for field, value in changes.items():
            setattr(product, field, value)
        self.db.flush()

    def delete(self, seller: User, uid: str) -> str:
        product = self._get(seller, uid)
        with atomic(self.db):
            CartRepository(self.db).remove_product_lines(product.id)
            if OrderRepository(self.db).product_has_orders(product.id):
                product.is_active = False
                product.listing_status = "inactive"
                outcome = "deactivated"
            else:
                image_paths = [img.file_path for img in product.images if img.file_path]
                self.db.delete(product)
                outcome = "deleted"
        if outcome == "deleted":
            for path in image_paths:
                if os.path.exists(path):
                    os.remove(path)
        logger.info("Product %s %s", uid, outcome)
        return outcome

    def _copy_sku(self, sku: str) -> str:
        candidate = f"{sku}-COPY"
        n = 2
        while self.products.sku_taken(candidate):
            candidate = f"{sku}-COPY-{n}"
            n += 1
        return candidate

    def duplicate(self, seller: User, uid: str) -> Product:
        source = self._get(seller, uid)
        with atomic(self.db):
            copy = Product(
                seller_id=source.seller_id,
                name=f"{source.name} (Copy)",
                sku=self._copy_sku(source.sku),
                listing_status="draft",
                is_active=True,
                **{col: getattr(source, col) for col in COPIED_COLUMNS},
            )
            for v in source.variants:
                copy.variants.append(
                    ProductVariant(
                        variant_type=v.variant_type,
                        variant_value=v.variant_value,
                        sku=v.sku,
                        additional_price_cents=v.additional_price_cents,
                        quantity_available=v.quantity_available,
                        is_active=v.is_active,
                    )
                )
            for s in source.specifications:
                copy.specifications.append(
                    ProductSpecification(
                        name=s.name, value=s.value, unit=s.unit, group=s.group, display_order=s.display_order
                    )
                )
            self.db.add(copy)
        return copy

    # images

    def _image_dir(self, product: Product) -> str:
        path = os.path.join(settings.STORAGE_DIR, "products", product.uid)
        os.makedirs(path, exist_ok=True)
        return path

    def add_images(self, seller: User, uid: str, files: List[Tuple[str, str, bytes]]) -> List[ProductImage]:
        """``files`` holds ``(filename, content_type, content)`` triples."""
        product = self._get(seller, uid)
        if not files:
            raise SellerProductServiceException("At least one image file is required")
        for filename, content_type, content in files:
            if content_type not in IMAGE_TYPES:
                raise SellerProductServiceException(f"Unsupported image type for {filename}: {content_type}")
            if not content:
                raise SellerProductServiceException(f"{filename} is empty")
            if len(content) > MAX_IMAGE_BYTES:
                raise SellerProductServiceException(f"{filename} exceeds the 5MB limit")

        directory = self._image_dir(product)
        next_order = max((img.display_order for img in product.images), default=-1) + 1
        created = []
        with atomic(self.db):
            for filename, content_type, content in files:
                image_uid = new_uid("img")
                stored = f"{image_uid}{IMAGE_TYPES[content_type]}"
                path = os.path.join(directory, stored)
                with open(path, "wb") as fh:
                    fh.write(content)
                image = ProductImage(
                    uid=image_uid,
                    image_url=f"/storage/products/{product.uid}/{stored}",
                    file_path=path,
                    alt_text=os.path.splitext(filename or "")[0] or product.name,
                    display_order=next_order,
                    is_primary=not product.images,
                )
                product.images.append(image)
                created.append(image)
                next_order += 1
        return created

    def delete_image(self, seller: User, uid: str, image_uid: str) -> Product:
        product = self._get(seller, uid)
        image = self.products.get_image(product, image_uid)
        if not image:
            raise ResourceNotFoundError("Product image", image_uid)
        path = image.file_path
        with atomic(self.db):
            was_primary = image.is_primary
            product.images.remove(image)
            if was_primary and product.images:
                product.images[0].is_primary = True
        if path and os.path.exists(path):
            os.remove(path)
        return product

    def reorder_images(self, seller: User, uid: str, image_uids: List[str]) -> Product:
        product = self._get(seller, uid)
        by_uid = {img.uid: img for img in product.images}
        if sorted(image_uids) != sorted(by_uid):
            raise SellerProductServiceException("image_uids must list every image of the product exactly once")
        with atomic(self.db):
            for position, image_uid in enumerate(image_uids):
                by_uid[image_uid].display_order = position
        self.db.refresh(product)
        return product

    def set_primary_image(self, seller: User, uid: str, image_uid: str) -> Product:
        product = self._get(seller, uid)
        target = self.products.get_image(product, image_uid)
        if not target:
            raise ResourceNotFoundError("Product image", image_uid)
        with atomic(self.db):
            for img in product.images:
                img.is_primary = img is target
        return product

    # variants

    def _ensure_variant_sku_free(self, product: Product, sku: Optional[str], exclude: Optional[ProductVariant] = None):
        if not sku:
            return
        if any(v.sku == sku and v is not exclude for v in product.variants):
            raise ConflictError(f"Variant SKU {sku} already exists for this product")

    def add_variant(self, seller: User, uid: str, payload: VariantIn) -> ProductVariant:
        product = self._get(seller, uid)
        self._ensure_variant_sku_free(product, payload.sku)
        with atomic(self.db):
            variant = ProductVariant(**payload.model_dump())
            product.variants.append(variant)
        return variant

    def update_variant(self, seller: User, uid: str, variant_uid: str, payload: VariantUpdate) -> ProductVariant:
        product = self._get(seller, uid)
        variant = self.products.get_variant(product, variant_uid)
        if not variant:
            raise ResourceNotFoundError("Product variant", variant_uid)
        changes = payload.model_dump(exclude_unset=True)
        if changes.get("sku"):
            self._ensure_variant_sku_free(product, changes["sku"], exclude=variant)
        with atomic(self.db):
            for field, value in changes.items():
                if value is None and field != "sku":
                    continue
                setattr(variant, field, value)
        return variant

    def delete_variant(self, seller: User, uid: str, variant_uid: str) -> None:
        product = self._get(seller, uid)
        variant = self.products.get_variant(product, variant_uid)
        if not variant:
            raise ResourceNotFoundError("Product variant", variant_uid)
        with atomic(self.db):
            product.variants.remove(variant)

    # inventory and bulk operations

    def update_inventory(self, seller: User, uid: str, payload: InventoryUpdate) -> Product:
        product = self._get(seller, uid)
        if all(v is None for v in payload.model_dump().values()):
            raise SellerProductServiceException("No inventory changes supplied")
        return self.inventory.set_stock(
            product,
            quantity=payload.quantity_available,
            adjustment=payload.adjustment,
            low_stock_threshold=payload.low_stock_threshold,
            backorder_allowed=payload.backorder_allowed,
        )

    def _owned(self, seller: User, uids: List[str]) -> List[Product]:
        products = []
        for uid in dict.fromkeys(uids):
            products.append(self._get(seller, uid))
        return products

    def bulk_update_prices(self, seller: User, payload: BulkPriceIn) -> int:
        products = self._owned(seller, payload.product_uids)
        adj = payload.adjustment
        sign = 1 if adj.operation == "increase" else -1
        with atomic(self.db):
            for p in products:
                if adj.type == "percentage":
                    delta = percent_of(p.base_price_cents, adj.value)
                else:
                    delta = int(round(adj.value))
                p.base_price_cents = max(1, p.base_price_cents + sign * delta)
        logger.info("Bulk price update on %d products for %s", len(products), seller.company_uid)
        return len(products)

    def bulk_update_status(self, seller: User, payload: BulkStatusIn) -> int:
        products = self._owned(seller, payload.product_uids)
        with atomic(self.db):
            for p in products:
                p.listing_status = payload.status
                p.is_active = payload.status != "inactive"
        return len(products)

    # csv

    def export_csv(self, seller: User, status=None, category_uid=None, search=None, inventory_level=None) -> str:
        query = self._filtered(seller, status, category_uid, search, inventory_level)
        return product_csv.export_products(query.all())

    def import_csv(self, seller: User, content: bytes) -> Dict[str, Any]:
        rows = product_csv.read_rows(content)
        created = updated = 0
        errors = []
        for row_number, row in rows:
            sku = row.get("sku", "")
            try:
                was_created = self._import_row(seller, row)
                self.db.commit()
            except (InvalidRequestError, ConflictError, ResourceNotFoundError) as e:
                self.db.rollback()
                errors.append({"row": row_number, "sku": sku, "message": e.message})
                continue
            except ValidationError as e:
                self.db.rollback()
                message = "; ".join(
                    f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()
                )
                errors.append({"row": row_number, "sku": sku, "message": message})
                continue
            if was_created:
                created += 1
            else:
                updated += 1
        logger.info(
            "CSV import for %s: %d rows, %d created, %d updated, %d errors",
            seller.company_uid, len(rows), created, updated, len(errors),
        )
        return {
            "total": len(rows),
            "success_count": created + updated,
            "created_count": created,
            "updated_count": updated,
            "errors": errors,
        }

    def _import_row(self, seller: User, row: Dict[str, str]) -> bool:
        values = {k: v for k, v in row.items() if k in product_csv.COLUMNS and v != ""}
        for flag in ("backorder_allowed", "is_active"):
            if flag in values:
                values[flag] = product_csv.to_bool(values[flag])
        sku = values.get("sku")
        if not sku:
            raise SellerProductServiceException("sku is required")
        existing = self.products.get_by_sku(sku)
        if existing is None:
            self.create(seller, ProductCreate(**values))
            return True
        if existing.seller_id != seller.company_id:
            raise ConflictError(f"SKU {sku} belongs to another seller")
        self._apply_changes(existing, ProductUpdate(**values).model_dump(exclude_unset=True))
        return False
