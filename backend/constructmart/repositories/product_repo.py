from typing import List, Optional, Tuple

from constructmart.models.category import Category
from constructmart.models.product import Product, ProductImage, ProductVariant
from sqlalchemy import func, or_
from sqlalchemy.orm import Session, selectinload

SORT_COLUMNS = {
    "name": Product.name,
    "base_price": Product.base_price_cents,
    "created_at": Product.created_at,
    "average_rating": Product.average_rating,
    "total_views": Product.total_views,
}


class ProductRepository:
    def __init__(self, db: Session):
        self.db = db

    def _listed(self):
        return self.db.query(Product).filter(
            Product.is_active == True, Product.listing_status == "active"
        )

    def get_by_uid(self, uid: str) -> Optional[Product]:
        return self.db.query(Product).filter(Product.uid == uid).first()

    def get_by_sku(self, sku: str) -> Optional[Product]:
        return self.db.query(Product).filter(Product.sku == sku).first()

    def get_for_seller(self, uid: str, seller_id: int) -> Optional[Product]:
        return (
            self.db.query(Product)
            .filter(Product.uid == uid, Product.seller_id == seller_id)
            .first()
        )

    def sku_taken(self, sku: str, exclude_id: Optional[int] = None) -> bool:
        qry = self.db.query(Product.id).filter(Product.sku == sku)
        if exclude_id is not None:
            qry = qry.filter(Product.id != exclude_id)
        return qry.first() is not None

    def list(
        self,
        category_id: Optional[int] = None,
        subcategory_id: Optional[int] = None,
        seller_id: Optional[int] = None,
        search: Optional[str] = None,
        min_price: Optional[int] = None,
        max_price: Optional[int] = None,
        brand: Optional[str] = None,
        in_stock: Optional[bool] = None,
        sort_by: str = "created_at",
        sort_order: str = "desc",
        page: int = 1,
        size: int = 20,
    ) -> Tuple[List[Product], int]:
        query = self._listed()
        if category_id is not None:
            query = query.filter(
                or_(Product.main_category_id == category_id, Product.subcategory_id == category_id)
            )
        if subcategory_id is not None:
            query = query.filter(Product.subcategory_id == subcategory_id)
        if seller_id is not None:
            query = query.filter(Product.seller_id == seller_id)
        if search:
            query = query.filter(
                Product.name.icontains(search, autoescape=True)
                | Product.short_description.icontains(search, autoescape=True)
                | Product.long_description.icontains(search, autoescape=True)
            )
        if min_price is not None:
            query = query.filter(Product.base_price_cents >= min_price)
        if max_price is not None:
            query = query.filter(Product.base_price_cents <= max_price)
        if brand:
            query = query.filter(func.lower(Product.brand) == brand.lower())
        if in_stock:
            query = query.filter(
                or_(Product.quantity_available > 0, Product.backorder_allowed == True)
            )

        total = query.with_entities(func.count(Product.id)).scalar() or 0
        column = SORT_COLUMNS[sort_by]
        order = column.asc() if sort_order == "asc" else column.desc()
        items = (
            query.options(selectinload(Product.images))
            .order_by(order, Product.id)
            .offset((page - 1) * size)
            .limit(size)
            .all()
        )
        return items, total

    def list_for_seller(
        self,
        seller_id: int,
        status: Optional[str] = None,
        category_id: Optional[int] = None,
        search: Optional[str] = None,
        inventory_level: Optional[str] = None,
    ):
        query = self.db.query(Product).filter(Product.seller_id == seller_id)
        if status:
            query = query.filter(Product.listing_status == status)
        if category_id is not None:
            query = query.filter(
                or_(Product.main_category_id == category_id, Product.subcategory_id == category_id)
            )
        if search:
            query = query.filter(
                Product.name.icontains(search, autoescape=True)
                | Product.sku.icontains(search, autoescape=True)
                | Product.brand.icontains(search, autoescape=True)
            )
        if inventory_level == "out_of_stock":
            query = query.filter(Product.quantity_available <= 0, Product.backorder_allowed == False)
        elif inventory_level == "backorder":
            query = query.filter(Product.quantity_available <= 0, Product.backorder_allowed == True)
        elif inventory_level == "low_stock":
            query = query.filter(
                Product.quantity_available > 0,
                Product.quantity_available <= Product.low_stock_threshold,
            )
        elif inventory_level == "in_stock":
            query = query.filter(Product.quantity_available > Product.low_stock_threshold)
        return query.order_by(Product.created_at.desc(), Product.id.desc())

    def related(self, product: Product, limit: int = 4) -> List[Product]:
        return (
            self._listed()
            .filter(Product.main_category_id == product.main_category_id, Product.id != product.id)
            .order_by(Product.total_views.desc(), Product.id)
            .limit(limit)
            .all()
        )

    def popular_in_category(self, category: Category, limit: int = 6) -> List[Product]:
        return (
            self._listed()
            .filter(
                or_(Product.main_category_id == category.id, Product.subcategory_id == category.id)
            )
            .order_by(Product.total_orders.desc(), Product.total_views.desc(), Product.id)
            .limit(limit)
            .all()
        )

    def count_in_category(self, category_id: int) -> int:
        return (
            self._listed()
            .filter(
                or_(Product.main_category_id == category_id, Product.subcategory_id == category_id)
            )
            .with_entities(func.count(Product.id))
            .scalar()
            or 0
        )

    def get_image(self, product: Product, image_uid: str) -> Optional[ProductImage]:
        return next((img for img in product.images if img.uid == image_uid), None)

    def get_variant(self, product: Product, variant_uid: str) -> Optional[ProductVariant]:
        return next((v for v in product.variants if v.uid == variant_uid), None)
