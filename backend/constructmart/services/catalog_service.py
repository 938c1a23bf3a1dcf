from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from constructmart.errors import InvalidRequestError, ResourceNotFoundError
from constructmart.models.company import Company
from constructmart.models.product import Product
from constructmart.models.user import User
from constructmart.repositories.category_repo import CategoryRepository
from constructmart.repositories.product_repo import SORT_COLUMNS, ProductRepository
from constructmart.schemas.product_schema import CategoryOut, ProductDetailOut, ProductOut
from constructmart.utils.pagination import pagination_meta


def product_summary(p: Product) -> Dict[str, Any]:
    return ProductOut.model_validate(p).model_dump()


def product_detail(p: Product) -> Dict[str, Any]:
    data = ProductDetailOut.model_validate(p).model_dump()
    data["seller_name"] = p.seller.name if p.seller else None
    data["main_category_name"] = p.main_category.name if p.main_category else None
    data["subcategory_name"] = p.subcategory.name if p.subcategory else None
    return data


class CatalogService:
    def __init__(self, db: Session):
        self.db = db
        self.products = ProductRepository(db)
        self.categories = CategoryRepository(db)

    def _category_id(self, uid: Optional[str]) -> Optional[int]:
        if not uid:
            return None
        category = self.categories.get_by_uid(uid)
        # unknown filter values match nothing rather than everything
        return category.id if category else -1

    def list_products(
        self,
        category_uid: Optional[str] = None,
        subcategory_uid: Optional[str] = None,
        seller_uid: Optional[str] = None,
        search: Optional[str] = None,
        min_price: Optional[int] = None,
        max_price: Optional[int] = None,
        brand: Optional[str] = None,
        in_stock: Optional[bool] = None,
        sort_by: str = "created_at",
        sort_order: str = "desc",
        page: int = 1,
        limit: int = 20,
    ) -> Dict[str, Any]:
        if sort_by not in SORT_COLUMNS:
            raise InvalidRequestError(
                f"sort_by must be one of {', '.join(SORT_COLUMNS)}"
            )
        if sort_order not in ("asc", "desc"):
            raise InvalidRequestError("sort_order must be asc or desc")
        if min_price is not None and max_price is not None and min_price > max_price:
            raise InvalidRequestError("min_price cannot be greater than max_price")

        seller_id = None
        if seller_uid:
            seller = self.db.query(Company).filter(Company.uid == seller_uid).first()
            seller_id = seller.id if seller else -1

        items, total = self.products.list(
            category_id=self._category_id(category_uid),
            subcategory_id=self._category_id(subcategory_uid),
            seller_id=seller_id,
            search=search,
            min_price=min_price,
            max_price=max_price,
            brand=brand,
            in_stock=in_stock,
            sort_by=sort_by,
            sort_order=sort_order,
            page=page,
            size=limit,
        )
        return {
            "products": [product_summary(p) for p in items],
            "pagination": pagination_meta(total, page, limit),
        }

    def get_product(self, uid: str, viewer: Optional[User] = None) -> Dict[str, Any]:
        product = self.products.get_by_uid(uid)
        is_owner = bool(viewer and viewer.company_id and product and product.seller_id == viewer.company_id)
        if not product or not (product.is_listed or is_owner):
            raise ResourceNotFoundError("Product", uid)

        product.total_views = (product.total_views or 0) + 1
        self.db.commit()

        data = product_detail(product)
        data["related_products"] = [product_summary(p) for p in self.products.related(product)]
        return data

    def _category_dict(self, c) -> Dict[str, Any]:
        data = CategoryOut.model_validate(c).model_dump()
        data["parent_uid"] = c.parent.uid if c.parent else None
        data["subcategory_count"] = self.categories.subcategory_count(c.id)
        data["product_count"] = self.products.count_in_category(c.id)
        return data

    def list_categories(self, parent_uid: Optional[str] = None):
        parent_id = None
        if parent_uid:
            parent = self.categories.get_by_uid(parent_uid)
            if not parent:
                raise ResourceNotFoundError("Category", parent_uid)
            parent_id = parent.id
        return [self._category_dict(c) for c in self.categories.list(parent_id)]

    def get_category(self, uid: str) -> Dict[str, Any]:
        category = self.categories.get_by_uid(uid)
        if not category or not category.is_active:
            raise ResourceNotFoundError("Category", uid)
        data = self._category_dict(category)
        data["parent"] = CategoryOut.model_validate(category.parent).model_dump() if category.parent else None
        data["subcategories"] = [self._category_dict(c) for c in self.categories.list(category.id)]
        data["popular_products"] = [
            product_summary(p) for p in self.products.popular_in_category(category)
        ]
        return data
