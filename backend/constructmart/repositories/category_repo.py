from typing import List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from constructmart.models.category import Category


class CategoryRepository:
    def __init__(self, db: Session):
        self.db = db

    def get_by_uid(self, uid: str) -> Optional[Category]:
        return self.db.query(Category).filter(Category.uid == uid).first()

    def list(self, parent_id: Optional[int] = None) -> List[Category]:
        query = self.db.query(Category).filter(Category.is_active == True)
        if parent_id is None:
            query = query.filter(Category.parent_id.is_(None))
        else:
            query = query.filter(Category.parent_id == parent_id)
        return query.order_by(Category.display_order, Category.name).all()

    def subcategory_count(self, category_id: int) -> int:
        return (
            self.db.query(func.count(Category.id))
            .filter(Category.parent_id == category_id, Category.is_active == True)
            .scalar()
            or 0
        )

    def create(self, name: str, parent: Optional[Category] = None, **fields) -> Category:
        c = Category(name=name, parent=parent, **fields)
        self.db.add(c)
        self.db.flush()
        return c
