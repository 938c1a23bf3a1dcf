import logging
import os
import tempfile
from contextlib import ExitStack, contextmanager
from typing import Iterable, Iterator, Optional

from constructmart.config import settings
from constructmart.errors import APIError, InvalidRequestError
from constructmart.models.product import Product, ProductVariant
from filelock import FileLock, Timeout
from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)


class InventoryException(InvalidRequestError):
    pass


def _locks_dir() -> str:
    path = settings.LOCK_DIR or os.path.join(tempfile.gettempdir(), "constructmart_locks")
    os.makedirs(path, exist_ok=True)
    return path


class InventoryService:
    """
    Stock checks and movements.

    Writers hold a per-product file lock from the moment they read stock until
    their transaction commits, so two checkouts cannot both take the last unit.
    """

    def __init__(self, db: Session):
        self.db = db

    def _lock_for(self, name: str) -> FileLock:
        return FileLock(os.path.join(_locks_dir(), f"{name}.lock"))

    @contextmanager
    def locked(self, products: Iterable[Product], extra: Iterable[str] = ()) -> Iterator[None]:
        """
        Hold the stock locks for ``products`` plus any ``extra`` named locks
        (e.g. ``promotion_<uid>``), all acquired in a stable order.
        """
        products = list(products)
        names = sorted({f"product_{p.uid}" for p in products} | set(extra))
        with ExitStack() as stack:
            for name in names:
                lock = self._lock_for(name)
                try:
                    stack.enter_context(lock.acquire(timeout=settings.LOCK_TIMEOUT_SECONDS))
                except Timeout:
                    raise APIError("Could not acquire stock lock; try again", status_code=503)
            for p in products:
                # re-read quantities now that no other writer can move them
                self.db.refresh(p)
            yield

    def available_quantity(self, product: Product, variant: Optional[ProductVariant] = None) -> int:
        if variant is not None:
            return variant.quantity_available
        return product.quantity_available

    def ensure_available(
        self, product: Product, variant: Optional[ProductVariant], qty: int
    ) -> None:
        if qty <= 0:
            raise InventoryException("Quantity must be positive")
        if product.backorder_allowed:
            return
        available = max(self.available_quantity(product, variant), 0)
        if available < qty:
            label = product.name
            if variant is not None:
                label = f"{product.name} ({variant.variant_value})"
            raise InventoryException(f"Only {available} units of {label} are available")

    def take(self, product: Product, variant: Optional[ProductVariant], qty: int) -> None:
        """Decrement stock; call while holding ``locked`` for ``product``."""
        if variant is not None:
            self.db.refresh(variant)
        self.ensure_available(product, variant, qty)
        if variant is not None:
            variant.quantity_available -= qty
        else:
            product.quantity_available -= qty
        self.db.flush()

    def restock(self, product: Product, variant: Optional[ProductVariant], qty: int) -> None:
        if variant is not None:
            variant.quantity_available += qty
        else:
            product.quantity_available += qty
        self.db.flush()
        logger.info("Restocked %s x%d", product.sku, qty)

    def set_stock(
        self,
        product: Product,
        quantity: Optional[int] = None,
        adjustment: Optional[int] = None,
        low_stock_threshold: Optional[int] = None,
        backorder_allowed: Optional[bool] = None,
    ) -> Product:
        with self.locked([product]):
            try:
                if backorder_allowed is not None:
                    product.backorder_allowed = backorder_allowed
                if low_stock_threshold is not None:
                    product.low_stock_threshold = low_stock_threshold
                new_qty = product.quantity_available
                if quantity is not None:
                    new_qty = quantity
                if adjustment:
                    new_qty += adjustment
                if new_qty < 0 and not product.backorder_allowed:
                    raise InventoryException("Stock cannot go below zero unless backorders are allowed")
                product.quantity_available = new_qty
                self.db.commit()
            except Exception:
                self.db.rollback()
                raise
        logger.info("Stock for %s set to %d", product.sku, product.quantity_available)
        return product
