import threading

import pytest
from conftest import make_product

from constructmart.db import SessionLocal
from constructmart.repositories.product_repo import ProductRepository
from constructmart.services.inventory_service import InventoryException, InventoryService


def _load(db, uid):
    return ProductRepository(db).get_by_uid(uid)


def test_ensure_available_messages(client, seller, category):
    uid = make_product(client, seller, category, quantity_available=3)["uid"]
    db = SessionLocal()
    try:
        product = _load(db, uid)
        svc = InventoryService(db)
        svc.ensure_available(product, None, 3)
        with pytest.raises(InventoryException) as exc:
            svc.ensure_available(product, None, 4)
        assert exc.value.message == f"Only 3 units of {product.name} are available"
        with pytest.raises(InventoryException):
            svc.ensure_available(product, None, 0)
    finally:
        db.close()


def test_variant_stock_is_checked_separately(client, seller, category):
    created = make_product(
        client,
        seller,
        category,
        quantity_available=100,
        variants=[{"variant_type": "size", "variant_value": "Large", "quantity_available": 1}],
    )
    db = SessionLocal()
    try:
        product = _load(db, created["uid"])
        variant = product.variants[0]
        svc = InventoryService(db)
        with pytest.raises(InventoryException) as exc:
            svc.ensure_available(product, variant, 2)
        assert "(Large)" in exc.value.message

        with svc.locked([product]):
            svc.take(product, variant, 1)
            db.commit()
        db.refresh(variant)
        assert variant.quantity_available == 0
        assert product.quantity_available == 100

        svc.restock(product, variant, 1)
        db.commit()
        assert variant.quantity_available == 1
    finally:
        db.close()


def test_concurrent_takes_cannot_oversell(client, seller, category):
    uid = make_product(client, seller, category, quantity_available=1)["uid"]
    barrier = threading.Barrier(2)
    outcomes = []

    def buy():
        db = SessionLocal()
        try:
            svc = InventoryService(db)
            product = _load(db, uid)
            barrier.wait()
            with svc.locked([product]):
                try:
                    svc.take(product, None, 1)
                    db.commit()
                    outcomes.append("ok")
                except InventoryException:
                    db.rollback()
                    outcomes.append("short")
        finally:
            db.close()

    threads = [threading.Thread(target=buy) for _ in range(2)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=30)

    assert sorted(outcomes) == ["ok", "short"]
    db = SessionLocal()
    try:
        assert _load(db, uid).quantity_available == 0
    finally:
        db.close()


def test_set_stock_rolls_back_on_negative(client, seller, category):
    uid = make_product(client, seller, category, quantity_available=2)["uid"]
    db = SessionLocal()
    try:
        svc = InventoryService(db)
        product = _load(db, uid)
        with pytest.raises(InventoryException):
            svc.set_stock(product, adjustment=-5, low_stock_threshold=1)
        db.refresh(product)
        assert product.quantity_available == 2
        assert product.low_stock_threshold == 5

        svc.set_stock(product, quantity=0, backorder_allowed=True)
        assert product.inventory_status == "backorder"
    finally:
        db.close()
