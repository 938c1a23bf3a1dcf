#!/usr/bin/env python3
"""
Seed a development database with categories, a demo seller and buyer, and
products from a JSON catalogue (scripts/sample_catalogue.json by default).

Running it twice is safe: accounts are matched by email, categories by name
and products by SKU.

Usage:
    python scripts/seed_data.py --file scripts/sample_catalogue.json
    python scripts/seed_data.py --reset
"""
import argparse
import json
import logging
import os
import sys

# allow running from backend/scripts
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from constructmart.db import SessionLocal, init_db
from constructmart.errors import APIError
from constructmart.logging_config import setup_logging
from constructmart.models.category import Category
from constructmart.repositories.category_repo import CategoryRepository
from constructmart.repositories.product_repo import ProductRepository
from constructmart.repositories.user_repo import UserRepository
from constructmart.schemas.product_schema import ProductCreate
from constructmart.schemas.user_schema import RegisterIn
from constructmart.services.auth_service import AuthService
from constructmart.services.seller_product_service import SellerProductService

logger = logging.getLogger("constructmart.seed")

DEFAULT_SOURCE = os.path.join(os.path.dirname(__file__), "sample_catalogue.json")
DEMO_PASSWORD = "Password123!"
DEMO_ACCOUNTS = [
    {
        "email": "seller@constructmart.test",
        "first_name": "Dana",
        "last_name": "Supplier",
        "user_type": "vendor_admin",
        "company_details": {"name": "BuildRight Supply", "business_type": "distributor"},
    },
    {
        "email": "buyer@constructmart.test",
        "first_name": "Sam",
        "last_name": "Builder",
        "user_type": "individual_buyer",
    },
]


def ensure_account(db, entry):
    existing = UserRepository(db).get_by_email(entry["email"])
    if existing:
        return existing
    svc = AuthService(db)
    user, token = svc.register(RegisterIn(password=DEMO_PASSWORD, **entry))
    svc.verify_email(token)
    logger.info("Created %s account %s", entry["user_type"], entry["email"])
    return user


def ensure_category(db, name, parent=None):
    query = db.query(Category).filter(Category.name == name)
    query = query.filter(Category.parent_id == (parent.id if parent else None))
    category = query.first()
    if category:
        return category
    category = CategoryRepository(db).create(name, parent=parent)
    db.commit()
    return category


def _load(path):
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)
    if isinstance(data, dict):
        return data.get("categories", []), data.get("products", [])
    return [], data


def seed_from_file(path):
    categories, products = _load(path)
    db = SessionLocal()
    try:
        seller, _ = [ensure_account(db, entry) for entry in DEMO_ACCOUNTS]

        by_name = {}
        for entry in categories:
            main = ensure_category(db, entry["name"])
            by_name[entry["name"]] = main
            for child in entry.get("subcategories", []):
                by_name[f"{entry['name']}/{child}"] = ensure_category(db, child, parent=main)

        repo = ProductRepository(db)
        svc = SellerProductService(db)
        created = skipped = 0
        for entry in products:
            entry = dict(entry)
            if repo.get_by_sku(entry["sku"]):
                skipped += 1
                continue
            main_name = entry.pop("category")
            sub_name = entry.pop("subcategory", None)
            main = by_name.get(main_name) or ensure_category(db, main_name)
            entry["main_category_uid"] = main.uid
            if sub_name:
                entry["subcategory_uid"] = (
                    by_name.get(f"{main_name}/{sub_name}") or ensure_category(db, sub_name, parent=main)
                ).uid
            entry.setdefault("listing_status", "active")
            try:
                svc.create(seller, ProductCreate(**entry))
            except APIError as e:
                logger.warning("Skipping %s: %s", entry["sku"], e.message)
                continue
            created += 1
        logger.info("Seeded products: %d created, %d already present", created, skipped)
    finally:
        db.close()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Seed ConstructMart demo data")
    parser.add_argument("--file", "-f", default=DEFAULT_SOURCE, help="Path to a catalogue JSON file")
    parser.add_argument("--reset", action="store_true", help="Drop and recreate all tables first")
    args = parser.parse_args()
    setup_logging("INFO")
    if not os.path.exists(args.file):
        print("File not found:", args.file)
        sys.exit(1)
    init_db(reset=args.reset)
    seed_from_file(args.file)
