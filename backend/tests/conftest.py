import os
import tempfile
import uuid

_TMP = tempfile.mkdtemp(prefix="constructmart-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_TMP, 'test.db')}"
os.environ["STORAGE_DIR"] = os.path.join(_TMP, "storage")
os.environ["LOCK_DIR"] = os.path.join(_TMP, "locks")
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["SCHEDULER_ENABLED"] = "false"
os.environ["DEBUG"] = "true"
os.environ["LOG_LEVEL"] = "WARNING"

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from constructmart.db import SessionLocal, init_db  # noqa: E402
from constructmart.main import app  # noqa: E402
from constructmart.repositories.category_repo import CategoryRepository  # noqa: E402

PASSWORD = "Password123!"


@pytest.fixture(scope="session")
def client():
    init_db(reset=True)
    with TestClient(app) as c:
        yield c


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


def unique(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex[:8]}"


def auth(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


def register(client, user_type="individual_buyer", company=None, verify=True, email=None):
    email = email or f"{unique(user_type)}@example.com"
    payload = {
        "email": email,
        "password": PASSWORD,
        "first_name": "Test",
        "last_name": user_type.replace("_", " ").title(),
        "user_type": user_type,
    }
    if company is not None:
        payload["company_details"] = company
    r = client.post("/api/auth/register", json=payload)
    assert r.status_code == 201, r.text
    body = r.json()
    if verify:
        v = client.get(f"/api/auth/verify-email/{body['verification_token']}")
        assert v.status_code == 200, v.text
    return {"email": email, "user": body["user"], "verification_token": body["verification_token"]}


def login(client, email, password=PASSWORD):
    r = client.post("/api/auth/login", json={"email": email, "password": password})
    assert r.status_code == 200, r.text
    return r.json()["token"]


def make_account(client, user_type="individual_buyer", company=None):
    account = register(client, user_type, company)
    token = login(client, account["email"])
    account["token"] = token
    account["headers"] = auth(token)
    return account


def make_seller(client):
    return make_account(
        client,
        "vendor_admin",
        {"name": unique("Supply Co"), "business_type": "distributor"},
    )


def make_category(name=None, parent_uid=None):
    session = SessionLocal()
    try:
        repo = CategoryRepository(session)
        parent = repo.get_by_uid(parent_uid) if parent_uid else None
        c = repo.create(name or unique("Category"), parent=parent)
        session.commit()
        return c.uid
    finally:
        session.close()


def product_payload(category_uid, **overrides):
    payload = {
        "name": "Portland Cement 40kg",
        "sku": unique("SKU").upper(),
        "brand": "BuildRight",
        "main_category_uid": category_uid,
        "short_description": "General purpose cement",
        "base_price_cents": 1000,
        "quantity_available": 50,
        "listing_status": "active",
    }
    payload.update(overrides)
    return payload


def make_product(client, seller, category_uid, **overrides):
    r = client.post(
        "/api/seller/products",
        json=product_payload(category_uid, **overrides),
        headers=seller["headers"],
    )
    assert r.status_code == 201, r.text
    return r.json()["product"]


def make_address(client, account, **overrides):
    payload = {
        "address_type": "both",
        "recipient_name": "Site Office",
        "street_address_1": "1 Quarry Road",
        "city": "Springfield",
        "state_province": "IL",
        "postal_code": "62701",
        "country": "US",
    }
    payload.update(overrides)
    r = client.post("/api/users/addresses", json=payload, headers=account["headers"])
    assert r.status_code == 201, r.text
    return r.json()["address"]


def add_to_cart(client, account, product_uid, quantity=1, variant_uid=None):
    body = {"product_uid": product_uid, "quantity": quantity}
    if variant_uid:
        body["variant_uid"] = variant_uid
    return client.post("/api/cart/items", json=body, headers=account["headers"])


def checkout(client, account, address_uid, **extra):
    body = {
        "shipping_address_uid": address_uid,
        "billing_address_uid": address_uid,
        "payment_method": "credit_card",
    }
    body.update(extra)
    return client.post("/api/orders", json=body, headers=account["headers"])


def receive_event(ws, event, limit=10):
    """Read websocket messages until ``event`` arrives."""
    for _ in range(limit):
        message = ws.receive_json()
        if message["event"] == event:
            return message
    raise AssertionError(f"{event} not received")


@pytest.fixture
def buyer(client):
    return make_account(client)


@pytest.fixture
def seller(client):
    return make_seller(client)


@pytest.fixture
def category(client):
    return make_category()


@pytest.fixture
def product(client, seller, category):
    return make_product(client, seller, category)
