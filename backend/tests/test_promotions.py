import io
import threading
from datetime import datetime, timedelta, timezone

import pandas as pd

from conftest import add_to_cart, checkout, make_account, make_address, make_product, make_seller, unique

from constructmart.db import SessionLocal
from constructmart.models.promotion import Promotion
from constructmart.repositories.user_repo import UserRepository
from constructmart.schemas.order_schema import OrderCreate
from constructmart.services.order_service import OrderService, OrderServiceException
from constructmart.services.promotion_service import refresh_promotion_statuses

BASE = "/api/seller/promotions"


def _iso(days=0, hours=0):
    return (datetime.now(timezone.utc) + timedelta(days=days, hours=hours)).isoformat()


def promotion_payload(**overrides):
    payload = {
        "name": "Spring Sale",
        "description": "Ten percent off",
        "type": "percentage",
        "discountType": "percentage",
        "discountValue": 10,
        "startDate": _iso(days=-1),
        "endDate": _iso(days=30),
        "isActive": True,
    }
    payload.update(overrides)
    return payload


def create_promotion(client, seller, **overrides):
    res = client.post(BASE, json=promotion_payload(**overrides), headers=seller["headers"])
    assert res.status_code == 201, res.text
    return res.json()["promotion"]


def test_create_and_get(client, seller):
    promo = create_promotion(client, seller, couponCode=unique("spring"))
    assert promo["uid"].startswith("promo-")
    assert promo["status"] == "active"
    assert promo["couponCode"] == promo["couponCode"].upper()
    assert promo["eligibility"]["allProducts"] is True
    assert promo["eligibility"]["customerGroups"] == ["all"]

    res = client.get(f"{BASE}/{promo['uid']}", headers=seller["headers"])
    assert res.json()["promotion"]["name"] == "Spring Sale"

    other = make_seller(client)
    assert client.get(f"{BASE}/{promo['uid']}", headers=other["headers"]).status_code == 404


def test_validation_errors_are_collected(client, seller):
    res = client.post(
        BASE,
        json=promotion_payload(name="  ", discountValue=150, startDate=_iso(days=5), endDate=_iso(days=1)),
        headers=seller["headers"],
    )
    assert res.status_code == 400
    body = res.json()
    assert body["success"] is False
    assert set(body["errors"]) == {"name", "discountValue", "endDate"}


def test_buy_x_get_y_needs_quantities(client, seller):
    res = client.post(BASE, json=promotion_payload(type="buy_x_get_y"), headers=seller["headers"])
    assert res.status_code == 400
    assert {"buyQuantity", "getQuantity"} <= set(res.json()["errors"])


def test_free_shipping_needs_no_value(client, seller):
    promo = create_promotion(client, seller, type="free_shipping", discountValue=0)
    assert promo["type"] == "free_shipping"


def test_eligibility_must_reference_own_products(client, seller, category):
    stranger_product = make_product(client, make_seller(client), category)
    res = client.post(
        BASE,
        json=promotion_payload(eligibility={"allProducts": False, "productUids": [stranger_product["uid"]]}),
        headers=seller["headers"],
    )
    assert res.status_code == 400
    assert "eligibility" in res.json()["errors"]

    res = client.post(
        BASE, json=promotion_payload(eligibility={"allProducts": False}), headers=seller["headers"]
    )
    assert res.status_code == 400


def test_coupon_code_must_be_unique(client, seller):
    code = unique("dup")
    create_promotion(client, seller, couponCode=code)
    res = client.post(BASE, json=promotion_payload(couponCode=code.lower()), headers=seller["headers"])
    assert res.status_code == 409


def test_status_is_derived_from_dates(client):
    seller = make_seller(client)
    scheduled = create_promotion(client, seller, startDate=_iso(days=2), endDate=_iso(days=9))
    expired = create_promotion(client, seller, startDate=_iso(days=-9), endDate=_iso(days=-2))
    draft = create_promotion(client, seller, isActive=False)
    assert scheduled["status"] == "scheduled"
    assert expired["status"] == "expired"
    assert draft["status"] == "draft"

    res = client.get(BASE, params={"status": "scheduled"}, headers=seller["headers"])
    assert [p["uid"] for p in res.json()["promotions"]] == [scheduled["uid"]]

    assert client.get(BASE, params={"status": "paused"}, headers=seller["headers"]).status_code == 400


def test_list_search_type_and_pagination(client):
    seller = make_seller(client)
    word = unique("clearance")
    for i in range(3):
        create_promotion(client, seller, name=f"{word} {i}")
    create_promotion(client, seller, name="Free delivery", type="free_shipping", discountValue=0)

    res = client.get(BASE, params={"search": word, "limit": 2}, headers=seller["headers"])
    body = res.json()
    assert len(body["promotions"]) == 2
    assert body["pagination"]["total_items"] == 3
    assert body["pagination"]["total_pages"] == 2

    res = client.get(BASE, params={"type": "free_shipping"}, headers=seller["headers"])
    assert [p["name"] for p in res.json()["promotions"]] == ["Free delivery"]

    create_promotion(client, seller, name="50% off sealants")
    res = client.get(BASE, params={"search": "%"}, headers=seller["headers"])
    assert [p["name"] for p in res.json()["promotions"]] == ["50% off sealants"]


def test_update_revalidates_and_recomputes_status(client, seller):
    promo = create_promotion(client, seller)
    res = client.put(
        f"{BASE}/{promo['uid']}",
        json={"startDate": _iso(days=3), "endDate": _iso(days=10)},
        headers=seller["headers"],
    )
    assert res.status_code == 200
    assert res.json()["promotion"]["status"] == "scheduled"

    res = client.put(f"{BASE}/{promo['uid']}", json={"endDate": _iso(days=1)}, headers=seller["headers"])
    assert res.status_code == 400
    assert "endDate" in res.json()["errors"]


def test_update_rejects_null_for_required_fields(client, seller):
    promo = create_promotion(client, seller)
    res = client.put(
        f"{BASE}/{promo['uid']}",
        json={
            "name": None,
            "type": None,
            "discountType": None,
            "discountValue": None,
            "startDate": None,
            "endDate": None,
            "isActive": None,
        },
        headers=seller["headers"],
    )
    assert res.status_code == 400
    errors = res.json()["errors"]
    for field in ("name", "type", "discountType", "discountValue", "startDate", "endDate", "isActive"):
        assert field in errors

    res = client.put(f"{BASE}/{promo['uid']}", json={"isActive": None}, headers=seller["headers"])
    assert res.status_code == 400
    assert res.json()["errors"]["isActive"] == ["isActive must be true or false"]

    detail = client.get(f"{BASE}/{promo['uid']}", headers=seller["headers"]).json()["promotion"]
    assert detail["name"] == "Spring Sale"
    assert detail["isActive"] is True
    assert detail["type"] == "percentage"


def test_duplicate_activate_deactivate_delete(client, seller):
    promo = create_promotion(client, seller, couponCode=unique("orig"))
    res = client.post(f"{BASE}/{promo['uid']}/duplicate", headers=seller["headers"])
    assert res.status_code == 201
    copy = res.json()["promotion"]
    assert copy["name"] == "Spring Sale (Copy)"
    assert copy["couponCode"] is None
    assert copy["isActive"] is False
    assert copy["status"] == "draft"
    assert copy["usageCount"] == 0

    res = client.post(f"{BASE}/{copy['uid']}/activate", headers=seller["headers"])
    assert res.json()["promotion"]["status"] == "active"
    res = client.post(f"{BASE}/{copy['uid']}/deactivate", headers=seller["headers"])
    assert res.json()["promotion"]["status"] == "draft"

    assert client.delete(f"{BASE}/{copy['uid']}", headers=seller["headers"]).status_code == 200
    assert client.get(f"{BASE}/{copy['uid']}", headers=seller["headers"]).status_code == 404


def test_coupon_code_generation_and_export(client, seller):
    promo = create_promotion(client, seller)
    url = f"{BASE}/{promo['uid']}/coupon-codes"
    res = client.post(url, json={"quantity": 5, "length": 6, "prefix": "bm", "maxUses": 1}, headers=seller["headers"])
    assert res.status_code == 201, res.text
    body = res.json()
    assert body["generated_count"] == 5
    codes = [c["code"] for c in body["codes"]]
    assert len(set(codes)) == 5
    assert all(c.startswith("BM") and len(c) == 8 for c in codes)
    assert body["codes"][0]["maxUses"] == 1

    listed = client.get(url, headers=seller["headers"]).json()["codes"]
    assert sorted(c["code"] for c in listed) == sorted(codes)
    assert client.get(f"{BASE}/{promo['uid']}", headers=seller["headers"]).json()["promotion"]["couponCodeCount"] == 5

    res = client.get(f"{url}/export", headers=seller["headers"])
    assert res.status_code == 200
    assert "attachment" in res.headers["content-disposition"]
    rows = pd.read_csv(io.StringIO(res.text), dtype=str, keep_default_na=False).to_dict(orient="records")
    assert sorted(r["code"] for r in rows) == sorted(codes)
    assert rows[0]["times_used"] == "0"

    res = client.post(url, json={"quantity": 0}, headers=seller["headers"])
    assert res.status_code == 422


def test_calculate_impact(client, seller):
    res = client.post(
        f"{BASE}/calculate-impact",
        json={"type": "percentage", "discountValue": 25, "maximumDiscount": 2000, "samplePrice": 10000},
        headers=seller["headers"],
    )
    assert res.status_code == 200
    preview = res.json()["preview"]
    assert preview["discountAmount"] == 2000
    assert preview["discountedPrice"] == 8000
    assert preview["discountPercentage"] == 20.0
    assert len(preview["examples"]) == 3

    res = client.post(
        f"{BASE}/calculate-impact",
        json={"type": "buy_x_get_y", "discountValue": 100, "buyQuantity": 2, "getQuantity": 1, "samplePrice": 1000},
        headers=seller["headers"],
    )
    savings = [e["savings"] for e in res.json()["preview"]["examples"]]
    assert savings == [0, 1000, 2000]


def _cart_with(client, seller, category, quantity=1):
    buyer = make_account(client)
    product = make_product(client, seller, category, quantity_available=20)
    address = make_address(client, buyer)
    add_to_cart(client, buyer, product["uid"], quantity)
    return buyer, product, address


def test_percentage_coupon_at_checkout(client, seller, category):
    code = unique("save").upper()
    promo = create_promotion(client, seller, couponCode=code)
    buyer, _, address = _cart_with(client, seller, category, quantity=2)

    res = checkout(client, buyer, address["uid"], coupon_code=code.lower())
    assert res.status_code == 201, res.text
    order = res.json()["order"]
    assert order["coupon_code"] == code
    assert order["subtotal_cents"] == 2000
    assert order["discount_cents"] == 200
    assert order["tax_cents"] == 180
    assert order["total_cents"] == 2000 - 200 + 180 + 1500
    assert order["items"][0]["discount_cents"] == 200

    detail = client.get(f"{BASE}/{promo['uid']}", headers=seller["headers"]).json()["promotion"]
    assert detail["usageCount"] == 1


def test_free_shipping_coupon(client, seller, category):
    code = unique("ship").upper()
    create_promotion(client, seller, type="free_shipping", discountValue=0, couponCode=code)
    buyer, _, address = _cart_with(client, seller, category)

    order = checkout(client, buyer, address["uid"], coupon_code=code).json()["order"]
    assert order["shipping_cents"] == 0
    assert order["discount_cents"] == 1500
    assert order["total_cents"] == 1000 + 100


def test_generated_code_single_use(client, seller, category):
    promo = create_promotion(client, seller)
    codes = client.post(
        f"{BASE}/{promo['uid']}/coupon-codes", json={"quantity": 1, "maxUses": 1}, headers=seller["headers"]
    ).json()["codes"]
    code = codes[0]["code"]

    buyer, _, address = _cart_with(client, seller, category)
    assert checkout(client, buyer, address["uid"], coupon_code=code).status_code == 201

    again, _, address = _cart_with(client, seller, category)
    res = checkout(client, again, address["uid"], coupon_code=code)
    assert res.status_code == 400
    assert res.json()["message"] == "This coupon code has reached its usage limit"


def test_coupon_rejections(client, seller, category):
    buyer, _, address = _cart_with(client, seller, category)
    res = checkout(client, buyer, address["uid"], coupon_code="NOPE-NOT-REAL")
    assert res.status_code == 400
    assert res.json()["message"] == "Invalid coupon code"

    scheduled = unique("later").upper()
    create_promotion(client, seller, couponCode=scheduled, startDate=_iso(days=2), endDate=_iso(days=5))
    res = checkout(client, buyer, address["uid"], coupon_code=scheduled)
    assert res.json()["message"] == "Promotion is scheduled"

    minimum = unique("big").upper()
    create_promotion(client, seller, couponCode=minimum, minimumPurchase=50000)
    res = checkout(client, buyer, address["uid"], coupon_code=minimum)
    assert res.status_code == 400
    assert res.json()["message"] == "Your order does not meet the requirements of this coupon"


def test_coupon_from_other_seller_does_not_apply(client, seller, category):
    other = make_seller(client)
    code = unique("theirs").upper()
    create_promotion(client, other, couponCode=code)
    buyer, product, address = _cart_with(client, seller, category)

    res = checkout(client, buyer, address["uid"], coupon_code=code)
    assert res.status_code == 400
    assert res.json()["message"] == "Coupon does not apply to any item in your cart"
    stock = client.get(f"/api/seller/products/{product['uid']}", headers=seller["headers"]).json()["product"]
    assert stock["quantity_available"] == 20


def test_refresh_promotion_statuses(client, seller):
    promo = create_promotion(client, seller)
    session = SessionLocal()
    try:
        row = session.query(Promotion).filter(Promotion.uid == promo["uid"]).one()
        row.end_date = datetime.now(timezone.utc) - timedelta(minutes=1)
        session.commit()

        assert refresh_promotion_statuses(session) >= 1
        session.refresh(row)
        assert row.status == "expired"
    finally:
        session.close()


def test_uses_per_customer_limit_at_checkout(client, seller, category):
    code = unique("once").upper()
    create_promotion(client, seller, couponCode=code, usageLimits={"usesPerCustomer": 1})
    buyer, _, address = _cart_with(client, seller, category)
    assert checkout(client, buyer, address["uid"], coupon_code=code).status_code == 201

    product = make_product(client, seller, category, quantity_available=5)
    add_to_cart(client, buyer, product["uid"])
    res = checkout(client, buyer, address["uid"], coupon_code=code)
    assert res.status_code == 400
    assert res.json()["message"] == "You have already used this promotion"

    other, _, other_address = _cart_with(client, seller, category)
    assert checkout(client, other, other_address["uid"], coupon_code=code).status_code == 201


def test_total_uses_limit_at_checkout(client, seller, category):
    code = unique("first").upper()
    promo = create_promotion(client, seller, couponCode=code, usageLimits={"totalUses": 1})
    buyer, _, address = _cart_with(client, seller, category)
    assert checkout(client, buyer, address["uid"], coupon_code=code).status_code == 201

    late, _, late_address = _cart_with(client, seller, category)
    res = checkout(client, late, late_address["uid"], coupon_code=code)
    assert res.status_code == 400
    assert res.json()["message"] == "Promotion is expired"
    assert client.get(f"{BASE}/{promo['uid']}", headers=seller["headers"]).json()["promotion"]["usageCount"] == 1


def test_concurrent_checkouts_respect_total_uses(client, seller, category):
    code = unique("race").upper()
    promo = create_promotion(client, seller, couponCode=code, usageLimits={"totalUses": 1})
    shoppers = []
    for _ in range(2):
        buyer, _, address = _cart_with(client, seller, category)
        shoppers.append((buyer["user"]["uid"], address["uid"]))

    barrier = threading.Barrier(2)
    outcomes = []

    def place(user_uid, address_uid):
        db = SessionLocal()
        try:
            user = UserRepository(db).get_by_uid(user_uid)
            payload = OrderCreate(
                shipping_address_uid=address_uid,
                billing_address_uid=address_uid,
                payment_method="credit_card",
                coupon_code=code,
            )
            barrier.wait()
            try:
                OrderService(db).create_order(user, payload)
                outcomes.append("ok")
            except OrderServiceException as e:
                outcomes.append(e.message)
        finally:
            db.close()

    threads = [threading.Thread(target=place, args=shopper) for shopper in shoppers]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=30)

    assert sorted(outcomes) == ["Promotion is expired", "ok"]
    assert client.get(f"{BASE}/{promo['uid']}", headers=seller["headers"]).json()["promotion"]["usageCount"] == 1
