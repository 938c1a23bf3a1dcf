import io
import os

import pandas as pd

from conftest import (
    add_to_cart,
    checkout,
    make_account,
    make_address,
    make_category,
    make_product,
    make_seller,
    product_payload,
    unique,
)

from constructmart.config import settings
from constructmart.services import product_csv

# smallest valid PNG header is enough; the service checks the declared type
PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 32


def test_buyers_cannot_use_seller_endpoints(client, buyer):
    assert client.get("/api/seller/products", headers=buyer["headers"]).status_code == 403
    assert client.get("/api/seller/products").status_code == 401


def test_create_product_with_variants_and_specs(client, seller, category):
    payload = product_payload(
        category,
        variants=[{"variant_type": "size", "variant_value": "25kg", "sku": "V-25"}],
        specifications=[{"name": "Weight", "value": "25", "unit": "kg", "group": "Physical"}],
    )
    res = client.post("/api/seller/products", json=payload, headers=seller["headers"])
    assert res.status_code == 201, res.text
    product = res.json()["product"]
    assert product["uid"].startswith("prod-")
    assert product["listing_status"] == "active"
    assert product["variants"][0]["sku"] == "V-25"
    assert product["specifications"][0]["unit"] == "kg"
    assert product["main_category_name"]


def test_create_validation(client, seller, category):
    res = client.post("/api/seller/products", json={"name": "Nameless"}, headers=seller["headers"])
    assert res.status_code == 422
    errors = res.json()["errors"]
    assert "sku" in errors
    assert "main_category_uid" in errors

    res = client.post(
        "/api/seller/products", json=product_payload(category, base_price_cents=0), headers=seller["headers"]
    )
    assert res.status_code == 422

    res = client.post(
        "/api/seller/products", json=product_payload(category, listing_status="sold"), headers=seller["headers"]
    )
    assert res.status_code == 422

    res = client.post(
        "/api/seller/products", json=product_payload("cat-00000000"), headers=seller["headers"]
    )
    assert res.status_code == 400


def test_subcategory_must_belong_to_main(client, seller, category):
    stray = make_category(parent_uid=make_category())
    res = client.post(
        "/api/seller/products",
        json=product_payload(category, subcategory_uid=stray),
        headers=seller["headers"],
    )
    assert res.status_code == 400


def test_duplicate_sku_conflicts(client, seller, category):
    product = make_product(client, seller, category)
    res = client.post(
        "/api/seller/products", json=product_payload(category, sku=product["sku"]), headers=seller["headers"]
    )
    assert res.status_code == 409


def test_other_sellers_products_are_not_found(client, product):
    other = make_seller(client)
    assert client.get(f"/api/seller/products/{product['uid']}", headers=other["headers"]).status_code == 404
    res = client.put(f"/api/seller/products/{product['uid']}", json={"name": "Mine now"}, headers=other["headers"])
    assert res.status_code == 404


def test_update_product(client, seller, category):
    product = make_product(client, seller, category)
    other = make_product(client, seller, category)
    res = client.put(
        f"/api/seller/products/{product['uid']}",
        json={"name": "Rapid Set Cement", "base_price_cents": 1299},
        headers=seller["headers"],
    )
    assert res.status_code == 200
    updated = res.json()["product"]
    assert updated["name"] == "Rapid Set Cement"
    assert updated["base_price_cents"] == 1299
    assert updated["sku"] == product["sku"]

    res = client.put(
        f"/api/seller/products/{product['uid']}", json={"sku": other["sku"]}, headers=seller["headers"]
    )
    assert res.status_code == 409


def test_update_rejects_null_for_required_columns(client, seller, category):
    product = make_product(client, seller, category)
    url = f"/api/seller/products/{product['uid']}"
    for field in ("currency", "quantity_available", "low_stock_threshold", "backorder_allowed", "listing_status", "is_active"):
        res = client.put(url, json={field: None}, headers=seller["headers"])
        assert res.status_code == 400, field
        assert res.json()["message"] == f"{field} cannot be empty"

    res = client.put(url, json={"name": None, "is_active": None}, headers=seller["headers"])
    assert res.status_code == 400
    assert res.json()["message"] == "name, is_active cannot be empty"

    detail = client.get(url, headers=seller["headers"]).json()["product"]
    assert detail["name"] == product["name"]
    assert detail["currency"] == "USD"
    assert detail["quantity_available"] == product["quantity_available"]


def test_list_filters(client):
    seller = make_seller(client)
    category = make_category()
    active = make_product(client, seller, category, quantity_available=100)
    draft = make_product(client, seller, category, listing_status="draft", quantity_available=2)
    make_product(client, seller, category, quantity_available=0)

    res = client.get("/api/seller/products", headers=seller["headers"])
    body = res.json()
    assert body["pagination"]["total_items"] == 3
    assert body["pagination"]["limit"] == 25

    res = client.get("/api/seller/products", params={"status": "draft"}, headers=seller["headers"])
    assert [p["uid"] for p in res.json()["products"]] == [draft["uid"]]

    res = client.get("/api/seller/products", params={"inventory_level": "low_stock"}, headers=seller["headers"])
    assert [p["uid"] for p in res.json()["products"]] == [draft["uid"]]

    res = client.get("/api/seller/products", params={"search": active["sku"]}, headers=seller["headers"])
    assert [p["uid"] for p in res.json()["products"]] == [active["uid"]]

    res = client.get("/api/seller/products", params={"inventory_level": "plenty"}, headers=seller["headers"])
    assert res.status_code == 400


def test_delete_product_and_cart_lines(client, seller, category, buyer):
    product = make_product(client, seller, category)
    add_to_cart(client, buyer, product["uid"])

    res = client.delete(f"/api/seller/products/{product['uid']}", headers=seller["headers"])
    assert res.status_code == 200
    assert res.json()["result"] == "deleted"
    assert client.get(f"/api/seller/products/{product['uid']}", headers=seller["headers"]).status_code == 404
    assert client.get("/api/cart", headers=buyer["headers"]).json()["cart"]["items"] == []


def test_delete_ordered_product_deactivates(client, seller, category):
    buyer = make_account(client)
    product = make_product(client, seller, category)
    address = make_address(client, buyer)
    add_to_cart(client, buyer, product["uid"])
    assert checkout(client, buyer, address["uid"]).status_code == 201

    res = client.delete(f"/api/seller/products/{product['uid']}", headers=seller["headers"])
    assert res.json()["result"] == "deactivated"
    detail = client.get(f"/api/seller/products/{product['uid']}", headers=seller["headers"]).json()["product"]
    assert detail["is_active"] is False
    assert detail["listing_status"] == "inactive"


def test_duplicate_product(client, seller, category):
    product = make_product(
        client,
        seller,
        category,
        variants=[{"variant_type": "colour", "variant_value": "grey"}],
    )
    first = client.post(f"/api/seller/products/{product['uid']}/duplicate", headers=seller["headers"])
    assert first.status_code == 201
    copy = first.json()["product"]
    assert copy["name"] == f"{product['name']} (Copy)"
    assert copy["sku"] == f"{product['sku']}-COPY"
    assert copy["listing_status"] == "draft"
    assert copy["total_views"] == 0
    assert len(copy["variants"]) == 1

    second = client.post(f"/api/seller/products/{product['uid']}/duplicate", headers=seller["headers"])
    assert second.json()["product"]["sku"] == f"{product['sku']}-COPY-2"


def test_image_upload_order_and_primary(client, seller, category):
    product = make_product(client, seller, category)
    base = f"/api/seller/products/{product['uid']}/images"
    res = client.post(
        base,
        files=[
            ("files", ("front.png", PNG_BYTES, "image/png")),
            ("files", ("side.png", PNG_BYTES, "image/png")),
        ],
        headers=seller["headers"],
    )
    assert res.status_code == 201, res.text
    images = res.json()["images"]
    assert [img["is_primary"] for img in images] == [True, False]
    assert images[0]["image_url"].startswith(f"/storage/products/{product['uid']}/")
    stored = os.path.join(settings.STORAGE_DIR, "products", product["uid"])
    assert len(os.listdir(stored)) == 2

    served = client.get(images[0]["image_url"])
    assert served.status_code == 200

    reversed_uids = [images[1]["uid"], images[0]["uid"]]
    res = client.put(f"{base}/order", json={"image_uids": reversed_uids}, headers=seller["headers"])
    assert [img["uid"] for img in res.json()["images"]] == reversed_uids
    res = client.put(f"{base}/order", json={"image_uids": reversed_uids[:1]}, headers=seller["headers"])
    assert res.status_code == 400

    res = client.put(f"{base}/{images[1]['uid']}/primary", headers=seller["headers"])
    primary = [img["uid"] for img in res.json()["images"] if img["is_primary"]]
    assert primary == [images[1]["uid"]]

    res = client.delete(f"{base}/{images[1]['uid']}", headers=seller["headers"])
    remaining = res.json()["images"]
    assert [img["uid"] for img in remaining] == [images[0]["uid"]]
    assert remaining[0]["is_primary"] is True
    assert len(os.listdir(stored)) == 1


def test_image_upload_rejects_other_types(client, seller, category):
    product = make_product(client, seller, category)
    res = client.post(
        f"/api/seller/products/{product['uid']}/images",
        files=[("files", ("notes.txt", b"hello", "text/plain"))],
        headers=seller["headers"],
    )
    assert res.status_code == 400


def test_variant_crud(client, seller, category):
    product = make_product(client, seller, category)
    base = f"/api/seller/products/{product['uid']}/variants"
    res = client.post(base, json={"variant_type": "size", "variant_value": "10kg", "sku": "S10"}, headers=seller["headers"])
    assert res.status_code == 201
    variant = res.json()["variant"]

    res = client.post(base, json={"variant_type": "size", "variant_value": "20kg", "sku": "S10"}, headers=seller["headers"])
    assert res.status_code == 409

    res = client.put(f"{base}/{variant['uid']}", json={"additional_price_cents": 300}, headers=seller["headers"])
    assert res.json()["variant"]["additional_price_cents"] == 300

    assert client.delete(f"{base}/{variant['uid']}", headers=seller["headers"]).status_code == 200
    assert client.delete(f"{base}/{variant['uid']}", headers=seller["headers"]).status_code == 404


def test_inventory_update(client, seller, category):
    product = make_product(client, seller, category, quantity_available=10)
    url = f"/api/seller/products/{product['uid']}/inventory"

    res = client.put(url, json={"adjustment": -4}, headers=seller["headers"])
    assert res.status_code == 200
    assert res.json()["inventory"]["quantity_available"] == 6

    res = client.put(url, json={"adjustment": -10}, headers=seller["headers"])
    assert res.status_code == 400

    res = client.put(url, json={"adjustment": -10, "backorder_allowed": True}, headers=seller["headers"])
    inventory = res.json()["inventory"]
    assert inventory["quantity_available"] == -4
    assert inventory["inventory_status"] == "backorder"

    res = client.put(url, json={"quantity_available": 3, "low_stock_threshold": 5}, headers=seller["headers"])
    assert res.json()["inventory"]["inventory_status"] == "low_stock"


def test_bulk_price_adjustments(client, seller, category):
    a = make_product(client, seller, category, base_price_cents=1000)
    b = make_product(client, seller, category, base_price_cents=250)
    uids = [a["uid"], b["uid"]]

    res = client.put(
        "/api/seller/products/bulk/prices",
        json={"product_uids": uids, "adjustment": {"type": "percentage", "value": 10, "operation": "increase"}},
        headers=seller["headers"],
    )
    assert res.status_code == 200
    assert res.json()["updated_count"] == 2

    def price(uid):
        return client.get(f"/api/seller/products/{uid}", headers=seller["headers"]).json()["product"]["base_price_cents"]

    assert price(a["uid"]) == 1100
    assert price(b["uid"]) == 275

    client.put(
        "/api/seller/products/bulk/prices",
        json={"product_uids": uids, "adjustment": {"type": "fixed", "value": 500, "operation": "decrease"}},
        headers=seller["headers"],
    )
    assert price(a["uid"]) == 600
    assert price(b["uid"]) == 1


def test_bulk_prices_reject_foreign_products(client, seller, category):
    mine = make_product(client, seller, category, base_price_cents=1000)
    theirs = make_product(client, make_seller(client), category)
    res = client.put(
        "/api/seller/products/bulk/prices",
        json={
            "product_uids": [mine["uid"], theirs["uid"]],
            "adjustment": {"type": "fixed", "value": 100, "operation": "increase"},
        },
        headers=seller["headers"],
    )
    assert res.status_code == 404
    detail = client.get(f"/api/seller/products/{mine['uid']}", headers=seller["headers"]).json()["product"]
    assert detail["base_price_cents"] == 1000


def test_bulk_status(client, seller, category):
    a = make_product(client, seller, category)
    b = make_product(client, seller, category)
    res = client.put(
        "/api/seller/products/bulk/status",
        json={"product_uids": [a["uid"], b["uid"]], "status": "inactive"},
        headers=seller["headers"],
    )
    assert res.json()["updated_count"] == 2
    assert client.get(f"/api/products/{a['uid']}").status_code == 404

    client.put(
        "/api/seller/products/bulk/status",
        json={"product_uids": [a["uid"]], "status": "active"},
        headers=seller["headers"],
    )
    assert client.get(f"/api/products/{a['uid']}").status_code == 200


def test_export_csv(client):
    seller = make_seller(client)
    category = make_category()
    product = make_product(client, seller, category)

    res = client.get("/api/seller/products/export", headers=seller["headers"])
    assert res.status_code == 200
    assert res.headers["content-type"].startswith("text/csv")
    assert "attachment; filename=products.csv" in res.headers["content-disposition"]
    rows = pd.read_csv(io.StringIO(res.text), dtype=str, keep_default_na=False).to_dict(orient="records")
    assert len(rows) == 1
    assert rows[0]["sku"] == product["sku"]
    assert rows[0]["main_category_uid"] == category
    assert rows[0]["base_price_cents"] == "1000"


def test_import_csv_creates_updates_and_reports_errors(client):
    seller = make_seller(client)
    category = make_category()
    existing = make_product(client, seller, category, base_price_cents=1000)
    foreign = make_product(client, make_seller(client), category)
    new_sku = unique("IMP").upper()

    content = "\n".join([
        "sku,name,main_category_uid,short_description,base_price_cents,quantity_available,listing_status",
        f"{new_sku},Imported Gravel,{category},Washed gravel,750,40,active",
        f"{existing['sku']},Updated Cement,,,1100,,",
        f"{unique('BAD').upper()},Bad Price,{category},Broken row,-5,1,draft",
        f"{foreign['sku']},Not Mine,{category},Someone else's,100,1,draft",
    ])
    res = client.post(
        "/api/seller/products/import",
        files={"file": ("products.csv", content.encode("utf-8"), "text/csv")},
        headers=seller["headers"],
    )
    assert res.status_code == 200, res.text
    results = res.json()["results"]
    assert results["total"] == 4
    assert results["created_count"] == 1
    assert results["updated_count"] == 1
    assert results["success_count"] == 2
    assert [e["row"] for e in results["errors"]] == [4, 5]
    assert results["errors"][1]["sku"] == foreign["sku"]

    detail = client.get(f"/api/seller/products/{existing['uid']}", headers=seller["headers"]).json()["product"]
    assert detail["name"] == "Updated Cement"
    assert detail["base_price_cents"] == 1100

    listed = client.get("/api/seller/products", params={"search": new_sku}, headers=seller["headers"]).json()
    assert listed["products"][0]["quantity_available"] == 40


def test_import_rejects_bad_files(client, seller):
    res = client.post(
        "/api/seller/products/import",
        files={"file": ("products.csv", b"name,price\nx,1\n", "text/csv")},
        headers=seller["headers"],
    )
    assert res.status_code == 400

    res = client.post(
        "/api/seller/products/import",
        files={"file": ("products.csv", b"\xff\xfe\x00bad", "text/csv")},
        headers=seller["headers"],
    )
    assert res.status_code == 400

    res = client.post(
        "/api/seller/products/import",
        files={"file": ("products.csv", b"", "text/csv")},
        headers=seller["headers"],
    )
    assert res.status_code == 400
    assert res.json()["message"] == "CSV file is empty"


def test_read_rows_handles_quotes_blank_lines_and_padded_headers():
    content = (
        b"\xef\xbb\xbf sku , name ,short_description\n"
        b'SKU-1,"Sand, washed","Bulk bag, 1 ton"\n'
        b"\n"
        b",,\n"
        b"SKU-2,Gravel\n"
    )
    rows = product_csv.read_rows(content)
    assert [number for number, _ in rows] == [2, 5]
    assert rows[0][1] == {"sku": "SKU-1", "name": "Sand, washed", "short_description": "Bulk bag, 1 ton"}
    assert rows[1][1]["short_description"] == ""


def test_import_accepts_legacy_encoded_csv(client):
    seller = make_seller(client)
    category = make_category()
    sku = unique("ENC").upper()
    text = "\n".join([
        "sku,name,main_category_uid,short_description,base_price_cents,quantity_available",
        f"{sku},Ciment prêt à l'emploi élevé,{category},Sac de ciment qualité supérieure très résistant,950,12",
    ])
    res = client.post(
        "/api/seller/products/import",
        files={"file": ("products.csv", text.encode("cp1252"), "text/csv")},
        headers=seller["headers"],
    )
    assert res.status_code == 200, res.text
    assert res.json()["results"]["created_count"] == 1

    listed = client.get("/api/seller/products", params={"search": sku}, headers=seller["headers"]).json()
    assert listed["products"][0]["name"].startswith("Ciment pr")
    assert listed["products"][0]["base_price_cents"] == 950
