from conftest import add_to_cart, checkout, make_account, make_address, make_product

URL = "/api/notifications"


def _buyer_with_orders(client, seller, category, orders=2):
    buyer = make_account(client)
    address = make_address(client, buyer)
    for _ in range(orders):
        product = make_product(client, seller, category)
        add_to_cart(client, buyer, product["uid"])
        assert checkout(client, buyer, address["uid"]).status_code == 201
    return buyer


def test_notifications_require_login(client):
    assert client.get(URL).status_code == 401
    assert client.put(f"{URL}/read-all").status_code == 401


def test_list_and_paginate(client, seller, category):
    buyer = _buyer_with_orders(client, seller, category, orders=3)
    body = client.get(URL, headers=buyer["headers"]).json()
    assert body["unread_count"] == 3
    assert body["pagination"]["total_items"] == 3
    assert all(n["title"] == "Order Confirmed" for n in body["notifications"])

    page = client.get(URL, params={"page": 2, "limit": 2}, headers=buyer["headers"]).json()
    assert len(page["notifications"]) == 1
    assert page["pagination"]["total_pages"] == 2


def test_mark_single_notification_read(client, seller, category):
    buyer = _buyer_with_orders(client, seller, category)
    first, second = client.get(URL, headers=buyer["headers"]).json()["notifications"]

    res = client.put(f"{URL}/{first['uid']}/read", headers=buyer["headers"])
    assert res.status_code == 200
    note = res.json()["notification"]
    assert note["is_read"] is True
    assert note["read_at"] is not None

    body = client.get(URL, params={"unread_only": True}, headers=buyer["headers"]).json()
    assert body["unread_count"] == 1
    assert [n["uid"] for n in body["notifications"]] == [second["uid"]]

    # marking again is a no-op
    assert client.put(f"{URL}/{first['uid']}/read", headers=buyer["headers"]).status_code == 200


def test_cannot_mark_someone_elses_notification(client, seller, category):
    buyer = _buyer_with_orders(client, seller, category, orders=1)
    note = client.get(URL, headers=buyer["headers"]).json()["notifications"][0]
    stranger = make_account(client)

    res = client.put(f"{URL}/{note['uid']}/read", headers=stranger["headers"])
    assert res.status_code == 404
    assert client.put(f"{URL}/notif-00000000/read", headers=buyer["headers"]).status_code == 404
    assert client.get(URL, headers=buyer["headers"]).json()["unread_count"] == 1


def test_mark_all_read(client, seller, category):
    buyer = _buyer_with_orders(client, seller, category)
    res = client.put(f"{URL}/read-all", headers=buyer["headers"])
    assert res.status_code == 200
    assert res.json()["updated_count"] == 2

    body = client.get(URL, headers=buyer["headers"]).json()
    assert body["unread_count"] == 0
    assert all(n["is_read"] for n in body["notifications"])
    assert client.put(f"{URL}/read-all", headers=buyer["headers"]).json()["updated_count"] == 0
