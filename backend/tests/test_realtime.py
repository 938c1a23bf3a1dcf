import pytest
from conftest import add_to_cart, checkout, make_account, make_address, make_product, make_seller, receive_event
from starlette.websockets import WebSocketDisconnect

from constructmart.api import routes_ws


def test_connect_requires_valid_token(client):
    with pytest.raises(WebSocketDisconnect) as exc:
        with client.websocket_connect("/ws?token=not-a-jwt"):
            pass
    assert exc.value.code == 1008

    with pytest.raises(WebSocketDisconnect):
        with client.websocket_connect("/ws"):
            pass


def test_connected_event_and_unknown_events(client, buyer):
    with client.websocket_connect(f"/ws?token={buyer['token']}") as ws:
        hello = ws.receive_json()
        assert hello == {"event": "connected", "data": {"user_uid": buyer["user"]["uid"]}}

        ws.send_json({"event": "dance", "data": {}})
        assert ws.receive_json() == {"event": "error", "data": {"message": "Unknown event: dance"}}

        ws.send_text("not json")
        assert ws.receive_json()["event"] == "error"


def test_join_order_room_is_authorised(client, seller, category):
    buyer = make_account(client)
    product = make_product(client, seller, category)
    address = make_address(client, buyer)
    add_to_cart(client, buyer, product["uid"])
    order = checkout(client, buyer, address["uid"]).json()["order"]

    with client.websocket_connect(f"/ws?token={buyer['token']}") as ws:
        ws.receive_json()
        ws.send_json({"event": "join_order", "data": {"order_uid": order["uid"]}})
        assert ws.receive_json() == {"event": "joined_order", "data": {"order_uid": order["uid"]}}

    stranger = make_account(client)
    with client.websocket_connect(f"/ws?token={stranger['token']}") as ws:
        ws.receive_json()
        ws.send_json({"event": "join_order", "data": {"order_uid": order["uid"]}})
        reply = ws.receive_json()
        assert reply["event"] == "error"
        assert reply["data"]["message"] == "Not authorized to join this order"


def test_join_product_room(client, buyer, product):
    with client.websocket_connect(f"/ws?token={buyer['token']}") as ws:
        ws.receive_json()
        ws.send_json({"event": "join_product", "data": {"product_uid": product["uid"]}})
        assert ws.receive_json()["event"] == "joined_product"
        ws.send_json({"event": "join_product", "data": {"product_uid": "prod-00000000"}})
        assert ws.receive_json()["data"]["message"] == "Product not found"


def test_mark_notification_read_over_socket(client, seller, category):
    buyer = make_account(client)
    product = make_product(client, seller, category)
    address = make_address(client, buyer)
    add_to_cart(client, buyer, product["uid"])
    checkout(client, buyer, address["uid"])
    note = client.get("/api/notifications", headers=buyer["headers"]).json()["notifications"][0]

    with client.websocket_connect(f"/ws?token={buyer['token']}") as ws:
        ws.receive_json()
        ws.send_json({"event": "mark_notification_read", "data": {"notification_uid": note["uid"]}})
        assert ws.receive_json() == {
            "event": "notification_marked_read",
            "data": {"notification_uid": note["uid"]},
        }

    res = client.get("/api/notifications", params={"unread_only": True}, headers=buyer["headers"])
    assert note["uid"] not in {n["uid"] for n in res.json()["notifications"]}


def test_cart_changes_are_pushed(client, product):
    buyer = make_account(client)
    with client.websocket_connect(f"/ws?token={buyer['token']}") as ws:
        ws.receive_json()
        add_to_cart(client, buyer, product["uid"], 2)
        message = receive_event(ws, "cart_update")
        assert message["data"]["update_type"] == "item_added"
        assert message["data"]["cart_summary"]["item_count"] == 2


def test_status_change_reaches_buyer(client, seller, category):
    buyer = make_account(client)
    product = make_product(client, seller, category)
    address = make_address(client, buyer)
    add_to_cart(client, buyer, product["uid"])
    order = checkout(client, buyer, address["uid"]).json()["order"]

    with client.websocket_connect(f"/ws?token={buyer['token']}") as ws:
        ws.receive_json()
        client.put(
            f"/api/orders/{order['uid']}/status",
            json={"status": "shipped", "tracking_number": "TRK-9"},
            headers=seller["headers"],
        )
        update = receive_event(ws, "order_status_update")
        assert update["data"]["order_uid"] == order["uid"]
        assert update["data"]["new_status"] == "shipped"
        assert update["data"]["tracking_number"] == "TRK-9"


def test_malformed_message_data_is_rejected(client, buyer, product):
    with client.websocket_connect(f"/ws?token={buyer['token']}") as ws:
        ws.receive_json()
        for data in (["order_uid"], "prod", 5, True):
            ws.send_json({"event": "join_product", "data": data})
            assert ws.receive_json() == {
                "event": "error",
                "data": {"message": "Message data must be a JSON object"},
            }

        ws.send_json({"event": "join_order", "data": {"order_uid": ["ord-1", "ord-2"]}})
        assert ws.receive_json()["data"]["message"] == "Not authorized to join this order"

        ws.send_json({"event": "join_product", "data": {"product_uid": product["uid"]}})
        assert ws.receive_json()["event"] == "joined_product"


def test_handler_failure_keeps_connection_open(client, buyer, product, monkeypatch):
    class BrokenRepository:
        def __init__(self, db):
            raise RuntimeError("database unavailable")

    with client.websocket_connect(f"/ws?token={buyer['token']}") as ws:
        ws.receive_json()
        monkeypatch.setattr(routes_ws, "ProductRepository", BrokenRepository)
        ws.send_json({"event": "join_product", "data": {"product_uid": product["uid"]}})
        assert ws.receive_json() == {"event": "error", "data": {"message": "Could not process message"}}

        monkeypatch.undo()
        ws.send_json({"event": "join_product", "data": {"product_uid": product["uid"]}})
        assert ws.receive_json()["event"] == "joined_product"


def test_new_order_reaches_seller(client, category):
    seller = make_seller(client)
    buyer = make_account(client)
    product = make_product(client, seller, category)
    address = make_address(client, buyer)
    add_to_cart(client, buyer, product["uid"], 2)

    with client.websocket_connect(f"/ws?token={seller['token']}") as ws:
        ws.receive_json()
        order = checkout(client, buyer, address["uid"]).json()["order"]
        message = receive_event(ws, "seller_order_notification")
        assert message["data"]["order_uid"] == order["uid"]
        assert message["data"]["order_number"] == order["order_number"]
        assert message["data"]["buyer_uid"] == buyer["user"]["uid"]
        assert message["data"]["order_total_cents"] == order["total_cents"]


def test_shipping_pushes_delivery_update_to_order_room(client, seller, category):
    buyer = make_account(client)
    product = make_product(client, seller, category)
    address = make_address(client, buyer)
    add_to_cart(client, buyer, product["uid"])
    order = checkout(client, buyer, address["uid"]).json()["order"]

    with client.websocket_connect(f"/ws?token={buyer['token']}") as ws:
        ws.receive_json()
        ws.send_json({"event": "join_order", "data": {"order_uid": order["uid"]}})
        assert ws.receive_json()["event"] == "joined_order"
        client.put(
            f"/api/orders/{order['uid']}/status",
            json={"status": "shipped", "tracking_number": "TRK-42", "shipping_method": "freight"},
            headers=seller["headers"],
        )
        update = receive_event(ws, "delivery_update")
        assert update["data"]["order_uid"] == order["uid"]
        assert update["data"]["update_type"] == "shipped"
        assert update["data"]["tracking_number"] == "TRK-42"
        assert update["data"]["carrier"] == "freight"
