"""
WebSocket endpoint for realtime events.

Clients connect to ``/ws?token=<jwt>`` and are placed in their ``user:{uid}``
room. Messages in both directions are ``{"event": ..., "data": {...}}``.
"""
import asyncio
import json
import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, WebSocket, WebSocketDisconnect, status
from fastapi.concurrency import run_in_threadpool

from constructmart.db import SessionLocal
from constructmart.errors import APIError
from constructmart.realtime import Connection, hub
from constructmart.repositories.product_repo import ProductRepository
from constructmart.repositories.user_repo import UserRepository
from constructmart.security import user_from_token
from constructmart.services.notification_service import NotificationService
from constructmart.services.order_service import OrderService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["realtime"])


def _error(message: str) -> Dict[str, Any]:
    return {"event": "error", "data": {"message": message}}


def _text(data: Dict[str, Any], key: str) -> Optional[str]:
    value = data.get(key)
    return value if isinstance(value, str) else None


def _authenticate(token: Optional[str]) -> Optional[str]:
    if not token:
        return None
    db = SessionLocal()
    try:
        return user_from_token(db, token).uid
    except APIError:
        return None
    finally:
        db.close()


def _handle(user_uid: str, conn: Connection, message: Dict[str, Any]) -> Dict[str, Any]:
    event = message.get("event")
    data = message.get("data")
    if data is None:
        data = {}
    if not isinstance(data, dict):
        return _error("Message data must be a JSON object")
    db = SessionLocal()
    try:
        user = UserRepository(db).get_by_uid(user_uid)
        if user is None or not user.is_active:
            return _error("User account not found or inactive")

        if event == "join_order":
            order_uid = _text(data, "order_uid")
            if not order_uid or not OrderService(db).can_join_order_room(user, order_uid):
                return _error("Not authorized to join this order")
            hub.join(conn, f"order:{order_uid}")
            return {"event": "joined_order", "data": {"order_uid": order_uid}}

        if event == "join_product":
            product_uid = _text(data, "product_uid")
            if not product_uid or not ProductRepository(db).get_by_uid(product_uid):
                return _error("Product not found")
            hub.join(conn, f"product:{product_uid}")
            return {"event": "joined_product", "data": {"product_uid": product_uid}}

        if event == "mark_notification_read":
            notification_uid = _text(data, "notification_uid")
            try:
                NotificationService(db).mark_read(user, notification_uid)
            except APIError as e:
                return _error(e.message)
            return {"event": "notification_marked_read", "data": {"notification_uid": notification_uid}}

        return _error(f"Unknown event: {event}")
    finally:
        db.close()


async def _sender(websocket: WebSocket, conn: Connection):
    while True:
        message = await conn.queue.get()
        try:
            await websocket.send_json(message)
        except Exception:
            logger.info("Dropping realtime connection for %s after failed send", conn.user_uid)
            hub.disconnect(conn)
            return


@router.websocket("/ws")
async def realtime(websocket: WebSocket, token: Optional[str] = None):
    user_uid = await run_in_threadpool(_authenticate, token)
    if user_uid is None:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await websocket.accept()
    conn = hub.connect(user_uid)
    sender = asyncio.create_task(_sender(websocket, conn))
    conn.push({"event": "connected", "data": {"user_uid": user_uid}})
    try:
        while True:
            raw = await websocket.receive_text()
            try:
                message = json.loads(raw)
            except ValueError:
                conn.push(_error("Messages must be JSON objects"))
                continue
            if not isinstance(message, dict):
                conn.push(_error("Messages must be JSON objects"))
                continue
            try:
                reply = await run_in_threadpool(_handle, user_uid, conn, message)
            except Exception:
                logger.exception("Realtime message from %s failed: %r", user_uid, message.get("event"))
                reply = _error("Could not process message")
            conn.push(reply)
    except WebSocketDisconnect:
        pass
    finally:
        sender.cancel()
        hub.disconnect(conn)
