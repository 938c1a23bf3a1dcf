from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from constructmart.db import get_db
from constructmart.models.user import User
from constructmart.schemas.order_schema import OrderCreate, OrderStatusUpdate
from constructmart.security import get_current_user
from constructmart.services.order_service import OrderService, order_dict

router = APIRouter(prefix="/api/orders", tags=["orders"])


@router.post("", status_code=status.HTTP_201_CREATED, summary="Create order (checkout)")
def create_order(
    payload: OrderCreate,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    order = OrderService(db).create_order(user, payload)
    return {"success": True, "message": "Order placed successfully", "order": order_dict(order)}


@router.get("", summary="List orders")
def list_orders(
    status_filter: Optional[str] = Query(None, alias="status"),
    as_seller: bool = Query(False),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    orders, meta = OrderService(db).list_orders(user, status_filter, page, limit, as_seller=as_seller)
    return {"success": True, "orders": orders, "pagination": meta}


@router.get("/{uid}", summary="Get order")
def get_order(uid: str, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return {"success": True, "order": OrderService(db).get_order(user, uid)}


@router.put("/{uid}/status", summary="Update order status")
def update_status(
    uid: str,
    payload: OrderStatusUpdate,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    svc = OrderService(db)
    order = svc.update_status(user, uid, payload)
    return {
        "success": True,
        "message": f"Order status updated to {order.order_status}",
        "order": svc.get_order(user, uid),
    }
