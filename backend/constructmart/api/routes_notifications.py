from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from constructmart.db import get_db
from constructmart.models.user import User
from constructmart.security import get_current_user
from constructmart.services.notification_service import NotificationService, notification_dict

router = APIRouter(prefix="/api/notifications", tags=["notifications"])


@router.get("", summary="List notifications")
def list_notifications(
    unread_only: bool = Query(False),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    items, meta, unread = NotificationService(db).list_for_user(user, unread_only, page, limit)
    return {
        "success": True,
        "notifications": [notification_dict(n) for n in items],
        "unread_count": unread,
        "pagination": meta,
    }


@router.put("/read-all", summary="Mark all notifications read")
def mark_all_read(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    count = NotificationService(db).mark_all_read(user)
    return {"success": True, "message": "All notifications marked as read", "updated_count": count}


@router.put("/{uid}/read", summary="Mark notification read")
def mark_read(uid: str, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    n = NotificationService(db).mark_read(user, uid)
    return {"success": True, "notification": notification_dict(n)}
