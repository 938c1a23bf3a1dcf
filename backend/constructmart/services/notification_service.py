import logging
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

from constructmart.errors import ResourceNotFoundError
from constructmart.models.notification import Notification
from constructmart.models.user import User
from constructmart.realtime import RealtimeHub, hub as default_hub
from constructmart.utils.identifiers import utcnow
from constructmart.utils.pagination import paginate

logger = logging.getLogger(__name__)


def notification_dict(n: Notification) -> Dict[str, Any]:
    return {
        "uid": n.uid,
        "notification_type": n.notification_type,
        "title": n.title,
        "message": n.message,
        "related_to": n.related_to,
        "is_read": n.is_read,
        "read_at": n.read_at,
        "created_at": n.created_at,
    }


class NotificationService:
    """
    Persists notifications and queues realtime events.

    Events are held until ``dispatch()`` is called, which callers do after
    their transaction commits so clients never hear about rolled-back work.
    """

    def __init__(self, db: Session, hub: Optional[RealtimeHub] = None):
        self.db = db
        self.hub = hub or default_hub
        self._outbox: List[Tuple[str, str, Dict[str, Any]]] = []

    def queue_event(self, room: str, event: str, data: Dict[str, Any]) -> None:
        self._outbox.append((room, event, data))

    def notify(
        self,
        user: User,
        notification_type: str,
        title: str,
        message: str,
        related_to: Optional[Dict[str, Any]] = None,
    ) -> Notification:
        n = Notification(
            user_id=user.id,
            notification_type=notification_type,
            title=title,
            message=message,
            related_to=related_to,
        )
        self.db.add(n)
        self.db.flush()
        self.queue_event(
            f"user:{user.uid}",
            "notification",
            {
                "notification_uid": n.uid,
                "user_uid": user.uid,
                "notification_type": notification_type,
                "title": title,
                "message": message,
                "related_to": related_to,
                "created_at": n.created_at,
                "is_read": False,
            },
        )
        return n

    def dispatch(self) -> int:
        sent = 0
        outbox, self._outbox = self._outbox, []
        for room, event, data in outbox:
            sent += self.hub.emit(room, event, data)
        return sent

    def discard(self) -> None:
        self._outbox = []

    def list_for_user(self, user: User, unread_only: bool = False, page: int = 1, limit: int = 20):
        query = self.db.query(Notification).filter(Notification.user_id == user.id)
        if unread_only:
            query = query.filter(Notification.is_read == False)
        query = query.order_by(Notification.created_at.desc(), Notification.id.desc())
        items, meta = paginate(query, page, limit)
        unread = (
            self.db.query(Notification)
            .filter(Notification.user_id == user.id, Notification.is_read == False)
            .count()
        )
        return items, meta, unread

    def mark_read(self, user: User, notification_uid: str) -> Notification:
        n = (
            self.db.query(Notification)
            .filter(Notification.uid == notification_uid, Notification.user_id == user.id)
            .first()
        )
        if not n:
            raise ResourceNotFoundError("Notification", notification_uid)
        if not n.is_read:
            n.is_read = True
            n.read_at = utcnow()
            self.db.commit()
        return n

    def mark_all_read(self, user: User) -> int:
        count = (
            self.db.query(Notification)
            .filter(Notification.user_id == user.id, Notification.is_read == False)
            .update({Notification.is_read: True, Notification.read_at: utcnow()}, synchronize_session=False)
        )
        self.db.commit()
        return count
