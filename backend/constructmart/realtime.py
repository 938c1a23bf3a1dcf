"""
Room-based push channel for WebSocket clients.

Connections join named rooms (``user:{uid}``, ``order:{uid}``,
``product:{uid}``). ``emit`` may be called from any thread: each connection
owns an ``asyncio.Queue`` on its event loop and messages are handed over with
``call_soon_threadsafe``. Delivery is best effort.
"""
import asyncio
import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Dict, Set

from fastapi.encoders import jsonable_encoder

logger = logging.getLogger(__name__)


@dataclass(eq=False)
class Connection:
    user_uid: str
    loop: asyncio.AbstractEventLoop
    queue: asyncio.Queue = field(default_factory=asyncio.Queue)
    rooms: Set[str] = field(default_factory=set)

    def push(self, message: Dict[str, Any]) -> None:
        self.loop.call_soon_threadsafe(self.queue.put_nowait, message)


class RealtimeHub:
    def __init__(self):
        self._lock = threading.Lock()
        self._rooms: Dict[str, Set[Connection]] = {}

    def connect(self, user_uid: str) -> Connection:
        conn = Connection(user_uid=user_uid, loop=asyncio.get_running_loop())
        self.join(conn, f"user:{user_uid}")
        logger.info("Realtime client connected user=%s", user_uid)
        return conn

    def join(self, conn: Connection, room: str) -> None:
        with self._lock:
            self._rooms.setdefault(room, set()).add(conn)
            conn.rooms.add(room)

    def disconnect(self, conn: Connection) -> None:
        with self._lock:
            for room in conn.rooms:
                members = self._rooms.get(room)
                if members is None:
                    continue
                members.discard(conn)
                if not members:
                    del self._rooms[room]
            conn.rooms.clear()
        logger.info("Realtime client disconnected user=%s", conn.user_uid)

    def emit(self, room: str, event: str, data: Dict[str, Any]) -> int:
        """Queue ``event`` for every connection in ``room``; returns how many were reached."""
        message = {"event": event, "data": jsonable_encoder(data)}
        with self._lock:
            members = list(self._rooms.get(room, ()))
        delivered = 0
        for conn in members:
            try:
                conn.push(message)
                delivered += 1
            except RuntimeError:
                # loop already closed
                self.disconnect(conn)
        logger.debug("emit %s -> %s (%d connections)", event, room, delivered)
        return delivered

    def emit_to_user(self, user_uid: str, event: str, data: Dict[str, Any]) -> int:
        return self.emit(f"user:{user_uid}", event, data)

    def connection_count(self) -> int:
        with self._lock:
            unique = set()
            for members in self._rooms.values():
                unique.update(members)
            return len(unique)

    def room_size(self, room: str) -> int:
        with self._lock:
            return len(self._rooms.get(room, ()))


hub = RealtimeHub()
