"""
Room-based fan-out of order lifecycle events to live connections.

Two kinds of rooms exist: the single admin room and one ``order_<id>`` room
per tracked order. Delivery is best effort and at most once: nothing is
buffered for connections that join after an event fired, and a connection
that fails to accept a message is skipped without affecting the others.
"""

import threading
import uuid
from typing import Any, Callable, Dict, Optional

from app.auth_local import decode_access_token, is_admin, is_rider
from shared.core import get_logger

logger = get_logger(__name__)

ADMIN_ROOM = "admin_room"

NEW_ORDER_EVENT = "new_order"
STATUS_UPDATE_EVENT = "order_status_update"
ADMIN_UPDATE_EVENT = "order_updated"


def order_room(order_id: Any) -> str:
    return f"order_{order_id}"


class Connection:
    """A live client connection as the notifier sees it.

    Transports subclass this and implement ``deliver``; ``deliver`` must not
    block the caller.
    """

    def __init__(self, connection_id: Optional[str] = None):
        self.id = connection_id or uuid.uuid4().hex
        self.claims: Optional[dict] = None
        self.rooms: set[str] = set()
        self.closed = False
        self.close_reason: Optional[str] = None

    @property
    def subject(self) -> Optional[str]:
        return self.claims.get("sub") if self.claims else None

    @property
    def is_admin(self) -> bool:
        return ADMIN_ROOM in self.rooms

    @property
    def is_rider(self) -> bool:
        return is_rider(self.claims)

    def deliver(self, event: str, data: Any) -> None:
        raise NotImplementedError

    def close(self, reason: str = "") -> None:
        self.closed = True
        self.close_reason = reason


class RealtimeNotifier:
    """Tracks room membership and publishes lifecycle events.

    Safe to call from request worker threads and the event loop alike.
    """

    def __init__(
        self,
        verify_token: Callable[[Optional[str]], Optional[dict]] = decode_access_token,
        admin_check: Callable[[Optional[dict]], bool] = is_admin,
    ):
        self._verify_token = verify_token
        self._admin_check = admin_check
        self._lock = threading.RLock()
        self._connections: Dict[str, Connection] = {}
        # Insertion-ordered so fan-out order is stable
        self._rooms: Dict[str, Dict[str, Connection]] = {}
        self._admins_by_subject: Dict[str, str] = {}

    # -- membership -------------------------------------------------------

    def connect(self, connection: Connection, token: Optional[str] = None) -> Optional[dict]:
        """Register a connection; a bad token leaves it anonymous rather than refusing it."""
        claims = self._verify_token(token) if token else None
        if token and claims is None:
            logger.warning(f"Connection {connection.id} presented an invalid token; continuing anonymously")
        connection.claims = claims
        with self._lock:
            self._connections[connection.id] = connection
        logger.info(
            f"Connection {connection.id} opened",
            extra={'extra_fields': {'connection_id': connection.id, 'subject': connection.subject}}
        )
        return claims

    def disconnect(self, connection: Connection) -> None:
        with self._lock:
            self._connections.pop(connection.id, None)
            for room in list(connection.rooms):
                self._leave(connection, room)
            subject = connection.subject
            if subject and self._admins_by_subject.get(subject) == connection.id:
                del self._admins_by_subject[subject]
        logger.info(f"Connection {connection.id} closed")

    def subscribe(self, connection: Connection, order_id: Any) -> str:
        room = order_room(order_id)
        with self._lock:
            self._join(connection, room)
        logger.info(f"Connection {connection.id} subscribed to {room}")
        return room

    def unsubscribe(self, connection: Connection, order_id: Any) -> str:
        room = order_room(order_id)
        with self._lock:
            self._leave(connection, room)
        return room

    def join_admin_audience(self, connection: Connection, token: Optional[str] = None) -> bool:
        """Admit an admin connection to the admin room, or drop it.

        ``token`` falls back to the credentials cached at connect time.
        """
        claims = self._verify_token(token) if token else connection.claims
        if not self._admin_check(claims):
            reason = "No token provided" if not (token or connection.claims) else "User is not an admin"
            if token and claims is None:
                reason = "Invalid token"
            logger.warning(f"Admin authentication failed for connection {connection.id}: {reason}")
            self._safe_deliver(connection, "admin_auth_error", {"message": "Authentication failed", "error": reason})
            connection.close(reason)
            self.disconnect(connection)
            return False

        connection.claims = claims
        subject = connection.subject
        replaced: Optional[Connection] = None
        with self._lock:
            previous_id = self._admins_by_subject.get(subject) if subject else None
            if previous_id and previous_id != connection.id:
                replaced = self._connections.get(previous_id)
            if subject:
                self._admins_by_subject[subject] = connection.id
            self._join(connection, ADMIN_ROOM)

        if replaced is not None:
            logger.info(f"Replacing admin connection {replaced.id} for {subject}")
            replaced.close("Superseded by a newer admin connection")
            self.disconnect(replaced)

        self._safe_deliver(connection, "admin_authenticated", {
            "message": "Successfully authenticated as admin",
            "connectionId": connection.id,
        })
        logger.info(f"Admin {subject} joined {ADMIN_ROOM} on connection {connection.id}")
        return True

    def members(self, room: str) -> list[str]:
        with self._lock:
            return list(self._rooms.get(room, {}))

    @property
    def connection_count(self) -> int:
        with self._lock:
            return len(self._connections)

    def _join(self, connection: Connection, room: str) -> None:
        self._rooms.setdefault(room, {})[connection.id] = connection
        connection.rooms.add(room)

    def _leave(self, connection: Connection, room: str) -> None:
        members = self._rooms.get(room)
        if members is not None:
            members.pop(connection.id, None)
            if not members:
                del self._rooms[room]
        connection.rooms.discard(room)

    # -- publishing -------------------------------------------------------

    def emit(self, room: str, event: str, data: Any) -> int:
        """Deliver ``event`` to every current member of ``room``; returns how many accepted it."""
        with self._lock:
            targets = list(self._rooms.get(room, {}).values())
        return sum(1 for connection in targets if self._safe_deliver(connection, event, data))

    def publish_new_order(self, order: dict) -> int:
        return self.emit(ADMIN_ROOM, NEW_ORDER_EVENT, order)

    def publish_status_update(self, order_id: Any, status: str, metadata: Optional[dict] = None) -> int:
        payload = {"orderId": order_id, "status": status, **(metadata or {})}
        delivered = self.emit(order_room(order_id), STATUS_UPDATE_EVENT, payload)
        delivered += self.emit(ADMIN_ROOM, ADMIN_UPDATE_EVENT, payload)
        return delivered

    def _safe_deliver(self, connection: Connection, event: str, data: Any) -> bool:
        if connection.closed:
            return False
        try:
            connection.deliver(event, data)
            return True
        except Exception:
            logger.warning(f"Dropping {event} for connection {connection.id}", exc_info=True)
            return False
