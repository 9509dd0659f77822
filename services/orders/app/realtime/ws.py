"""
WebSocket transport for the realtime notifier.

Frames are JSON objects ``{"event": <name>, "data": <payload>}`` in both
directions. Each connection owns an outbox drained by one sender task, so
events reach a client in the order they were published to it.
"""

import asyncio
import json
from typing import Any, Optional

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from fastapi.encoders import jsonable_encoder
from starlette.concurrency import run_in_threadpool

from app.application.service import OrderService
from app.domain.errors import OrderError
from app.infrastructure.db import SessionLocal
from shared.core import get_logger, set_request_context
from .notifier import Connection, RealtimeNotifier

logger = get_logger(__name__)

router = APIRouter()

_CLOSE = object()

# Policy violation; used when a connection is dropped by the server
CLOSE_CODE_POLICY = 1008


class WebSocketConnection(Connection):
    def __init__(self, websocket: WebSocket, loop: asyncio.AbstractEventLoop):
        super().__init__()
        self.websocket = websocket
        self._loop = loop
        self._outbox: asyncio.Queue = asyncio.Queue()

    def deliver(self, event: str, data: Any) -> None:
        if self.closed:
            return
        message = {"event": event, "data": jsonable_encoder(data)}
        self._loop.call_soon_threadsafe(self._outbox.put_nowait, message)

    def close(self, reason: str = "") -> None:
        if self.closed:
            return
        super().close(reason)
        self._loop.call_soon_threadsafe(self._outbox.put_nowait, _CLOSE)

    async def pump(self) -> None:
        """Send queued messages until the connection is closed."""
        while True:
            message = await self._outbox.get()
            try:
                if message is _CLOSE:
                    await self.websocket.close(code=CLOSE_CODE_POLICY, reason=self.close_reason or "")
                    return
                await self.websocket.send_json(message)
            except (RuntimeError, OSError, WebSocketDisconnect) as exc:
                # Peer already gone; remaining messages have nowhere to go
                logger.debug(f"Stopped sending to connection {self.id}: {exc}")
                return


def handshake_token(websocket: WebSocket) -> Optional[str]:
    token = websocket.query_params.get("token")
    if token:
        return token
    auth_header = websocket.headers.get("authorization", "")
    if auth_header.lower().startswith("bearer "):
        return auth_header.split(" ", 1)[1].strip()
    return None


def _advance_order(notifier: RealtimeNotifier, order_id: int, status: str,
                   reason: Optional[str], actor: Optional[str], by_rider: bool) -> None:
    db = SessionLocal()
    try:
        OrderService(db, notifier).advance(order_id, status, reason=reason, actor=actor, by_rider=by_rider)
    finally:
        db.close()


async def dispatch(notifier: RealtimeNotifier, connection: Connection, message: Any) -> None:
    if not isinstance(message, dict) or not isinstance(message.get("event"), str):
        connection.deliver("error", {"message": "Expected an object with an 'event' field"})
        return
    event = message["event"]
    data = message.get("data") or {}
    if not isinstance(data, dict):
        connection.deliver("error", {"event": event, "message": "'data' must be an object"})
        return

    if event == "subscribe":
        order_id = data.get("orderId")
        if order_id is None:
            connection.deliver("error", {"event": event, "message": "orderId is required"})
            return
        notifier.subscribe(connection, order_id)
        connection.deliver("subscribed", {"orderId": order_id})

    elif event == "unsubscribe":
        order_id = data.get("orderId")
        notifier.unsubscribe(connection, order_id)
        connection.deliver("unsubscribed", {"orderId": order_id})

    elif event == "admin_online":
        notifier.join_admin_audience(connection, data.get("token"))

    elif event == "order_status_update":
        # Riders authenticate at the handshake and are limited to the delivery steps
        if not (connection.is_admin or connection.is_rider):
            logger.warning(f"Unprivileged attempt to update order status from connection {connection.id}")
            connection.deliver("error", {"event": event, "message": "Admin or rider privileges required"})
            return
        try:
            order_id = int(data.get("orderId"))
        except (TypeError, ValueError):
            connection.deliver("error", {"event": event, "message": "orderId must be an integer"})
            return
        try:
            await run_in_threadpool(
                _advance_order, notifier, order_id, data.get("status", ""),
                data.get("rejectionReason"), connection.subject, not connection.is_admin,
            )
        except OrderError as exc:
            connection.deliver("error", {"event": event, **exc.to_dict()})

    else:
        connection.deliver("error", {"event": event, "message": f"Unknown event: {event}"})


@router.websocket("/ws")
async def realtime_endpoint(websocket: WebSocket):
    """Live order updates: admins join the admin room, customers subscribe per order."""
    notifier: RealtimeNotifier = websocket.app.state.notifier
    await websocket.accept()
    connection = WebSocketConnection(websocket, asyncio.get_running_loop())
    claims = notifier.connect(connection, handshake_token(websocket))
    set_request_context(connection_id=connection.id, user_id=connection.subject)
    sender = asyncio.create_task(connection.pump())
    connection.deliver("connected", {"connectionId": connection.id, "authenticated": claims is not None})

    try:
        while not connection.closed:
            raw = await websocket.receive_text()
            try:
                message = json.loads(raw)
            except json.JSONDecodeError:
                connection.deliver("error", {"message": "Malformed JSON frame"})
                continue
            await dispatch(notifier, connection, message)
    except WebSocketDisconnect:
        logger.info(f"Client disconnected: {connection.id}")
    finally:
        notifier.disconnect(connection)
        connection.close()
        await sender
