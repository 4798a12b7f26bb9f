"""
Swap Notification Service
Pushes negotiation signals to the counter-party over their live connections.
Delivery is best-effort: a failed push is logged and never fails the swap itself.
"""

import asyncio
import logging
from typing import Any, Optional, Protocol

from fastapi import WebSocket

logger = logging.getLogger(__name__)

SWAP_REQUESTED = "swap_requested"
SWAP_RESOLVED = "swap_resolved"


class Notifier(Protocol):
    """Per-user channel the core publishes to"""

    def notify(self, user_id: str, event_kind: str, payload: dict[str, Any]) -> None: ...


class ConnectionRegistry:
    """Live WebSocket connections keyed by user id; a user may have several tabs open"""

    def __init__(self):
        self._connections: dict[str, set[WebSocket]] = {}

    async def connect(self, user_id: str, websocket: WebSocket) -> None:
        await websocket.accept()
        self._connections.setdefault(user_id, set()).add(websocket)
        logger.info(
            f"🔌 WebSocket connected for user {user_id} "
            f"({len(self._connections[user_id])} open)"
        )

    def disconnect(self, user_id: str, websocket: WebSocket) -> None:
        sockets = self._connections.get(user_id)
        if not sockets:
            return
        sockets.discard(websocket)
        if not sockets:
            del self._connections[user_id]
        logger.info(f"🔌 WebSocket disconnected for user {user_id}")

    def connection_count(self, user_id: str) -> int:
        return len(self._connections.get(user_id, ()))

    async def send(self, user_id: str, message: dict[str, Any]) -> int:
        """Send to every connection of the user; returns how many received it"""
        delivered = 0
        for websocket in list(self._connections.get(user_id, ())):
            try:
                await websocket.send_json(message)
                delivered += 1
            except Exception as e:
                logger.warning(f"⚠️ Dropping dead WebSocket for user {user_id}: {e}")
                self.disconnect(user_id, websocket)
        if not delivered:
            logger.debug(f"ℹ️ No live connection for user {user_id}, {message.get('event')} dropped")
        return delivered


class WebSocketNotifier:
    """Notifier that schedules delivery through the registry on the running event loop"""

    def __init__(self, registry: ConnectionRegistry):
        self.registry = registry
        self._pending: set[asyncio.Task] = set()

    def notify(self, user_id: str, event_kind: str, payload: dict[str, Any]) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning(f"⚠️ No running event loop, {event_kind} for user {user_id} not pushed")
            return

        task = loop.create_task(self.registry.send(user_id, {"event": event_kind, "data": payload}))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)


class NotificationDispatcher:
    """Builds the two negotiation signals and hands them to a Notifier"""

    def __init__(self, notifier: Optional[Notifier]):
        self.notifier = notifier

    def _publish(self, recipient: str, event_kind: str, payload: dict[str, Any]) -> bool:
        if self.notifier is None:
            logger.debug(f"ℹ️ Notifications disabled, {event_kind} for {recipient} skipped")
            return False
        try:
            logger.info(f"🔔 Sending {event_kind} to user {recipient}")
            self.notifier.notify(recipient, event_kind, payload)
            return True
        except Exception as e:
            logger.error(f"❌ Failed to send {event_kind} to user {recipient}: {e}")
            return False

    def swap_requested(
        self, recipient: str, offered_title: str, requested_title: str, request_id: str
    ) -> bool:
        """Tell the receiver someone wants one of their slots"""
        return self._publish(
            recipient,
            SWAP_REQUESTED,
            {
                "recipient": recipient,
                "requestId": request_id,
                "offeredTitle": offered_title,
                "requestedTitle": requested_title,
                "message": f"New swap request for: {requested_title}",
            },
        )

    def swap_resolved(
        self, recipient: str, accepted: bool, counterparty_title: str, request_id: str
    ) -> bool:
        """Tell the requester how the receiver answered"""
        message = (
            "Your swap request has been accepted!"
            if accepted
            else "Your swap request was rejected."
        )
        return self._publish(
            recipient,
            SWAP_RESOLVED,
            {
                "recipient": recipient,
                "requestId": request_id,
                "accepted": accepted,
                "counterpartyTitle": counterparty_title,
                "message": message,
            },
        )
