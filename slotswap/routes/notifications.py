import logging
from typing import Optional

from fastapi import APIRouter, WebSocket, WebSocketDisconnect, status

from ..auth import user_from_token

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Notifications"])


@router.websocket("/ws")
async def notifications_socket(websocket: WebSocket, token: Optional[str] = None):
    """
    Per-user push channel. Connect with ?token=<access token>; the server then
    sends {"event": "swap_requested" | "swap_resolved", "data": {...}} messages.
    """
    app_state = websocket.app.state

    db = app_state.session_factory()
    try:
        user = user_from_token(db, token, app_state.settings)
        user_id = user.id if user else None
    finally:
        db.close()

    if not user_id:
        logger.warning("⚠️ WebSocket connection rejected: invalid token")
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    registry = app_state.connection_registry
    await registry.connect(user_id, websocket)
    try:
        while True:
            # Client messages are only keep-alives
            await websocket.receive_text()
    except WebSocketDisconnect:
        pass
    finally:
        registry.disconnect(user_id, websocket)
