"""
Change feed endpoints.

- GET /changes?since=<cursor>: poll backend, returns the events after a cursor
- WS /changes/ws?token=<jwt>: push backend, streams every event as it happens

Message protocol on the websocket:
- Client -> Server: {"type": "ping"}
- Server -> Client: {"type": "connected", ...}, {"type": "pong", ...},
  {"type": "change", "data": {...}}, {"type": "error", "message": "..."}
"""

from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect
from typing import Optional
import logging
import json

from workshop_portal.api.deps import CurrentActor, Feed, get_current_user_ws
from workshop_portal.config import settings
from workshop_portal.services.change_feed import ChangeBatch, PushChangeFeed, get_change_feed
from workshop_portal.utils.timestamps import utcnow

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("", response_model=ChangeBatch)
async def poll_changes(
    feed: Feed,
    actor: CurrentActor,
    since: int = Query(0, ge=0, description="Last sequence number the client has seen"),
):
    """Events after ``since``; clients poll every POLL_INTERVAL_SECONDS."""
    return feed.since(since)


@router.websocket("/ws")
async def changes_websocket(
    websocket: WebSocket,
    token: Optional[str] = Query(None, description="JWT access token"),
):
    feed = get_change_feed()
    if not isinstance(feed, PushChangeFeed):
        await websocket.close(code=4003, reason="Push updates are disabled, poll /changes instead")
        return

    user = await get_current_user_ws(token)
    if not user:
        logger.warning("WebSocket connection rejected: invalid token")
        await websocket.close(code=4001, reason="Unauthorized")
        return

    manager = feed.manager
    await manager.connect(websocket, user.id)

    try:
        await websocket.send_json(
            {
                "type": "connected",
                "user_id": user.id,
                "cursor": feed.cursor,
                "poll_interval": settings.POLL_INTERVAL_SECONDS,
                "timestamp": utcnow().isoformat(),
            }
        )

        while True:
            try:
                data = await websocket.receive_json()
            except json.JSONDecodeError:
                await websocket.send_json({"type": "error", "message": "Invalid JSON format"})
                continue

            if data.get("type") == "ping":
                manager.update_heartbeat(websocket)
                await websocket.send_json({"type": "pong", "timestamp": utcnow().isoformat()})
            else:
                await websocket.send_json(
                    {"type": "error", "message": f"Unknown message type: {data.get('type')}"}
                )

    except WebSocketDisconnect:
        logger.info(f"WebSocket client disconnected: user_id={user.id}")
    finally:
        manager.disconnect(websocket, user.id)
