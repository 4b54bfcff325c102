"""
WebSocket Connection Manager

Tracks the websockets subscribed to the push change feed.
Supports:
- Broadcasting to all connected clients
- Sending to specific users
- Heartbeat tracking and stale connection cleanup
"""

from fastapi import WebSocket
from typing import Dict, Set, Optional
from datetime import datetime
import logging
import asyncio

from workshop_portal.utils.timestamps import utcnow

logger = logging.getLogger(__name__)


class ConnectionManager:
    """
    Manages WebSocket connections and message broadcasting.

    Connections are tracked by user_id so one user may keep several tabs open.
    """

    def __init__(self):
        self._connections: Dict[int, Set[WebSocket]] = {}
        self._websocket_to_user: Dict[WebSocket, int] = {}
        # WebSocket -> last ping timestamp
        self._heartbeats: Dict[WebSocket, datetime] = {}
        self._lock = asyncio.Lock()

    async def connect(self, websocket: WebSocket, user_id: int) -> None:
        """
        Accept a WebSocket connection and register it.

        Args:
            websocket: The WebSocket connection to register
            user_id: The authenticated user's ID
        """
        await websocket.accept()

        async with self._lock:
            self._connections.setdefault(user_id, set()).add(websocket)
            self._websocket_to_user[websocket] = user_id
            self._heartbeats[websocket] = utcnow()

        logger.info(
            f"WebSocket connected: user_id={user_id}, "
            f"total_connections={self.total_connections}"
        )

    def disconnect(self, websocket: WebSocket, user_id: int) -> None:
        if user_id in self._connections:
            self._connections[user_id].discard(websocket)
            if not self._connections[user_id]:
                del self._connections[user_id]

        self._websocket_to_user.pop(websocket, None)
        self._heartbeats.pop(websocket, None)

        logger.info(
            f"WebSocket disconnected: user_id={user_id}, "
            f"total_connections={self.total_connections}"
        )

    def update_heartbeat(self, websocket: WebSocket) -> None:
        self._heartbeats[websocket] = utcnow()

    @property
    def total_connections(self) -> int:
        return len(self._websocket_to_user)

    @property
    def connected_users(self) -> Set[int]:
        return set(self._connections.keys())

    async def send_to_user(self, user_id: int, message: dict) -> int:
        """
        Send a message to all connections for a specific user.

        Returns:
            Number of connections the message was sent to
        """
        if user_id not in self._connections:
            return 0

        sent_count = 0
        dead_connections = []

        for websocket in list(self._connections[user_id]):
            try:
                await websocket.send_json(message)
                sent_count += 1
            except Exception as e:
                logger.warning(f"Failed to send to user {user_id}: {e}")
                dead_connections.append(websocket)

        for ws in dead_connections:
            self.disconnect(ws, user_id)

        return sent_count

    async def broadcast(self, message: dict, exclude_user: Optional[int] = None) -> int:
        """
        Broadcast a message to all connected clients.

        Args:
            message: The message dict to send
            exclude_user: Optional user_id to exclude from broadcast

        Returns:
            Number of connections the message was sent to
        """
        sent_count = 0

        for user_id in list(self._connections.keys()):
            if exclude_user and user_id == exclude_user:
                continue
            sent_count += await self.send_to_user(user_id, message)

        logger.debug(f"Broadcast sent to {sent_count} connections")
        return sent_count

    async def check_stale_connections(self, timeout_seconds: int = 120) -> int:
        """Close connections that have not pinged within ``timeout_seconds``."""
        now = utcnow()
        stale = []

        async with self._lock:
            for websocket, last_heartbeat in self._heartbeats.items():
                if (now - last_heartbeat).total_seconds() > timeout_seconds:
                    stale.append((websocket, self._websocket_to_user.get(websocket)))

        for websocket, user_id in stale:
            if user_id is None:
                continue
            try:
                await websocket.close(code=4002, reason="Connection timeout")
            except RuntimeError as e:
                logger.debug(f"Stale websocket for user {user_id} already closed: {e}")
            self.disconnect(websocket, user_id)

        if stale:
            logger.info(f"Cleaned up {len(stale)} stale WebSocket connections")

        return len(stale)

    def get_connection_stats(self) -> dict:
        return {
            "total_connections": self.total_connections,
            "unique_users": len(self._connections),
        }
