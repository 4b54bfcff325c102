"""
Change Feed

One stream of "something changed" events behind two delivery backends:

- poll: events are kept in a bounded buffer; clients ask for everything
  after the last sequence number they saw (GET /changes?since=)
- push: same buffer, and every event is also broadcast to connected
  websockets (WS /changes/ws)

Events only say what changed. Clients re-fetch the affected views.
"""

from collections import deque
from datetime import datetime
from functools import lru_cache
from typing import Callable, Optional
import asyncio
import logging

from pydantic import BaseModel, Field

from workshop_portal.services.websocket_manager import ConnectionManager
from workshop_portal.utils.timestamps import utcnow

logger = logging.getLogger(__name__)


class ChangeEvent(BaseModel):
    seq: int
    resource: str  # item, device, notification
    resource_id: str
    action: str
    created_at: datetime
    user_id: Optional[int] = None


class ChangeBatch(BaseModel):
    """Events after a cursor.

    ``reset`` is set when the cursor fell out of the buffer and the client
    must reload its views instead of applying the events.
    """

    cursor: int
    events: list[ChangeEvent] = Field(default_factory=list)
    reset: bool = False


class ChangeFeed:
    """Buffered change feed; the base class is the poll backend."""

    backend = "poll"

    def __init__(self, buffer_size: int = 500, clock: Callable[[], datetime] = utcnow):
        self._events: deque[ChangeEvent] = deque(maxlen=buffer_size)
        self._seq = 0
        self._lock = asyncio.Lock()
        self.clock = clock

    @property
    def cursor(self) -> int:
        return self._seq

    async def publish(
        self,
        resource: str,
        resource_id: str,
        action: str,
        user_id: Optional[int] = None,
    ) -> ChangeEvent:
        async with self._lock:
            self._seq += 1
            event = ChangeEvent(
                seq=self._seq,
                resource=resource,
                resource_id=str(resource_id),
                action=action,
                created_at=self.clock(),
                user_id=user_id,
            )
            self._events.append(event)
        logger.debug(f"Change #{event.seq}: {resource} {resource_id} {action}")
        return event

    def since(self, cursor: int) -> ChangeBatch:
        """Events with seq greater than ``cursor``."""
        if cursor > self._seq or cursor < 0:
            return ChangeBatch(cursor=self._seq, reset=True)
        oldest = self._events[0].seq if self._events else self._seq + 1
        # Events between cursor and the oldest buffered one were dropped
        if cursor + 1 < oldest and cursor < self._seq:
            return ChangeBatch(cursor=self._seq, events=list(self._events), reset=True)
        return ChangeBatch(
            cursor=self._seq,
            events=[event for event in self._events if event.seq > cursor],
        )


PollingChangeFeed = ChangeFeed


class PushChangeFeed(ChangeFeed):
    """Buffers like the poll backend and pushes each event to websockets."""

    backend = "push"

    def __init__(
        self,
        manager: Optional[ConnectionManager] = None,
        buffer_size: int = 500,
        clock: Callable[[], datetime] = utcnow,
    ):
        super().__init__(buffer_size=buffer_size, clock=clock)
        self.manager = manager or ConnectionManager()

    async def publish(self, resource, resource_id, action, user_id=None) -> ChangeEvent:
        event = await super().publish(resource, resource_id, action, user_id)
        await self.manager.broadcast(
            {"type": "change", "data": event.model_dump(mode="json")}
        )
        return event


def create_change_feed(backend: str, buffer_size: int = 500) -> ChangeFeed:
    if backend == "push":
        return PushChangeFeed(buffer_size=buffer_size)
    if backend == "poll":
        return PollingChangeFeed(buffer_size=buffer_size)
    raise ValueError(f"Unknown change feed backend: {backend}")


@lru_cache()
def get_change_feed() -> ChangeFeed:
    """Process-wide feed built from settings."""
    from workshop_portal.config import settings

    return create_change_feed(settings.CHANGE_FEED_BACKEND, settings.CHANGE_FEED_BUFFER_SIZE)
