"""
State Projector

Derives what each viewer sees from the ledger and the base item records:
the available list, "my activity" and the collections queue. The module
level functions are pure; StateProjector loads their inputs from a store.
"""

from datetime import datetime, timedelta
from typing import Callable, Iterable, Optional, Sequence, TypeVar
import logging

from workshop_portal.exceptions import NotFoundError, ValidationError
from workshop_portal.repositories.base import InventoryStore
from workshop_portal.services.inventory.ledger import ItemState, newest_first, replay
from workshop_portal.services.inventory.types import (
    ActivityRow,
    DeviceStatus,
    InventoryItemBase,
    ItemKind,
    LedgerEntry,
    TransactionType,
)
from workshop_portal.utils.timestamps import utcnow

logger = logging.getLogger(__name__)

DEFAULT_WINDOW_HOURS = 12

ACTIVITY_TYPES = (TransactionType.CLAIM, TransactionType.REQUEST)
CLAIM_LIFECYCLE_TYPES = (
    TransactionType.CLAIM,
    TransactionType.REQUEST,
    TransactionType.COLLECT,
    TransactionType.RETURN,
)

Record = TypeVar("Record")


def is_available(record) -> bool:
    """Whether a part, toner or device can be picked up right now."""
    if record.kind in (ItemKind.PART.value, ItemKind.TONER.value):
        return record.available_quantity > 0
    if record.kind == "DEVICE":
        return record.status == DeviceStatus.APPROVED_FOR_DISPOSAL
    raise ValueError(f"Unknown record kind: {record.kind}")


def available(records: Iterable[Record]) -> list[Record]:
    return [record for record in records if is_available(record)]


def matches(record, term: Optional[str]) -> bool:
    """Case-insensitive substring match over the record's searchable fields."""
    if not term or not term.strip():
        return True
    needle = term.strip().lower()
    haystack = (record.display_name, *record.search_fields())
    return any(needle in value.lower() for value in haystack if value)


def search(records: Iterable[Record], term: Optional[str]) -> list[Record]:
    return [record for record in records if matches(record, term)]


def open_claim_ids(entries: Iterable[LedgerEntry]) -> set[int]:
    """Ids of CLAIM entries with no COLLECT or RETURN pointing at them."""
    entries = list(entries)
    closed = {
        entry.claim_id
        for entry in entries
        if entry.type in (TransactionType.COLLECT, TransactionType.RETURN)
    }
    return {
        entry.id
        for entry in entries
        if entry.type == TransactionType.CLAIM and entry.id not in closed
    }


def _rows(
    entries: Sequence[LedgerEntry],
    items: dict[str, InventoryItemBase],
    open_ids: set[int],
) -> list[ActivityRow]:
    rows = []
    for entry in newest_first(entries):
        item = items.get(entry.item_id)
        if item is None:
            logger.warning(f"Ledger entry {entry.id} references unknown item {entry.item_id}")
            continue
        rows.append(
            ActivityRow(
                entry=entry,
                item=item,
                pending_collection=entry.type == TransactionType.CLAIM and entry.id in open_ids,
            )
        )
    return rows


def my_activity(
    entries: Sequence[LedgerEntry],
    items: dict[str, InventoryItemBase],
    since: datetime,
    user_id: Optional[int] = None,
) -> list[ActivityRow]:
    """
    CLAIM and REQUEST entries since ``since``, plus open claims of any age.

    Args:
        entries: Ledger history covering every claim that may still be open
        items: Current item records by id
        since: Start of the window
        user_id: Only this user's entries; None for everyone

    Returns:
        Rows newest first, open claims flagged pending_collection
    """
    if user_id is not None:
        entries = [entry for entry in entries if entry.user_id == user_id]
    open_ids = open_claim_ids(entries)
    selected = [
        entry
        for entry in entries
        if entry.type in ACTIVITY_TYPES
        and (entry.created_at >= since or entry.id in open_ids)
    ]
    return _rows(selected, items, open_ids)


def collections_queue(
    entries: Sequence[LedgerEntry],
    items: dict[str, InventoryItemBase],
    since: datetime,
    user_id: Optional[int] = None,
) -> list[ActivityRow]:
    """
    Open claims of any age, plus collections confirmed since ``since``.

    A claim leaves the queue once a COLLECT or RETURN names it in claim_id.
    """
    if user_id is not None:
        entries = [entry for entry in entries if entry.user_id == user_id]
    open_ids = open_claim_ids(entries)
    selected = [
        entry
        for entry in entries
        if entry.id in open_ids
        or (entry.type == TransactionType.COLLECT and entry.created_at >= since)
    ]
    return _rows(selected, items, open_ids)


class StateProjector:
    """Loads ledger and item records from a store and projects them."""

    def __init__(self, store: InventoryStore, clock: Callable[[], datetime] = utcnow):
        self.store = store
        self.clock = clock

    def window_start(self, hours: int) -> datetime:
        if hours <= 0:
            raise ValidationError("hours must be a positive number")
        return self.clock() - timedelta(hours=hours)

    async def replay(self, item_id: str) -> ItemState:
        """Recompute an item's state from its full ledger history."""
        return replay(await self.store.ledger.query(item_id=item_id))

    async def refresh(self, item: InventoryItemBase) -> InventoryItemBase:
        """Overwrite an item's cached fields with the replayed values and save it."""
        state = await self.replay(item.id)
        updated = item.model_copy(update={**state.cache_fields(), "updated_at": self.clock()})
        await self.store.items.save(updated)
        return updated

    async def get_item(self, item_id: str) -> InventoryItemBase:
        item = await self.store.items.get(item_id)
        if item is None:
            raise NotFoundError("Item", item_id)
        return item

    async def list_items(
        self, kind: Optional[ItemKind] = None, term: Optional[str] = None
    ) -> list[InventoryItemBase]:
        return search(await self.store.items.list(kind), term)

    async def available_items(
        self, kind: Optional[ItemKind] = None, term: Optional[str] = None
    ) -> list[InventoryItemBase]:
        return search(available(await self.store.items.list(kind)), term)

    async def _lifecycle(self, user_id: Optional[int], kind: Optional[ItemKind], since: datetime):
        # Closers always follow their claim, so windowed rows plus the open
        # claims cover everything either projection can show
        recent = await self.store.ledger.query(
            since=since, types=CLAIM_LIFECYCLE_TYPES, user_id=user_id, item_kind=kind
        )
        still_open = await self.store.ledger.open_claims(user_id=user_id, item_kind=kind)
        by_id = {entry.id: entry for entry in [*still_open, *recent]}
        entries = [by_id[entry_id] for entry_id in sorted(by_id)]
        items = {item.id: item for item in await self.store.items.list(kind)}
        return entries, items

    async def my_activity(
        self,
        user_id: Optional[int],
        hours: int = DEFAULT_WINDOW_HOURS,
        term: Optional[str] = None,
        kind: Optional[ItemKind] = None,
    ) -> list[ActivityRow]:
        """Activity rows for one user, or for everyone when ``user_id`` is None."""
        since = self.window_start(hours)
        entries, items = await self._lifecycle(user_id, kind, since)
        rows = my_activity(entries, items, since, user_id)
        return [row for row in rows if matches(row.item, term)]

    async def collections_queue(
        self,
        user_id: Optional[int],
        hours: int = DEFAULT_WINDOW_HOURS,
        term: Optional[str] = None,
        kind: Optional[ItemKind] = None,
    ) -> list[ActivityRow]:
        since = self.window_start(hours)
        entries, items = await self._lifecycle(user_id, kind, since)
        rows = collections_queue(entries, items, since, user_id)
        return [row for row in rows if matches(row.item, term)]
