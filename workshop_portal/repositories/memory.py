"""
In-memory inventory store.

Used by the test suite and for local demos. Records are copied on the way in
and out so callers can never mutate stored state behind the store's back.
"""

import asyncio
from collections import defaultdict
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Iterable, Optional

from workshop_portal.services.inventory.types import (
    Actor,
    DeviceRecord,
    InventoryItemBase,
    ItemKind,
    LedgerEntry,
    StrippedPartRecord,
    TransactionType,
)


class MemoryItemRepository:
    def __init__(self):
        self._items: dict[str, InventoryItemBase] = {}

    async def get(self, item_id: str) -> Optional[InventoryItemBase]:
        item = self._items.get(item_id)
        return item.model_copy(deep=True) if item else None

    async def get_for_update(self, item_id: str) -> Optional[InventoryItemBase]:
        return await self.get(item_id)

    async def list(self, kind: Optional[ItemKind] = None) -> list[InventoryItemBase]:
        return [
            item.model_copy(deep=True)
            for item in self._items.values()
            if kind is None or item.kind == kind
        ]

    async def add(self, item: InventoryItemBase) -> InventoryItemBase:
        self._items[item.id] = item.model_copy(deep=True)
        return item

    async def save(self, item: InventoryItemBase) -> InventoryItemBase:
        self._items[item.id] = item.model_copy(deep=True)
        return item

    async def reserve_unit(self, item_id: str) -> bool:
        # No await between the check and the write, so this is one atomic step
        item = self._items.get(item_id)
        if item is None or item.available_quantity <= 0:
            return False
        self._items[item_id] = item.model_copy(
            update={"available_quantity": item.available_quantity - 1}
        )
        return True


class MemoryLedgerRepository:
    def __init__(self):
        self._entries: list[LedgerEntry] = []
        self._last_id = 0

    async def append(self, entry: LedgerEntry) -> LedgerEntry:
        self._last_id += 1
        stored = entry.model_copy(update={"id": self._last_id})
        self._entries.append(stored)
        return stored

    async def query(
        self,
        since: Optional[datetime] = None,
        types: Optional[Iterable[TransactionType]] = None,
        user_id: Optional[int] = None,
        item_kind: Optional[ItemKind] = None,
        item_id: Optional[str] = None,
    ) -> list[LedgerEntry]:
        type_set = set(types) if types else None
        return [
            entry
            for entry in self._entries
            if (since is None or entry.created_at >= since)
            and (type_set is None or entry.type in type_set)
            and (user_id is None or entry.user_id == user_id)
            and (item_kind is None or entry.item_kind == item_kind)
            and (item_id is None or entry.item_id == item_id)
        ]

    async def open_claims(
        self,
        user_id: Optional[int] = None,
        item_kind: Optional[ItemKind] = None,
    ) -> list[LedgerEntry]:
        closed = {entry.claim_id for entry in self._entries if entry.claim_id is not None}
        return [
            entry
            for entry in self._entries
            if entry.type == TransactionType.CLAIM
            and entry.id not in closed
            and (user_id is None or entry.user_id == user_id)
            and (item_kind is None or entry.item_kind == item_kind)
        ]


class MemoryUserRepository:
    def __init__(self):
        self._users: dict[int, tuple[Actor, bool]] = {}

    def register(self, actor: Actor, is_active: bool = True) -> None:
        self._users[actor.id] = (actor, is_active)

    async def get_active(self, user_id: int) -> Optional[Actor]:
        actor, is_active = self._users.get(user_id, (None, False))
        return actor if is_active else None


class MemoryDeviceRepository:
    def __init__(self):
        self._devices: dict[str, DeviceRecord] = {}

    async def get(self, device_id: str) -> Optional[DeviceRecord]:
        device = self._devices.get(device_id)
        return device.model_copy(deep=True) if device else None

    async def get_for_update(self, device_id: str) -> Optional[DeviceRecord]:
        return await self.get(device_id)

    async def list(self) -> list[DeviceRecord]:
        return [device.model_copy(deep=True) for device in self._devices.values()]

    async def add(self, device: DeviceRecord) -> DeviceRecord:
        self._devices[device.id] = device.model_copy(deep=True)
        return device

    async def save(self, device: DeviceRecord) -> DeviceRecord:
        current = self._devices[device.id]
        # The stripped parts log only grows through add_stripped_part
        self._devices[device.id] = device.model_copy(
            update={"stripped_parts": current.stripped_parts}, deep=True
        )
        return await self.get(device.id)

    async def add_stripped_part(self, device_id: str, stripped: StrippedPartRecord) -> DeviceRecord:
        current = self._devices[device_id]
        self._devices[device_id] = current.model_copy(
            update={"stripped_parts": [*current.stripped_parts, stripped]}, deep=True
        )
        return await self.get(device_id)


class MemoryInventoryStore:
    """In-memory InventoryStore with one asyncio.Lock per key."""

    def __init__(self):
        self.items = MemoryItemRepository()
        self.ledger = MemoryLedgerRepository()
        self.devices = MemoryDeviceRepository()
        self.users = MemoryUserRepository()
        self._locks: defaultdict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    @asynccontextmanager
    async def atomic(self, key: str):
        async with self._locks[key]:
            # Other keys may commit while this section awaits, so only the
            # state belonging to ``key`` is snapshotted and restored
            item = self.items._items.get(key)
            device = self.devices._devices.get(key)
            ledger_length = len(self.ledger._entries)
            try:
                yield
            except BaseException:
                _restore(self.items._items, key, item)
                _restore(self.devices._devices, key, device)
                self.ledger._entries[ledger_length:] = [
                    entry
                    for entry in self.ledger._entries[ledger_length:]
                    if entry.item_id != key
                ]
                raise


def _restore(records: dict, key: str, previous) -> None:
    if previous is None:
        records.pop(key, None)
    else:
        records[key] = previous
