"""
Repository protocols for the inventory core.

The claim protocol, ledger and projector only talk to these interfaces, so
the same logic runs against PostgreSQL (repositories.sql) or plain memory
(repositories.memory).
"""

from datetime import datetime
from typing import AsyncContextManager, Iterable, Optional, Protocol

from workshop_portal.services.inventory.types import (
    Actor,
    DeviceRecord,
    InventoryItemBase,
    ItemKind,
    LedgerEntry,
    StrippedPartRecord,
    TransactionType,
)


class ItemRepository(Protocol):
    async def get(self, item_id: str) -> Optional[InventoryItemBase]: ...

    async def get_for_update(self, item_id: str) -> Optional[InventoryItemBase]:
        """Load an item and hold it exclusively until the atomic section ends."""
        ...

    async def list(self, kind: Optional[ItemKind] = None) -> list[InventoryItemBase]: ...

    async def add(self, item: InventoryItemBase) -> InventoryItemBase: ...

    async def save(self, item: InventoryItemBase) -> InventoryItemBase: ...

    async def reserve_unit(self, item_id: str) -> bool:
        """Decrement available_quantity by one if it is above zero, as one conditional update.

        Returns False when no unit was left to reserve.
        """
        ...


class LedgerRepository(Protocol):
    async def append(self, entry: LedgerEntry) -> LedgerEntry:
        """Persist an entry and return it with its id assigned."""
        ...

    async def query(
        self,
        since: Optional[datetime] = None,
        types: Optional[Iterable[TransactionType]] = None,
        user_id: Optional[int] = None,
        item_kind: Optional[ItemKind] = None,
        item_id: Optional[str] = None,
    ) -> list[LedgerEntry]:
        """Matching entries in insertion order."""
        ...

    async def open_claims(
        self,
        user_id: Optional[int] = None,
        item_kind: Optional[ItemKind] = None,
    ) -> list[LedgerEntry]:
        """CLAIM entries no COLLECT or RETURN points at yet, in insertion order."""
        ...


class DeviceRepository(Protocol):
    async def get(self, device_id: str) -> Optional[DeviceRecord]: ...

    async def get_for_update(self, device_id: str) -> Optional[DeviceRecord]: ...

    async def list(self) -> list[DeviceRecord]: ...

    async def add(self, device: DeviceRecord) -> DeviceRecord: ...

    async def save(self, device: DeviceRecord) -> DeviceRecord:
        """Persist status and removal fields."""
        ...

    async def add_stripped_part(self, device_id: str, stripped: StrippedPartRecord) -> DeviceRecord: ...


class UserRepository(Protocol):
    async def get_active(self, user_id: int) -> Optional[Actor]:
        """The user as an Actor, or None when unknown or deactivated."""
        ...


class InventoryStore(Protocol):
    """The single owner of inventory state."""

    items: ItemRepository
    ledger: LedgerRepository
    devices: DeviceRepository
    users: UserRepository

    def atomic(self, key: str) -> AsyncContextManager[None]:
        """Serialize writers on ``key``; commit on exit, undo everything on error."""
        ...
