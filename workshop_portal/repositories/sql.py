"""
SQLAlchemy inventory store.

Writers on the same item serialize on a row lock (SELECT ... FOR UPDATE, a
no-op on SQLite) and the claim path decrements through a conditional UPDATE.
The atomic section commits the session on success and rolls it back on any
error, so a ledger entry and its cache update land together or not at all.
"""

from contextlib import asynccontextmanager
from datetime import datetime
from enum import Enum
from typing import Iterable, Optional
import logging

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased, selectinload

from workshop_portal.models.device import Device, StrippedPart
from workshop_portal.models.inventory import ITEM_MODELS, InventoryItem
from workshop_portal.models.inventory_transaction import InventoryTransaction
from workshop_portal.models.user import User
from workshop_portal.security.rbac import get_user_role
from workshop_portal.services.inventory.types import (
    Actor,
    DeviceRecord,
    InventoryItemBase,
    ItemKind,
    LedgerEntry,
    StrippedPartRecord,
    TransactionType,
    item_from_row,
)

logger = logging.getLogger(__name__)

# Written once at creation, never copied back onto an existing row
CREATE_ONLY = {"id", "kind", "created_at"}


def _column_values(record, exclude: set[str]) -> dict:
    """Record fields as column values, enums stored by value."""
    values = record.model_dump(exclude=exclude)
    return {
        key: value.value if isinstance(value, Enum) else value
        for key, value in values.items()
    }


class SqlItemRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, item_id: str) -> Optional[InventoryItemBase]:
        row = await self.session.get(InventoryItem, item_id)
        return item_from_row(row) if row else None

    async def get_for_update(self, item_id: str) -> Optional[InventoryItemBase]:
        result = await self.session.execute(
            select(InventoryItem)
            .where(InventoryItem.id == item_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        row = result.scalar_one_or_none()
        return item_from_row(row) if row else None

    async def list(self, kind: Optional[ItemKind] = None) -> list[InventoryItemBase]:
        query = select(InventoryItem).order_by(InventoryItem.created_at, InventoryItem.id)
        if kind is not None:
            query = query.where(InventoryItem.kind == ItemKind(kind).value)
        result = await self.session.execute(query)
        return [item_from_row(row) for row in result.scalars().all()]

    async def add(self, item: InventoryItemBase) -> InventoryItemBase:
        row = ITEM_MODELS[item.kind](**_column_values(item, exclude={"kind"}))
        self.session.add(row)
        await self.session.flush()
        return item

    async def save(self, item: InventoryItemBase) -> InventoryItemBase:
        row = await self.session.get(InventoryItem, item.id)
        for key, value in _column_values(item, exclude=CREATE_ONLY).items():
            setattr(row, key, value)
        await self.session.flush()
        return item

    async def reserve_unit(self, item_id: str) -> bool:
        result = await self.session.execute(
            update(InventoryItem)
            .where(InventoryItem.id == item_id, InventoryItem.available_quantity > 0)
            .values(available_quantity=InventoryItem.available_quantity - 1)
            .execution_options(synchronize_session="fetch")
        )
        return result.rowcount == 1


class SqlLedgerRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def append(self, entry: LedgerEntry) -> LedgerEntry:
        row = InventoryTransaction(**_column_values(entry, exclude={"id"}))
        self.session.add(row)
        await self.session.flush()
        return LedgerEntry.model_validate(row)

    async def query(
        self,
        since: Optional[datetime] = None,
        types: Optional[Iterable[TransactionType]] = None,
        user_id: Optional[int] = None,
        item_kind: Optional[ItemKind] = None,
        item_id: Optional[str] = None,
    ) -> list[LedgerEntry]:
        query = select(InventoryTransaction).order_by(InventoryTransaction.id)
        if since is not None:
            query = query.where(InventoryTransaction.created_at >= since)
        if types:
            query = query.where(
                InventoryTransaction.type.in_([TransactionType(t).value for t in types])
            )
        if user_id is not None:
            query = query.where(InventoryTransaction.user_id == user_id)
        if item_kind is not None:
            query = query.where(InventoryTransaction.item_kind == ItemKind(item_kind).value)
        if item_id is not None:
            query = query.where(InventoryTransaction.item_id == item_id)

        result = await self.session.execute(query)
        return [LedgerEntry.model_validate(row) for row in result.scalars().all()]

    async def open_claims(
        self,
        user_id: Optional[int] = None,
        item_kind: Optional[ItemKind] = None,
    ) -> list[LedgerEntry]:
        closer = aliased(InventoryTransaction)
        query = (
            select(InventoryTransaction)
            .where(InventoryTransaction.type == TransactionType.CLAIM.value)
            .where(~select(closer.id).where(closer.claim_id == InventoryTransaction.id).exists())
            .order_by(InventoryTransaction.id)
        )
        if user_id is not None:
            query = query.where(InventoryTransaction.user_id == user_id)
        if item_kind is not None:
            query = query.where(InventoryTransaction.item_kind == ItemKind(item_kind).value)

        result = await self.session.execute(query)
        return [LedgerEntry.model_validate(row) for row in result.scalars().all()]


class SqlDeviceRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def _load(self, device_id: str, for_update: bool = False) -> Optional[Device]:
        query = (
            select(Device)
            .where(Device.id == device_id)
            .options(selectinload(Device.stripped_parts))
            .execution_options(populate_existing=True)
        )
        if for_update:
            query = query.with_for_update()
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def get(self, device_id: str) -> Optional[DeviceRecord]:
        row = await self._load(device_id)
        return DeviceRecord.model_validate(row) if row else None

    async def get_for_update(self, device_id: str) -> Optional[DeviceRecord]:
        row = await self._load(device_id, for_update=True)
        return DeviceRecord.model_validate(row) if row else None

    async def list(self) -> list[DeviceRecord]:
        result = await self.session.execute(
            select(Device).order_by(Device.created_at, Device.id)
        )
        return [DeviceRecord.model_validate(row) for row in result.scalars().all()]

    async def add(self, device: DeviceRecord) -> DeviceRecord:
        row = Device(
            **_column_values(device, exclude={"kind", "stripped_parts"}),
            stripped_parts=[],
        )
        self.session.add(row)
        await self.session.flush()
        return device

    async def save(self, device: DeviceRecord) -> DeviceRecord:
        row = await self._load(device.id)
        row.status = device.status.value
        row.removal_reason = device.removal_reason
        row.removed_at = device.removed_at
        row.removed_by_name = device.removed_by_name
        await self.session.flush()
        return DeviceRecord.model_validate(row)

    async def add_stripped_part(self, device_id: str, stripped: StrippedPartRecord) -> DeviceRecord:
        self.session.add(StrippedPart(device_id=device_id, **stripped.model_dump()))
        await self.session.flush()
        return DeviceRecord.model_validate(await self._load(device_id))


class SqlUserRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_active(self, user_id: int) -> Optional[Actor]:
        result = await self.session.execute(
            select(User).where(User.id == user_id, User.is_active == True)
        )
        user = result.scalar_one_or_none()
        if user is None:
            return None
        return Actor(id=user.id, name=user.full_name, role=get_user_role(user))


class SqlInventoryStore:
    """InventoryStore over one AsyncSession."""

    def __init__(self, session: AsyncSession):
        self.session = session
        self.items = SqlItemRepository(session)
        self.ledger = SqlLedgerRepository(session)
        self.devices = SqlDeviceRepository(session)
        self.users = SqlUserRepository(session)

    @asynccontextmanager
    async def atomic(self, key: str):
        # Row locks taken inside the section do the per-key serialization
        try:
            yield
            await self.session.commit()
        except BaseException:
            await self.session.rollback()
            logger.debug(f"Rolled back atomic section for {key}")
            raise
