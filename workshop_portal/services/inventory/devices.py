"""
Device disposal workflow.

A device approved for disposal can be stripped for parts any number of times
and is then removed once, with a reason that never changes afterwards.
"""

from datetime import datetime
from typing import Callable, Optional
import logging
import uuid

from workshop_portal.exceptions import AlreadyRemovedError, NotFoundError
from workshop_portal.repositories.base import InventoryStore
from workshop_portal.security.rbac import Permission, ensure_permission
from workshop_portal.services.change_feed import ChangeFeed
from workshop_portal.services.inventory.projector import available, search
from workshop_portal.services.inventory.types import (
    Actor,
    DeviceCondition,
    DeviceRecord,
    DeviceStatus,
    StrippedPartRecord,
)
from workshop_portal.utils.timestamps import utcnow
from workshop_portal.utils.validation import require_text

logger = logging.getLogger(__name__)


class DeviceService:
    def __init__(
        self,
        store: InventoryStore,
        feed: Optional[ChangeFeed] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.feed = feed
        self.clock = clock

    async def _publish(self, device: DeviceRecord, action: str, user_id: int) -> None:
        if self.feed is None:
            return
        try:
            await self.feed.publish("device", device.id, action, user_id=user_id)
        except Exception as e:
            logger.warning(f"Failed to publish change for device {device.id}: {e}")

    async def _load(self, device_id: str) -> DeviceRecord:
        device = await self.store.devices.get_for_update(device_id)
        if device is None:
            raise NotFoundError("Device", device_id)
        return device

    async def get_device(self, device_id: str) -> DeviceRecord:
        device = await self.store.devices.get(device_id)
        if device is None:
            raise NotFoundError("Device", device_id)
        return device

    async def list_devices(self, term: Optional[str] = None) -> list[DeviceRecord]:
        return search(await self.store.devices.list(), term)

    async def available_devices(self, term: Optional[str] = None) -> list[DeviceRecord]:
        return search(available(await self.store.devices.list()), term)

    async def add_device(
        self,
        actor: Actor,
        model: str,
        serial_number: str,
        customer_name: Optional[str] = None,
        condition: DeviceCondition = DeviceCondition.FAIR,
        comments: Optional[str] = None,
    ) -> DeviceRecord:
        ensure_permission(actor, Permission.MANAGE_INVENTORY)
        device = DeviceRecord(
            id=str(uuid.uuid4()),
            model=require_text(model, "model"),
            serial_number=require_text(serial_number, "serial_number"),
            customer_name=(customer_name or "").strip() or "Unknown",
            condition=condition,
            comments=comments or "",
            status=DeviceStatus.APPROVED_FOR_DISPOSAL,
            created_at=self.clock(),
        )
        async with self.store.atomic(device.id):
            await self.store.devices.add(device)

        logger.info(
            f"Device {device.serial_number} approved for disposal by user {actor.id}",
            extra={"device_id": device.id, "user_id": actor.id},
        )
        await self._publish(device, "created", actor.id)
        return device

    async def remove_device(self, device_id: str, reason: str, actor: Actor) -> DeviceRecord:
        """
        Mark a device REMOVED with the reason it left the workshop.

        Raises:
            ForbiddenError: actor may not remove devices
            ValidationError: blank reason
            NotFoundError: unknown device
            AlreadyRemovedError: the device was removed before; its reason is kept
        """
        ensure_permission(actor, Permission.REMOVE_DEVICES)
        reason = require_text(reason, "reason")

        async with self.store.atomic(device_id):
            device = await self._load(device_id)
            if device.status == DeviceStatus.REMOVED:
                raise AlreadyRemovedError(
                    f"Device {device.serial_number} was already removed: {device.removal_reason}"
                )
            device = await self.store.devices.save(
                device.model_copy(
                    update={
                        "status": DeviceStatus.REMOVED,
                        "removal_reason": reason,
                        "removed_at": self.clock(),
                        "removed_by_name": actor.name,
                    }
                )
            )

        logger.info(
            f"Device {device.serial_number} removed by user {actor.id}: {reason}",
            extra={"device_id": device.id, "user_id": actor.id},
        )
        await self._publish(device, "removed", actor.id)
        return device

    async def strip_part(
        self,
        device_id: str,
        actor: Actor,
        part_name: str,
        part_id: Optional[str] = None,
    ) -> DeviceRecord:
        """Log a part taken from a device. Removed devices cannot be stripped."""
        ensure_permission(actor, Permission.STRIP_DEVICES)
        part_name = require_text(part_name, "part_name")

        async with self.store.atomic(device_id):
            device = await self._load(device_id)
            if device.status == DeviceStatus.REMOVED:
                raise AlreadyRemovedError(
                    f"Device {device.serial_number} has been removed and cannot be stripped"
                )
            device = await self.store.devices.add_stripped_part(
                device_id,
                StrippedPartRecord(
                    part_id=part_id,
                    part_name=part_name,
                    stripped_at=self.clock(),
                    stripped_by_name=actor.name,
                ),
            )

        await self._publish(device, "stripped", actor.id)
        return device
