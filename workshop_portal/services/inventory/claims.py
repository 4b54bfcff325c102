"""
Claim/Collection Protocol

Every state change of a part or toner goes through InventoryService:

    AVAILABLE --claim--> PENDING_COLLECTION --collect--> COLLECTED
    AVAILABLE --request--> REQUESTED --log_arrival--> AVAILABLE
    PENDING_COLLECTION --return--> AVAILABLE

Each operation checks its preconditions against the replayed ledger, appends
one entry and refreshes the item's cached fields inside a single atomic
section of the store. Notifications and change-feed events go out after the
section has committed; a failure there is logged and leaves the write intact.
"""

from datetime import datetime
from typing import Any, Callable, Optional
import logging
import uuid

from pydantic import ValidationError as PydanticValidationError

from workshop_portal.exceptions import (
    NotAvailableError,
    NotClaimedError,
    NotFoundError,
    ValidationError,
    ForbiddenError,
)
from workshop_portal.repositories.base import InventoryStore
from workshop_portal.security.rbac import Permission, ensure_permission, is_admin
from workshop_portal.services.change_feed import ChangeFeed
from workshop_portal.services.inventory.ledger import TransactionLedger
from workshop_portal.services.inventory.projector import StateProjector
from workshop_portal.services.inventory.types import (
    Actor,
    InventoryItemBase,
    ItemKind,
    ItemStatus,
    LedgerEntry,
    NotificationType,
    RECORD_TYPES,
    TonerColor,
    TransitionResult,
    TransactionType,
)
from workshop_portal.services.notifications import NotificationSink
from workshop_portal.utils.timestamps import utcnow
from workshop_portal.utils.validation import require_positive, require_text

logger = logging.getLogger(__name__)


class InventoryService:
    """Claim, request, collect, return and stock operations on parts and toners."""

    def __init__(
        self,
        store: InventoryStore,
        notifications: Optional[NotificationSink] = None,
        feed: Optional[ChangeFeed] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.notifications = notifications
        self.feed = feed
        self.clock = clock
        self.ledger = TransactionLedger(store.ledger, clock)
        self.projector = StateProjector(store, clock)

    def _entry(
        self,
        item: InventoryItemBase,
        type: TransactionType,
        user_id: int,
        user_name: str,
        delta: int,
        claim_id: Optional[int] = None,
        metadata: Optional[dict] = None,
    ) -> LedgerEntry:
        return LedgerEntry(
            item_id=item.id,
            item_kind=item.item_kind,
            type=type,
            user_id=user_id,
            user_name=user_name,
            quantity_delta=delta,
            created_at=self.clock(),
            claim_id=claim_id,
            extra_data=metadata or None,
        )

    async def _load(self, item_id: str) -> InventoryItemBase:
        item = await self.store.items.get_for_update(item_id)
        if item is None:
            raise NotFoundError("Item", item_id)
        return item

    async def _notify(
        self,
        user_id: int,
        type: NotificationType,
        title: str,
        message: str,
        metadata: Optional[dict] = None,
    ) -> None:
        if self.notifications is None:
            return
        try:
            await self.notifications.notify(user_id, type, title, message, metadata)
        except Exception as e:
            logger.warning(
                f"Failed to send {type.value} notification to user {user_id}: {e}",
                extra={"user_id": user_id},
            )

    async def _publish(self, item: InventoryItemBase, action: str, user_id: Optional[int] = None) -> None:
        if self.feed is None:
            return
        try:
            await self.feed.publish("item", item.id, action, user_id=user_id)
        except Exception as e:
            logger.warning(f"Failed to publish change for item {item.id}: {e}")

    # ------------------------------------------------------------------
    # Stock
    # ------------------------------------------------------------------

    async def add_item(self, kind: ItemKind, fields: dict[str, Any], actor: Actor) -> InventoryItemBase:
        """
        Create a part or toner with its initial stock.

        Args:
            kind: PART or TONER
            fields: Record fields plus ``quantity`` (defaults to 1)
            actor: Must hold MANAGE_INVENTORY

        Returns:
            The created record, status AVAILABLE
        """
        ensure_permission(actor, Permission.MANAGE_INVENTORY)
        fields = dict(fields)
        quantity = fields.pop("quantity", 1)
        fields.pop("kind", None)
        require_positive(quantity, "quantity")

        now = self.clock()
        try:
            record = RECORD_TYPES[ItemKind(kind)](
                **fields,
                id=str(uuid.uuid4()),
                created_at=now,
                updated_at=now,
            )
        except PydanticValidationError as e:
            raise ValidationError(
                f"Invalid {ItemKind(kind).value.lower()} fields",
                errors=[
                    {"field": ".".join(str(p) for p in err["loc"]), "message": err["msg"]}
                    for err in e.errors()
                ],
            )

        async with self.store.atomic(record.id):
            await self.store.items.add(record)
            await self.ledger.append(
                self._entry(record, TransactionType.ADD, actor.id, actor.name, quantity,
                            metadata={"reason": "created"})
            )
            item = await self.projector.refresh(record)

        logger.info(
            f"{item.kind} {item.id} created by user {actor.id} with {quantity} unit(s)",
            extra={"item_id": item.id, "user_id": actor.id},
        )
        await self._publish(item, "created", actor.id)
        return item

    async def add_part(
        self,
        actor: Actor,
        name: str,
        part_number: str,
        quantity: int = 1,
        for_device_models: Optional[list[str]] = None,
    ) -> InventoryItemBase:
        return await self.add_item(
            ItemKind.PART,
            {
                "name": require_text(name, "name"),
                "part_number": require_text(part_number, "part_number"),
                "quantity": quantity,
                "for_device_models": for_device_models or [],
            },
            actor,
        )

    async def add_toner(
        self,
        actor: Actor,
        model: str,
        edp_code: str,
        color: TonerColor,
        page_yield: int = 0,
        quantity: int = 1,
        for_device_models: Optional[list[str]] = None,
    ) -> InventoryItemBase:
        return await self.add_item(
            ItemKind.TONER,
            {
                "model": require_text(model, "model"),
                "edp_code": require_text(edp_code, "edp_code"),
                "color": color,
                "page_yield": page_yield,
                "quantity": quantity,
                "for_device_models": for_device_models or [],
            },
            actor,
        )

    async def log_arrival(
        self,
        item_id: str,
        actor: Actor,
        quantity: int,
        shipment_number: str,
        engineer_id: Optional[int] = None,
    ) -> TransitionResult:
        """
        Book a shipment into stock, fulfilling any open request.

        The assigned engineer gets PART_ARRIVAL; whoever had requested the
        item gets PART_AVAILABLE.

        Raises:
            ValidationError: engineer_id is not an active user
        """
        ensure_permission(actor, Permission.LOG_ARRIVALS)
        shipment_number = require_text(shipment_number, "shipment_number")
        require_positive(quantity, "quantity")

        metadata = {"shipment_number": shipment_number}
        if engineer_id is not None:
            if await self.store.users.get_active(engineer_id) is None:
                raise ValidationError(
                    f"Cannot assign shipment {shipment_number} to user {engineer_id}",
                    errors=[{"field": "engineer_id", "message": "Unknown or inactive user"}],
                )
            metadata["engineer_id"] = engineer_id

        async with self.store.atomic(item_id):
            item = await self._load(item_id)
            request = (await self.projector.replay(item_id)).open_request
            entry = await self.ledger.append(
                self._entry(item, TransactionType.ADD, actor.id, actor.name, quantity, metadata=metadata)
            )
            item = await self.projector.refresh(item)

        logger.info(
            f"Shipment {shipment_number}: {quantity} unit(s) of {item.id} logged by user {actor.id}",
            extra={"item_id": item.id, "user_id": actor.id},
        )
        note = {"item_id": item.id, "shipment_number": shipment_number, "quantity": quantity}
        if engineer_id is not None:
            await self._notify(
                engineer_id,
                NotificationType.PART_ARRIVAL,
                "Part arrived",
                f"Shipment {shipment_number}: {quantity} x {item.display_name} has arrived for you.",
                note,
            )
        if request is not None and request.user_id != engineer_id:
            await self._notify(
                request.user_id,
                NotificationType.PART_AVAILABLE,
                "Requested part available",
                f"{item.display_name} you requested is now available.",
                note,
            )
        await self._publish(item, "arrival", actor.id)
        return TransitionResult(item=item, entry=entry)

    # ------------------------------------------------------------------
    # Claims
    # ------------------------------------------------------------------

    async def claim(self, item_id: str, actor: Actor, metadata: Optional[dict] = None) -> TransitionResult:
        """
        Reserve one unit for the actor.

        Raises:
            NotFoundError: unknown item
            NotAvailableError: no unit left to claim
        """
        ensure_permission(actor, Permission.CLAIM_ITEMS)

        async with self.store.atomic(item_id):
            item = await self._load(item_id)
            if not await self.store.items.reserve_unit(item_id):
                raise NotAvailableError(f"No units of {item.display_name} are available to claim")
            entry = await self.ledger.append(
                self._entry(item, TransactionType.CLAIM, actor.id, actor.name, -1, metadata=metadata)
            )
            item = await self.projector.refresh(item)

        await self._notify(
            actor.id,
            NotificationType.PART_CLAIMED,
            "Item claimed",
            f"You claimed {item.display_name}. Confirm collection once you have picked it up.",
            {"item_id": item.id, "claim_id": entry.id},
        )
        await self._publish(item, "claimed", actor.id)
        return TransitionResult(item=item, entry=entry)

    async def request(self, item_id: str, actor: Actor, details: Optional[dict] = None) -> TransitionResult:
        """Ask for an item to be sourced. Stock is not touched."""
        ensure_permission(actor, Permission.REQUEST_ITEMS)

        async with self.store.atomic(item_id):
            item = await self._load(item_id)
            state = await self.projector.replay(item_id)
            if state.status != ItemStatus.AVAILABLE:
                raise NotAvailableError(
                    f"{item.display_name} is {state.status.value} and cannot be requested"
                )
            entry = await self.ledger.append(
                self._entry(item, TransactionType.REQUEST, actor.id, actor.name, 0, metadata=details)
            )
            item = await self.projector.refresh(item)

        logger.info(
            f"Item {item.id} requested by user {actor.id}",
            extra={"item_id": item.id, "user_id": actor.id},
        )
        await self._publish(item, "requested", actor.id)
        return TransitionResult(item=item, entry=entry)

    def _check_claimant(self, actor: Actor, claimant_id: Optional[int]) -> int:
        claimant_id = actor.id if claimant_id is None else claimant_id
        if claimant_id != actor.id and not is_admin(actor):
            logger.warning(
                f"User {actor.id} tried to act on claims of user {claimant_id}",
                extra={"user_id": actor.id},
            )
            raise ForbiddenError("Only the claimant or an administrator can act on this claim")
        return claimant_id

    def _confirmation(self, actor: Actor, claimant_id: int) -> dict:
        if actor.id == claimant_id:
            return {}
        return {"confirmed_by": actor.name, "confirmed_by_id": actor.id}

    async def collect(self, item_id: str, actor: Actor, claimant_id: Optional[int] = None) -> TransitionResult:
        """
        Confirm physical pickup, closing the claimant's oldest open claim.

        Raises:
            ForbiddenError: actor is neither the claimant nor an administrator
            NotClaimedError: the claimant has no open claim on the item
        """
        claimant_id = self._check_claimant(actor, claimant_id)

        async with self.store.atomic(item_id):
            item = await self._load(item_id)
            claim = (await self.projector.replay(item_id)).open_claim_for(claimant_id)
            if claim is None:
                raise NotClaimedError(
                    f"User {claimant_id} has no open claim on {item.display_name}"
                )
            entry = await self.ledger.append(
                self._entry(
                    item,
                    TransactionType.COLLECT,
                    claim.user_id,
                    claim.user_name,
                    0,
                    claim_id=claim.id,
                    metadata=self._confirmation(actor, claimant_id),
                )
            )
            item = await self.projector.refresh(item)

        await self._notify(
            claimant_id,
            NotificationType.PART_COLLECTED,
            "Collection confirmed",
            f"Collection of {item.display_name} has been confirmed.",
            {"item_id": item.id, "claim_id": claim.id},
        )
        await self._publish(item, "collected", actor.id)
        return TransitionResult(item=item, entry=entry)

    async def return_item(
        self,
        item_id: str,
        actor: Actor,
        reason: str,
        claimant_id: Optional[int] = None,
    ) -> TransitionResult:
        """Give a claimed unit back to stock. Same ownership rules as collect."""
        reason = require_text(reason, "reason")
        claimant_id = self._check_claimant(actor, claimant_id)

        async with self.store.atomic(item_id):
            item = await self._load(item_id)
            claim = (await self.projector.replay(item_id)).open_claim_for(claimant_id)
            if claim is None:
                raise NotClaimedError(
                    f"User {claimant_id} has no open claim on {item.display_name}"
                )
            entry = await self.ledger.append(
                self._entry(
                    item,
                    TransactionType.RETURN,
                    claim.user_id,
                    claim.user_name,
                    -claim.quantity_delta,
                    claim_id=claim.id,
                    metadata={"reason": reason, **self._confirmation(actor, claimant_id)},
                )
            )
            item = await self.projector.refresh(item)

        logger.info(
            f"Claim {claim.id} on item {item.id} returned: {reason}",
            extra={"item_id": item.id, "user_id": actor.id},
        )
        await self._publish(item, "returned", actor.id)
        return TransitionResult(item=item, entry=entry)
