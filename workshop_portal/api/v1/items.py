"""
Items API - parts and toners.

Reads come straight from the projector; every write goes through the
InventoryService claim protocol.
"""

from typing import Annotated, Optional

from fastapi import APIRouter, Body, Depends, Query

from workshop_portal.api.deps import CurrentActor, Inventory, require_permission
from workshop_portal.schemas.inventory import (
    ArrivalCreate,
    ClaimDetails,
    CollectRequest,
    ItemCreate,
    ItemListResponse,
    LedgerListResponse,
    RequestDetails,
    ReturnRequest,
    TransitionResponse,
)
from workshop_portal.security.rbac import Permission
from workshop_portal.services.inventory.types import Actor, InventoryItem, ItemKind

router = APIRouter()


def _transition(result) -> TransitionResponse:
    return TransitionResponse(item=result.item, transaction=result.entry)


@router.get("", response_model=ItemListResponse)
async def list_items(
    inventory: Inventory,
    actor: CurrentActor,
    kind: Optional[ItemKind] = None,
    search: Optional[str] = Query(None, max_length=100),
):
    """List all parts and toners, optionally filtered by kind and search text."""
    items = await inventory.projector.list_items(kind, search)
    return ItemListResponse(items=items, total=len(items))


@router.get("/available", response_model=ItemListResponse)
async def list_available_items(
    inventory: Inventory,
    actor: CurrentActor,
    kind: Optional[ItemKind] = None,
    search: Optional[str] = Query(None, max_length=100),
):
    """Items with at least one unit available to claim."""
    items = await inventory.projector.available_items(kind, search)
    return ItemListResponse(items=items, total=len(items))


@router.post("", response_model=InventoryItem, status_code=201)
async def create_item(
    body: Annotated[ItemCreate, Body()],
    inventory: Inventory,
    actor: Annotated[Actor, Depends(require_permission(Permission.MANAGE_INVENTORY))],
):
    """Create a part or toner (admin only)."""
    return await inventory.add_item(ItemKind(body.kind), body.model_dump(), actor)


@router.get("/{item_id}", response_model=InventoryItem)
async def get_item(item_id: str, inventory: Inventory, actor: CurrentActor):
    return await inventory.projector.get_item(item_id)


@router.get("/{item_id}/history", response_model=LedgerListResponse)
async def get_item_history(item_id: str, inventory: Inventory, actor: CurrentActor):
    """Full ledger of an item, oldest first."""
    await inventory.projector.get_item(item_id)
    entries = await inventory.ledger.history(item_id)
    return LedgerListResponse(items=entries, total=len(entries))


@router.post("/{item_id}/claim", response_model=TransitionResponse)
async def claim_item(
    item_id: str,
    inventory: Inventory,
    actor: CurrentActor,
    details: Optional[ClaimDetails] = None,
):
    metadata = details.model_dump(exclude_none=True) if details else None
    return _transition(await inventory.claim(item_id, actor, metadata))


@router.post("/{item_id}/request", response_model=TransitionResponse)
async def request_item(
    item_id: str,
    inventory: Inventory,
    actor: CurrentActor,
    details: Optional[RequestDetails] = None,
):
    metadata = details.model_dump(exclude_none=True) if details else None
    return _transition(await inventory.request(item_id, actor, metadata))


@router.post("/{item_id}/collect", response_model=TransitionResponse)
async def collect_item(
    item_id: str,
    inventory: Inventory,
    actor: CurrentActor,
    body: Optional[CollectRequest] = None,
):
    """Confirm collection of the caller's claim, or of ``claimant_id``'s as an admin."""
    claimant_id = body.claimant_id if body else None
    return _transition(await inventory.collect(item_id, actor, claimant_id))


@router.post("/{item_id}/return", response_model=TransitionResponse)
async def return_item(
    item_id: str,
    body: ReturnRequest,
    inventory: Inventory,
    actor: CurrentActor,
):
    return _transition(
        await inventory.return_item(item_id, actor, body.reason, body.claimant_id)
    )


@router.post("/{item_id}/arrivals", response_model=TransitionResponse)
async def log_arrival(
    item_id: str,
    body: ArrivalCreate,
    inventory: Inventory,
    actor: Annotated[Actor, Depends(require_permission(Permission.LOG_ARRIVALS))],
):
    """Book a shipment into stock (admin only)."""
    return _transition(
        await inventory.log_arrival(
            item_id, actor, body.quantity, body.shipment_number, body.engineer_id
        )
    )
