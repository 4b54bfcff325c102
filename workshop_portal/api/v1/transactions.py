"""
Transactions API - rolling-window views over the ledger.

Engineers only ever see their own entries. Supervisors and admins see
everyone's, or one user's through ``user_id``.
"""

from typing import Optional

from fastapi import APIRouter, Query

from workshop_portal.api.deps import CurrentActor, Inventory
from workshop_portal.config import settings
from workshop_portal.exceptions import ForbiddenError
from workshop_portal.schemas.inventory import ActivityListResponse, LedgerListResponse
from workshop_portal.security.rbac import Permission, has_permission
from workshop_portal.services.inventory.types import Actor, ItemKind, TransactionType

router = APIRouter()


def _viewer_scope(actor: Actor, user_id: Optional[int] = None, all_users: bool = False) -> Optional[int]:
    """User id a view is restricted to; None means everyone."""
    sees_all = has_permission(actor, Permission.VIEW_ALL_ACTIVITY)
    if (all_users or (user_id is not None and user_id != actor.id)) and not sees_all:
        raise ForbiddenError("Only supervisors and administrators can view other users' activity")
    if user_id is not None:
        return user_id
    return None if all_users else actor.id


@router.get("/recent", response_model=LedgerListResponse)
async def recent_transactions(
    inventory: Inventory,
    actor: CurrentActor,
    hours: int = Query(settings.RECENT_WINDOW_HOURS, ge=1, le=24 * 90),
    types: Optional[list[TransactionType]] = Query(None),
    user_id: Optional[int] = None,
    item_kind: Optional[ItemKind] = None,
    all_users: bool = False,
):
    """Ledger entries of the last ``hours``, newest first."""
    scope = _viewer_scope(actor, user_id, all_users)
    entries = await inventory.ledger.query_recent(hours, types, scope, item_kind)
    return LedgerListResponse(items=entries, total=len(entries), hours=hours)


@router.get("/activity", response_model=ActivityListResponse)
async def my_activity(
    inventory: Inventory,
    actor: CurrentActor,
    hours: int = Query(settings.RECENT_WINDOW_HOURS, ge=1, le=24 * 90),
    search: Optional[str] = Query(None, max_length=100),
    kind: Optional[ItemKind] = None,
    all_users: bool = False,
):
    """Claims and requests in the window plus open claims of any age."""
    scope = _viewer_scope(actor, all_users=all_users)
    rows = await inventory.projector.my_activity(scope, hours, search, kind)
    return ActivityListResponse(items=rows, total=len(rows), hours=hours)


@router.get("/collections", response_model=ActivityListResponse)
async def collections_queue(
    inventory: Inventory,
    actor: CurrentActor,
    hours: int = Query(settings.RECENT_WINDOW_HOURS, ge=1, le=24 * 90),
    search: Optional[str] = Query(None, max_length=100),
    kind: Optional[ItemKind] = None,
    all_users: bool = False,
):
    """Claims awaiting collection plus collections confirmed in the window."""
    scope = _viewer_scope(actor, all_users=all_users)
    rows = await inventory.projector.collections_queue(scope, hours, search, kind)
    return ActivityListResponse(items=rows, total=len(rows), hours=hours)
