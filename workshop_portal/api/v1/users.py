"""Users API - the engineer picker behind shipment assignment."""

from typing import Annotated, Optional

from fastapi import APIRouter, Depends
from sqlalchemy import select

from workshop_portal.api.deps import DbSession, require_permission
from workshop_portal.models.user import User
from workshop_portal.schemas.auth import UserListResponse, UserResponse
from workshop_portal.security.rbac import Permission, Role
from workshop_portal.services.inventory.types import Actor

router = APIRouter()


@router.get("", response_model=UserListResponse)
async def list_users(
    db: DbSession,
    actor: Annotated[Actor, Depends(require_permission(Permission.VIEW_USERS))],
    role: Optional[Role] = None,
    active_only: bool = True,
):
    """List portal users by name, optionally narrowed to one role."""
    query = select(User)
    if role is not None:
        query = query.where(User.role == role.value)
    if active_only:
        query = query.where(User.is_active == True)

    result = await db.execute(query.order_by(User.first_name, User.last_name, User.id))
    users = [UserResponse.from_db_user(user) for user in result.scalars().all()]
    return UserListResponse(items=users, total=len(users))
