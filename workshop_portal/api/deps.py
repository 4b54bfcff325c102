"""
FastAPI Dependencies

Provides dependency injection for database sessions, authentication,
authorization and the inventory services.

SECURITY NOTES:
- JWT payloads are never logged
- Bearer token is the primary auth method (SPA-friendly, no CSRF needed)
- Session cookies are supported but Bearer is preferred
"""

from typing import Annotated, Optional
from fastapi import Depends, Cookie
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from jose import JWTError, jwt
import bcrypt
from datetime import timedelta
import logging

from workshop_portal.database import get_db, async_session_maker
from workshop_portal.config import settings
from workshop_portal.exceptions import ForbiddenError, UnauthorizedError
from workshop_portal.models.user import User
from workshop_portal.repositories.sql import SqlInventoryStore
from workshop_portal.schemas.auth import TokenData
from workshop_portal.security.rbac import Permission, ensure_permission, get_user_role
from workshop_portal.services.change_feed import ChangeFeed, get_change_feed
from workshop_portal.services.inventory.claims import InventoryService
from workshop_portal.services.inventory.devices import DeviceService
from workshop_portal.services.inventory.types import Actor
from workshop_portal.services.notifications import SqlNotificationSink
from workshop_portal.utils.timestamps import utcnow

logger = logging.getLogger(__name__)


# HTTP Bearer for JWT - primary auth method
security = HTTPBearer(auto_error=False)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a password against a hash."""
    return bcrypt.checkpw(
        plain_password.encode('utf-8'),
        hashed_password.encode('utf-8')
    )


def get_password_hash(password: str) -> str:
    """Hash a password."""
    return bcrypt.hashpw(
        password.encode('utf-8'),
        bcrypt.gensalt()
    ).decode('utf-8')


def create_access_token(data: dict, expires_delta: timedelta | None = None) -> str:
    """Create a JWT access token."""
    to_encode = data.copy()
    expire = utcnow() + (expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_access_token(token: str) -> TokenData:
    """Decode a JWT, raising UnauthorizedError on anything invalid."""
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
        # SECURITY: Never log JWT payloads - they contain sensitive data
        sub = payload.get("sub")
        if sub is None:
            raise UnauthorizedError("Could not validate credentials")
        return TokenData(user_id=int(sub), email=payload.get("email"))
    except JWTError:
        logger.warning("JWT validation failed")
        raise UnauthorizedError("Could not validate credentials")
    except ValueError:
        logger.warning("Invalid token format")
        raise UnauthorizedError("Could not validate credentials")


async def get_current_user(
    db: Annotated[AsyncSession, Depends(get_db)],
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)] = None,
    session_token: Annotated[str | None, Cookie(alias="session")] = None,
) -> User:
    """
    Get current user from JWT token or session cookie.

    SECURITY:
    - Bearer token is preferred (no CSRF vulnerability)
    - Session cookie supported for browser convenience
    """
    if credentials:
        token, auth_method = credentials.credentials, "bearer"
    elif session_token:
        token, auth_method = session_token, "cookie"
    else:
        raise UnauthorizedError("Could not validate credentials")

    token_data = decode_access_token(token)

    result = await db.execute(select(User).where(User.id == token_data.user_id))
    user = result.scalar_one_or_none()

    if user is None:
        raise UnauthorizedError("Could not validate credentials")
    if not user.is_active:
        raise ForbiddenError("User account is disabled")

    logger.debug(
        "User authenticated",
        extra={"user_id": user.id, "auth_method": auth_method}
    )
    return user


async def get_current_user_ws(token: Optional[str]) -> Optional[User]:
    """Resolve a websocket's token query parameter to an active user, or None."""
    if not token:
        return None
    try:
        token_data = decode_access_token(token)
    except UnauthorizedError:
        return None

    async with async_session_maker() as db:
        result = await db.execute(select(User).where(User.id == token_data.user_id))
        user = result.scalar_one_or_none()

    if user is None or not user.is_active:
        return None
    return user


def actor_from_user(user: User) -> Actor:
    return Actor(id=user.id, name=user.full_name, role=get_user_role(user))


async def get_current_actor(
    current_user: Annotated[User, Depends(get_current_user)]
) -> Actor:
    return actor_from_user(current_user)


def require_permission(permission: Permission):
    """Dependency factory rejecting users without ``permission``."""

    async def checker(actor: Annotated[Actor, Depends(get_current_actor)]) -> Actor:
        ensure_permission(actor, permission)
        return actor

    return checker


def get_feed() -> ChangeFeed:
    return get_change_feed()


def get_inventory_service(
    db: Annotated[AsyncSession, Depends(get_db)],
    feed: Annotated[ChangeFeed, Depends(get_feed)],
) -> InventoryService:
    return InventoryService(
        SqlInventoryStore(db),
        notifications=SqlNotificationSink(db, feed),
        feed=feed,
    )


def get_device_service(
    db: Annotated[AsyncSession, Depends(get_db)],
    feed: Annotated[ChangeFeed, Depends(get_feed)],
) -> DeviceService:
    return DeviceService(SqlInventoryStore(db), feed=feed)


# Type aliases for dependency injection
DbSession = Annotated[AsyncSession, Depends(get_db)]
CurrentUser = Annotated[User, Depends(get_current_user)]
CurrentActor = Annotated[Actor, Depends(get_current_actor)]
Feed = Annotated[ChangeFeed, Depends(get_feed)]
Inventory = Annotated[InventoryService, Depends(get_inventory_service)]
Devices = Annotated[DeviceService, Depends(get_device_service)]
