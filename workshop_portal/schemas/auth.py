from pydantic import BaseModel, EmailStr, Field
from datetime import datetime
from typing import Optional

from workshop_portal.security.rbac import Role, get_user_permissions


class UserBase(BaseModel):
    """Base user schema."""

    email: EmailStr
    first_name: Optional[str] = None
    last_name: Optional[str] = None


class UserCreate(UserBase):
    """Schema for creating a user from the admin script."""

    password: str = Field(..., min_length=8)
    rza_number: Optional[str] = None
    role: Role = Role.ENGINEER


class UserResponse(UserBase):
    id: int
    rza_number: Optional[str] = None
    role: Role
    is_active: bool
    created_at: Optional[datetime] = None
    permissions: list[str] = Field(default_factory=list)

    @classmethod
    def from_db_user(cls, user) -> "UserResponse":
        """Create UserResponse from database User model."""
        return cls(
            id=user.id,
            email=user.email,
            first_name=user.first_name,
            last_name=user.last_name,
            rza_number=user.rza_number,
            role=Role(user.role),
            is_active=user.is_active,
            created_at=user.created_at,
            permissions=sorted(p.value for p in get_user_permissions(user)),
        )


class AuthMeResponse(BaseModel):
    user: UserResponse


class Token(BaseModel):
    """JWT token response."""

    access_token: str
    token_type: str = "bearer"


class TokenData(BaseModel):
    """Data encoded in JWT token."""

    user_id: Optional[int] = None
    email: Optional[str] = None


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class UserListResponse(BaseModel):
    items: list[UserResponse]
    total: int
