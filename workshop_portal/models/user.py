from sqlalchemy import Column, Integer, String, Boolean, DateTime

from workshop_portal.database import Base
from workshop_portal.security.rbac import Role
from workshop_portal.utils.timestamps import utcnow


class User(Base):
    """Portal user. Accounts are created by administrators, never self-registered."""

    __tablename__ = "api_users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    hashed_password = Column(String(255), nullable=False)
    first_name = Column(String(100))
    last_name = Column(String(100))
    rza_number = Column(String(20), unique=True, nullable=True)  # employee number
    role = Column(String(20), default=Role.ENGINEER.value, nullable=False)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow)

    def __repr__(self):
        return f"<User {self.email}>"

    @property
    def full_name(self) -> str:
        name = " ".join(part for part in (self.first_name, self.last_name) if part)
        return name or self.email
