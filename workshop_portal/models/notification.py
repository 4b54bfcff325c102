"""In-app notifications for portal users."""

from sqlalchemy import Column, String, DateTime, Text, Integer, Boolean, ForeignKey, JSON
import uuid

from workshop_portal.database import Base
from workshop_portal.utils.timestamps import utcnow


class Notification(Base):
    """Notification for one user. Only the read flag ever changes."""

    __tablename__ = "notifications"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()), index=True)

    user_id = Column(Integer, ForeignKey("api_users.id"), nullable=False, index=True)

    # PART_ARRIVAL, PART_AVAILABLE, PART_CLAIMED, PART_COLLECTED, GENERAL
    type = Column(String(50), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)

    read = Column(Boolean, default=False, index=True)
    read_at = Column(DateTime(timezone=True), nullable=True)

    # item_id, shipment_number, etc.
    extra_data = Column("metadata", JSON, nullable=True)

    created_at = Column(DateTime(timezone=True), default=utcnow, index=True)

    def __repr__(self):
        return f"<Notification {self.type}: {self.title[:30]}>"
