"""Devices approved for disposal and the parts stripped from them."""
from sqlalchemy import Column, String, DateTime, Text, Integer, ForeignKey
from sqlalchemy.orm import relationship, validates
import uuid

from workshop_portal.database import Base
from workshop_portal.exceptions import AlreadyRemovedError
from workshop_portal.utils.timestamps import utcnow


class Device(Base):
    __tablename__ = "devices"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    model = Column(String(255), nullable=False)
    serial_number = Column(String(100), nullable=False, index=True)
    customer_name = Column(String(255), default="Unknown")
    condition = Column(String(10), default="FAIR")  # GOOD, FAIR, POOR
    comments = Column(Text, default="")
    status = Column(String(30), nullable=False, default="APPROVED_FOR_DISPOSAL", index=True)

    # Set once on removal
    removal_reason = Column(Text, nullable=True)
    removed_at = Column(DateTime(timezone=True), nullable=True)
    removed_by_name = Column(String(255), nullable=True)

    created_at = Column(DateTime(timezone=True), default=utcnow)

    stripped_parts = relationship(
        "StrippedPart",
        back_populates="device",
        order_by="StrippedPart.id",
        lazy="selectin",
    )

    @validates("removal_reason")
    def validate_removal_reason(self, key, value):
        if self.removal_reason is not None and value != self.removal_reason:
            raise AlreadyRemovedError(f"Removal reason of device {self.id} cannot be changed")
        return value

    def __repr__(self):
        return f"<Device {self.model} {self.serial_number} {self.status}>"


class StrippedPart(Base):
    """Append-only log entry of a part taken from a device."""

    __tablename__ = "device_stripped_parts"

    id = Column(Integer, primary_key=True, autoincrement=True)
    device_id = Column(String(36), ForeignKey("devices.id"), nullable=False, index=True)
    part_id = Column(String(36), nullable=True)
    part_name = Column(String(255), nullable=False)
    stripped_by_name = Column(String(255), nullable=True)
    stripped_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    device = relationship("Device", back_populates="stripped_parts")
