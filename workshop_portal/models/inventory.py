"""Parts and toners, stored in one table and told apart by ``kind``.

status, quantities and the claimed_*/requested_* columns are a cache of the
item's ledger history and are only written through the inventory service.
"""
from sqlalchemy import Column, String, DateTime, Integer, JSON
import uuid

from workshop_portal.database import Base
from workshop_portal.utils.timestamps import utcnow


class InventoryItem(Base):
    """Common columns for every quantity-bearing item."""

    __tablename__ = "inventory_items"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    kind = Column(String(10), nullable=False, index=True)  # PART, TONER

    # Cached lifecycle state
    status = Column(String(30), nullable=False, default="AVAILABLE", index=True)
    quantity = Column(Integer, nullable=False, default=0)
    available_quantity = Column(Integer, nullable=False, default=0)
    claimed_by_name = Column(String(255), nullable=True)
    claimed_at = Column(DateTime(timezone=True), nullable=True)
    requested_by_name = Column(String(255), nullable=True)
    requested_at = Column(DateTime(timezone=True), nullable=True)

    # Compatible device model names
    for_device_models = Column(JSON, nullable=True)

    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow)

    __mapper_args__ = {"polymorphic_on": kind}

    def __repr__(self):
        return f"<{self.kind} {self.id} {self.available_quantity}/{self.quantity}>"


class Part(InventoryItem):
    name = Column(String(255), nullable=True)
    part_number = Column(String(100), nullable=True, index=True)

    __mapper_args__ = {"polymorphic_identity": "PART"}


class Toner(InventoryItem):
    model = Column(String(255), nullable=True)
    edp_code = Column(String(100), nullable=True, index=True)
    color = Column(String(20), nullable=True)  # BLACK, CYAN, MAGENTA, YELLOW
    page_yield = Column("yield", Integer, nullable=True)

    __mapper_args__ = {"polymorphic_identity": "TONER"}


ITEM_MODELS = {"PART": Part, "TONER": Toner}
