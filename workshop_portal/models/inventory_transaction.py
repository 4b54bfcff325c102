"""Append-only ledger of inventory movements."""
from sqlalchemy import Column, String, Integer, DateTime, ForeignKey, JSON, event

from workshop_portal.database import Base
from workshop_portal.exceptions import InvalidTransactionError
from workshop_portal.utils.timestamps import utcnow


class InventoryTransaction(Base):
    """One ledger entry. Rows are never updated or deleted."""

    __tablename__ = "inventory_transactions"

    # Autoincrement id doubles as insertion order
    id = Column(Integer, primary_key=True, autoincrement=True)
    item_id = Column(String(36), ForeignKey("inventory_items.id"), nullable=False, index=True)
    item_kind = Column(String(10), nullable=False)
    type = Column(String(10), nullable=False, index=True)  # CLAIM, REQUEST, COLLECT, RETURN, ADD
    user_id = Column(Integer, ForeignKey("api_users.id"), nullable=False, index=True)
    user_name = Column(String(255), nullable=False)
    quantity_delta = Column(Integer, nullable=False)
    # The CLAIM a COLLECT or RETURN closes
    claim_id = Column(Integer, ForeignKey("inventory_transactions.id"), nullable=True)
    # "metadata" is reserved on declarative classes
    extra_data = Column("metadata", JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)

    def __repr__(self):
        return f"<InventoryTransaction {self.id} {self.type} item={self.item_id} delta={self.quantity_delta}>"


@event.listens_for(InventoryTransaction, "before_update")
def prevent_transaction_update(mapper, connection, target):
    raise InvalidTransactionError(f"Ledger entry {target.id} is immutable and cannot be modified")


@event.listens_for(InventoryTransaction, "before_delete")
def prevent_transaction_delete(mapper, connection, target):
    raise InvalidTransactionError(f"Ledger entry {target.id} is immutable and cannot be deleted")
