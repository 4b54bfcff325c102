from workshop_portal.models.user import User
from workshop_portal.models.inventory import InventoryItem, Part, Toner
from workshop_portal.models.inventory_transaction import InventoryTransaction
from workshop_portal.models.device import Device, StrippedPart
from workshop_portal.models.notification import Notification

__all__ = [
    "User",
    "InventoryItem",
    "Part",
    "Toner",
    "InventoryTransaction",
    "Device",
    "StrippedPart",
    "Notification",
]
