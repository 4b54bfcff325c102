"""Inventory domain records.

Parts and toners share one lifecycle and are told apart by their ``kind``
tag. Records are pydantic models so they validate straight from ORM rows
(``from_attributes``) and serialize straight into API responses.
"""

from datetime import datetime
from enum import Enum
from typing import Annotated, Literal, Optional, Union

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, field_validator

from workshop_portal.security.rbac import Role
from workshop_portal.utils.timestamps import ensure_utc

UTCDateTime = Annotated[datetime, AfterValidator(ensure_utc)]


class ItemKind(str, Enum):
    PART = "PART"
    TONER = "TONER"


class ItemStatus(str, Enum):
    AVAILABLE = "AVAILABLE"
    CLAIMED = "CLAIMED"
    PENDING_COLLECTION = "PENDING_COLLECTION"
    COLLECTED = "COLLECTED"
    REQUESTED = "REQUESTED"
    REMOVED = "REMOVED"


class DeviceStatus(str, Enum):
    APPROVED_FOR_DISPOSAL = "APPROVED_FOR_DISPOSAL"
    REMOVED = "REMOVED"


class DeviceCondition(str, Enum):
    GOOD = "GOOD"
    FAIR = "FAIR"
    POOR = "POOR"


class TonerColor(str, Enum):
    BLACK = "BLACK"
    CYAN = "CYAN"
    MAGENTA = "MAGENTA"
    YELLOW = "YELLOW"


class TransactionType(str, Enum):
    CLAIM = "CLAIM"
    REQUEST = "REQUEST"
    COLLECT = "COLLECT"
    RETURN = "RETURN"
    ADD = "ADD"


class NotificationType(str, Enum):
    PART_ARRIVAL = "PART_ARRIVAL"
    PART_AVAILABLE = "PART_AVAILABLE"
    PART_CLAIMED = "PART_CLAIMED"
    PART_COLLECTED = "PART_COLLECTED"
    GENERAL = "GENERAL"


class Actor(BaseModel):
    """The authenticated user an operation is performed by."""

    model_config = ConfigDict(frozen=True)

    id: int
    name: str
    role: Role = Role.ENGINEER


class InventoryItemBase(BaseModel):
    """Fields shared by every quantity-bearing item.

    status, quantity, available_quantity and the claimed_*/requested_*
    fields are a cache of the item's ledger history; see ledger.replay.
    """

    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

    id: str
    status: ItemStatus = ItemStatus.AVAILABLE
    quantity: int = Field(0, ge=0)
    available_quantity: int = Field(0, ge=0)
    for_device_models: list[str] = Field(default_factory=list)
    claimed_by_name: Optional[str] = None
    claimed_at: Optional[UTCDateTime] = None
    requested_by_name: Optional[str] = None
    requested_at: Optional[UTCDateTime] = None
    created_at: Optional[UTCDateTime] = None
    updated_at: Optional[UTCDateTime] = None

    @field_validator("for_device_models", mode="before")
    @classmethod
    def default_device_models(cls, v):
        return v or []

    @property
    def item_kind(self) -> ItemKind:
        return ItemKind(self.kind)

    @property
    def display_name(self) -> str:
        raise NotImplementedError

    def search_fields(self) -> tuple[str, ...]:
        raise NotImplementedError


class PartRecord(InventoryItemBase):
    kind: Literal["PART"] = "PART"
    name: str
    part_number: str

    @property
    def display_name(self) -> str:
        return self.name

    def search_fields(self) -> tuple[str, ...]:
        return (self.id, self.name, self.part_number, *self.for_device_models)


class TonerRecord(InventoryItemBase):
    kind: Literal["TONER"] = "TONER"
    model: str
    edp_code: str
    color: TonerColor
    page_yield: int = Field(0, ge=0, serialization_alias="yield")

    @property
    def display_name(self) -> str:
        return f"{self.model} ({self.color.value.title()})"

    def search_fields(self) -> tuple[str, ...]:
        return (self.id, self.model, self.edp_code, self.color.value, *self.for_device_models)


InventoryItem = Annotated[Union[PartRecord, TonerRecord], Field(discriminator="kind")]

RECORD_TYPES: dict[ItemKind, type[InventoryItemBase]] = {
    ItemKind.PART: PartRecord,
    ItemKind.TONER: TonerRecord,
}


def item_from_row(row) -> InventoryItemBase:
    """Build the record matching an ORM row's kind tag."""
    return RECORD_TYPES[ItemKind(row.kind)].model_validate(row)


class StrippedPartRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    part_id: Optional[str] = None
    part_name: str
    stripped_at: UTCDateTime
    stripped_by_name: Optional[str] = None


class DeviceRecord(BaseModel):
    """A device approved for disposal, stripped for parts before removal."""

    model_config = ConfigDict(from_attributes=True)

    kind: Literal["DEVICE"] = "DEVICE"
    id: str
    model: str
    serial_number: str
    customer_name: str = "Unknown"
    condition: DeviceCondition = DeviceCondition.FAIR
    comments: str = ""
    status: DeviceStatus = DeviceStatus.APPROVED_FOR_DISPOSAL
    stripped_parts: list[StrippedPartRecord] = Field(default_factory=list)
    removal_reason: Optional[str] = None
    removed_at: Optional[UTCDateTime] = None
    removed_by_name: Optional[str] = None
    created_at: Optional[UTCDateTime] = None

    @field_validator("comments", "customer_name", mode="before")
    @classmethod
    def blank_for_null(cls, v, info):
        if v is None:
            return "Unknown" if info.field_name == "customer_name" else ""
        return v

    @property
    def display_name(self) -> str:
        return f"{self.model} {self.serial_number}"

    def search_fields(self) -> tuple[str, ...]:
        return (self.id, self.model, self.serial_number, self.customer_name)


class LedgerEntry(BaseModel):
    """One immutable ledger line.

    COLLECT and RETURN entries name the claimant as user_id and point at the
    CLAIM they close through claim_id.
    """

    model_config = ConfigDict(frozen=True, from_attributes=True)

    id: Optional[int] = None
    item_id: str
    item_kind: ItemKind
    type: TransactionType
    user_id: int
    user_name: str
    quantity_delta: int
    created_at: UTCDateTime
    claim_id: Optional[int] = None
    extra_data: Optional[dict] = Field(default=None, serialization_alias="metadata")


class ActivityRow(BaseModel):
    """A ledger entry joined with the current record of its item."""

    entry: LedgerEntry
    item: InventoryItem
    pending_collection: bool = False


class TransitionResult(BaseModel):
    """Item state after a protocol operation, with the entry it wrote."""

    item: InventoryItem
    entry: LedgerEntry
