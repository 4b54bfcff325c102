"""Request and response bodies for the items and transactions endpoints."""

from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from workshop_portal.services.inventory.types import (
    ActivityRow,
    InventoryItem,
    LedgerEntry,
    TonerColor,
)


class ItemCreateBase(BaseModel):
    quantity: int = Field(1, ge=1)
    for_device_models: list[str] = Field(default_factory=list)


class PartCreate(ItemCreateBase):
    kind: Literal["PART"] = "PART"
    name: str = Field(..., min_length=1, max_length=255)
    part_number: str = Field(..., min_length=1, max_length=100)


class TonerCreate(ItemCreateBase):
    model_config = ConfigDict(populate_by_name=True)

    kind: Literal["TONER"] = "TONER"
    model: str = Field(..., min_length=1, max_length=255)
    edp_code: str = Field(..., min_length=1, max_length=100)
    color: TonerColor
    page_yield: int = Field(0, ge=0, alias="yield")


ItemCreate = Annotated[Union[PartCreate, TonerCreate], Field(discriminator="kind")]


class ClaimDetails(BaseModel):
    """Optional context recorded on a CLAIM entry."""

    serial_number: Optional[str] = None
    client: Optional[str] = None
    meter_reading: Optional[int] = Field(None, ge=0)
    notes: Optional[str] = None


class RequestDetails(BaseModel):
    """What the engineer needs the part for."""

    client: Optional[str] = None
    device_serial: Optional[str] = None
    quantity: int = Field(1, ge=1)
    notes: Optional[str] = None


class CollectRequest(BaseModel):
    # Admins may confirm on behalf of the claimant
    claimant_id: Optional[int] = None


class ReturnRequest(BaseModel):
    reason: str = Field(..., min_length=1)
    claimant_id: Optional[int] = None


class ArrivalCreate(BaseModel):
    quantity: int = Field(..., ge=1)
    shipment_number: str = Field(..., min_length=1, max_length=100)
    engineer_id: Optional[int] = None


class ItemListResponse(BaseModel):
    items: list[InventoryItem]
    total: int


class TransitionResponse(BaseModel):
    item: InventoryItem
    transaction: LedgerEntry


class LedgerListResponse(BaseModel):
    items: list[LedgerEntry]
    total: int
    hours: Optional[int] = None


class ActivityListResponse(BaseModel):
    items: list[ActivityRow]
    total: int
    hours: int
