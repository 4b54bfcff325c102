from typing import Optional

from pydantic import BaseModel, Field

from workshop_portal.services.inventory.types import DeviceCondition, DeviceRecord


class DeviceCreate(BaseModel):
    model: str = Field(..., min_length=1, max_length=255)
    serial_number: str = Field(..., min_length=1, max_length=100)
    customer_name: Optional[str] = None
    condition: DeviceCondition = DeviceCondition.FAIR
    comments: Optional[str] = None


class RemovalRequest(BaseModel):
    reason: str = Field(..., min_length=1)


class StripPartCreate(BaseModel):
    part_name: str = Field(..., min_length=1, max_length=255)
    part_id: Optional[str] = None


class DeviceListResponse(BaseModel):
    items: list[DeviceRecord]
    total: int
