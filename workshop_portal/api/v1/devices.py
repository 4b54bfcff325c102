"""Devices API - disposal-bound devices, stripping and removal."""

from typing import Annotated, Optional

from fastapi import APIRouter, Body, Depends, Query

from workshop_portal.api.deps import CurrentActor, Devices, require_permission
from workshop_portal.schemas.device import (
    DeviceCreate,
    DeviceListResponse,
    RemovalRequest,
    StripPartCreate,
)
from workshop_portal.security.rbac import Permission
from workshop_portal.services.inventory.types import Actor, DeviceRecord

router = APIRouter()


@router.get("", response_model=DeviceListResponse)
async def list_devices(
    devices: Devices,
    actor: CurrentActor,
    search: Optional[str] = Query(None, max_length=100),
):
    records = await devices.list_devices(search)
    return DeviceListResponse(items=records, total=len(records))


@router.get("/available", response_model=DeviceListResponse)
async def list_available_devices(
    devices: Devices,
    actor: CurrentActor,
    search: Optional[str] = Query(None, max_length=100),
):
    """Devices still approved for disposal."""
    records = await devices.available_devices(search)
    return DeviceListResponse(items=records, total=len(records))


@router.post("", response_model=DeviceRecord, status_code=201)
async def create_device(
    body: DeviceCreate,
    devices: Devices,
    actor: Annotated[Actor, Depends(require_permission(Permission.MANAGE_INVENTORY))],
):
    return await devices.add_device(
        actor,
        model=body.model,
        serial_number=body.serial_number,
        customer_name=body.customer_name,
        condition=body.condition,
        comments=body.comments,
    )


@router.get("/{device_id}", response_model=DeviceRecord)
async def get_device(device_id: str, devices: Devices, actor: CurrentActor):
    return await devices.get_device(device_id)


@router.post("/{device_id}/strip", response_model=DeviceRecord)
async def strip_part(
    device_id: str,
    body: StripPartCreate,
    devices: Devices,
    actor: CurrentActor,
):
    """Record a part taken from the device."""
    return await devices.strip_part(device_id, actor, body.part_name, body.part_id)


@router.delete("/{device_id}", response_model=DeviceRecord)
async def remove_device(
    device_id: str,
    body: Annotated[RemovalRequest, Body()],
    devices: Devices,
    actor: Annotated[Actor, Depends(require_permission(Permission.REMOVE_DEVICES))],
):
    """Mark a device removed (admin only). The reason can never be changed."""
    return await devices.remove_device(device_id, body.reason, actor)
