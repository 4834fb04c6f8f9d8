"""Device management API endpoints."""

from fastapi import APIRouter, Depends, HTTPException, Query, status

from smarthome.api.deps import require_client, service_error
from smarthome.exceptions import NotFoundError, ServiceError, ValidationError
from smarthome.models.device import Device
from smarthome.schemas.device import (
    ActionResponse,
    DeviceCreateRequest,
    DeviceListResponse,
    DeviceResponse,
    DeviceUpdateRequest,
    DialogState,
)
from smarthome.services.client_registry import ClientState

router = APIRouter(tags=["devices"])


def _device_to_response(d: Device) -> DeviceResponse:
    return DeviceResponse(
        id=d.id,
        device_type=d.device_type,
        device_name=d.device_name,
        is_connected=d.is_connected,
        created_at=d.created_at.isoformat() if d.created_at else None,
    )


def _device_name(client: ClientState, device_id: str) -> str:
    for d in client.devices.devices:
        if d.id == device_id:
            return d.device_name
    return "Device"


@router.get("/devices", response_model=DeviceListResponse)
async def list_devices(
    q: str = Query(default=""),
    client: ClientState = Depends(require_client),
):
    """Re-fetch the caller's devices (newest first) and filter by name."""
    await client.devices.fetch_devices()
    devices = client.devices.filter(q)

    empty_message = None
    if not devices:
        empty_message = (
            "No devices found matching your search"
            if q
            else "No devices added yet. Click 'Add Device' to get started!"
        )

    form = client.devices.form
    return DeviceListResponse(
        devices=[_device_to_response(d) for d in devices],
        total=len(devices),
        query=q,
        empty_message=empty_message,
        dialog=DialogState(
            open=client.devices.dialog_open,
            device_type=form.device_type,
            device_name=form.device_name,
        ),
    )


@router.post("/devices", response_model=ActionResponse, status_code=status.HTTP_201_CREATED)
async def add_device(
    request: DeviceCreateRequest,
    client: ClientState = Depends(require_client),
):
    """Add a new (disconnected) device."""
    client.devices.open_dialog()
    try:
        await client.devices.add_device(request.device_type, request.device_name)
    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except ServiceError as e:
        raise service_error(e)
    return ActionResponse(message="Device added successfully!")


async def _set_connected(client: ClientState, device_id: str, connected: bool) -> ActionResponse:
    name = _device_name(client, device_id)
    try:
        await client.devices.set_connected(device_id, connected)
    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except ServiceError as e:
        raise service_error(e)
    verb = "connected" if connected else "disconnected"
    return ActionResponse(message=f"{name} {verb} successfully!")


@router.post("/devices/{device_id}/connect", response_model=ActionResponse)
async def connect_device(
    device_id: str,
    client: ClientState = Depends(require_client),
):
    return await _set_connected(client, device_id, True)


@router.post("/devices/{device_id}/disconnect", response_model=ActionResponse)
async def disconnect_device(
    device_id: str,
    client: ClientState = Depends(require_client),
):
    """Disconnect a device (the dashboard's "Remove" button)."""
    return await _set_connected(client, device_id, False)


@router.patch("/devices/{device_id}", response_model=ActionResponse)
async def update_device(
    device_id: str,
    request: DeviceUpdateRequest,
    client: ClientState = Depends(require_client),
):
    return await _set_connected(client, device_id, request.is_connected)
