"""Device request/response schemas."""

from typing import Literal, Optional

from pydantic import BaseModel


class DeviceResponse(BaseModel):
    id: str
    device_type: str
    device_name: str
    is_connected: bool
    created_at: Optional[str]


class DialogState(BaseModel):
    open: bool
    device_type: str
    device_name: str


class DeviceListResponse(BaseModel):
    devices: list[DeviceResponse]
    total: int
    query: str
    empty_message: Optional[str] = None
    dialog: DialogState


class DeviceCreateRequest(BaseModel):
    # "" means not chosen yet and is reported as a missing field
    device_type: Literal["", "TV", "AC", "Camera"] = ""
    device_name: str = ""


class DeviceUpdateRequest(BaseModel):
    is_connected: bool


class ActionResponse(BaseModel):
    message: str
