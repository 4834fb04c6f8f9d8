"""Device model (rows of the hosted ``devices`` table)."""

from datetime import datetime
from typing import Optional

from sqlmodel import Field, SQLModel

DEVICES_TABLE = "devices"


class Device(SQLModel):
    id: str
    user_id: str
    device_type: str  # 'TV' | 'AC' | 'Camera'
    device_name: str
    is_connected: bool = Field(default=False)
    created_at: Optional[datetime] = None
