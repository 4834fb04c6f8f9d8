"""Smart Home Dashboard data models."""

from smarthome.models.device import DEVICES_TABLE, Device
from smarthome.models.user import PROFILES_TABLE, AuthSession, AuthUser, UserProfile

__all__ = [
    "DEVICES_TABLE",
    "PROFILES_TABLE",
    "AuthSession",
    "AuthUser",
    "Device",
    "UserProfile",
]
