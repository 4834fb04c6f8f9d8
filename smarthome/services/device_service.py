"""Device list controller: the dashboard's view of the current identity's devices.

The list is only ever replaced wholesale by ``fetch_devices``; every mutation
is followed by a full re-fetch instead of patching the list in place.
"""

import asyncio
import logging
from dataclasses import dataclass

from pydantic import ValidationError as RowValidationError

from smarthome.exceptions import NotFoundError, ServiceError, ValidationError
from smarthome.models.device import DEVICES_TABLE, Device
from smarthome.models.user import AuthUser
from smarthome.services.backend_client import TableClient
from smarthome.services.session_manager import SessionManager

logger = logging.getLogger(__name__)

ADD_ACTION = "add"


@dataclass
class DeviceForm:
    """Fields of the "Add Device" dialog."""

    device_type: str = ""
    device_name: str = ""

    def clear(self) -> None:
        self.device_type = ""
        self.device_name = ""


def filter_devices(devices: list[Device], query: str) -> list[Device]:
    """Case-insensitive substring match on device name, order preserved."""
    needle = query.lower()
    if not needle:
        return list(devices)
    return [d for d in devices if needle in d.device_name.lower()]


class DeviceListController:
    def __init__(self, sessions: SessionManager, tables: TableClient):
        self._sessions = sessions
        self._tables = tables
        self._devices: list[Device] = []
        self._generation = 0
        self._busy: set[str] = set()
        self._tasks: set[asyncio.Task] = set()
        self.dialog_open = False
        self.form = DeviceForm()
        self._unsubscribe = sessions.subscribe(self._on_identity_change)

    @property
    def devices(self) -> list[Device]:
        return list(self._devices)

    @property
    def busy(self) -> bool:
        return bool(self._busy)

    def is_busy(self, action: str) -> bool:
        return action in self._busy

    # --- Identity ---

    def _on_identity_change(self, user: AuthUser | None) -> None:
        # Anything still in flight was issued for the previous identity
        self._generation += 1
        self._devices = []
        if user is None:
            self.close_dialog()
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        task = loop.create_task(self.fetch_devices())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def wait_pending(self) -> None:
        """Wait for fetches scheduled by identity changes."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks))

    def close(self) -> None:
        self._unsubscribe()
        for task in self._tasks:
            task.cancel()
        self._tasks.clear()

    # --- Queries ---

    async def fetch_devices(self) -> None:
        """Replace the list with the identity's devices, newest first."""
        user = self._sessions.user
        if user is None:
            return

        self._generation += 1
        generation = self._generation
        try:
            rows = await self._tables.select(
                DEVICES_TABLE,
                eq={"user_id": user.id},
                order="created_at",
                descending=True,
            )
            devices = [Device.model_validate(row) for row in rows]
        except (ServiceError, RowValidationError) as e:
            logger.error("Error fetching devices: %s", e)
            return

        if generation != self._generation:
            logger.debug("Discarding stale device list (fetch #%d, latest #%d)", generation, self._generation)
            return
        self._devices = devices

    def filter(self, query: str) -> list[Device]:
        return filter_devices(self._devices, query)

    # --- Add dialog ---

    def open_dialog(self) -> None:
        self.dialog_open = True

    def close_dialog(self) -> None:
        self.dialog_open = False

    # --- Mutations ---

    def _begin(self, action: str) -> None:
        if action in self._busy:
            raise ValidationError("Please wait for the current action to finish")
        self._busy.add(action)

    async def add_device(self, device_type: str, device_name: str) -> None:
        """Insert a disconnected device, then re-fetch.

        On failure the dialog stays open with the entered values.
        """
        self.form.device_type = device_type
        self.form.device_name = device_name
        user = self._sessions.user
        if user is None or not device_type or not device_name:
            raise ValidationError("Please fill in all fields")

        self._begin(ADD_ACTION)
        try:
            await self._tables.insert(
                DEVICES_TABLE,
                {
                    "user_id": user.id,
                    "device_type": device_type,
                    "device_name": device_name,
                    "is_connected": False,
                },
            )
        finally:
            self._busy.discard(ADD_ACTION)

        logger.info("Added %s device %r for %s", device_type, device_name, user.id)
        self.close_dialog()
        self.form.clear()
        await self.fetch_devices()

    async def set_connected(self, device_id: str, connected: bool) -> None:
        """Update one device's flag, then re-fetch.

        Raises ``NotFoundError`` when no device with that id is visible to
        the current identity.
        """
        if self._sessions.user is None:
            raise ValidationError("Not signed in")

        self._begin(device_id)
        try:
            rows = await self._tables.update(
                DEVICES_TABLE,
                {"is_connected": connected},
                eq={"id": device_id},
            )
        finally:
            self._busy.discard(device_id)

        if not rows:
            raise NotFoundError(f"Device {device_id} not found")
        logger.info("Device %s %s", device_id, "connected" if connected else "disconnected")
        await self.fetch_devices()

    async def connect(self, device_id: str) -> None:
        await self.set_connected(device_id, True)

    async def disconnect(self, device_id: str) -> None:
        await self.set_connected(device_id, False)
