"""Per-browser client state.

Each browser that signs in or signs up gets its own backend client, session
manager and device list, looked up by the client id carried in its signed
cookie. Anonymous visitors hold no state here.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Callable

import aiohttp

from smarthome.config import settings
from smarthome.services.backend_client import BackendClient
from smarthome.services.device_service import DeviceListController
from smarthome.services.session_manager import SessionManager
from smarthome.utils.security import new_client_id

logger = logging.getLogger(__name__)


@dataclass
class ClientState:
    id: str
    backend: BackendClient
    sessions: SessionManager
    devices: DeviceListController
    created_at: float = field(default_factory=time.monotonic)
    last_seen: float = field(default_factory=time.monotonic)

    async def close(self) -> None:
        self.devices.close()
        self.sessions.close()
        await self.backend.close()


class ClientRegistry:
    """Owns every client; they share one HTTP session.

    A client is dropped on sign-out, once its cookie has expired, or after
    ``max_idle`` seconds without a request. Expired and idle clients are
    swept whenever a new client is created.
    """

    def __init__(
        self,
        websession: aiohttp.ClientSession | None = None,
        backend_factory: Callable[[], BackendClient] | None = None,
        max_idle: float | None = None,
    ):
        self._websession = websession
        self._backend_factory = backend_factory or (lambda: BackendClient.from_settings(self._websession))
        self._max_idle = settings.client_idle_timeout if max_idle is None else max_idle
        self._clients: dict[str, ClientState] = {}

    def __len__(self) -> int:
        return len(self._clients)

    def get(self, client_id: str | None) -> ClientState | None:
        if not client_id:
            return None
        client = self._clients.get(client_id)
        if client is not None:
            client.last_seen = time.monotonic()
        return client

    async def create(self) -> ClientState:
        await self.evict_stale()
        backend = self._backend_factory()
        sessions = SessionManager(backend.auth, backend.tables)
        devices = DeviceListController(sessions, backend.tables)
        client = ClientState(new_client_id(), backend, sessions, devices)
        self._clients[client.id] = client
        await sessions.initialize()
        logger.info("Created client %s (%d active)", client.id, len(self._clients))
        return client

    async def discard(self, client_id: str) -> None:
        client = self._clients.pop(client_id, None)
        if client is not None:
            await client.close()
            logger.debug("Dropped client %s", client_id)

    async def evict_stale(self) -> int:
        """Drop clients whose cookie has expired or that have gone idle."""
        now = time.monotonic()
        stale = [
            c.id
            for c in self._clients.values()
            if now - c.created_at > settings.cookie_max_age or now - c.last_seen > self._max_idle
        ]
        for client_id in stale:
            await self.discard(client_id)
        if stale:
            logger.info("Evicted %d stale clients (%d active)", len(stale), len(self._clients))
        return len(stale)

    async def close(self) -> None:
        for client in list(self._clients.values()):
            await client.close()
        self._clients.clear()
        if self._websession is not None:
            await self._websession.close()
