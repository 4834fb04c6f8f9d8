import pytest

from fake_service import MOBILE, PASSWORD, FakeHostedService, make_backend
from smarthome.services.device_service import DeviceListController
from smarthome.services.session_manager import SessionManager



@pytest.fixture
def service():
    return FakeHostedService()


@pytest.fixture
def backend(service):
    return make_backend(service)


@pytest.fixture
def sessions(backend):
    manager = SessionManager(backend.auth, backend.tables)
    yield manager
    manager.close()


@pytest.fixture
def controller(sessions, backend):
    devices = DeviceListController(sessions, backend.tables)
    yield devices
    devices.close()


@pytest.fixture
def registered(service):
    """A user who has already signed up, with no devices."""
    return service.add_user(f"{MOBILE}@smarthome.app", PASSWORD)
