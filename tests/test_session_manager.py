"""Session manager: handle derivation, sign-in/up/out, dual-path initialization."""

import asyncio

import pytest

from fake_service import MOBILE, PASSWORD, FakeHostedService, make_backend
from smarthome.exceptions import AuthenticationError
from smarthome.models.user import AuthSession, AuthUser
from smarthome.services.session_manager import SessionManager, derive_handle


def _session(user_id: str) -> AuthSession:
    return AuthSession(access_token=f"token-{user_id}", user=AuthUser(id=user_id))


class GatedAuth:
    """Auth stub whose session query blocks until released."""

    def __init__(self, result: AuthSession | None = None):
        self.result = result
        self.gate = asyncio.Event()
        self.listeners = []

    def on_auth_state_change(self, callback):
        self.listeners.append(callback)
        auth = self

        class _Sub:
            def unsubscribe(self):
                auth.listeners.remove(callback)

        return _Sub()

    def emit(self, event, session):
        for callback in list(self.listeners):
            callback(event, session)

    async def get_session(self):
        await self.gate.wait()
        return self.result


@pytest.mark.parametrize("mobile", ["5551234567", "+44 7700 900123", "0", ""])
def test_handle_is_mobile_plus_app_domain(mobile):
    assert derive_handle(mobile) == mobile + "@smarthome.app"
    assert derive_handle(mobile) == derive_handle(mobile)


def test_sign_in_uses_derived_handle(service, sessions, registered):
    async def scenario():
        await sessions.initialize()
        await sessions.sign_in(MOBILE, PASSWORD)

    asyncio.run(scenario())
    assert sessions.is_authenticated
    assert sessions.user.id == registered
    assert sessions.user.email == f"{MOBILE}@smarthome.app"


def test_sign_in_error_is_passed_through(service, sessions, registered):
    async def scenario():
        await sessions.initialize()
        with pytest.raises(AuthenticationError) as exc:
            await sessions.sign_in(MOBILE, "wrong")
        return exc.value

    err = asyncio.run(scenario())
    assert str(err) == "Invalid login credentials"
    assert sessions.user is None
    assert service.count("POST", "/auth/v1/token") == 1  # no retry


def test_sign_up_writes_profile(service, sessions):
    asyncio.run(sessions.sign_up(MOBILE, PASSWORD))

    assert sessions.is_authenticated
    assert service.tables["users_profiles"] == [
        {"user_id": sessions.user.id, "mobile_number": MOBILE}
    ]
    assert service.last_redirect == "/"
    assert f"{MOBILE}@smarthome.app" in service.users


def test_sign_up_succeeds_when_profile_insert_fails(service, sessions, caplog):
    service.fail("POST", "users_profiles", message="duplicate key value")

    asyncio.run(sessions.sign_up(MOBILE, PASSWORD))

    assert sessions.is_authenticated
    assert service.tables["users_profiles"] == []
    assert "duplicate key value" in caplog.text


def test_sign_up_without_session_still_succeeds():
    # Email confirmation on: no session, and the anonymous profile write is
    # refused by row-level security.
    service = FakeHostedService(confirm_email=True)
    backend = make_backend(service)
    manager = SessionManager(backend.auth, backend.tables)

    asyncio.run(manager.sign_up(MOBILE, PASSWORD))

    assert not manager.is_authenticated
    assert service.count("POST", "/rest/v1/users_profiles") == 1
    assert service.tables["users_profiles"] == []


def test_sign_up_existing_user_fails(sessions, registered):
    with pytest.raises(AuthenticationError, match="User already registered"):
        asyncio.run(sessions.sign_up(MOBILE, PASSWORD))


def test_sign_out_clears_identity(service, sessions, registered):
    async def scenario():
        await sessions.initialize()
        await sessions.sign_in(MOBILE, PASSWORD)
        await sessions.sign_out()

    asyncio.run(scenario())
    assert sessions.user is None
    assert service.count("POST", "/auth/v1/logout") == 1
    assert service.access_tokens == {}


def test_sign_out_clears_identity_when_remote_logout_fails(service, sessions, registered):
    service.failures[("POST", "logout")] = (500, {"msg": "boom"})

    async def scenario():
        await sessions.initialize()
        await sessions.sign_in(MOBILE, PASSWORD)
        await sessions.sign_out()

    asyncio.run(scenario())
    assert sessions.user is None


def test_loading_until_first_session_check():
    auth = GatedAuth(result=None)
    manager = SessionManager(auth, tables=None)

    async def scenario():
        init = asyncio.create_task(manager.initialize())
        await asyncio.sleep(0)
        assert manager.loading
        auth.gate.set()
        await init

    asyncio.run(scenario())
    assert not manager.loading
    assert manager.user is None


def test_notification_after_session_query_wins():
    # The query was issued first; its late, empty answer must not undo the
    # sign-in notification that arrived while it was in flight.
    auth = GatedAuth(result=None)
    manager = SessionManager(auth, tables=None)

    async def scenario():
        init = asyncio.create_task(manager.initialize())
        await asyncio.sleep(0)
        auth.emit("SIGNED_IN", _session("u1"))
        assert manager.user.id == "u1"
        assert not manager.loading
        auth.gate.set()
        await init

    asyncio.run(scenario())
    assert manager.user.id == "u1"


def test_notification_after_completed_query_applies():
    auth = GatedAuth(result=_session("u1"))
    auth.gate.set()
    manager = SessionManager(auth, tables=None)

    async def scenario():
        await manager.initialize()
        assert manager.user.id == "u1"
        auth.emit("SIGNED_OUT", None)

    asyncio.run(scenario())
    assert manager.user is None


def test_observers_called_once_per_identity_change():
    auth = GatedAuth(result=None)
    auth.gate.set()
    manager = SessionManager(auth, tables=None)
    seen = []
    manager.subscribe(lambda user: seen.append(user.id if user else None))

    async def scenario():
        await manager.initialize()
        auth.emit("SIGNED_IN", _session("u1"))
        auth.emit("TOKEN_REFRESHED", _session("u1"))
        auth.emit("SIGNED_IN", _session("u1"))
        auth.emit("SIGNED_OUT", None)

    asyncio.run(scenario())
    assert seen == ["u1", None]


def test_close_unsubscribes_from_auth():
    auth = GatedAuth(result=None)
    auth.gate.set()
    manager = SessionManager(auth, tables=None)

    asyncio.run(manager.initialize())
    manager.close()
    auth.emit("SIGNED_IN", _session("u1"))

    assert auth.listeners == []
    assert manager.user is None
