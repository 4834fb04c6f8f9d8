"""Session manager: the current identity of one browser client.

Besides the results of its own sign-in/up/out calls, two paths feed the
identity: auth state change notifications from the backend client, and one
explicit "current session" query at startup. All of them converge on
``_apply``. Every update is stamped when it is issued, and an update older
than the last applied one is dropped, so the result does not depend on which
call completes first.
"""

import itertools
import logging
from typing import Callable

from smarthome.config import settings
from smarthome.exceptions import ServiceError
from smarthome.models.user import PROFILES_TABLE, AuthSession, AuthUser, UserProfile
from smarthome.services.backend_client import AuthClient, Subscription, TableClient

logger = logging.getLogger(__name__)

IdentityCallback = Callable[["AuthUser | None"], None]


def derive_handle(mobile_number: str) -> str:
    """Login handle for the email-shaped auth API: ``<mobile>@<domain>``."""
    return f"{mobile_number}@{settings.handle_domain}"


class SessionManager:
    def __init__(self, auth: AuthClient, tables: TableClient):
        self._auth = auth
        self._tables = tables
        self._session: AuthSession | None = None
        self._loading = True
        self._stamps = itertools.count(1)
        self._applied_stamp = 0
        self._subscription: Subscription | None = None
        self._observers: dict[int, IdentityCallback] = {}
        self._observer_ids = itertools.count(1)

    # --- State ---

    @property
    def session(self) -> AuthSession | None:
        return self._session

    @property
    def user(self) -> AuthUser | None:
        return self._session.user if self._session else None

    @property
    def loading(self) -> bool:
        return self._loading

    @property
    def is_authenticated(self) -> bool:
        return self._session is not None

    def subscribe(self, callback: IdentityCallback) -> Callable[[], None]:
        """Call ``callback(user)`` whenever the identity changes. Returns an unsubscribe."""
        observer_id = next(self._observer_ids)
        self._observers[observer_id] = callback
        return lambda: self._observers.pop(observer_id, None)

    def _apply(self, session: AuthSession | None, stamp: int) -> None:
        if stamp < self._applied_stamp:
            logger.debug("Dropping stale session update #%d (have #%d)", stamp, self._applied_stamp)
            return
        self._applied_stamp = stamp
        self._loading = False

        previous_id = self.user.id if self.user else None
        self._session = session
        current_id = self.user.id if self.user else None
        if previous_id == current_id:
            return

        logger.info("Identity changed: %s -> %s", previous_id, current_id)
        for callback in list(self._observers.values()):
            callback(self.user)

    def _on_auth_event(self, event: str, session: AuthSession | None) -> None:
        self._apply(session, next(self._stamps))

    # --- Lifecycle ---

    async def initialize(self) -> None:
        """Listen for auth changes, then ask once for the current session."""
        if self._subscription is None:
            self._subscription = self._auth.on_auth_state_change(self._on_auth_event)

        stamp = next(self._stamps)
        try:
            session = await self._auth.get_session()
        except ServiceError as e:
            logger.warning("Session check failed: %s", e)
            session = None
        self._apply(session, stamp)

    async def refresh(self) -> None:
        """Refresh an expired session.

        The outcome arrives through the auth notifications: ``TOKEN_REFRESHED``
        keeps the identity, a rejected refresh signs it out.
        """
        try:
            await self._auth.get_session()
        except ServiceError as e:
            logger.warning("Session refresh failed: %s", e)

    def close(self) -> None:
        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None
        self._observers.clear()

    # --- Operations ---

    async def sign_in(self, mobile_number: str, password: str) -> None:
        """Raises the auth API's error unmodified on failure."""
        stamp = next(self._stamps)
        session = await self._auth.sign_in_with_password(derive_handle(mobile_number), password)
        self._apply(session, stamp)

    async def sign_up(self, mobile_number: str, password: str) -> None:
        """Register, then link the new identity to its mobile number.

        The profile write is best effort: a failure is logged and sign-up
        still succeeds.
        """
        stamp = next(self._stamps)
        result = await self._auth.sign_up(
            derive_handle(mobile_number),
            password,
            redirect_to=settings.signup_redirect_url,
        )
        if result.session is not None:
            self._apply(result.session, stamp)
        if result.user is None:
            return

        profile = UserProfile(user_id=result.user.id, mobile_number=mobile_number)
        try:
            await self._tables.insert(PROFILES_TABLE, profile.model_dump())
        except ServiceError as e:
            logger.error("Error creating profile for %s: %s", result.user.id, e)

    async def sign_out(self) -> None:
        try:
            await self._auth.sign_out()
        except ServiceError as e:
            logger.warning("Remote sign-out failed, local session cleared anyway: %s", e)
        self._apply(None, next(self._stamps))
