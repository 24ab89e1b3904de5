# src/codable_bff/session_store.py

import typing

from .errors import CodableError
from .events import EventBus, AUTH_STATE_CHANGE
from .hosted_service import HostedServiceClient
from .session_data import Session

SIGNED_IN = "SIGNED_IN"
SIGNED_OUT = "SIGNED_OUT"
TOKEN_REFRESHED = "TOKEN_REFRESHED"
USER_UPDATED = "USER_UPDATED"

OnChange = typing.Callable[[str, typing.Optional[Session]], typing.Any]


class SessionStore:
    """
    Tracks the current Session for one browser.

    `get_current_session()` is the one-shot fetch: it re-validates the held
    tokens with the hosted service and fails open to "logged out" on any
    error. Every change (sign-in, sign-out, refresh) replaces the cached
    Session in a single assignment and is pushed to subscribers as
    `(event, session)`.
    """

    def __init__(self, hosted: HostedServiceClient, bus: EventBus):
        self.hosted = hosted
        self.bus = bus
        self._session: typing.Optional[Session] = None
        self.loading = True

    @property
    def current(self) -> typing.Optional[Session]:
        return self._session

    def subscribe(self, on_change: OnChange) -> typing.Callable[[], None]:
        return self.bus.subscribe(AUTH_STATE_CHANGE, on_change)

    async def _replace(self, event: str, session: typing.Optional[Session]) -> None:
        self._session = session
        self.loading = False
        print(f"SESSION_STORE: {event} - user: {session.email if session else 'None'}")
        await self.bus.publish(AUTH_STATE_CHANGE, event, session)

    async def get_current_session(self) -> typing.Optional[Session]:
        held = self._session
        if held is None:
            self.loading = False
            return None
        try:
            if held.is_expired():
                return await self.refresh()
            user = await self.hosted.get_user(held.access_token)
            session = Session.from_user(user, held.access_token, held.refresh_token, held.expires_at)
            self._session = session
            self.loading = False
            return session
        except Exception as e:
            print(f"SESSION_STORE: get_current_session failed, treating as signed out: {e}")
            await self._replace(SIGNED_OUT, None)
            return None

    async def set_session_from_tokens(self, access_token: str, refresh_token: typing.Optional[str] = None) -> Session:
        user = await self.hosted.get_user(access_token)
        session = Session.from_user(user, access_token, refresh_token)
        await self._replace(SIGNED_IN, session)
        return session

    async def set_session(self, session: Session) -> Session:
        await self._replace(SIGNED_IN, session)
        return session

    async def sign_in(self, email: str, password: str) -> Session:
        grant = await self.hosted.sign_in_with_password(email, password)
        session = Session.from_grant(grant)
        await self._replace(SIGNED_IN, session)
        return session

    async def refresh(self) -> typing.Optional[Session]:
        held = self._session
        if held is None or not held.refresh_token:
            await self._replace(SIGNED_OUT, None)
            return None
        grant = await self.hosted.refresh_session(held.refresh_token)
        session = Session.from_grant(grant)
        await self._replace(TOKEN_REFRESHED, session)
        return session

    async def user_updated(self, user: dict) -> typing.Optional[Session]:
        held = self._session
        if held is None:
            return None
        session = Session.from_user(user, held.access_token, held.refresh_token, held.expires_at)
        await self._replace(USER_UPDATED, session)
        return session

    async def sign_out(self) -> None:
        held = self._session
        if held is not None:
            try:
                await self.hosted.sign_out(held.access_token)
            except CodableError as e:
                # The local session is dropped regardless of the service's answer
                print(f"SESSION_STORE: sign_out call failed: {e.detail or e.user_message}")
        await self._replace(SIGNED_OUT, None)
