# src/codable_bff/admin.py

import typing

from .hosted_service import HostedServiceClient
from .session_data import Session
from .session_store import SessionStore


class AdminStatusResolver:
    """
    Answers "is this session an admin?" via the hosted service's `is_admin` RPC.

    Fails closed: no session, an RPC error or any answer other than `true`
    resolves to False. The flag only drives what the UI shows; destructive
    admin operations are re-authorized by the service's own RPCs.
    """

    def __init__(self, hosted: HostedServiceClient, session_store: SessionStore):
        self.hosted = hosted
        self._cache: typing.Dict[typing.Tuple[str, str], bool] = {}
        self._unsubscribe = session_store.subscribe(self._on_session_change)

    def _on_session_change(self, event: str, session: typing.Optional[Session]) -> None:
        self._cache.clear()

    def close(self) -> None:
        self._unsubscribe()

    async def is_admin(self, session: typing.Optional[Session]) -> bool:
        if session is None or not session.email:
            return False

        key = (session.user_id, session.email)
        if key in self._cache:
            return self._cache[key]

        try:
            result = await self.hosted.rpc(
                "is_admin", {"user_email": session.email}, access_token=session.access_token
            )
        except Exception as e:
            print(f"ADMIN: is_admin RPC failed for {session.email}: {e}")
            return False

        admin = result is True
        self._cache[key] = admin
        print(f"ADMIN: is_admin({session.email}) -> {admin}")
        return admin

    async def verify_admin_credentials(self, email: str, password: str) -> bool:
        try:
            result = await self.hosted.rpc(
                "verify_admin_password", {"admin_email": email, "password_input": password}
            )
        except Exception as e:
            print(f"ADMIN: verify_admin_password RPC failed for {email}: {e}")
            return False
        return result is True
