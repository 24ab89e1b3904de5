# src/codable_bff/callback.py

import typing

from .errors import CodableError
from .hosted_service import HostedServiceClient
from .local_storage import LocalStorage, PENDING_SIGNUP_KEY
from .data_access import Repository
from .session_data import PendingSignup, Session
from .session_store import SessionStore
from .toasts import Toaster

HOME_PATH = "/"
DASHBOARD_PATH = "/app/dashboard"
RESET_PASSWORD_PATH = "/reset-password"


class CallbackHandler:
    """
    Completes the handshakes started by emailed links on /auth/callback.

    Dispatch, in priority order:
      1. token + type=signup          -> verify email OTP -> dashboard (home on failure)
      2. type=recovery + access_token or token -> session -> reset-password screen
      3. access_token + refresh_token -> session -> dashboard
      4. anything else                -> home, no external call
    Every branch ends in a redirect; failures add an error toast and go home.
    """

    def __init__(self, hosted: HostedServiceClient, session_store: SessionStore,
                 storage: LocalStorage, toaster: Toaster):
        self.hosted = hosted
        self.session_store = session_store
        self.storage = storage
        self.toaster = toaster

    async def handle(self, params: typing.Mapping[str, str]) -> str:
        token = params.get("token")
        link_type = params.get("type")
        access_token = params.get("access_token")
        refresh_token = params.get("refresh_token")
        print(f"CALLBACK: Received params: {sorted(k for k in params.keys())}, type={link_type}")

        if token and link_type == "signup":
            return await self._guarded(self._verify_signup(token), "Email verification failed.")
        if link_type == "recovery" and (access_token or token):
            return await self._guarded(
                self._recover(access_token, refresh_token, token), "Password recovery link is invalid or expired."
            )
        if access_token and refresh_token:
            return await self._guarded(self._sign_in_with_tokens(access_token, refresh_token),
                                       "Sign-in link is invalid or expired.")
        print("CALLBACK: No recognized parameters, redirecting home")
        return HOME_PATH

    async def _guarded(self, branch: typing.Awaitable[str], failure_message: str) -> str:
        try:
            return await branch
        except CodableError as e:
            print(f"CALLBACK: Branch failed: {type(e).__name__} ({e.detail or e.user_message})")
        except Exception as e:
            print(f"CALLBACK: Unexpected error: {str(e)}")
            import traceback
            traceback.print_exc()
        self.toaster.error(failure_message)
        return HOME_PATH

    async def _verify_signup(self, token: str) -> str:
        grant = await self.hosted.verify_otp(token, "signup")
        session = await self.session_store.set_session(Session.from_grant(grant))
        await self.consume_pending_signup(session)
        self.toaster.success("Email verified! Welcome to Codable.")
        return DASHBOARD_PATH

    async def _recover(self, access_token: typing.Optional[str], refresh_token: typing.Optional[str],
                       token: typing.Optional[str]) -> str:
        if access_token:
            await self.session_store.set_session_from_tokens(access_token, refresh_token)
        else:
            grant = await self.hosted.verify_otp(token, "recovery")
            await self.session_store.set_session(Session.from_grant(grant))
        self.toaster.info("Choose a new password.")
        return RESET_PASSWORD_PATH

    async def _sign_in_with_tokens(self, access_token: str, refresh_token: str) -> str:
        session = await self.session_store.set_session_from_tokens(access_token, refresh_token)
        await self.consume_pending_signup(session)
        self.toaster.success("Signed in successfully!")
        return DASHBOARD_PATH

    async def consume_pending_signup(self, session: Session) -> bool:
        """
        Materializes the account details captured at sign-up once the
        emailed link proves ownership of the address. Failures are reported
        but never change where the callback redirects.
        """
        raw = self.storage.get_json(PENDING_SIGNUP_KEY)
        if not raw:
            return False
        try:
            pending = PendingSignup(**raw)
        except (TypeError, ValueError):
            print("CALLBACK: Dropping unreadable pending signup")
            self.storage.remove_item(PENDING_SIGNUP_KEY)
            return False
        if not session.email or pending.email.lower() != session.email.lower():
            print("CALLBACK: Pending signup is for a different email, leaving it in place")
            return False

        try:
            user = await self.hosted.update_user(
                session.access_token, password=pending.password, data={"full_name": pending.full_name}
            )
            await Repository(self.hosted, session.access_token).upsert_profile(
                session.user_id, {"full_name": pending.full_name}
            )
        except CodableError as e:
            print(f"CALLBACK: Could not complete account setup: {e.detail or e.user_message}")
            self.toaster.error("Signed in, but your account details could not be saved. Please update them in Settings.")
            return False

        self.storage.remove_item(PENDING_SIGNUP_KEY)
        if isinstance(user, dict) and user.get("id"):
            await self.session_store.user_updated(user)
        print(f"CALLBACK: Account setup completed for {session.email}")
        return True
