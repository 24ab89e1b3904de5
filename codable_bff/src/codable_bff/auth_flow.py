# src/codable_bff/auth_flow.py

import asyncio
import enum
import typing

from pydantic import BaseModel

from .admin import AdminStatusResolver
from .errors import (
    AdminVerificationFailed,
    CodableError,
    InvalidTransition,
    PasswordMismatch,
    PasswordTooShort,
    RateLimited,
    Unauthenticated,
    UnconfirmedEmail,
    classify_auth_error,
)
from .hosted_service import HostedServiceClient
from .local_storage import LocalStorage, PENDING_SIGNUP_KEY
from .session_data import PendingSignup
from .session_store import SessionStore
from .toasts import Toaster

ADMIN_AREA_PATH = "/app/admin"


class AuthStep(str, enum.Enum):
    SIGNIN = "signin"
    SIGNUP = "signup"
    FORGOT = "forgot"
    RESET = "reset"
    VERIFY = "verify"
    INSTRUCTIONS = "instructions"
    ADMIN = "admin"
    MAGIC_SENT = "magic-sent"
    SIGNUP_SUCCESS = "signup-success"


# (step, action) -> next step
TRANSITIONS: typing.Dict[typing.Tuple[AuthStep, str], AuthStep] = {
    (AuthStep.SIGNIN, "magic_link"): AuthStep.FORGOT,
    (AuthStep.SIGNIN, "admin"): AuthStep.ADMIN,
    (AuthStep.SIGNIN, "signup"): AuthStep.SIGNUP,
    (AuthStep.SIGNUP, "signin"): AuthStep.SIGNIN,
    (AuthStep.VERIFY, "signin"): AuthStep.SIGNIN,
    (AuthStep.INSTRUCTIONS, "signin"): AuthStep.SIGNIN,
    (AuthStep.MAGIC_SENT, "signin"): AuthStep.SIGNIN,
    (AuthStep.SIGNUP_SUCCESS, "signin"): AuthStep.SIGNIN,
}

BACK_MAP: typing.Dict[AuthStep, AuthStep] = {
    AuthStep.SIGNIN: AuthStep.SIGNIN,
    AuthStep.SIGNUP: AuthStep.SIGNIN,
    AuthStep.FORGOT: AuthStep.SIGNIN,
    AuthStep.ADMIN: AuthStep.SIGNIN,
    AuthStep.RESET: AuthStep.FORGOT,
    AuthStep.INSTRUCTIONS: AuthStep.FORGOT,
    AuthStep.MAGIC_SENT: AuthStep.FORGOT,
    AuthStep.VERIFY: AuthStep.SIGNUP,
    AuthStep.SIGNUP_SUCCESS: AuthStep.SIGNUP,
}

INFORMATIONAL_STEPS = {AuthStep.VERIFY, AuthStep.INSTRUCTIONS, AuthStep.MAGIC_SENT, AuthStep.SIGNUP_SUCCESS}

FORM_FIELDS = ("email", "password", "confirm_password", "full_name")

STEP_TITLES = {
    AuthStep.SIGNIN: "Welcome Back",
    AuthStep.SIGNUP: "Create Account",
    AuthStep.FORGOT: "Sign In With Magic Link",
    AuthStep.RESET: "New Password",
    AuthStep.VERIFY: "Check Your Email",
    AuthStep.INSTRUCTIONS: "Check Your Email",
    AuthStep.ADMIN: "Admin Sign In",
    AuthStep.MAGIC_SENT: "Magic Link Sent",
    AuthStep.SIGNUP_SUCCESS: "Almost There",
}


class AuthOutcome(BaseModel):
    step: AuthStep
    closed: bool = False
    redirect_to: typing.Optional[str] = None
    error: typing.Optional[str] = None


class AuthFlowController:
    """
    Drives the auth modal: which step is visible, the form fields, and the
    one external operation each step submits. Errors are mapped to a fixed
    sentence in `self.error` and never raised out of `submit()`.
    """

    def __init__(
            self,
            session_store: SessionStore,
            admin_resolver: AdminStatusResolver,
            hosted: HostedServiceClient,
            storage: LocalStorage,
            toaster: Toaster,
            redirect_to: typing.Optional[str] = None,
            verify_delay: float = 1.5,
            min_password_length: int = 6,
    ):
        self.session_store = session_store
        self.admin_resolver = admin_resolver
        self.hosted = hosted
        self.storage = storage
        self.toaster = toaster
        self.redirect_to = redirect_to
        self.verify_delay = verify_delay
        self.min_password_length = min_password_length

        self.step = AuthStep.SIGNIN
        self.is_open = False
        self.loading = False
        self.error: typing.Optional[str] = None
        self.email = ""
        self.password = ""
        self.confirm_password = ""
        self.full_name = ""

    # --- Navigation ---

    def open(self, step: AuthStep = AuthStep.SIGNIN) -> None:
        self.step = step
        self.is_open = True
        self.error = None

    def enter_recovery(self) -> None:
        """The reset step is only reachable from a recovery callback."""
        self.open(AuthStep.RESET)

    def dispatch(self, action: str) -> AuthStep:
        next_step = TRANSITIONS.get((self.step, action))
        if next_step is None:
            raise InvalidTransition(self.step.value, action)
        print(f"AUTH_FLOW: {self.step.value} --{action}--> {next_step.value}")
        self.step = next_step
        self.error = None
        return self.step

    def back(self) -> AuthStep:
        self.step = BACK_MAP[self.step]
        self.error = None
        return self.step

    def cancel(self) -> AuthStep:
        self.reset_form()
        self.step = AuthStep.SIGNIN
        self.is_open = False
        return self.step

    def reset_form(self) -> None:
        self.email = ""
        self.password = ""
        self.confirm_password = ""
        self.full_name = ""
        self.error = None

    def update_fields(self, **fields: typing.Optional[str]) -> None:
        for name, value in fields.items():
            if name not in FORM_FIELDS:
                raise ValueError(f"Unknown form field '{name}'")
            if value is not None:
                setattr(self, name, value)

    def state(self) -> dict:
        return {
            "step": self.step.value,
            "title": STEP_TITLES[self.step],
            "is_open": self.is_open,
            "loading": self.loading,
            "error": self.error,
            "email": self.email,
            "full_name": self.full_name,
            "can_go_back": self.step != AuthStep.SIGNIN and self.step not in INFORMATIONAL_STEPS,
        }

    # --- Submission ---

    async def submit(self) -> AuthOutcome:
        handlers = {
            AuthStep.SIGNIN: self._submit_signin,
            AuthStep.SIGNUP: self._submit_signup,
            AuthStep.FORGOT: self._submit_forgot,
            AuthStep.RESET: self._submit_reset,
            AuthStep.ADMIN: self._submit_admin,
        }
        handler = handlers.get(self.step)
        if handler is None:
            # Informational steps have nothing to submit
            return self._outcome()

        self.loading = True
        self.error = None
        try:
            return await handler()
        except CodableError as e:
            return await self._fail(e)
        except Exception as e:
            print(f"AUTH_FLOW: Unexpected error on '{self.step.value}' submit: {e}")
            return await self._fail(classify_auth_error(e))
        finally:
            self.loading = False

    async def _fail(self, error: CodableError) -> AuthOutcome:
        error = classify_auth_error(error)
        self.error = error.user_message
        print(f"AUTH_FLOW: '{self.step.value}' submit failed: {type(error).__name__} ({error.detail or error.user_message})")

        if isinstance(error, UnconfirmedEmail) and self.step in (AuthStep.SIGNIN, AuthStep.SIGNUP):
            if self.step == AuthStep.SIGNIN and self.verify_delay > 0:
                await asyncio.sleep(self.verify_delay)
            self.step = AuthStep.VERIFY
        elif isinstance(error, RateLimited) and self.step == AuthStep.FORGOT:
            self.step = AuthStep.INSTRUCTIONS
        return self._outcome()

    def _outcome(self, closed: bool = False, redirect_to: typing.Optional[str] = None) -> AuthOutcome:
        return AuthOutcome(step=self.step, closed=closed, redirect_to=redirect_to, error=self.error)

    async def _submit_signin(self) -> AuthOutcome:
        await self.session_store.sign_in(self.email, self.password)
        self.toaster.success("Welcome back!")
        self.cancel()
        return self._outcome(closed=True)

    async def _submit_signup(self) -> AuthOutcome:
        if len(self.password) < self.min_password_length:
            raise PasswordTooShort(f"Password must be at least {self.min_password_length} characters")

        pending = PendingSignup(email=self.email, full_name=self.full_name, password=self.password)
        self.storage.set_json(PENDING_SIGNUP_KEY, pending.model_dump())
        try:
            await self.hosted.send_magic_link(
                self.email,
                redirect_to=self.redirect_to,
                create_user=True,
                metadata={"full_name": self.full_name},
            )
        except Exception:
            self.storage.remove_item(PENDING_SIGNUP_KEY)
            raise
        print(f"AUTH_FLOW: Sign-up magic link sent to {self.email}")
        self.step = AuthStep.SIGNUP_SUCCESS
        return self._outcome()

    async def _submit_forgot(self) -> AuthOutcome:
        await self.hosted.send_magic_link(self.email, redirect_to=self.redirect_to, create_user=False)
        print(f"AUTH_FLOW: Magic link sent to {self.email}")
        self.step = AuthStep.MAGIC_SENT
        return self._outcome()

    async def _submit_reset(self) -> AuthOutcome:
        if self.password != self.confirm_password:
            raise PasswordMismatch()
        if len(self.password) < self.min_password_length:
            raise PasswordTooShort(f"Password must be at least {self.min_password_length} characters")

        session = self.session_store.current
        if session is None:
            raise Unauthenticated("Your reset link has expired. Please request a new one.")
        user = await self.hosted.update_user(session.access_token, password=self.password)
        if isinstance(user, dict) and user.get("id"):
            await self.session_store.user_updated(user)
        self.toaster.success("Password updated successfully!")
        self.reset_form()
        self.step = AuthStep.SIGNIN
        return self._outcome()

    async def _submit_admin(self) -> AuthOutcome:
        verified = await self.admin_resolver.verify_admin_credentials(self.email, self.password)
        if not verified:
            raise AdminVerificationFailed()
        # Claiming admin is not being signed in; both calls must succeed
        await self.session_store.sign_in(self.email, self.password)
        self.toaster.success("Welcome, admin!")
        self.cancel()
        return self._outcome(closed=True, redirect_to=ADMIN_AREA_PATH)

    async def resend_verification(self) -> bool:
        if self.step != AuthStep.VERIFY or not self.email:
            return False
        try:
            await self.hosted.resend_verification(self.email, redirect_to=self.redirect_to)
        except CodableError as e:
            self.error = classify_auth_error(e).user_message
            return False
        self.toaster.success(f"Verification email sent to {self.email}")
        return True
