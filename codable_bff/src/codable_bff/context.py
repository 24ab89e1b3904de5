# src/codable_bff/context.py

import time
import typing

from .admin import AdminStatusResolver
from .ai_hooks import AIChatHook, CodeAnalysisHook, CodeOptimizationHook, ProblemSolverHook
from .ai_providers import CopilotKitProvider, GeminiProvider, ProviderRegistry
from .ai_switch import AIProviderSwitch, ProviderId
from .auth_flow import AuthFlowController
from .callback import CallbackHandler
from .config import Settings
from .data_access import Repository
from .events import EventBus
from .hosted_service import HostedServiceClient
from .local_storage import LocalStorage
from .preferences import ThemePreference
from .session_store import SessionStore
from .toasts import Toaster


class AppContext:
    """
    Process-wide services, constructed once at startup and handed to every
    BrowserContext by reference.
    """

    def __init__(
            self,
            settings: Settings,
            hosted: HostedServiceClient,
            providers: ProviderRegistry,
            clock: typing.Callable[[], float] = time.monotonic,
    ):
        self.settings = settings
        self.hosted = hosted
        self.providers = providers
        self._clock = clock
        self._browsers: typing.Dict[str, "BrowserContext"] = {}
        self._last_seen: typing.Dict[str, float] = {}

    @classmethod
    def from_settings(cls, settings: Settings) -> "AppContext":
        hosted = HostedServiceClient(
            auth_url=settings.AUTH_URL,
            rest_url=settings.REST_URL,
            anon_key=settings.SUPABASE_ANON_KEY,
            timeout=settings.HTTP_TIMEOUT_SECONDS,
        )
        enabled = set(settings.AI_PROVIDERS)
        providers = []
        if ProviderId.GEMINI.value in enabled:
            providers.append(GeminiProvider(
                api_key=settings.GEMINI_API_KEY,
                model=settings.GEMINI_MODEL,
                base_url=str(settings.GEMINI_BASE_URL),
                temperature=settings.GEMINI_TEMPERATURE,
                max_output_tokens=settings.GEMINI_MAX_OUTPUT_TOKENS,
                timeout=settings.HTTP_TIMEOUT_SECONDS,
            ))
        if ProviderId.COPILOTKIT.value in enabled:
            providers.append(CopilotKitProvider(
                api_key=settings.COPILOTKIT_API_KEY,
                model=settings.COPILOTKIT_MODEL,
                base_url=str(settings.COPILOTKIT_BASE_URL),
                timeout=settings.HTTP_TIMEOUT_SECONDS,
            ))
        return cls(settings, hosted, ProviderRegistry(providers))

    def browser(self, browser_id: str) -> "BrowserContext":
        now = self._clock()
        self._evict_idle(now)
        context = self._browsers.get(browser_id)
        if context is None:
            context = BrowserContext(self)
            self._browsers[browser_id] = context
        self._last_seen[browser_id] = now
        return context

    def has_browser(self, browser_id: typing.Optional[str]) -> bool:
        if not browser_id or browser_id not in self._browsers:
            return False
        return self._clock() - self._last_seen[browser_id] < self.settings.SESSION_MAX_AGE_SECONDS

    def _evict_idle(self, now: float) -> None:
        # The cookie is re-issued on every response, so idle time is what expires it
        expired = [browser_id for browser_id, seen in self._last_seen.items()
                   if now - seen >= self.settings.SESSION_MAX_AGE_SECONDS]
        for browser_id in expired:
            del self._browsers[browser_id]
            del self._last_seen[browser_id]
        if expired:
            print(f"MAIN: Dropped {len(expired)} idle browser context(s)")

    async def aclose(self):
        await self.hosted.aclose()
        await self.providers.aclose()


class BrowserContext:
    """Everything one browser would have held client-side."""

    def __init__(self, app: AppContext):
        settings = app.settings
        self.app = app
        self.storage = LocalStorage()
        self.bus = EventBus()
        self.toaster = Toaster()
        self.session_store = SessionStore(app.hosted, self.bus)
        self.admin = AdminStatusResolver(app.hosted, self.session_store)
        self.theme = ThemePreference(self.storage, self.bus)
        self.ai_switch = AIProviderSwitch(
            self.storage,
            self.bus,
            default=ProviderId(settings.DEFAULT_AI_PROVIDER),
            allowed=[ProviderId(p) for p in settings.AI_PROVIDERS],
        )
        self.auth_flow = AuthFlowController(
            self.session_store,
            self.admin,
            app.hosted,
            self.storage,
            self.toaster,
            redirect_to=settings.AUTH_CALLBACK_URL,
            verify_delay=settings.VERIFY_REDIRECT_DELAY_SECONDS,
            min_password_length=settings.MIN_PASSWORD_LENGTH,
        )
        self.callback = CallbackHandler(app.hosted, self.session_store, self.storage, self.toaster)

        hook_args = (self.session_store, self.ai_switch, app.providers, app.hosted, self.toaster)
        self.analyzer = CodeAnalysisHook(*hook_args)
        self.solver = ProblemSolverHook(*hook_args)
        self.optimizer = CodeOptimizationHook(*hook_args)
        self.chat = AIChatHook(*hook_args)

    def repository(self) -> typing.Optional[Repository]:
        session = self.session_store.current
        if session is None:
            return None
        return Repository(self.app.hosted, session.access_token)
