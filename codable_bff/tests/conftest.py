import json
import os
import time
import typing

# Settings are read at import time, so the environment must be in place first
os.environ.setdefault("SUPABASE_URL", "https://supabase.test")
os.environ.setdefault("SUPABASE_ANON_KEY", "anon-key")
os.environ.setdefault("SESSION_SECRET_KEY", "test-session-secret")
os.environ.setdefault("SITE_URL", "https://codable.test")
os.environ.setdefault("GEMINI_API_KEY", "gemini-key")
os.environ.setdefault("GEMINI_BASE_URL", "https://gemini.test/v1beta")
os.environ.setdefault("COPILOTKIT_API_KEY", "copilotkit-key")
os.environ.setdefault("COPILOTKIT_BASE_URL", "https://copilotkit.test/v1")
os.environ.setdefault("VERIFY_REDIRECT_DELAY_SECONDS", "0")

import httpx
import pytest
from jose import jwt

from codable_bff.ai_providers import CopilotKitProvider, GeminiProvider, ProviderRegistry
from codable_bff.config import settings
from codable_bff.context import AppContext
from codable_bff.hosted_service import HostedServiceClient
from codable_bff.session_data import Session

AUTH = "/auth/v1"
REST = "/rest/v1"
GEMINI_PATH = f"/v1beta/models/{settings.GEMINI_MODEL}:generateContent"
COPILOTKIT_PATH = "/v1/chat/completions"

USER = {
    "id": "user-1",
    "email": "dev@example.com",
    "email_confirmed_at": "2024-01-01T00:00:00Z",
    "user_metadata": {"full_name": "Dev User"},
}


def make_token(sub: str = "user-1", email: str = "dev@example.com", expires_in: int = 3600) -> str:
    return jwt.encode({"sub": sub, "email": email, "exp": int(time.time()) + expires_in}, "test-secret",
                      algorithm="HS256")


def grant(user: typing.Optional[dict] = None, expires_in: int = 3600) -> dict:
    return {
        "access_token": make_token(expires_in=expires_in),
        "refresh_token": "refresh-1",
        "expires_in": expires_in,
        "token_type": "bearer",
        "user": user or USER,
    }


def gemini_reply(text: str) -> dict:
    return {"candidates": [{"content": {"role": "model", "parts": [{"text": text}]}, "finishReason": "STOP"}]}


def copilotkit_reply(text: str) -> dict:
    return {
        "id": "chatcmpl-1",
        "object": "chat.completion",
        "created": 0,
        "model": "gpt-4",
        "choices": [{"index": 0, "message": {"role": "assistant", "content": text}, "finish_reason": "stop"}],
    }


class FakeBackend:
    """
    One MockTransport handler for every outbound host. Routes are keyed by
    (method, path); unknown routes answer 404 so a surprise call fails loudly.
    """

    def __init__(self):
        self.routes: typing.Dict[typing.Tuple[str, str], typing.Callable[[httpx.Request], httpx.Response]] = {}
        self.requests: typing.List[httpx.Request] = []

    def on(self, method: str, path: str, status_code: int = 200, json_body: typing.Any = None,
           handler: typing.Optional[typing.Callable[[httpx.Request], httpx.Response]] = None) -> None:
        if handler is None:
            def handler(request, _status=status_code, _body=json_body):
                if _body is None:
                    return httpx.Response(_status)
                return httpx.Response(_status, json=_body)
        self.routes[(method, path)] = handler

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        route = self.routes.get((request.method, request.url.path))
        if route is None:
            return httpx.Response(404, json={"message": f"no route for {request.method} {request.url.path}"})
        return route(request)

    def calls(self, method: str, path: str) -> typing.List[httpx.Request]:
        return [r for r in self.requests if r.method == method and r.url.path == path]

    def bodies(self, method: str, path: str) -> typing.List[typing.Any]:
        return [json.loads(r.content) if r.content else None for r in self.calls(method, path)]


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def hosted(backend) -> HostedServiceClient:
    return HostedServiceClient(
        auth_url=settings.AUTH_URL,
        rest_url=settings.REST_URL,
        anon_key=settings.SUPABASE_ANON_KEY,
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(backend)),
    )


@pytest.fixture
def registry(backend) -> ProviderRegistry:
    gemini = GeminiProvider(
        api_key=settings.GEMINI_API_KEY,
        model=settings.GEMINI_MODEL,
        base_url=str(settings.GEMINI_BASE_URL),
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(backend)),
    )
    copilotkit = CopilotKitProvider(
        api_key=settings.COPILOTKIT_API_KEY,
        model=settings.COPILOTKIT_MODEL,
        base_url=str(settings.COPILOTKIT_BASE_URL),
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(backend)),
    )
    return ProviderRegistry([gemini, copilotkit])


@pytest.fixture
def app_context(hosted, registry) -> AppContext:
    return AppContext(settings, hosted, registry)


@pytest.fixture
def browser(app_context):
    return app_context.browser("test-browser")


@pytest.fixture
def session() -> Session:
    return Session(
        user_id="user-1",
        email="dev@example.com",
        email_verified=True,
        expires_at=int(time.time()) + 3600,
        access_token=make_token(),
        refresh_token="refresh-1",
        full_name="Dev User",
    )


@pytest.fixture
async def signed_in(browser, session) -> Session:
    return await browser.session_store.set_session(session)
