import pytest
from fastapi.testclient import TestClient

from codable_bff import main
from codable_bff.config import settings
from codable_bff.context import AppContext

from .conftest import AUTH, REST, USER, grant


@pytest.fixture
def client(monkeypatch, app_context):
    monkeypatch.setattr(main, "app_context", app_context)
    return TestClient(main.app, follow_redirects=False)


def _sign_in(client, backend):
    backend.on("POST", f"{AUTH}/token", json_body=grant())
    backend.on("GET", f"{AUTH}/user", json_body=USER)
    response = client.post("/api/bff/auth/submit", json={"email": "dev@example.com", "password": "secret1"})
    assert response.json()["outcome"]["closed"] is True


def test_session_endpoint_when_signed_out(client, backend):
    response = client.get("/api/bff/session")
    assert response.status_code == 200
    assert response.json() == {"authenticated": False, "user": None, "is_admin": False, "loading": False}
    assert main.SESSION_COOKIE_NAME in response.cookies
    assert backend.requests == []


def test_browser_state_follows_the_session_cookie(client, app_context):
    client.put("/api/bff/theme", json={"theme": "light"})
    assert client.get("/api/bff/theme").json() == {"theme": "light"}

    other = TestClient(main.app)
    assert other.get("/api/bff/theme").json() == {"theme": "dark"}


def test_protected_page_redirects_home_with_auth_modal(client):
    response = client.get("/app/dashboard")
    assert response.status_code == 307
    assert response.headers["location"] == "/"
    state = client.get("/api/bff/auth/state").json()
    assert state["is_open"] is True
    assert state["step"] == "signin"


def test_admin_page_requires_admin_flag(client, backend):
    _sign_in(client, backend)
    backend.on("POST", f"{REST}/rpc/is_admin", json_body=False)

    response = client.get("/app/admin")

    assert response.status_code == 307
    assert response.headers["location"] == "/app/dashboard"
    assert client.get("/app/dashboard").status_code == 200


def test_callback_without_params_goes_home(client, backend):
    response = client.get("/auth/callback")
    assert response.status_code == 302
    assert response.headers["location"] == "/"
    assert backend.requests == []


def test_recovery_callback_opens_reset_step(client, backend):
    backend.on("POST", f"{AUTH}/verify", json_body=grant())
    response = client.get("/auth/callback", params={"type": "recovery", "token": "hash-1"})
    assert response.headers["location"] == "/reset-password"
    assert client.get("/api/bff/auth/state").json()["step"] == "reset"


def test_auth_navigation_endpoints(client):
    client.post("/api/bff/auth/action", json={"action": "open"})
    assert client.post("/api/bff/auth/action", json={"action": "signup"}).json()["step"] == "signup"
    assert client.post("/api/bff/auth/back").json()["step"] == "signin"

    response = client.post("/api/bff/auth/action", json={"action": "reset"})
    assert response.status_code == 400

    state = client.post("/api/bff/auth/cancel").json()
    assert state["is_open"] is False


def test_analyze_without_session_is_unauthorized(client, backend):
    response = client.post("/api/bff/analyze", json={"code": "print(1)", "language": "python"})
    assert response.status_code == 401
    assert response.json()["error"] == "Please sign in to analyze code"
    assert backend.requests == []
    toasts = client.get("/api/bff/toasts").json()["toasts"]
    assert toasts == [{"kind": "error", "message": "Please sign in to analyze code"}]
    assert client.get("/api/bff/toasts").json()["toasts"] == []


def test_ai_provider_endpoints(client):
    assert client.get("/api/bff/ai-provider").json()["provider"] == "gemini"
    assert client.put("/api/bff/ai-provider", json={"provider": "copilotkit"}).json() == {"provider": "copilotkit"}
    assert client.get("/api/bff/ai-provider").json()["provider"] == "copilotkit"
    assert client.put("/api/bff/ai-provider", json={"provider": "bard"}).status_code == 400


def test_data_endpoints_require_session(client):
    assert client.get("/api/bff/stats").status_code == 401
    assert client.get("/api/bff/history/analyses").status_code == 401
    assert client.get("/api/bff/admin/users").status_code == 401


def test_admin_users_forbidden_for_non_admin(client, backend):
    _sign_in(client, backend)
    backend.on("POST", f"{REST}/rpc/is_admin", json_body=False)
    assert client.get("/api/bff/admin/users").status_code == 403
    assert backend.calls("POST", f"{REST}/rpc/get_all_users_for_admin_panel") == []


def test_admin_users_listed_for_admin(client, backend):
    _sign_in(client, backend)
    backend.on("POST", f"{REST}/rpc/is_admin", json_body=True)
    backend.on("POST", f"{REST}/rpc/get_all_users_for_admin_panel", json_body=[{"id": "user-2"}])
    assert client.get("/api/bff/admin/users").json() == {"users": [{"id": "user-2"}]}


def test_history_endpoints_use_the_session_token(client, backend):
    _sign_in(client, backend)
    backend.on("GET", f"{REST}/code_analyses", json_body=[{"id": "a-1", "score": 80}])
    backend.on("DELETE", f"{REST}/code_analyses", status_code=204)

    assert client.get("/api/bff/history/analyses").json() == {"analyses": [{"id": "a-1", "score": 80}]}
    assert client.delete("/api/bff/history/analyses/a-1").json() == {"deleted": "a-1"}

    (listing,) = backend.calls("GET", f"{REST}/code_analyses")
    assert listing.url.params["user_id"] == "eq.user-1"
    assert listing.headers["authorization"] != "Bearer anon-key"
    (deletion,) = backend.calls("DELETE", f"{REST}/code_analyses")
    assert deletion.url.params["id"] == "eq.a-1"


def test_logout_clears_session(client, backend):
    _sign_in(client, backend)
    backend.on("POST", f"{AUTH}/logout", status_code=204)
    response = client.get("/logout")
    assert response.status_code == 302
    assert client.get("/api/bff/session").json()["authenticated"] is False


def test_optimize_without_session_is_unauthorized(client, backend):
    response = client.post("/api/bff/optimize", json={"code": "x = 1", "language": "python"})
    assert response.status_code == 401
    assert response.json()["error"] == "Please sign in to optimize code"
    assert backend.requests == []


def test_idle_browser_state_expires_with_the_cookie(client, app_context, monkeypatch):
    now = [1000.0]
    monkeypatch.setattr(app_context, "_clock", lambda: now[0])
    client.put("/api/bff/theme", json={"theme": "light"})
    cookie = client.cookies[main.SESSION_COOKIE_NAME]

    now[0] += settings.SESSION_MAX_AGE_SECONDS - 1
    assert client.get("/api/bff/theme").json() == {"theme": "light"}

    now[0] += settings.SESSION_MAX_AGE_SECONDS
    assert not app_context.has_browser(cookie)
    response = client.get("/api/bff/theme")
    assert response.json() == {"theme": "dark"}
    assert response.cookies[main.SESSION_COOKIE_NAME] != cookie


def test_idle_browsers_are_dropped_from_the_registry(hosted, registry):
    now = [0.0]
    context = AppContext(settings, hosted, registry, clock=lambda: now[0])
    stale = context.browser("stale")
    active = context.browser("active")

    now[0] = settings.SESSION_MAX_AGE_SECONDS / 2
    assert context.browser("active") is active
    now[0] = settings.SESSION_MAX_AGE_SECONDS + 1
    context.browser("newcomer")

    assert context.has_browser("active")
    assert not context.has_browser("stale")
    assert context.browser("stale") is not stale
