# src/codable_bff/main.py

import typing
import uuid
from pathlib import Path

from fastapi import FastAPI, Depends, Request, HTTPException, status, Response
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse
from fastapi.templating import Jinja2Templates
from pydantic import BaseModel, ConfigDict
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response as StarletteResponse

from .auth_flow import AuthStep
from .callback import RESET_PASSWORD_PATH
from .config import settings
from .context import AppContext, BrowserContext
from .errors import CodableError, Unauthenticated
from .session_data import Session
from .stats import UserStatsService

# --- Process-wide services; each browser gets its own BrowserContext ---
app_context = AppContext.from_settings(settings)

SESSION_COOKIE_NAME = "session_id"
SESSION_COOKIE_MAX_AGE = settings.SESSION_MAX_AGE_SECONDS

HOME_PATH = "/"
DASHBOARD_PATH = "/app/dashboard"
ADMIN_PAGE = "admin"


class SessionMiddlewareCustom(BaseHTTPMiddleware):
    async def dispatch(self, request, call_next):
        session_id = request.cookies.get(SESSION_COOKIE_NAME)
        if not app_context.has_browser(session_id):
            session_id = str(uuid.uuid4())
        request.state.session_id = session_id
        request.state.browser = app_context.browser(session_id)
        response: StarletteResponse = await call_next(request)
        response.set_cookie(
            SESSION_COOKIE_NAME,
            session_id,
            max_age=SESSION_COOKIE_MAX_AGE,
            httponly=True,
            secure=False,  # Set to True in production with HTTPS
            samesite="lax",
        )
        return response


def get_browser(request: Request) -> BrowserContext:
    return request.state.browser


def require_session(browser: BrowserContext = Depends(get_browser)) -> Session:
    session = browser.session_store.current
    if session is None:
        raise Unauthenticated()
    return session


async def require_admin(
        browser: BrowserContext = Depends(get_browser),
        session: Session = Depends(require_session),
) -> Session:
    if not await browser.admin.is_admin(session):
        print(f"MAIN: Admin access denied for {session.email}")
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin access required.")
    return session


# --- FastAPI App Setup ---
app = FastAPI(
    title="Codable-BFF API",
    description="Backend-For-Frontend for the Codable UI, handling auth and AI provider orchestration.",
    version="0.1.0"
)

app.add_middleware(
    SessionMiddlewareCustom,
)

templates = Jinja2Templates(
    directory=Path(__file__).resolve().parent / "templates"
)


@app.exception_handler(CodableError)
async def codable_error_handler(request: Request, exc: CodableError):
    print(f"MAIN: {request.method} {request.url.path} failed: {type(exc).__name__} ({exc.detail or exc.user_message})")
    return JSONResponse(status_code=exc.status_code, content={"error": exc.user_message, "detail": exc.detail})


@app.exception_handler(ValueError)
async def value_error_handler(request: Request, exc: ValueError):
    print(f"MAIN: {request.method} {request.url.path} rejected: {exc}")
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"error": str(exc), "detail": None})


# --- Request bodies ---
class AuthActionRequest(BaseModel):
    action: str
    step: typing.Optional[AuthStep] = None


class AuthSubmitRequest(BaseModel):
    email: typing.Optional[str] = None
    password: typing.Optional[str] = None
    confirm_password: typing.Optional[str] = None
    full_name: typing.Optional[str] = None


class ProviderRequest(BaseModel):
    provider: str


class ThemeRequest(BaseModel):
    theme: str


class AnalyzeRequest(BaseModel):
    code: str
    language: str
    title: typing.Optional[str] = None


class SolveRequest(BaseModel):
    problem_statement: str
    language: str


class OptimizeRequest(BaseModel):
    code: str
    language: str


class ChatRequest(BaseModel):
    message: str
    conversation_id: typing.Optional[str] = None
    context: typing.Optional[str] = None


class ProfileUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    full_name: typing.Optional[str] = None
    username: typing.Optional[str] = None
    avatar_url: typing.Optional[str] = None
    bio: typing.Optional[str] = None


# --- Pages ---
def _render(request: Request, browser: BrowserContext, template: str, **extra) -> HTMLResponse:
    session = browser.session_store.current
    context = {
        "user": session.public_view() if session else None,
        "theme": browser.theme.get_theme(),
        "ai_provider": browser.ai_switch.get_provider().value,
        "auth": browser.auth_flow.state(),
        "toasts": [t.model_dump() for t in browser.toaster.pending()],
    }
    context.update(extra)
    return templates.TemplateResponse(request, template, context)


@app.get("/", response_class=HTMLResponse)
async def read_root(request: Request, browser: BrowserContext = Depends(get_browser)):
    session = await browser.session_store.get_current_session()
    print(f"MAIN: / read_root entered. User in session: {'Yes' if session else 'No'}")
    return _render(request, browser, "index.html", page=None)


@app.get("/auth/callback")
async def auth_callback(request: Request, browser: BrowserContext = Depends(get_browser)):
    print(f"MAIN: /auth/callback entered")
    redirect_path = await browser.callback.handle(dict(request.query_params))
    if redirect_path == RESET_PASSWORD_PATH:
        browser.auth_flow.enter_recovery()
    print(f"MAIN: /auth/callback will redirect to: {redirect_path}")
    return RedirectResponse(url=redirect_path, status_code=status.HTTP_302_FOUND)


@app.get("/reset-password", response_class=HTMLResponse)
async def reset_password_page(request: Request, browser: BrowserContext = Depends(get_browser)):
    # Without a recovery session the page offers to send a new link instead
    has_session = browser.session_store.current is not None
    if has_session:
        browser.auth_flow.enter_recovery()
    return _render(request, browser, "reset_password.html", has_session=has_session)


@app.get("/app/{page:path}", response_class=HTMLResponse)
async def protected_page(page: str, request: Request, browser: BrowserContext = Depends(get_browser)):
    session = await browser.session_store.get_current_session()
    if session is None:
        print(f"MAIN: /app/{page} - Not signed in. Redirecting home with the auth modal open.")
        browser.auth_flow.open(AuthStep.SIGNIN)
        return RedirectResponse(url=HOME_PATH, status_code=status.HTTP_307_TEMPORARY_REDIRECT)

    page = page.strip("/") or "dashboard"
    if page.split("/")[0] == ADMIN_PAGE and not await browser.admin.is_admin(session):
        print(f"MAIN: /app/{page} - {session.email} is not an admin. Redirecting to dashboard.")
        browser.toaster.error("Admin access required.")
        return RedirectResponse(url=DASHBOARD_PATH, status_code=status.HTTP_307_TEMPORARY_REDIRECT)
    return _render(request, browser, "index.html", page=page)


@app.get("/logout")
async def logout(request: Request):
    browser: BrowserContext = request.state.browser
    session = browser.session_store.current
    print(f"MAIN: /logout route hit. User before logout: {session.email if session else 'Not in session'}")
    await browser.session_store.sign_out()
    browser.auth_flow.cancel()
    return RedirectResponse(url=HOME_PATH, status_code=status.HTTP_302_FOUND)


# --- BFF API Endpoints (called by the frontend) ---
@app.get("/api/bff/session")
async def get_session_info(browser: BrowserContext = Depends(get_browser)):
    session = await browser.session_store.get_current_session()
    return {
        "authenticated": session is not None,
        "user": session.public_view() if session else None,
        "is_admin": await browser.admin.is_admin(session),
        "loading": browser.session_store.loading,
    }


@app.get("/api/bff/auth/state")
async def get_auth_state(browser: BrowserContext = Depends(get_browser)):
    return browser.auth_flow.state()


@app.post("/api/bff/auth/action")
async def auth_action(body: AuthActionRequest, browser: BrowserContext = Depends(get_browser)):
    if body.action == "open":
        browser.auth_flow.open(body.step or AuthStep.SIGNIN)
    else:
        browser.auth_flow.dispatch(body.action)
    return browser.auth_flow.state()


@app.post("/api/bff/auth/back")
async def auth_back(browser: BrowserContext = Depends(get_browser)):
    browser.auth_flow.back()
    return browser.auth_flow.state()


@app.post("/api/bff/auth/cancel")
async def auth_cancel(browser: BrowserContext = Depends(get_browser)):
    browser.auth_flow.cancel()
    return browser.auth_flow.state()


@app.post("/api/bff/auth/submit")
async def auth_submit(body: AuthSubmitRequest, browser: BrowserContext = Depends(get_browser)):
    browser.auth_flow.update_fields(**body.model_dump(exclude_none=True))
    outcome = await browser.auth_flow.submit()
    return {"outcome": outcome.model_dump(mode="json"), "state": browser.auth_flow.state()}


@app.post("/api/bff/auth/resend-verification")
async def auth_resend_verification(browser: BrowserContext = Depends(get_browser)):
    sent = await browser.auth_flow.resend_verification()
    return {"sent": sent, "state": browser.auth_flow.state()}


@app.get("/api/bff/ai-provider")
async def get_ai_provider(browser: BrowserContext = Depends(get_browser)):
    return {
        "provider": browser.ai_switch.get_provider().value,
        "enabled": [p.value for p in browser.ai_switch.allowed],
        "configured": app_context.providers.available(),
    }


@app.put("/api/bff/ai-provider")
async def set_ai_provider(body: ProviderRequest, browser: BrowserContext = Depends(get_browser)):
    provider = await browser.ai_switch.set_provider(body.provider)
    return {"provider": provider.value}


@app.get("/api/bff/theme")
async def get_theme(browser: BrowserContext = Depends(get_browser)):
    return {"theme": browser.theme.get_theme()}


@app.put("/api/bff/theme")
async def set_theme(body: ThemeRequest, browser: BrowserContext = Depends(get_browser)):
    return {"theme": await browser.theme.set_theme(body.theme)}


@app.post("/api/bff/analyze")
async def analyze_code(body: AnalyzeRequest, browser: BrowserContext = Depends(get_browser)):
    analysis = await browser.analyzer.analyze(body.code, body.language, body.title)
    return analysis.model_dump(by_alias=True)


@app.post("/api/bff/solve")
async def solve_problem(body: SolveRequest, browser: BrowserContext = Depends(get_browser)):
    solution = await browser.solver.solve(body.problem_statement, body.language)
    return solution.model_dump()


@app.post("/api/bff/optimize")
async def optimize_code(body: OptimizeRequest, browser: BrowserContext = Depends(get_browser)):
    optimization = await browser.optimizer.optimize(body.code, body.language)
    return optimization.model_dump()


@app.post("/api/bff/chat")
async def chat(body: ChatRequest, browser: BrowserContext = Depends(get_browser)):
    reply = await browser.chat.send_message(body.message, body.conversation_id, body.context)
    return reply.model_dump()


@app.get("/api/bff/stats")
async def get_stats(browser: BrowserContext = Depends(get_browser), session: Session = Depends(require_session)):
    return await UserStatsService(browser.repository(), session.user_id).fetch()


@app.get("/api/bff/profile")
async def get_profile(browser: BrowserContext = Depends(get_browser), session: Session = Depends(require_session)):
    profile = await browser.repository().get_profile(session.user_id)
    return {"profile": profile}


@app.patch("/api/bff/profile")
async def update_profile(
        body: ProfileUpdate,
        browser: BrowserContext = Depends(get_browser),
        session: Session = Depends(require_session),
):
    updates = body.model_dump(exclude_none=True)
    if not updates:
        raise ValueError("No profile fields to update")
    await browser.repository().update_profile(session.user_id, updates)
    return {"profile": await browser.repository().get_profile(session.user_id)}


@app.get("/api/bff/history/analyses")
async def get_analysis_history(browser: BrowserContext = Depends(get_browser),
                               session: Session = Depends(require_session)):
    return {"analyses": await browser.repository().get_code_analyses(session.user_id)}


@app.delete("/api/bff/history/analyses/{analysis_id}")
async def delete_analysis(analysis_id: str, browser: BrowserContext = Depends(get_browser),
                          session: Session = Depends(require_session)):
    await browser.repository().delete_code_analysis(analysis_id)
    return {"deleted": analysis_id}


@app.get("/api/bff/history/solutions")
async def get_solution_history(browser: BrowserContext = Depends(get_browser),
                               session: Session = Depends(require_session)):
    return {"solutions": await browser.repository().get_problem_solutions(session.user_id)}


@app.get("/api/bff/conversations")
async def get_conversations(browser: BrowserContext = Depends(get_browser),
                            session: Session = Depends(require_session)):
    return {"conversations": await browser.repository().get_conversations(session.user_id)}


@app.get("/api/bff/conversations/{conversation_id}/messages")
async def get_conversation_messages(conversation_id: str, browser: BrowserContext = Depends(get_browser),
                                    session: Session = Depends(require_session)):
    return {"messages": await browser.repository().get_messages(conversation_id)}


@app.get("/api/bff/admin/users")
async def get_admin_users(browser: BrowserContext = Depends(get_browser), session: Session = Depends(require_admin)):
    return {"users": await browser.repository().get_admin_panel_users()}


@app.delete("/api/bff/admin/users/{user_id}")
async def delete_admin_user(user_id: str, browser: BrowserContext = Depends(get_browser),
                            session: Session = Depends(require_admin)):
    if user_id == session.user_id:
        raise ValueError("Admins cannot delete their own account from the panel")
    result = await browser.repository().delete_user_admin(user_id)
    print(f"MAIN: Admin {session.email} deleted user {user_id}")
    browser.toaster.success("User deleted.")
    return {"deleted": user_id, "result": result}


@app.get("/api/bff/toasts")
async def get_toasts(browser: BrowserContext = Depends(get_browser)):
    return {"toasts": [t.model_dump() for t in browser.toaster.drain()]}


@app.get("/favicon.ico", include_in_schema=False)
async def favicon():
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# --- Startup / Shutdown ---
@app.on_event("startup")
async def startup_event():
    print("--- Codable-BFF (FastAPI) Starting Up ---")
    print(f"Hosted service auth URL: {settings.AUTH_URL}")
    print(f"Auth callback URL: {settings.AUTH_CALLBACK_URL}")
    print(f"AI providers: {app_context.providers.available()} (default: {settings.DEFAULT_AI_PROVIDER})")
    print(f"Session Secret Key is set: {'Yes' if settings.SESSION_SECRET_KEY else 'NO (CRITICAL ERROR!)'}")
    if not settings.SESSION_SECRET_KEY:
        print("CRITICAL: SESSION_SECRET_KEY is not set. Application will not be secure.")
    print("-------------------------------------------")


@app.on_event("shutdown")
async def shutdown_event():
    print("--- Codable-BFF (FastAPI) Shutting Down ---")
    await app_context.aclose()
