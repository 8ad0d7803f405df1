from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional

import requests
from fastapi import APIRouter, Depends, FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, RedirectResponse
from pydantic import BaseModel, ConfigDict, EmailStr, Field
from pydantic.alias_generators import to_camel

from velora import __version__
from velora.auth import get_current_user, get_optional_user, require_admin
from velora.auth import google, service
from velora.auth.crud import bootstrap_admin_if_needed, public_user, set_user_role, update_favorites
from velora.catalog import newsletter, submissions, tools
from velora.config import Config, load_config
from velora.db import connect, init_db
from velora.errors import InternalError, NotFound, ValidationError, VeloraError
from velora.mail.brevo import BrevoMailer, Mailer


def _debug(msg: str) -> None:
    print(f"[api] {msg}")


def _cfg(request: Request) -> Config:
    return request.app.state.cfg


# -----------------------------
# Request bodies
# -----------------------------


class _Body(BaseModel):
    """Accepts both snake_case and the SPA's camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class RegisterRequest(_Body):
    username: str = Field(min_length=1)
    email: EmailStr
    password: str = Field(min_length=6)


class LoginRequest(_Body):
    email: EmailStr
    password: str = Field(min_length=1)


class OTPSendRequest(_Body):
    email: EmailStr


class OTPVerifyRequest(_Body):
    email: EmailStr
    otp: str = Field(min_length=6, max_length=6)


class FavoritesRequest(_Body):
    tool_id: str = Field(min_length=1)
    action: str


class NewsletterRequest(_Body):
    email: EmailStr


class SubmissionRequest(_Body):
    tool_name: str = Field(min_length=1)
    description: str = Field(min_length=1)
    category: str = Field(min_length=1)
    website: str = Field(min_length=1)
    reasoning: Optional[str] = None


class ReviewRequest(_Body):
    status: Literal["approved", "rejected"]
    review_notes: Optional[str] = None


class ToolCreateRequest(_Body):
    name: str
    description: str
    short_description: str
    category: str
    pricing: Literal["Free", "Paid", "Freemium"]
    website: str
    logo: Optional[str] = None
    screenshots: List[str] = []
    features: List[str] = []
    pros: List[str] = []
    cons: List[str] = []
    rating: float = Field(default=0, ge=0, le=5)
    usage_count: int = Field(default=0, ge=0)
    tags: List[str] = []
    approved: bool = False


class ToolUpdateRequest(_Body):
    name: Optional[str] = None
    description: Optional[str] = None
    short_description: Optional[str] = None
    category: Optional[str] = None
    pricing: Optional[Literal["Free", "Paid", "Freemium"]] = None
    website: Optional[str] = None
    logo: Optional[str] = None
    screenshots: Optional[List[str]] = None
    features: Optional[List[str]] = None
    pros: Optional[List[str]] = None
    cons: Optional[List[str]] = None
    rating: Optional[float] = Field(default=None, ge=0, le=5)
    usage_count: Optional[int] = Field(default=None, ge=0)
    tags: Optional[List[str]] = None
    approved: Optional[bool] = None


class RoleRequest(_Body):
    role: Literal["admin", "user"]


api = APIRouter(prefix="/api")
google_router = APIRouter(prefix="/api/auth/google")


# -----------------------------
# Auth
# -----------------------------


@api.post("/auth/register")
def auth_register(payload: RegisterRequest, request: Request) -> Dict[str, Any]:
    return service.register(
        _cfg(request),
        username=payload.username,
        email=str(payload.email),
        password=payload.password,
    )


@api.post("/auth/login")
def auth_login(payload: LoginRequest, request: Request) -> Dict[str, Any]:
    return service.login(_cfg(request), email=str(payload.email), password=payload.password)


@api.post("/auth/otp/send")
def auth_otp_send(payload: OTPSendRequest, request: Request) -> Dict[str, Any]:
    service.request_otp(_cfg(request), request.app.state.mailer, email=str(payload.email))
    return {"message": "OTP sent successfully"}


@api.post("/auth/otp/verify")
def auth_otp_verify(payload: OTPVerifyRequest, request: Request) -> Dict[str, Any]:
    return service.verify_otp(_cfg(request), email=str(payload.email), code=payload.otp)


def _google_redirect_uri(request: Request) -> str:
    cfg = _cfg(request)
    return cfg.GOOGLE_REDIRECT_URL or str(request.url_for("auth_google_callback"))


@google_router.get("")
def auth_google(request: Request) -> RedirectResponse:
    try:
        url = google.authorization_url(_cfg(request), redirect_uri=_google_redirect_uri(request))
    except requests.RequestException as e:
        _debug(f"google discovery failed: {e}")
        raise InternalError("oauth_provider_unavailable")
    return RedirectResponse(url)


@google_router.get("/callback", name="auth_google_callback")
def auth_google_callback(request: Request) -> RedirectResponse:
    cfg = _cfg(request)
    try:
        profile = google.fetch_profile(
            cfg,
            code=request.query_params.get("code") or "",
            authorization_response=str(request.url),
            redirect_uri=_google_redirect_uri(request),
        )
    except requests.RequestException as e:
        _debug(f"google token/userinfo failed: {e}")
        raise InternalError("oauth_provider_unavailable")

    session = service.oauth_login(
        cfg,
        provider_id=profile.provider_id,
        display_name=profile.display_name,
        email=profile.email,
        avatar=profile.avatar,
    )
    return RedirectResponse(f"{cfg.PUBLIC_APP_URL.rstrip('/')}/?token={session['token']}")


# -----------------------------
# Current user
# -----------------------------


@api.get("/user/me")
def user_me(user: Dict[str, Any] = Depends(get_current_user)) -> Dict[str, Any]:
    return user


@api.patch("/user/favorites")
def user_favorites(
    payload: FavoritesRequest,
    request: Request,
    user: Dict[str, Any] = Depends(get_current_user),
) -> Dict[str, Any]:
    with connect(_cfg(request).DB_DSN) as conn:
        updated = update_favorites(conn, user["id"], payload.tool_id, payload.action)
    return public_user(updated)


# -----------------------------
# Catalog (public)
# -----------------------------


def _is_admin(user: Optional[Dict[str, Any]]) -> bool:
    return bool(user) and user.get("role") == "admin"


@api.get("/tools")
def list_tools(
    request: Request,
    category: Optional[str] = Query(default=None),
    search: Optional[str] = Query(default=None),
    user: Optional[Dict[str, Any]] = Depends(get_optional_user),
) -> List[Dict[str, Any]]:
    with connect(_cfg(request).DB_DSN) as conn:
        rows = tools.list_tools(conn, include_unapproved=_is_admin(user))
    # search wins; category is ignored when both are given.
    if search:
        return tools.search_tools(rows, search)
    if category:
        return tools.filter_by_category(rows, category)
    return rows


# Declared before /tools/{tool_id} so these paths are never read as ids.
@api.get("/tools/trending")
def trending_tools(request: Request) -> List[Dict[str, Any]]:
    cfg = _cfg(request)
    with connect(cfg.DB_DSN) as conn:
        rows = tools.list_tools(conn)
    return tools.trending(rows, limit=cfg.TRENDING_LIMIT)


@api.get("/tools/compare")
def compare_tools(request: Request, ids: str = Query(default="")) -> List[Dict[str, Any]]:
    wanted = [i.strip() for i in ids.split(",") if i.strip()]
    with connect(_cfg(request).DB_DSN) as conn:
        rows = tools.list_tools(conn)
    return tools.pick(rows, wanted)


@api.get("/tools/{tool_id}")
def get_tool(
    tool_id: str,
    request: Request,
    user: Optional[Dict[str, Any]] = Depends(get_optional_user),
) -> Dict[str, Any]:
    with connect(_cfg(request).DB_DSN) as conn:
        return tools.get_visible_tool(conn, tool_id, include_unapproved=_is_admin(user))


@api.post("/tools/{tool_id}/visit")
def visit_tool(tool_id: str, request: Request) -> Dict[str, Any]:
    with connect(_cfg(request).DB_DSN) as conn:
        tool = tools.record_usage(conn, tool_id)
    return {"id": tool["id"], "usage_count": tool["usage_count"]}


# -----------------------------
# Newsletter
# -----------------------------


@api.post("/newsletter/subscribe")
def newsletter_subscribe(payload: NewsletterRequest, request: Request) -> Dict[str, Any]:
    with connect(_cfg(request).DB_DSN) as conn:
        newsletter.subscribe(conn, str(payload.email))
    return {"message": "Successfully subscribed to newsletter"}


@api.post("/newsletter/unsubscribe")
def newsletter_unsubscribe(payload: NewsletterRequest, request: Request) -> Dict[str, Any]:
    with connect(_cfg(request).DB_DSN) as conn:
        newsletter.unsubscribe(conn, str(payload.email))
    # Same answer whether or not the address was subscribed.
    return {"message": "Successfully unsubscribed from newsletter"}


# -----------------------------
# Submissions (community)
# -----------------------------


@api.post("/submissions")
def create_submission(
    payload: SubmissionRequest,
    request: Request,
    user: Dict[str, Any] = Depends(get_current_user),
) -> Dict[str, Any]:
    with connect(_cfg(request).DB_DSN) as conn:
        return submissions.create_submission(
            conn,
            submitted_by=user["id"],
            tool_name=payload.tool_name,
            description=payload.description,
            category=payload.category,
            website=payload.website,
            reasoning=payload.reasoning,
        )


@api.get("/submissions")
def my_submissions(request: Request, user: Dict[str, Any] = Depends(get_current_user)) -> List[Dict[str, Any]]:
    with connect(_cfg(request).DB_DSN) as conn:
        return submissions.list_submissions(conn, submitted_by=user["id"])


# -----------------------------
# Admin
# -----------------------------


@api.get("/admin/submissions")
def admin_list_submissions(
    request: Request,
    status: Optional[str] = Query(default=None),
    _admin: Dict[str, Any] = Depends(require_admin),
) -> List[Dict[str, Any]]:
    with connect(_cfg(request).DB_DSN) as conn:
        return submissions.list_submissions(conn, status=status)


@api.get("/admin/submissions/{submission_id}")
def admin_get_submission(
    submission_id: str,
    request: Request,
    _admin: Dict[str, Any] = Depends(require_admin),
) -> Dict[str, Any]:
    with connect(_cfg(request).DB_DSN) as conn:
        sub = submissions.get_submission(conn, submission_id)
    if sub is None:
        raise NotFound("submission_not_found")
    return sub


@api.patch("/admin/submissions/{submission_id}")
def admin_review_submission(
    submission_id: str,
    payload: ReviewRequest,
    request: Request,
    admin: Dict[str, Any] = Depends(require_admin),
) -> Dict[str, Any]:
    cfg = _cfg(request)
    with connect(cfg.DB_DSN) as conn:
        return submissions.review_submission(
            conn,
            cfg,
            submission_id=submission_id,
            reviewer_id=admin["id"],
            status=payload.status,
            review_notes=payload.review_notes,
        )


@api.get("/admin/tools")
def admin_list_tools(request: Request, _admin: Dict[str, Any] = Depends(require_admin)) -> List[Dict[str, Any]]:
    with connect(_cfg(request).DB_DSN) as conn:
        return tools.list_tools(conn, include_unapproved=True)


@api.post("/admin/tools")
def admin_create_tool(
    payload: ToolCreateRequest,
    request: Request,
    _admin: Dict[str, Any] = Depends(require_admin),
) -> Dict[str, Any]:
    with connect(_cfg(request).DB_DSN) as conn:
        return tools.create_tool(conn, payload.model_dump())


@api.patch("/admin/tools/{tool_id}")
def admin_update_tool(
    tool_id: str,
    payload: ToolUpdateRequest,
    request: Request,
    _admin: Dict[str, Any] = Depends(require_admin),
) -> Dict[str, Any]:
    with connect(_cfg(request).DB_DSN) as conn:
        return tools.update_tool(conn, tool_id, payload.model_dump(exclude_unset=True))


@api.delete("/admin/tools/{tool_id}")
def admin_delete_tool(
    tool_id: str,
    request: Request,
    _admin: Dict[str, Any] = Depends(require_admin),
) -> Dict[str, Any]:
    with connect(_cfg(request).DB_DSN) as conn:
        tools.delete_tool(conn, tool_id)
    return {"message": "Tool deleted successfully"}


@api.get("/admin/newsletter")
def admin_list_newsletter(
    request: Request,
    include_inactive: bool = Query(default=False),
    _admin: Dict[str, Any] = Depends(require_admin),
) -> List[Dict[str, Any]]:
    with connect(_cfg(request).DB_DSN) as conn:
        return newsletter.list_subscribers(conn, active_only=not include_inactive)


@api.patch("/admin/users/{user_id}/role")
def admin_set_role(
    user_id: str,
    payload: RoleRequest,
    request: Request,
    admin: Dict[str, Any] = Depends(require_admin),
) -> Dict[str, Any]:
    if user_id == admin["id"] and payload.role != "admin":
        raise ValidationError("cannot_demote_self")
    with connect(_cfg(request).DB_DSN) as conn:
        return public_user(set_user_role(conn, user_id, payload.role))


# -----------------------------
# App
# -----------------------------


def _install_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(VeloraError)
    async def _velora_error(request: Request, exc: VeloraError) -> JSONResponse:
        headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == 401 else None
        if exc.status_code >= 500:
            _debug(f"{request.method} {request.url.path} -> {exc.status_code} {exc.detail}")
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail}, headers=headers)

    @app.exception_handler(RequestValidationError)
    async def _invalid_request(request: Request, exc: RequestValidationError) -> JSONResponse:
        # No field-level detail goes back to the caller.
        return JSONResponse(status_code=400, content={"detail": "invalid_request"})

    @app.exception_handler(Exception)
    async def _unhandled(request: Request, exc: Exception) -> JSONResponse:
        _debug(f"{request.method} {request.url.path} -> unhandled {type(exc).__name__}: {exc}")
        return JSONResponse(status_code=500, content={"detail": "internal_error"})


def create_app(cfg: Config | None = None, *, mailer: Mailer | None = None) -> FastAPI:
    cfg = cfg or load_config()
    app = FastAPI(title="Velora", version=__version__)
    app.state.cfg = cfg
    app.state.mailer = mailer or BrevoMailer(cfg)

    # CORS is mainly needed for local development (Vite on :5173 -> API on :8000).
    cors_origins = [o.strip() for o in (cfg.CORS_ALLOW_ORIGINS or "").split(",") if o.strip()]
    if cors_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=cors_origins,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    _install_error_handlers(app)

    @app.get("/health")
    def health() -> Dict[str, Any]:
        return {"status": "ok"}

    app.include_router(api)
    # Google sign-in is a capability of the deployment, not of every request.
    if cfg.google_oauth_enabled:
        app.include_router(google_router)
    else:
        _debug("Google OAuth not configured; /api/auth/google disabled")

    @app.on_event("startup")
    def _on_startup() -> None:
        # Ensure schema exists.
        init_db(cfg.DB_DSN)

        boot = bootstrap_admin_if_needed(cfg)
        if boot:
            _debug(f"Bootstrapped admin user: email={boot.get('email')} role={boot.get('role')}")

    return app


app = create_app()
