"""Starlette/FastAPI adapter for the checkout gate.

Turns an incoming request into a ``RequestContext``, asks the gate for a
decision and turns the decision back into a response. Also provides the
bearer-token dependency that protects the settings API.
"""
from __future__ import annotations

import hmac
import logging

from fastapi import Depends, HTTPException, Request, Response
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from config import Settings
from contract import COOKIE_NAME, SESSION_COOKIE_NAME
from gate import CheckoutGate
from models import (
    Allow,
    Challenge,
    Decision,
    JsonResult,
    RedirectTo,
    RequestContext,
    RouteKind,
)
from nonces import new_session_id
from views import render_challenge

logger = logging.getLogger(__name__)

_security = HTTPBearer(auto_error=False)


# ---------------------------------------------------------------------------
# Request -> context
# ---------------------------------------------------------------------------

def _under(path: str, prefix: str) -> bool:
    return path == prefix or path.startswith(prefix.rstrip("/") + "/")


def classify_route(path: str, settings: Settings) -> RouteKind:
    """Map a request path onto the routes the gate knows about.

    The guarded page itself is matched first, so no bypass prefix can
    ever cover it.
    """
    path = "/" + path.strip("/")
    if path == settings.GUARDED_PATH:
        return RouteKind.GUARDED
    if _under(path, settings.CONFIRMATION_PATH):
        return RouteKind.CONFIRMATION
    if _under(path, settings.ASYNC_PATH):
        return RouteKind.ASYNC
    return RouteKind.OTHER


def site_identity(request: Request, settings: Settings) -> str:
    return settings.SITE_URL or str(request.base_url).rstrip("/")


async def read_form(request: Request) -> dict[str, str]:
    """Read url-encoded or multipart fields; unreadable bodies read as empty."""
    # Cache the raw body first so the downstream app can still read it.
    await request.body()
    try:
        form = await request.form()
    except Exception as e:
        logger.info("Unreadable form body on %s: %s", request.url.path, e)
        return {}
    return {k: v for k, v in form.items() if isinstance(v, str)}


def build_context(
    request: Request,
    settings: Settings,
    form: dict[str, str] | None = None,
    session_id: str | None = None,
) -> RequestContext:
    return RequestContext(
        host=request.headers.get("host", ""),
        site_url=site_identity(request, settings),
        route=classify_route(request.url.path, settings),
        method=request.method,
        cookies=dict(request.cookies),
        form=form or {},
        session_id=session_id or request.cookies.get(SESSION_COOKIE_NAME, ""),
    )


# ---------------------------------------------------------------------------
# Decision -> response
# ---------------------------------------------------------------------------

def set_auth_cookie(response: Response, token: str, request: Request,
                    settings: Settings) -> None:
    response.set_cookie(
        COOKIE_NAME,
        token,
        max_age=settings.TOKEN_TTL,
        path=settings.COOKIE_PATH,
        domain=settings.COOKIE_DOMAIN,
        secure=request.url.scheme == "https",
        httponly=True,
        samesite="strict",
    )


def set_session_cookie(response: Response, session_id: str, request: Request,
                       settings: Settings) -> None:
    response.set_cookie(
        SESSION_COOKIE_NAME,
        session_id,
        max_age=settings.NONCE_LIFETIME,
        path=settings.COOKIE_PATH,
        domain=settings.COOKIE_DOMAIN,
        secure=request.url.scheme == "https",
        httponly=True,
        samesite="strict",
    )


def render_decision(decision: Decision, request: Request,
                    settings: Settings) -> Response:
    if isinstance(decision, Challenge):
        return HTMLResponse(
            render_challenge(decision, action=request.url.path),
            headers={"Cache-Control": "no-store"},
        )

    if isinstance(decision, RedirectTo):
        response = RedirectResponse(decision.url, status_code=303)
        if decision.token:
            set_auth_cookie(response, decision.token, request, settings)
        return response

    if isinstance(decision, JsonResult):
        response = JSONResponse(
            {"success": decision.success, **decision.payload},
            headers={"Cache-Control": "no-store"},
        )
        if decision.token:
            set_auth_cookie(response, decision.token, request, settings)
        return response

    raise TypeError(f"Cannot render decision {decision!r}")


# ---------------------------------------------------------------------------
# Middleware
# ---------------------------------------------------------------------------

class GateMiddleware(BaseHTTPMiddleware):
    """Runs every request past the gate before the application sees it."""

    def __init__(self, app, gate: CheckoutGate, settings: Settings) -> None:
        super().__init__(app)
        self.gate = gate
        self.settings = settings

    async def dispatch(self, request: Request,
                       call_next: RequestResponseEndpoint) -> Response:
        route = classify_route(request.url.path, self.settings)
        if route is RouteKind.OTHER:
            return await call_next(request)

        form: dict[str, str] = {}
        if route is RouteKind.GUARDED and request.method == "POST":
            form = await read_form(request)

        existing_sid = request.cookies.get(SESSION_COOKIE_NAME, "")
        session_id = existing_sid or new_session_id()
        ctx = build_context(request, self.settings, form, session_id)

        decision = self.gate.decide(ctx)
        if isinstance(decision, Allow):
            return await call_next(request)

        response = render_decision(decision, request, self.settings)
        if isinstance(decision, Challenge) and not existing_sid:
            set_session_cookie(response, session_id, request, self.settings)
        return response


# ---------------------------------------------------------------------------
# Settings API authorization
# ---------------------------------------------------------------------------

async def require_admin(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(_security),
) -> None:
    """Dependency: only the configured admin bearer token may pass.

    Branches: ADMIN-DISABLED, ADMIN-NO-TOKEN, ADMIN-BAD-TOKEN
    """
    expected = request.app.state.gate_settings.ADMIN_TOKEN
    if not expected:                                              # ADMIN-DISABLED
        raise HTTPException(status_code=403, detail="Settings API disabled")

    if credentials is None:                                       # ADMIN-NO-TOKEN
        raise HTTPException(status_code=401, detail="Not authenticated")

    if not hmac.compare_digest(                                   # ADMIN-BAD-TOKEN
        credentials.credentials.encode("utf-8"), expected.encode("utf-8")
    ):
        raise HTTPException(status_code=401, detail="Invalid admin token")
