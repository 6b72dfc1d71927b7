# src/analytics_bff/edge_guard.py
"""
Edge Guard: gate page routes before they render.

Every request is classified by path. Static assets and the BFF's own /api/
routes pass straight through. Protected pages need a session cookie and one
successful round-trip to the backend's verify endpoint; the login page
bounces already-signed-in users to the landing area.
"""

import enum
from urllib.parse import urlencode

import httpx
from fastapi import Request, status
from fastapi.responses import RedirectResponse
from starlette.middleware.base import BaseHTTPMiddleware

from . import backend
from .config import settings, Settings
from .cookies import clear_session_cookies, cookie_header, forward_set_cookies, has_session_cookies


class PathKind(str, enum.Enum):
    PUBLIC = "public"
    PROTECTED = "protected"
    API = "api"
    STATIC = "static"
    OTHER = "other"


def classify_path(pathname: str, cfg: Settings = settings) -> PathKind:
    if any(pathname.startswith(prefix) for prefix in cfg.STATIC_PATH_PREFIXES):
        return PathKind.STATIC
    if any(pathname.startswith(prefix) for prefix in cfg.API_PATH_PREFIXES):
        return PathKind.API
    if pathname in cfg.PUBLIC_PATHS or (pathname.rstrip("/") or "/") in cfg.PUBLIC_PATHS:
        return PathKind.PUBLIC
    if any(pathname.startswith(prefix) for prefix in cfg.PROTECTED_PATH_PREFIXES):
        return PathKind.PROTECTED
    return PathKind.OTHER


def is_login_path(pathname: str, cfg: Settings = settings) -> bool:
    return (pathname.rstrip("/") or "/") == (cfg.LOGIN_PATH.rstrip("/") or "/")


def login_redirect(request: Request) -> RedirectResponse:
    """Redirect to the login page, remembering where the user was headed."""
    login_url = request.url.replace(
        path=settings.LOGIN_PATH,
        query=urlencode({"redirect": request.url.path}),
        fragment="",
    )
    return RedirectResponse(url=str(login_url), status_code=status.HTTP_307_TEMPORARY_REDIRECT)


async def verify_with_backend(request: Request) -> httpx.Response:
    """
    Ask the backend whether the forwarded cookies still hold a valid session.
    Raises httpx.RequestError (timeouts included) when the backend can't be reached.
    """
    async with backend.new_client(timeout=settings.VERIFY_TIMEOUT_SECONDS) as client:
        return await client.get("/auth/verify", headers=cookie_header(request))


class EdgeGuardMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request, call_next):
        pathname = request.url.path
        kind = classify_path(pathname)

        if kind in (PathKind.STATIC, PathKind.API):
            return await call_next(request)

        has_cookies = has_session_cookies(request.cookies)

        # A `redirect` parameter means the guard itself sent the user here.
        if is_login_path(pathname) and has_cookies and "redirect" not in request.query_params:
            print(f"EDGE_GUARD: {pathname} - Session cookies present on login page. Redirecting to landing area.")
            landing_url = request.url.replace(path=settings.AUTHENTICATED_LANDING_PATH, query="", fragment="")
            return RedirectResponse(url=str(landing_url), status_code=status.HTTP_307_TEMPORARY_REDIRECT)

        if kind is not PathKind.PROTECTED:
            return await call_next(request)

        if not has_cookies:
            print(f"EDGE_GUARD: {pathname} - No session cookies. Redirecting to login.")
            return login_redirect(request)

        try:
            verify_response = await verify_with_backend(request)
        except httpx.RequestError as e:
            if settings.EDGE_GUARD_FAIL_OPEN:
                # Backend unreachable; the client-side session check makes the call instead.
                print(f"EDGE_GUARD: {pathname} - Auth check failed ({type(e).__name__}: {e}). Letting request through.")
                return await call_next(request)
            print(f"EDGE_GUARD: {pathname} - Auth check failed ({type(e).__name__}: {e}). Fail-closed, redirecting to login.")
            return login_redirect(request)

        if not verify_response.is_success:
            print(f"EDGE_GUARD: {pathname} - Verification rejected (status {verify_response.status_code}). Clearing cookies.")
            response = login_redirect(request)
            clear_session_cookies(response)
            return response

        response = await call_next(request)
        renewed = forward_set_cookies(verify_response, response)
        if renewed:
            print(f"EDGE_GUARD: {pathname} - Forwarded {renewed} renewed session cookie(s).")
        return response
