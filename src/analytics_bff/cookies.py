# src/analytics_bff/cookies.py

import typing

import httpx
from fastapi import Request
from starlette.responses import Response as StarletteResponse

from .config import settings


# --- Session cookie contract ---

def has_session_cookies(cookies: typing.Mapping[str, str]) -> bool:
    """Either cookie of the session pair is enough to attempt verification."""
    return any(cookies.get(name) for name in settings.SESSION_COOKIE_NAMES)


def clear_session_cookies(response: StarletteResponse) -> None:
    for name in settings.SESSION_COOKIE_NAMES:
        response.delete_cookie(key=name, path="/")


def cookie_header(request: Request) -> dict:
    """Headers that carry the browser's raw cookie header on to the backend."""
    return {"Cookie": request.headers.get("cookie", "")}


# --- Set-Cookie forwarding ---

def get_set_cookie_headers(response: httpx.Response) -> typing.List[str]:
    """
    Every Set-Cookie header of a backend response, one entry per cookie.
    Reads the headers as a multi-value list; joining and re-splitting on ','
    would break cookies whose Expires attribute contains a comma.
    """
    return response.headers.get_list("set-cookie")


def forward_set_cookies(source: httpx.Response, target: StarletteResponse) -> int:
    cookies = get_set_cookie_headers(source)
    for cookie in cookies:
        target.headers.append("set-cookie", cookie)
    return len(cookies)


def sanitize_next_path(next_path: typing.Optional[str]) -> str:
    """Post-login target: an on-site path, or the landing area when it isn't one."""
    target = (next_path or "").replace("\r", "").replace("\n", "").strip()
    # `//host` and `/\host` are both read by browsers as another origin.
    if not target.startswith("/") or target.startswith(("//", "/\\")):
        return settings.AUTHENTICATED_LANDING_PATH
    return target
