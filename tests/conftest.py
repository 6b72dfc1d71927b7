"""
Pytest config.

Puts `src/` on sys.path so the tests run from a plain checkout as well as from
an editable install, and provides a scripted stand-in for the analytics backend.
"""

from __future__ import annotations

import inspect
import sys
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

import httpx
import pytest


def _ensure_src_on_syspath() -> None:
    src = str(Path(__file__).resolve().parents[1] / "src")
    if src not in sys.path:
        sys.path.insert(0, src)


_ensure_src_on_syspath()

from analytics_bff import backend  # noqa: E402
from analytics_bff.config import settings  # noqa: E402

Handler = Callable[[httpx.Request], Any]

# Expires attributes contain a comma; forwarding must keep each cookie whole.
RENEWED_ACCESS_COOKIE = "access_token=new-access; Path=/; Expires=Wed, 21 Oct 2026 07:28:00 GMT; HttpOnly; SameSite=Lax"
RENEWED_REFRESH_COOKIE = "refresh_token=new-refresh; Path=/; Expires=Thu, 29 Oct 2026 07:28:00 GMT; HttpOnly; SameSite=Lax"


class FakeBackend:
    """
    Scripted analytics backend served through httpx.MockTransport.

    Routes are keyed by (method, path) with paths relative to the API prefix,
    e.g. ("POST", "/auth/refresh"). A route is either a handler taking the
    request or a (status, json, headers) tuple that is rebuilt on every call.
    """

    def __init__(self) -> None:
        self.routes: Dict[Tuple[str, str], Any] = {}
        self.requests: List[httpx.Request] = []

    def route(self, method: str, path: str, handler: Optional[Handler] = None, *, status: int = 200,
              json: Any = None, headers: Optional[list] = None) -> None:
        self.routes[(method, path)] = handler if handler is not None else (status, json, headers or [])

    def calls(self, method: str, path: str) -> List[httpx.Request]:
        return [r for r in self.requests if r.method == method and self._relative(r) == path]

    def count(self, method: str, path: str) -> int:
        return len(self.calls(method, path))

    @staticmethod
    def _relative(request: httpx.Request) -> str:
        prefix = "/" + settings.BACKEND_API_PREFIX.strip("/")
        path = request.url.path
        return path[len(prefix):] if path.startswith(prefix) else path

    async def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        route = self.routes.get((request.method, self._relative(request)))
        if route is None:
            return httpx.Response(404, json={"detail": "Not Found"})
        if isinstance(route, tuple):
            status, body, headers = route
            return httpx.Response(status, json=body, headers=headers)
        result = route(request)
        if inspect.isawaitable(result):
            result = await result
        return result

    def client(self, **kwargs: Any) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            transport=httpx.MockTransport(self.handle),
            base_url=settings.BACKEND_API_BASE,
        )


@pytest.fixture
def fake_backend(monkeypatch: pytest.MonkeyPatch) -> FakeBackend:
    """A fake backend wired into every client the BFF builds."""
    fake = FakeBackend()

    def _new_client(timeout=None, **kwargs):  # type: ignore[no-untyped-def]
        return fake.client()

    monkeypatch.setattr(backend, "new_client", _new_client)
    return fake
