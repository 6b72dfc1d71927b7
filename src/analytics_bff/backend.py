# src/analytics_bff/backend.py

import typing

import httpx

from .config import settings


def new_client(timeout: typing.Optional[float] = None, **kwargs: typing.Any) -> httpx.AsyncClient:
    """
    Build the httpx client used for every call to the analytics backend.
    Paths passed to the client are relative to BACKEND_API_BASE, e.g. `/auth/verify`.
    Tests replace this factory to plug in an `httpx.MockTransport`.
    """
    return httpx.AsyncClient(
        base_url=settings.BACKEND_API_BASE,
        timeout=timeout if timeout is not None else settings.BACKEND_TIMEOUT_SECONDS,
        **kwargs,
    )
