# src/analytics_bff/proxy.py
"""
Thin relays from the browser-facing /api/ routes to the analytics backend.

The browser only ever talks to the BFF, so session cookies stay first-party:
the browser's cookie header is passed through on the way in and every
Set-Cookie from the backend is passed back on the way out.
"""

import typing

import httpx
from fastapi import APIRouter, HTTPException, Request, status
from fastapi.responses import JSONResponse, StreamingResponse

from . import backend
from .cookies import cookie_header, forward_set_cookies
from .stream_protocol import DataStreamTransformer, encode_frame

router = APIRouter(prefix="/api")


async def read_json_body(request: Request) -> typing.Any:
    try:
        return await request.json()
    except ValueError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Request body must be valid JSON.")


async def relay_json(
        request: Request,
        method: str,
        path: str,
        *,
        fallback: dict,
        fallback_status: int = status.HTTP_502_BAD_GATEWAY,
        json_body: typing.Any = None,
        forward_cookies: bool = True,
) -> JSONResponse:
    """
    Call `path` on the backend and mirror its status, JSON body and cookies.
    Returns `fallback` when the backend can't be reached or answers with non-JSON.
    """
    headers = cookie_header(request) if forward_cookies else {}
    try:
        async with backend.new_client() as client:
            print(f"BFF: Relaying {method} {path} to backend.")
            response = await client.request(method, path, headers=headers, json=json_body)
            data = response.json()
    except httpx.RequestError as e:
        print(f"BFF: Request error relaying {method} {path}: {type(e).__name__}: {e}")
        return JSONResponse(fallback, status_code=fallback_status)
    except ValueError:
        print(f"BFF: Backend answered {method} {path} with a non-JSON body (status {response.status_code}).")
        return JSONResponse(fallback, status_code=fallback_status)

    relayed = JSONResponse(data, status_code=response.status_code)
    forward_set_cookies(response, relayed)
    return relayed


# --- Auth relays ---

@router.post("/auth/login")
async def login(request: Request):
    body = await read_json_body(request)
    return await relay_json(
        request, "POST", "/auth/login",
        json_body=body,
        forward_cookies=False,
        fallback={"authenticated": False, "message": "Failed to connect to server"},
    )


@router.post("/auth/register-academic")
async def register_academic(request: Request):
    body = await read_json_body(request)
    return await relay_json(
        request, "POST", "/auth/register-academic",
        json_body=body,
        forward_cookies=False,
        fallback={"authenticated": False, "message": "Failed to register"},
    )


@router.get("/auth/verify")
async def verify(request: Request):
    return await relay_json(
        request, "GET", "/auth/verify",
        fallback={"authenticated": False, "message": "Failed to verify"},
    )


@router.post("/auth/refresh")
async def refresh(request: Request):
    return await relay_json(request, "POST", "/auth/refresh", fallback={"authenticated": False})


@router.post("/auth/logout")
async def logout(request: Request):
    # Logging out must never look like a failure to the browser.
    return await relay_json(
        request, "POST", "/auth/logout",
        fallback={"message": "Logged out"},
        fallback_status=status.HTTP_200_OK,
    )


@router.get("/auth/academic-status")
async def academic_status(request: Request):
    return await relay_json(request, "GET", "/auth/academic-status", fallback={"authenticated": False})


# --- Chat relay ---

def last_user_message(messages: typing.List[typing.Any]) -> str:
    for message in reversed(messages):
        if isinstance(message, dict) and message.get("role") == "user":
            return str(message.get("content") or "")
    return ""


@router.post("/chat")
async def chat(request: Request):
    body = await read_json_body(request)
    messages = body.get("messages") if isinstance(body, dict) else None
    if not isinstance(messages, list):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Request body must include a 'messages' list.")
    question = last_user_message(messages)

    client = backend.new_client()
    upstream_request = client.build_request(
        "POST", "/chat/stream",
        json={"question": question},
        headers=cookie_header(request),
    )
    try:
        upstream = await client.send(upstream_request, stream=True)
    except httpx.RequestError as e:
        print(f"BFF: Could not reach backend chat stream: {type(e).__name__}: {e}")
        await client.aclose()
        return JSONResponse({"error": "Failed to connect to backend"}, status_code=status.HTTP_502_BAD_GATEWAY)

    if upstream.is_error:
        await upstream.aread()
        error_text = upstream.text
        print(f"BFF: Backend chat stream answered {upstream.status_code}.")
        await upstream.aclose()
        await client.aclose()
        return JSONResponse({"error": error_text}, status_code=upstream.status_code)

    async def transformed() -> typing.AsyncIterator[str]:
        transformer = DataStreamTransformer()
        try:
            async for chunk in upstream.aiter_text():
                for line in transformer.feed(chunk):
                    yield line
        except httpx.RequestError as e:
            print(f"BFF: Chat stream interrupted: {type(e).__name__}: {e}")
            yield encode_frame({"type": "error", "content": "Stream interrupted"})
        finally:
            await upstream.aclose()
            await client.aclose()
        for line in transformer.flush():
            yield line

    response = StreamingResponse(
        transformed(),
        media_type="text/plain; charset=utf-8",
        headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
    )
    # Token renewals issued while the stream was opened
    forward_set_cookies(upstream, response)
    return response
