# src/analytics_bff/session_coordinator.py
"""
Session Coordinator: the dashboard's API client.

Wraps every outbound call to the analytics backend. When a call comes back
401 the coordinator refreshes the session once, no matter how many calls hit
the 401 at the same time: the first caller runs the refresh, the others wait
in `pending_queue`, and all of them are released together (retry) or failed
together (auth_error + login redirect) when the refresh settles.

Everything runs on one asyncio event loop. `is_refreshing` and
`pending_queue` are only touched between awaits, so no lock is needed. Do not
share a coordinator across threads or event loops.
"""

import asyncio
import typing

import httpx

from . import backend
from .config import settings
from .errors import (
    ApiClientError,
    AuthError,
    NetworkError,
    classify_response_error,
    extract_error_message,
)
from .session_state import SessionState
from .stream_protocol import SseLineBuffer, iter_frames

# 401s from these never trigger a refresh; they are terminal auth errors.
AUTH_ENDPOINTS = (
    "/auth/login",
    "/auth/logout",
    "/auth/verify",
    "/auth/refresh",
    "/auth/academic-status",
    "/auth/register-academic",
)

Navigator = typing.Callable[[str], typing.Any]


def is_auth_endpoint(url: str) -> bool:
    path = url.split("?", 1)[0].rstrip("/")
    return any(path.endswith(endpoint) for endpoint in AUTH_ENDPOINTS)


def _response_data(response: httpx.Response) -> typing.Any:
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return response.text


class SessionCoordinator:
    """
    One instance per loaded app; hand it to whatever needs to call the backend.

    Args:
        client: httpx client whose base URL is the backend API root. Built from
            settings when omitted (and then closed by `aclose`).
        navigate: host navigation hook, called with the login path when the
            session is lost. Without one, the target is recorded in
            `state.redirect_to` for the host to perform a full navigation.
    """

    def __init__(self, client: typing.Optional[httpx.AsyncClient] = None, navigate: typing.Optional[Navigator] = None):
        self._owns_client = client is None
        self._client = client if client is not None else backend.new_client()
        self._client.event_hooks["request"].append(self._attach_session_id)
        self._navigate = navigate
        self._session_id: typing.Optional[str] = None
        # Set once the user has been routed to login; cleared when a session is re-established.
        self._session_lost = False

        self.state = SessionState()
        self.is_refreshing = False
        self.pending_queue: typing.List[asyncio.Future] = []

    async def __aenter__(self) -> "SessionCoordinator":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    # --- Session id ---

    def set_session_id(self, session_id: typing.Optional[str]) -> None:
        self._session_id = session_id

    def get_session_id(self) -> typing.Optional[str]:
        return self._session_id

    async def _attach_session_id(self, request: httpx.Request) -> None:
        if self._session_id:
            request.headers["X-Session-ID"] = self._session_id

    # --- Wrapped API calls ---

    async def request(self, method: str, url: str, *, params: typing.Optional[dict] = None, json: typing.Any = None) -> typing.Any:
        """Send a request through the refresh machinery and return the decoded body."""
        response = await self._send(method, url, params=params, json=json)
        return _response_data(response)

    async def get(self, url: str, params: typing.Optional[dict] = None) -> typing.Any:
        return await self.request("GET", url, params=params)

    async def post(self, url: str, data: typing.Any = None) -> typing.Any:
        return await self.request("POST", url, json=data)

    async def delete(self, url: str) -> typing.Any:
        return await self.request("DELETE", url)

    async def _send(self, method: str, url: str, *, retried: bool = False, **kwargs) -> httpx.Response:
        try:
            response = await self._client.request(method, url, **kwargs)
        except httpx.RequestError as e:
            raise NetworkError(str(e) or type(e).__name__) from e

        if response.status_code == 401:
            if is_auth_endpoint(url):
                raise AuthError(extract_error_message(response))
            if retried:
                print(f"SESSION: {method} {url} - Still unauthorized after refresh. Giving up.")
                self._handle_auth_failure()
                raise AuthError("Session expired. Please log in again.")
            await self._wait_for_refresh()
            return await self._send(method, url, retried=True, **kwargs)

        if response.is_error:
            raise classify_response_error(response)
        return response

    # --- Single-flight refresh ---

    async def _wait_for_refresh(self) -> None:
        """
        Return once the session has been refreshed, or raise AuthError.
        Starts the refresh when none is running, otherwise queues behind it.
        """
        if self.is_refreshing:
            future = asyncio.get_running_loop().create_future()
            self.pending_queue.append(future)
            print(f"SESSION: Refresh already in flight. Queued request ({len(self.pending_queue)} waiting).")
            await future
            return

        self.is_refreshing = True
        try:
            refreshed = await self._request_refresh()
        except asyncio.CancelledError:
            self.is_refreshing = False
            self._process_queue(AuthError("Session refresh was cancelled."))
            raise
        except Exception as e:
            print(f"SESSION: Refresh raised {type(e).__name__}: {e}. Treating as refresh failure.")
            refreshed = False
        self.is_refreshing = False

        if refreshed:
            print(f"SESSION: Refresh succeeded. Releasing {len(self.pending_queue)} queued request(s).")
            self._process_queue(None)
            return

        error = AuthError("Session expired. Please log in again.")
        print(f"SESSION: Refresh failed. Rejecting {len(self.pending_queue)} queued request(s).")
        self._process_queue(error)
        self._handle_auth_failure()
        raise error

    async def _request_refresh(self) -> bool:
        response = await self._client.post("/auth/refresh")
        if not response.is_success:
            print(f"SESSION: Refresh rejected by backend (status {response.status_code}).")
            return False
        data = response.json()
        authenticated = isinstance(data, dict) and data.get("authenticated") is True
        if authenticated:
            self._session_established()
        return authenticated

    def _process_queue(self, error: typing.Optional[ApiClientError]) -> None:
        # Swap the queue out first and settle it without awaiting, so every
        # waiter sees the same outcome in the same loop iteration.
        queue, self.pending_queue = self.pending_queue, []
        for future in queue:
            if future.done():
                continue  # waiter was cancelled
            if error is None:
                future.set_result(None)
            else:
                future.set_exception(AuthError(error.message, error.status))

    def _handle_auth_failure(self) -> None:
        self.state.reset()
        if self._session_lost:
            return
        self._session_lost = True
        login_path = settings.LOGIN_PATH
        if self._navigate is not None:
            self._navigate(login_path)
        else:
            self.state.redirect_to = login_path
        print(f"SESSION: Session lost. Routing user to {login_path}.")

    def _session_established(self) -> None:
        self.state.is_authenticated = True
        self.state.redirect_to = None
        self._session_lost = False

    # --- Auth operations ---

    async def login(self, password: typing.Optional[str] = None, email: typing.Optional[str] = None) -> bool:
        self.state.is_loading = True
        self.state.error = None
        payload = {}
        if password is not None:
            payload["password"] = password
        if email is not None:
            payload["email"] = email

        try:
            response = await self._client.post("/auth/login", json=payload)
            data = response.json()
        except (httpx.RequestError, ValueError) as e:
            print(f"SESSION: Login request failed: {type(e).__name__}")
            self.state.error = "Failed to connect to server"
            self.state.is_loading = False
            return False

        self.state.is_loading = False
        if isinstance(data, dict) and data.get("authenticated"):
            self._session_established()
            return True
        self.state.error = (data.get("message") if isinstance(data, dict) else None) or "Login failed"
        return False

    async def register_academic(self, email: str, **fields: typing.Any) -> bool:
        """Sign up with an email address only; the backend answers like login."""
        self.state.is_loading = True
        self.state.error = None
        try:
            response = await self._client.post("/auth/register-academic", json={"email": email, **fields})
            data = response.json()
        except (httpx.RequestError, ValueError):
            self.state.error = "Failed to register"
            self.state.is_loading = False
            return False

        self.state.is_loading = False
        if isinstance(data, dict) and data.get("authenticated"):
            self._session_established()
            return True
        self.state.error = (data.get("message") if isinstance(data, dict) else None) or "Registration failed"
        return False

    async def verify(self) -> bool:
        self.state.is_loading = True
        try:
            response = await self._client.get("/auth/verify")
            data = response.json()
            authenticated = isinstance(data, dict) and data.get("authenticated") is True
        except (httpx.RequestError, ValueError):
            authenticated = False
        if authenticated:
            self._session_established()
        else:
            self.state.is_authenticated = False
        self.state.is_loading = False
        return authenticated

    async def refresh(self) -> bool:
        """Refresh the session now; joins a refresh that is already running."""
        try:
            await self._wait_for_refresh()
        except AuthError:
            return False
        return True

    async def logout(self) -> None:
        try:
            await self._client.post("/auth/logout")
        except httpx.RequestError as e:
            print(f"SESSION: Logout call failed ({type(e).__name__}). Clearing local session anyway.")
        finally:
            self.state.reset()

    async def academic_status(self) -> typing.Any:
        data = await self.request("GET", "/auth/academic-status")
        if isinstance(data, dict) and data.get("authenticated") and data.get("tier"):
            self.state.set_academic_user(
                email=data.get("email"),
                tier=data.get("tier"),
                queries_remaining=data.get("queries_remaining"),
                daily_limit=data.get("daily_limit"),
            )
        return data

    # --- Chat streaming ---

    async def stream_chat(self, question: str) -> typing.AsyncIterator[typing.Dict[str, typing.Any]]:
        """
        Yield the `{type, content}` frames of a chat answer until `[DONE]`.
        A 401 before the stream starts goes through the same single-flight
        refresh as any other call and is retried once.
        """
        payload = {"question": question, "session_id": self._session_id}
        retried = False
        try:
            while True:
                async with self._client.stream("POST", "/chat/stream", json=payload) as response:
                    if response.status_code != 401 or retried:
                        async for frame in self._iter_stream_frames(response):
                            yield frame
                        return
                await self._wait_for_refresh()
                retried = True
        except httpx.RequestError as e:
            raise NetworkError(str(e) or type(e).__name__) from e

    async def _iter_stream_frames(self, response: httpx.Response) -> typing.AsyncIterator[typing.Dict[str, typing.Any]]:
        if response.status_code == 401:
            self._handle_auth_failure()
            raise AuthError("Session expired. Please log in again.")
        if response.is_error:
            await response.aread()
            raise classify_response_error(response)

        lines = SseLineBuffer()
        async for chunk in response.aiter_text():
            for frame in iter_frames(lines.feed(chunk)):
                if frame is None:
                    return
                yield frame
        for frame in iter_frames(lines.flush()):
            if frame is None:
                return
            yield frame
