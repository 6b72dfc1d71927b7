# src/analytics_bff/errors.py

from typing import Optional

import httpx


class ApiClientError(Exception):
    """Base class for classified errors raised by the session coordinator."""

    type = "api_error"

    def __init__(self, message: str, status: Optional[int] = None):
        self.message = message
        self.status = status
        super().__init__(message)

    def to_dict(self) -> dict:
        return {"type": self.type, "message": self.message, "status": self.status}


class AuthError(ApiClientError):
    type = "auth_error"

    def __init__(self, message: str = "Authentication required", status: Optional[int] = 401):
        super().__init__(message, status)


class RateLimitError(ApiClientError):
    type = "rate_limit"

    def __init__(self, retry_after: int = 60, message: str = "Rate limit exceeded. Please wait before making more requests."):
        self.retry_after = retry_after
        super().__init__(message, 429)

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["retryAfter"] = self.retry_after
        return data


class ApiError(ApiClientError):
    type = "api_error"


class NetworkError(ApiClientError):
    type = "network_error"

    def __init__(self, message: str):
        super().__init__(message, None)


def parse_retry_after(value: Optional[str], default: int = 60) -> int:
    try:
        return int(value) if value else default
    except ValueError:
        return default


def extract_error_message(response: httpx.Response) -> str:
    """
    Pick the most useful message out of an error response.
    Looks at `detail`, then `error`, then `message` in a JSON body and falls back
    to the HTTP reason phrase.
    """
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        for key in ("detail", "error", "message"):
            value = body.get(key)
            if value:
                return value if isinstance(value, str) else str(value)
    return response.reason_phrase or f"Request failed with status code {response.status_code}"


def classify_response_error(response: httpx.Response) -> ApiClientError:
    """Map a non-2xx backend response onto the client error taxonomy."""
    if response.status_code == 401:
        return AuthError(extract_error_message(response))
    if response.status_code == 429:
        return RateLimitError(retry_after=parse_retry_after(response.headers.get("retry-after")))
    return ApiError(extract_error_message(response), status=response.status_code)
