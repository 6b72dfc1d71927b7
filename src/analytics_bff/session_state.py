# src/analytics_bff/session_state.py

from pydantic import BaseModel
from typing import Optional


class SessionState(BaseModel):
    """
    Client-side view of the user's session, owned by one SessionCoordinator.
    Only flags live here; the session tokens themselves stay in cookies that
    the backend sets and the client never reads.
    """
    is_authenticated: bool = False
    is_loading: bool = True  # until the first verify() settles
    error: Optional[str] = None
    redirect_to: Optional[str] = None  # login target recorded when no navigator is wired in

    # Academic user info
    email: Optional[str] = None
    tier: Optional[str] = None
    queries_remaining: Optional[int] = None
    daily_limit: Optional[int] = None

    def set_academic_user(self, email: str, tier: str, queries_remaining: int, daily_limit: int) -> None:
        self.email = email
        self.tier = tier
        self.queries_remaining = queries_remaining
        self.daily_limit = daily_limit

    def update_queries_remaining(self, remaining: int) -> None:
        self.queries_remaining = remaining

    def reset(self) -> None:
        self.is_authenticated = False
        self.is_loading = False
        self.error = None
        self.email = None
        self.tier = None
        self.queries_remaining = None
        self.daily_limit = None
