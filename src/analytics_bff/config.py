# src/analytics_bff/config.py

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List, Union, Any
from pathlib import Path
from dotenv import load_dotenv

# .env is at the project root, two levels up from src/analytics_bff/
CONFIG_FILE_DIR = Path(__file__).resolve().parent
PROJECT_ROOT_DIR = CONFIG_FILE_DIR.parent.parent
PACKAGE_DIR = CONFIG_FILE_DIR
ENV_FILE_PATH = PROJECT_ROOT_DIR / ".env"

if ENV_FILE_PATH.exists():
    load_dotenv(dotenv_path=ENV_FILE_PATH, override=True)
    print(f"WebAppBFF: Successfully loaded .env file from: {ENV_FILE_PATH}")
else:
    print(
        f"WebAppBFF: Warning: .env file not found at {ENV_FILE_PATH}. Relying on environment variables."
    )

# Fields that arrive from the environment as comma-separated strings.
_PATH_LIST_FIELDS = (
    "PUBLIC_PATHS",
    "PROTECTED_PATH_PREFIXES",
    "API_PATH_PREFIXES",
    "STATIC_PATH_PREFIXES",
)


class Settings(BaseSettings):
    # === Analytics backend ===
    BACKEND_URL: str = "http://localhost:8000"
    BACKEND_API_PREFIX: str = "/api/v1"
    BACKEND_TIMEOUT_SECONDS: float = 120.0  # long-running analytical queries

    # === Edge Guard ===
    VERIFY_TIMEOUT_SECONDS: float = 3.0
    EDGE_GUARD_FAIL_OPEN: bool = True
    LOGIN_PATH: str = "/login"
    AUTHENTICATED_LANDING_PATH: str = "/dashboard"
    # Union so pydantic-settings hands the raw env string to the validator below
    PUBLIC_PATHS: Union[str, List[str]] = ["/", "/login"]
    PROTECTED_PATH_PREFIXES: Union[str, List[str]] = ["/dashboard"]
    API_PATH_PREFIXES: Union[str, List[str]] = ["/api/"]
    STATIC_PATH_PREFIXES: Union[str, List[str]] = ["/static/", "/favicon", "/images/", "/fonts/"]

    # === Session cookies (set by the backend, opaque to us) ===
    ACCESS_COOKIE_NAME: str = "access_token"
    REFRESH_COOKIE_NAME: str = "refresh_token"

    @property
    def BACKEND_API_BASE(self) -> str:
        return f"{self.BACKEND_URL.rstrip('/')}/{self.BACKEND_API_PREFIX.strip('/')}".rstrip("/")

    @property
    def SESSION_COOKIE_NAMES(self) -> List[str]:
        return [self.ACCESS_COOKIE_NAME, self.REFRESH_COOKIE_NAME]

    model_config = SettingsConfigDict(
        env_file=str(ENV_FILE_PATH),
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False
    )

    @field_validator(*_PATH_LIST_FIELDS, mode='before')
    @classmethod
    def parse_comma_separated_paths(cls, v: Any) -> List[str]:
        if isinstance(v, str):
            if not v.strip():
                return []
            return [path.strip() for path in v.split(',') if path.strip()]
        if isinstance(v, (list, tuple)):
            return list(v)
        raise TypeError('Path settings: Expected a comma-separated string or a list.')

    @model_validator(mode='after')
    def check_path_settings(self) -> 'Settings':
        for name in _PATH_LIST_FIELDS:
            value = getattr(self, name)
            if not isinstance(value, list):
                raise ValueError(f"{name} ended up as {type(value)}, expected list.")
            if not all(isinstance(item, str) and item.startswith("/") for item in value):
                raise ValueError(f"All items in {name} must be paths starting with '/'.")
        if not self.LOGIN_PATH.startswith("/") or not self.AUTHENTICATED_LANDING_PATH.startswith("/"):
            raise ValueError("LOGIN_PATH and AUTHENTICATED_LANDING_PATH must start with '/'.")
        if self.VERIFY_TIMEOUT_SECONDS <= 0:
            raise ValueError("VERIFY_TIMEOUT_SECONDS must be positive.")
        return self


try:
    settings = Settings()
    print(f"Backend API base: {settings.BACKEND_API_BASE}")
    print(f"Protected path prefixes: {settings.PROTECTED_PATH_PREFIXES}")

except Exception as e:
    print(f"WebAppBFF: Error instantiating Settings: {e}")
    import traceback
    traceback.print_exc()
    raise
