from __future__ import annotations

import json
import os
from dataclasses import dataclass

from dotenv import load_dotenv


load_dotenv()


def _env(name: str, default: str | None = None) -> str | None:
    return os.getenv(name, default)


def _json_list(name: str) -> list:
    value = _env(name)
    if not value:
        return []
    parsed = json.loads(value)
    if not isinstance(parsed, list):
        raise ValueError(f"{name} must be a JSON list.")
    return [str(item) for item in parsed]


def _bool(name: str, default: str = "false") -> bool:
    return (_env(name, default) or "").strip().lower() in {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class Settings:
    postgres_dsn: str
    session_signing_key: str
    session_issuer: str
    session_ttl_minutes: int
    session_clock_skew_seconds: int
    auth_state_ttl_seconds: int
    auth_state_backend: str
    auth_require_verified_email: bool
    password_min_length: int
    provider_timeout_seconds: float
    google_client_id: str
    google_client_secret: str
    google_redirect_uri: str
    apple_client_id: str
    apple_team_id: str
    apple_key_id: str
    apple_private_key: str
    apple_redirect_uri: str
    frontend_success_url: str
    frontend_error_url: str
    frontend_allowed_redirects: tuple[str, ...]
    cors_allow_origins: tuple[str, ...]


def get_settings() -> Settings:
    return Settings(
        postgres_dsn=_env("POSTGRES_DSN", ""),
        session_signing_key=_env("SESSION_SIGNING_KEY", ""),
        session_issuer=_env("SESSION_ISSUER", "auth-service"),
        session_ttl_minutes=int(_env("SESSION_TTL_MINUTES", "60")),
        session_clock_skew_seconds=int(_env("SESSION_CLOCK_SKEW_SECONDS", "30")),
        auth_state_ttl_seconds=int(_env("AUTH_STATE_TTL_SECONDS", "600")),
        auth_state_backend=(_env("AUTH_STATE_BACKEND", "postgres") or "postgres").strip().lower(),
        auth_require_verified_email=_bool("AUTH_REQUIRE_VERIFIED_EMAIL"),
        password_min_length=int(_env("PASSWORD_MIN_LENGTH", "8")),
        provider_timeout_seconds=float(_env("PROVIDER_TIMEOUT_SECONDS", "10")),
        google_client_id=_env("GOOGLE_CLIENT_ID", ""),
        google_client_secret=_env("GOOGLE_CLIENT_SECRET", ""),
        google_redirect_uri=_env("GOOGLE_REDIRECT_URI", ""),
        apple_client_id=_env("APPLE_CLIENT_ID", ""),
        apple_team_id=_env("APPLE_TEAM_ID", ""),
        apple_key_id=_env("APPLE_KEY_ID", ""),
        # PEM contents; literal "\n" sequences are accepted for single-line env files.
        apple_private_key=(_env("APPLE_PRIVATE_KEY", "") or "").replace("\\n", "\n"),
        apple_redirect_uri=_env("APPLE_REDIRECT_URI", ""),
        frontend_success_url=_env("FRONTEND_SUCCESS_URL", "http://localhost:3000/auth/complete"),
        frontend_error_url=_env("FRONTEND_ERROR_URL", "http://localhost:3000/login"),
        frontend_allowed_redirects=tuple(_json_list("FRONTEND_ALLOWED_REDIRECTS")),
        cors_allow_origins=tuple(_json_list("CORS_ALLOW_ORIGINS")),
    )
