from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from app.domain.entities.user import AuthProvider


@dataclass(frozen=True)
class AuthUserOutput:
    id: str
    email: str
    name: str
    is_verified: bool


@dataclass(frozen=True)
class RegisterUserInput:
    email: str
    password: str
    name: str | None = None


@dataclass(frozen=True)
class RegisterUserOutput:
    user: AuthUserOutput


@dataclass(frozen=True)
class LoginLocalInput:
    email: str
    password: str
    user_agent: str | None = None
    ip: str | None = None


@dataclass(frozen=True)
class AuthTokenOutput:
    user: AuthUserOutput
    token: str
    token_id: str
    expires_at: datetime
    is_new_account: bool = False


@dataclass(frozen=True)
class InitiateOauthInput:
    provider: AuthProvider
    next_url: str | None = None


@dataclass(frozen=True)
class InitiateOauthOutput:
    authorization_url: str


@dataclass(frozen=True)
class OauthCallbackInput:
    provider: AuthProvider
    state: str | None
    code: str | None = None
    error: str | None = None
    user_payload: str | None = None


@dataclass(frozen=True)
class OauthCallbackOutput:
    redirect_to: str
    session: AuthTokenOutput


@dataclass(frozen=True)
class LogoutInput:
    token: str


@dataclass(frozen=True)
class IdentityClaims:
    subject: str
    email: str | None
    email_verified: bool
    name: str | None = None
    picture: str | None = None
