from __future__ import annotations

import re
from datetime import datetime, timezone

from app.application.dto.auth import AuthTokenOutput, AuthUserOutput
from app.domain.entities.session import IssuedSession
from app.domain.entities.user import User
from app.domain.exceptions import UserNotVerifiedError


_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def normalize_email(email: str) -> str:
    return email.strip().lower()


def is_valid_email(email: str) -> bool:
    return bool(_EMAIL_RE.match(email)) and len(email) <= 255


def default_display_name(email: str) -> str:
    return email.split("@")[0]


def build_auth_user_output(user: User) -> AuthUserOutput:
    return AuthUserOutput(
        id=user.id,
        email=user.email,
        name=user.display_name,
        is_verified=user.is_verified,
    )


def build_auth_token_output(
    *,
    user: User,
    session: IssuedSession,
    is_new_account: bool = False,
) -> AuthTokenOutput:
    return AuthTokenOutput(
        user=build_auth_user_output(user),
        token=session.token,
        token_id=session.token_id,
        expires_at=session.expires_at,
        is_new_account=is_new_account,
    )


def ensure_login_allowed(*, user: User, require_verified_email: bool) -> None:
    if require_verified_email and not user.is_verified:
        raise UserNotVerifiedError("Email address is not verified.")
