from __future__ import annotations

from typing import Any, Mapping

from app.domain.entities.auth_state import PendingAuthState
from app.domain.entities.user import AuthProvider, User


USER_COLUMNS = (
    "id, email, display_name, password_digest, google_subject, apple_subject, "
    "avatar_url, is_verified, created_at, updated_at, last_login_at"
)


def _as_str(value: Any) -> str:
    return str(value)


def map_row_to_user(row: Mapping[str, Any]) -> User:
    return User(
        id=_as_str(row["id"]),
        email=row["email"],
        display_name=row["display_name"],
        password_digest=row.get("password_digest"),
        google_subject=row.get("google_subject"),
        apple_subject=row.get("apple_subject"),
        avatar_url=row.get("avatar_url"),
        is_verified=bool(row["is_verified"]),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
        last_login_at=row.get("last_login_at"),
    )


def map_row_to_auth_state(row: Mapping[str, Any]) -> PendingAuthState:
    return PendingAuthState(
        token_hash=row["token_hash"],
        provider=AuthProvider(row["provider"]),
        created_at=row["created_at"],
        expires_at=row["expires_at"],
        redirect_to=row.get("redirect_to"),
        consumed=row.get("consumed_at") is not None,
    )
