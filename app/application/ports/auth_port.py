from __future__ import annotations

from datetime import datetime
from typing import Callable, Protocol, TypeVar

from app.domain.entities.user import AuthProvider, User


TAuthResult = TypeVar("TAuthResult")


class AuthPort(Protocol):
    def execute_in_transaction(self, fn: Callable[[AuthPort], TAuthResult]) -> TAuthResult:
        ...

    def get_user_by_id(self, *, user_id: str) -> User | None:
        ...

    def get_user_by_email(self, *, email: str) -> User | None:
        ...

    def get_user_by_provider_subject(self, *, provider: AuthProvider, subject: str) -> User | None:
        ...

    def create_user(
        self,
        *,
        user_id: str,
        email: str,
        display_name: str,
        password_digest: str | None,
        google_subject: str | None,
        apple_subject: str | None,
        avatar_url: str | None,
        is_verified: bool,
        created_at: datetime,
    ) -> User:
        """Insert a user; raises ``EmailAlreadyExistsError`` if the email is taken."""
        ...

    def link_provider_subject(
        self,
        *,
        user_id: str,
        provider: AuthProvider,
        subject: str,
        updated_at: datetime,
    ) -> User:
        ...

    def update_profile(
        self,
        *,
        user_id: str,
        display_name: str,
        avatar_url: str | None,
        is_verified: bool,
        updated_at: datetime,
    ) -> User:
        ...

    def update_password_digest(self, *, user_id: str, password_digest: str, updated_at: datetime) -> None:
        ...

    def record_login(self, *, user_id: str, logged_in_at: datetime) -> None:
        ...
