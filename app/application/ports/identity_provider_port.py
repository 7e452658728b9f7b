from __future__ import annotations

from typing import Protocol

from app.application.dto.auth import IdentityClaims
from app.domain.entities.user import AuthProvider


class IdentityProviderPort(Protocol):
    provider: AuthProvider

    def build_authorization_url(self, *, state: str) -> str:
        ...

    def exchange_code(self, *, code: str, user_payload: str | None = None) -> IdentityClaims:
        ...
