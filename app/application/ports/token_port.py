from __future__ import annotations

from datetime import datetime
from typing import Protocol

from app.domain.entities.session import SessionClaims


class TokenPort(Protocol):
    def encode_session_token(
        self,
        *,
        user_id: str,
        token_id: str,
        issued_at: datetime,
        expires_at: datetime,
    ) -> str:
        ...

    def decode_session_token(self, *, token: str) -> SessionClaims:
        """Verify structure and signature only; raises ``SessionInvalidError``."""
        ...
