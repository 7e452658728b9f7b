from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from app.domain.entities.user import AuthProvider


@dataclass(frozen=True)
class PendingAuthState:
    """Single-use record binding an OAuth initiation to its callback.

    ``token_hash`` is the SHA-256 hex digest of the state token handed to the
    browser; the raw token is never stored.
    """

    token_hash: str
    provider: AuthProvider
    created_at: datetime
    expires_at: datetime
    redirect_to: str | None = None
    consumed: bool = False

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at
