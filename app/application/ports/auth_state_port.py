from __future__ import annotations

from datetime import datetime
from typing import Protocol

from app.domain.entities.auth_state import PendingAuthState


class AuthStatePort(Protocol):
    def save_state(self, *, state: PendingAuthState) -> None:
        ...

    def consume_state(self, *, token_hash: str, now: datetime) -> PendingAuthState | None:
        """Atomically mark a pending, unexpired state as consumed and return it.

        Returns ``None`` when the state is unknown, expired or already consumed.
        """
        ...

    def delete_expired_states(self, *, now: datetime) -> int:
        ...
