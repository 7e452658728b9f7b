from __future__ import annotations

from dataclasses import replace
from datetime import datetime
from threading import Lock

from app.application.ports.auth_state_port import AuthStatePort
from app.application.ports.revocation_port import RevocationPort
from app.domain.entities.auth_state import PendingAuthState


class InMemoryAuthStateStore(AuthStatePort):
    """Process-local state store; only valid for single-instance deployments."""

    def __init__(self):
        self._lock = Lock()
        self._states: dict[str, PendingAuthState] = {}

    def save_state(self, *, state: PendingAuthState) -> None:
        with self._lock:
            for key in [key for key, item in self._states.items() if item.is_expired(state.created_at)]:
                del self._states[key]
            self._states[state.token_hash] = state

    def consume_state(self, *, token_hash: str, now: datetime) -> PendingAuthState | None:
        with self._lock:
            state = self._states.pop(token_hash, None)
        if state is None or state.consumed or state.is_expired(now):
            return None
        return replace(state, consumed=True)

    def delete_expired_states(self, *, now: datetime) -> int:
        with self._lock:
            expired = [key for key, state in self._states.items() if state.is_expired(now)]
            for key in expired:
                del self._states[key]
        return len(expired)


class InMemoryRevocationStore(RevocationPort):
    """Process-local revocation set keyed by token id."""

    def __init__(self):
        self._lock = Lock()
        self._revoked: dict[str, datetime] = {}

    def add_revoked(self, *, token_id: str, expires_at: datetime) -> None:
        with self._lock:
            current = self._revoked.get(token_id)
            if current is None or expires_at > current:
                self._revoked[token_id] = expires_at

    def is_revoked(self, *, token_id: str, now: datetime) -> bool:
        with self._lock:
            return token_id in self._revoked

    def prune_revoked(self, *, now: datetime) -> int:
        with self._lock:
            stale = [token_id for token_id, expires_at in self._revoked.items() if expires_at <= now]
            for token_id in stale:
                del self._revoked[token_id]
        return len(stale)
