from __future__ import annotations

import hashlib
import logging
import secrets
from datetime import datetime, timedelta
from typing import Callable

from app.application.ports.auth_state_port import AuthStatePort
from app.application.use_cases.auth_common import utcnow
from app.domain.entities.auth_state import PendingAuthState
from app.domain.entities.user import AuthProvider
from app.domain.exceptions import InvalidStateError


logger = logging.getLogger(__name__)


def hash_state_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


class AuthStateStore:
    """Issues and consumes single-use OAuth ``state`` tokens."""

    def __init__(
        self,
        *,
        state_port: AuthStatePort,
        ttl_seconds: int,
        clock: Callable[[], datetime] = utcnow,
    ):
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive.")
        self._state_port = state_port
        self._ttl = timedelta(seconds=ttl_seconds)
        self._clock = clock

    def issue(self, *, provider: AuthProvider, redirect_to: str | None = None) -> str:
        token = secrets.token_urlsafe(32)
        now = self._clock()
        self._state_port.save_state(
            state=PendingAuthState(
                token_hash=hash_state_token(token),
                provider=provider,
                created_at=now,
                expires_at=now + self._ttl,
                redirect_to=redirect_to,
            )
        )
        return token

    def consume(self, *, token: str | None, provider: AuthProvider) -> PendingAuthState:
        if not token:
            raise InvalidStateError("Invalid state.")

        state = self._state_port.consume_state(token_hash=hash_state_token(token), now=self._clock())
        if state is None or state.provider != provider:
            logger.warning("auth_state_store: rejected_state provider=%s", provider.value)
            raise InvalidStateError("Invalid state.")
        return state

    def prune(self) -> int:
        return self._state_port.delete_expired_states(now=self._clock())
