from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Callable
from uuid import uuid4

from app.application.ports.revocation_port import RevocationPort
from app.application.ports.token_port import TokenPort
from app.application.use_cases.auth_common import utcnow
from app.domain.entities.session import IssuedSession, SessionClaims
from app.domain.exceptions import SessionExpiredError, SessionRevokedError


logger = logging.getLogger(__name__)


class SessionIssuer:
    """Mints, validates and revokes signed session tokens.

    Validation order: signature/structure, then expiry (with clock-skew grace),
    then revocation.
    """

    def __init__(
        self,
        *,
        token_port: TokenPort,
        revocation_port: RevocationPort,
        ttl_minutes: int,
        clock_skew_seconds: int = 30,
        clock: Callable[[], datetime] = utcnow,
    ):
        if ttl_minutes <= 0:
            raise ValueError("ttl_minutes must be positive.")
        self._token_port = token_port
        self._revocation_port = revocation_port
        self._ttl = timedelta(minutes=ttl_minutes)
        self._skew = timedelta(seconds=max(clock_skew_seconds, 0))
        self._clock = clock

    def issue(self, *, user_id: str) -> IssuedSession:
        issued_at = self._clock().replace(microsecond=0)
        expires_at = issued_at + self._ttl
        token_id = uuid4().hex
        token = self._token_port.encode_session_token(
            user_id=user_id,
            token_id=token_id,
            issued_at=issued_at,
            expires_at=expires_at,
        )
        logger.info("session_issuer: issued user_id=%s token_id=%s", user_id, token_id)
        return IssuedSession(
            token=token,
            token_id=token_id,
            user_id=user_id,
            issued_at=issued_at,
            expires_at=expires_at,
        )

    def validate(self, *, token: str) -> SessionClaims:
        claims = self._token_port.decode_session_token(token=token)
        now = self._clock()
        if now > claims.expires_at + self._skew:
            raise SessionExpiredError("Session expired.")
        if self._revocation_port.is_revoked(token_id=claims.token_id, now=now):
            raise SessionRevokedError("Session revoked.")
        return claims

    def revoke(self, *, token_id: str, expires_at: datetime | None = None) -> None:
        now = self._clock()
        # Entries only need to outlive the token they shadow.
        retain_until = (expires_at or now + self._ttl) + self._skew
        self._revocation_port.add_revoked(token_id=token_id, expires_at=retain_until)
        self._revocation_port.prune_revoked(now=now)
        logger.info("session_issuer: revoked token_id=%s", token_id)
