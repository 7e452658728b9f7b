from __future__ import annotations

from app.application.dto.auth import LogoutInput
from app.application.services.session_issuer import SessionIssuer
from app.domain.exceptions import SessionExpiredError, SessionRevokedError


class LogoutSessionUseCase:
    def __init__(self, *, session_issuer: SessionIssuer):
        self._session_issuer = session_issuer

    def execute(self, command: LogoutInput) -> None:
        try:
            claims = self._session_issuer.validate(token=command.token.strip())
        except (SessionExpiredError, SessionRevokedError):
            # Already unusable; nothing left to revoke.
            return
        self._session_issuer.revoke(token_id=claims.token_id, expires_at=claims.expires_at)
