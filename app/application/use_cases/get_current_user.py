from __future__ import annotations

from app.application.ports.auth_port import AuthPort
from app.application.services.session_issuer import SessionIssuer
from app.domain.entities.user import User
from app.domain.exceptions import SessionInvalidError


class GetCurrentUserUseCase:
    def __init__(self, *, auth_port: AuthPort, session_issuer: SessionIssuer):
        self._auth_port = auth_port
        self._session_issuer = session_issuer

    def execute(self, *, token: str) -> User:
        claims = self._session_issuer.validate(token=token)
        user = self._auth_port.get_user_by_id(user_id=claims.user_id)
        if user is None:
            raise SessionInvalidError("Session subject no longer exists.")
        return user
