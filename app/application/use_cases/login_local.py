from __future__ import annotations

import logging

from app.application.dto.auth import AuthTokenOutput, LoginLocalInput
from app.application.ports.auth_port import AuthPort
from app.application.services.credential_verifier import CredentialVerifier
from app.application.services.session_issuer import SessionIssuer
from app.domain.exceptions import InputValidationError

from .auth_common import build_auth_token_output, ensure_login_allowed, normalize_email, utcnow


logger = logging.getLogger(__name__)


class LoginLocalUseCase:
    def __init__(
        self,
        *,
        auth_port: AuthPort,
        credential_verifier: CredentialVerifier,
        session_issuer: SessionIssuer,
        require_verified_email: bool = False,
    ):
        self._auth_port = auth_port
        self._credential_verifier = credential_verifier
        self._session_issuer = session_issuer
        self._require_verified_email = require_verified_email

    def execute(self, command: LoginLocalInput) -> AuthTokenOutput:
        email = normalize_email(command.email)
        if not email:
            raise InputValidationError("email is required.", field="email")
        if not command.password:
            raise InputValidationError("password is required.", field="password")

        verified = self._credential_verifier.verify(email=email, password=command.password)
        user = verified.user
        ensure_login_allowed(user=user, require_verified_email=self._require_verified_email)

        session = self._session_issuer.issue(user_id=user.id)

        now = utcnow()
        if verified.replacement_digest:
            self._auth_port.update_password_digest(
                user_id=user.id,
                password_digest=verified.replacement_digest,
                updated_at=now,
            )
        self._auth_port.record_login(user_id=user.id, logged_in_at=now)
        logger.info(
            "login_local: succeeded user_id=%s ip=%s user_agent=%s",
            user.id,
            command.ip,
            command.user_agent,
        )
        return build_auth_token_output(user=user, session=session)
