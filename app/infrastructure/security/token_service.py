from __future__ import annotations

from datetime import datetime, timezone

import jwt

from app.application.ports.token_port import TokenPort
from app.domain.entities.session import SessionClaims
from app.domain.exceptions import InfrastructureError, SessionInvalidError


SESSION_TOKEN_TYPE = "session"
_REQUIRED_CLAIMS = ["sub", "iat", "exp", "jti"]


class JwtTokenService(TokenPort):
    """HS256 session tokens.

    Expiry is not checked here; the session issuer applies its clock-skew
    policy once the signature has been verified.
    """

    def __init__(self, *, signing_key: str, issuer: str):
        if not signing_key:
            raise InfrastructureError("Session signing key is not configured.")
        self._signing_key = signing_key
        self._issuer = issuer

    def encode_session_token(
        self,
        *,
        user_id: str,
        token_id: str,
        issued_at: datetime,
        expires_at: datetime,
    ) -> str:
        if expires_at <= issued_at:
            raise ValueError("expires_at must be after issued_at.")
        payload = {
            "sub": user_id,
            "jti": token_id,
            "type": SESSION_TOKEN_TYPE,
            "iss": self._issuer,
            "iat": int(issued_at.timestamp()),
            "exp": int(expires_at.timestamp()),
        }
        return jwt.encode(payload, self._signing_key, algorithm="HS256")

    def decode_session_token(self, *, token: str) -> SessionClaims:
        try:
            payload = jwt.decode(
                token,
                self._signing_key,
                algorithms=["HS256"],
                issuer=self._issuer,
                options={
                    "require": _REQUIRED_CLAIMS,
                    "verify_exp": False,
                    "verify_iat": False,
                },
            )
        except jwt.PyJWTError as exc:
            raise SessionInvalidError("Invalid session token.") from exc

        if payload.get("type") != SESSION_TOKEN_TYPE:
            raise SessionInvalidError("Invalid token type.")

        user_id = payload.get("sub")
        token_id = payload.get("jti")
        if not user_id or not isinstance(user_id, str):
            raise SessionInvalidError("Invalid token subject.")
        if not token_id or not isinstance(token_id, str):
            raise SessionInvalidError("Invalid token id.")

        try:
            issued_at = _from_timestamp(payload["iat"])
            expires_at = _from_timestamp(payload["exp"])
        except (TypeError, ValueError, OverflowError) as exc:
            raise SessionInvalidError("Invalid token timestamps.") from exc
        if expires_at <= issued_at:
            raise SessionInvalidError("Invalid token lifetime.")

        return SessionClaims(
            user_id=user_id,
            token_id=token_id,
            issued_at=issued_at,
            expires_at=expires_at,
        )


def _from_timestamp(value) -> datetime:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise TypeError("timestamp must be numeric.")
    return datetime.fromtimestamp(value, tz=timezone.utc)
