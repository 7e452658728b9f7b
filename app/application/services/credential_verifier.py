from __future__ import annotations

from dataclasses import dataclass

from app.application.ports.auth_port import AuthPort
from app.application.ports.password_hasher_port import PasswordHasherPort
from app.application.use_cases.auth_common import normalize_email
from app.domain.entities.user import User
from app.domain.exceptions import InvalidCredentialsError


@dataclass(frozen=True)
class VerifiedCredential:
    user: User
    replacement_digest: str | None


class CredentialVerifier:
    """Checks an email/password pair against the stored digest.

    Every failure raises the same ``InvalidCredentialsError`` and a hash
    verification runs on every path, so neither the error nor the response time
    reveals whether the email is registered.
    """

    def __init__(self, *, auth_port: AuthPort, password_hasher: PasswordHasherPort):
        self._auth_port = auth_port
        self._password_hasher = password_hasher

    def verify(self, *, email: str, password: str) -> VerifiedCredential:
        user = self._auth_port.get_user_by_email(email=normalize_email(email))
        if user is None or not user.password_digest:
            self._password_hasher.dummy_verify()
            raise InvalidCredentialsError("Invalid credentials.")

        verified, replacement_digest = self._password_hasher.verify_and_update(
            password,
            user.password_digest,
        )
        if not verified:
            raise InvalidCredentialsError("Invalid credentials.")
        return VerifiedCredential(user=user, replacement_digest=replacement_digest)
