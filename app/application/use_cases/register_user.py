from __future__ import annotations

from app.application.dto.auth import RegisterUserInput, RegisterUserOutput
from app.application.ports.password_hasher_port import PasswordHasherPort
from app.application.services.account_resolver import AccountResolver
from app.domain.exceptions import InputValidationError

from .auth_common import build_auth_user_output, is_valid_email, normalize_email


class RegisterUserUseCase:
    def __init__(
        self,
        *,
        account_resolver: AccountResolver,
        password_hasher: PasswordHasherPort,
        password_min_length: int = 8,
    ):
        self._account_resolver = account_resolver
        self._password_hasher = password_hasher
        self._password_min_length = password_min_length

    def execute(self, command: RegisterUserInput) -> RegisterUserOutput:
        email = normalize_email(command.email)
        password = command.password

        if not is_valid_email(email):
            raise InputValidationError("email is invalid.", field="email")
        if len(password) < self._password_min_length:
            raise InputValidationError(
                f"password must have at least {self._password_min_length} characters.",
                field="password",
            )

        # Registration time must not depend on whether the email exists.
        password_digest = self._password_hasher.hash(password)
        user = self._account_resolver.resolve_or_create_local(
            email=email,
            password_digest=password_digest,
            display_name=command.name,
        )
        return RegisterUserOutput(user=build_auth_user_output(user))
