from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    INPUT_VALIDATION = "input_validation"
    AUTHENTICATION_FAILURE = "authentication_failure"
    PROVIDER_INTEGRATION_FAILURE = "provider_integration_failure"
    CONFLICT = "conflict"
    INFRASTRUCTURE_FAILURE = "infrastructure_failure"


class DomainError(Exception):
    """Base for domain errors."""

    kind: ErrorKind = ErrorKind.INFRASTRUCTURE_FAILURE
    code: str = "server-error"


class InputValidationError(DomainError):
    """Malformed input the user can correct and resubmit."""

    kind = ErrorKind.INPUT_VALIDATION
    code = "invalid-input"

    def __init__(self, message: str, *, field: str | None = None):
        super().__init__(message)
        self.field = field


class InvalidCredentialsError(DomainError):
    """Unknown email or wrong password; deliberately indistinguishable."""

    kind = ErrorKind.AUTHENTICATION_FAILURE
    code = "invalid-credentials"


class UserNotVerifiedError(DomainError):
    """Email verification is required before a session can be issued."""

    kind = ErrorKind.AUTHENTICATION_FAILURE
    code = "not-verified"


class InvalidStateError(DomainError):
    """OAuth state token unknown, expired, forged or already consumed."""

    kind = ErrorKind.AUTHENTICATION_FAILURE
    code = "invalid-state"


class ProviderConsentDeniedError(DomainError):
    """The identity provider returned an ``error`` parameter."""

    kind = ErrorKind.AUTHENTICATION_FAILURE
    code = "access-denied"

    def __init__(self, message: str, *, provider_error: str | None = None):
        super().__init__(message)
        self.provider_error = provider_error


class SessionError(DomainError):
    kind = ErrorKind.AUTHENTICATION_FAILURE
    code = "invalid-token"


class SessionInvalidError(SessionError):
    """Session token is malformed or its signature does not verify."""


class SessionExpiredError(SessionError):
    """Session token is past its expiry plus skew tolerance."""

    code = "token-expired"


class SessionRevokedError(SessionError):
    """Session token id is in the revocation set."""

    code = "token-revoked"


class ProviderIntegrationError(DomainError):
    kind = ErrorKind.PROVIDER_INTEGRATION_FAILURE
    code = "provider-error"


class ProviderExchangeError(ProviderIntegrationError):
    """Authorization code exchange failed at the transport or protocol level."""


class ProviderTimeoutError(ProviderIntegrationError):
    """Provider call did not complete within the configured timeout."""

    code = "provider-timeout"


class IdentityTokenInvalidError(ProviderIntegrationError):
    """Provider identity token failed signature or claims validation."""


class EmailAlreadyExistsError(DomainError):
    """Email already registered."""

    kind = ErrorKind.CONFLICT
    code = "email-taken"


class AccountLinkConflictError(DomainError):
    """Federated identity cannot be linked to the account owning its email."""

    kind = ErrorKind.CONFLICT
    code = "account-conflict"


class InfrastructureError(DomainError):
    """Store or signing key unavailable."""

    kind = ErrorKind.INFRASTRUCTURE_FAILURE
    code = "server-error"
