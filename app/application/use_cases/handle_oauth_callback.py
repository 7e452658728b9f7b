from __future__ import annotations

import logging
from typing import Mapping

from app.application.dto.auth import OauthCallbackInput, OauthCallbackOutput
from app.application.ports.auth_port import AuthPort
from app.application.ports.identity_provider_port import IdentityProviderPort
from app.application.services.account_resolver import AccountResolver
from app.application.services.auth_state_store import AuthStateStore
from app.application.services.session_issuer import SessionIssuer
from app.domain.entities.user import AuthProvider
from app.domain.exceptions import (
    InputValidationError,
    InvalidStateError,
    ProviderConsentDeniedError,
    ProviderExchangeError,
)

from .auth_common import build_auth_token_output, ensure_login_allowed, utcnow


logger = logging.getLogger(__name__)


class HandleOauthCallbackUseCase:
    """Callback leg of the OAuth flow.

    state consumed -> code exchanged -> identity resolved -> session issued.
    A provider ``error`` short-circuits before any exchange; the state is still
    burned so it cannot be replayed.
    """

    def __init__(
        self,
        *,
        auth_port: AuthPort,
        providers: Mapping[AuthProvider, IdentityProviderPort],
        state_store: AuthStateStore,
        account_resolver: AccountResolver,
        session_issuer: SessionIssuer,
        default_redirect: str,
        require_verified_email: bool = False,
    ):
        self._auth_port = auth_port
        self._providers = providers
        self._state_store = state_store
        self._account_resolver = account_resolver
        self._session_issuer = session_issuer
        self._default_redirect = default_redirect
        self._require_verified_email = require_verified_email

    def execute(self, command: OauthCallbackInput) -> OauthCallbackOutput:
        provider = self._providers.get(command.provider)
        if provider is None:
            raise InputValidationError("Unsupported identity provider.", field="provider")

        if command.error:
            try:
                self._state_store.consume(token=command.state, provider=command.provider)
            except InvalidStateError:
                logger.debug(
                    "oauth_callback: provider_error_state_not_burned provider=%s",
                    command.provider.value,
                )
            logger.info(
                "oauth_callback: provider_error provider=%s error=%s",
                command.provider.value,
                command.error,
            )
            raise ProviderConsentDeniedError("Provider returned an error.", provider_error=command.error)

        state = self._state_store.consume(token=command.state, provider=command.provider)

        if not command.code:
            raise ProviderExchangeError("Callback is missing the authorization code.")
        claims = provider.exchange_code(code=command.code, user_payload=command.user_payload)

        resolved = self._account_resolver.resolve_federated(provider=command.provider, claims=claims)
        user = resolved.user
        ensure_login_allowed(user=user, require_verified_email=self._require_verified_email)

        session = self._session_issuer.issue(user_id=user.id)
        self._auth_port.record_login(user_id=user.id, logged_in_at=utcnow())
        logger.info(
            "oauth_callback: succeeded provider=%s user_id=%s new_account=%s",
            command.provider.value,
            user.id,
            resolved.is_new_account,
        )
        return OauthCallbackOutput(
            redirect_to=state.redirect_to or self._default_redirect,
            session=build_auth_token_output(
                user=user,
                session=session,
                is_new_account=resolved.is_new_account,
            ),
        )
