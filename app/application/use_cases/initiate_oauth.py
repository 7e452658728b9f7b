from __future__ import annotations

from typing import Mapping

from app.application.dto.auth import InitiateOauthInput, InitiateOauthOutput
from app.application.ports.identity_provider_port import IdentityProviderPort
from app.application.services.auth_state_store import AuthStateStore
from app.domain.entities.user import AuthProvider
from app.domain.exceptions import InputValidationError


class InitiateOauthUseCase:
    def __init__(
        self,
        *,
        providers: Mapping[AuthProvider, IdentityProviderPort],
        state_store: AuthStateStore,
        allowed_redirects: frozenset[str] = frozenset(),
    ):
        self._providers = providers
        self._state_store = state_store
        self._allowed_redirects = allowed_redirects

    def execute(self, command: InitiateOauthInput) -> InitiateOauthOutput:
        provider = self._providers.get(command.provider)
        if provider is None:
            raise InputValidationError("Unsupported identity provider.", field="provider")

        # Unknown destinations fall back to the default.
        redirect_to = command.next_url if command.next_url in self._allowed_redirects else None
        state = self._state_store.issue(provider=command.provider, redirect_to=redirect_to)
        return InitiateOauthOutput(authorization_url=provider.build_authorization_url(state=state))
