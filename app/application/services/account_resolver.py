from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable
from uuid import uuid4

from app.application.dto.auth import IdentityClaims
from app.application.ports.auth_port import AuthPort
from app.application.use_cases.auth_common import default_display_name, normalize_email, utcnow
from app.domain.entities.user import AuthProvider, User
from app.domain.exceptions import (
    AccountLinkConflictError,
    EmailAlreadyExistsError,
    IdentityTokenInvalidError,
)


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ResolvedAccount:
    user: User
    is_new_account: bool


class AccountResolver:
    """Maps a verified identity to a user record: find, link or create."""

    def __init__(self, *, auth_port: AuthPort, clock: Callable[[], datetime] = utcnow):
        self._auth_port = auth_port
        self._clock = clock

    def resolve_federated(self, *, provider: AuthProvider, claims: IdentityClaims) -> ResolvedAccount:
        now = self._clock()

        user = self._auth_port.get_user_by_provider_subject(provider=provider, subject=claims.subject)
        if user is not None:
            return ResolvedAccount(user=self._refresh_profile(user, claims, now), is_new_account=False)

        if not claims.email:
            raise IdentityTokenInvalidError("Identity token has no email for an unknown subject.")
        email = normalize_email(claims.email)

        linked = self._link_by_email(provider=provider, claims=claims, email=email, now=now)
        if linked is not None:
            return ResolvedAccount(user=linked, is_new_account=False)

        try:
            user = self._auth_port.create_user(
                user_id=str(uuid4()),
                email=email,
                display_name=_clean(claims.name) or default_display_name(email),
                password_digest=None,
                google_subject=claims.subject if provider is AuthProvider.GOOGLE else None,
                apple_subject=claims.subject if provider is AuthProvider.APPLE else None,
                avatar_url=claims.picture,
                is_verified=claims.email_verified,
                created_at=now,
            )
        except EmailAlreadyExistsError:
            # Lost a creation race for the same email.
            linked = self._link_by_email(provider=provider, claims=claims, email=email, now=now)
            if linked is None:
                raise AccountLinkConflictError("Email is already registered.")
            return ResolvedAccount(user=linked, is_new_account=False)

        logger.info(
            "account_resolver: created_federated_user provider=%s user_id=%s",
            provider.value,
            user.id,
        )
        return ResolvedAccount(user=user, is_new_account=True)

    def resolve_or_create_local(
        self,
        *,
        email: str,
        password_digest: str,
        display_name: str | None = None,
    ) -> User:
        email = normalize_email(email)
        now = self._clock()

        def _tx(auth_port: AuthPort) -> User:
            if auth_port.get_user_by_email(email=email) is not None:
                raise EmailAlreadyExistsError("Email already in use.")
            return auth_port.create_user(
                user_id=str(uuid4()),
                email=email,
                display_name=_clean(display_name) or default_display_name(email),
                password_digest=password_digest,
                google_subject=None,
                apple_subject=None,
                avatar_url=None,
                is_verified=False,
                created_at=now,
            )

        user = self._auth_port.execute_in_transaction(_tx)
        logger.info("account_resolver: created_local_user user_id=%s", user.id)
        return user

    def _link_by_email(
        self,
        *,
        provider: AuthProvider,
        claims: IdentityClaims,
        email: str,
        now: datetime,
    ) -> User | None:
        existing = self._auth_port.get_user_by_email(email=email)
        if existing is None:
            return None
        if not claims.email_verified:
            logger.warning(
                "account_resolver: link_refused_unverified_email provider=%s user_id=%s",
                provider.value,
                existing.id,
            )
            raise AccountLinkConflictError("Email belongs to an existing account.")

        current_subject = existing.subject_for(provider)
        if current_subject is not None and current_subject != claims.subject:
            logger.warning(
                "account_resolver: link_refused_subject_mismatch provider=%s user_id=%s",
                provider.value,
                existing.id,
            )
            raise AccountLinkConflictError(f"Account is already linked to another {provider.value} identity.")

        user = self._auth_port.link_provider_subject(
            user_id=existing.id,
            provider=provider,
            subject=claims.subject,
            updated_at=now,
        )
        logger.warning(
            "account_resolver: linked_federated_identity provider=%s user_id=%s",
            provider.value,
            user.id,
        )
        return self._refresh_profile(user, claims, now)

    def _refresh_profile(self, user: User, claims: IdentityClaims, now: datetime) -> User:
        # Absent claims mean "not provided this time", never "cleared".
        display_name = _clean(claims.name) or user.display_name
        avatar_url = claims.picture or user.avatar_url
        is_verified = user.is_verified or bool(
            claims.email_verified and claims.email and normalize_email(claims.email) == user.email
        )
        if (display_name, avatar_url, is_verified) == (user.display_name, user.avatar_url, user.is_verified):
            return user
        return self._auth_port.update_profile(
            user_id=user.id,
            display_name=display_name,
            avatar_url=avatar_url,
            is_verified=is_verified,
            updated_at=now,
        )


def _clean(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip()
    return value or None
