from __future__ import annotations

from functools import lru_cache

from fastapi import Depends, Header, HTTPException

from app.application.ports.auth_state_port import AuthStatePort
from app.application.ports.identity_provider_port import IdentityProviderPort
from app.application.ports.revocation_port import RevocationPort
from app.application.services.account_resolver import AccountResolver
from app.application.services.auth_state_store import AuthStateStore
from app.application.services.credential_verifier import CredentialVerifier
from app.application.services.session_issuer import SessionIssuer
from app.application.use_cases.get_current_user import GetCurrentUserUseCase
from app.application.use_cases.handle_oauth_callback import HandleOauthCallbackUseCase
from app.application.use_cases.initiate_oauth import InitiateOauthUseCase
from app.application.use_cases.login_local import LoginLocalUseCase
from app.application.use_cases.logout_session import LogoutSessionUseCase
from app.application.use_cases.register_user import RegisterUserUseCase
from app.domain.entities.user import AuthProvider, User
from app.domain.exceptions import SessionError
from app.infrastructure.clients.apple_oidc_client import AppleOidcClient, AppleOidcClientSettings
from app.infrastructure.clients.google_oidc_client import GoogleOidcClient, GoogleOidcClientSettings
from app.infrastructure.db.engine import get_engine
from app.infrastructure.db.repositories.accounts_repository import SqlAccountsRepository
from app.infrastructure.db.repositories.auth_state_repository import SqlAuthStateRepository
from app.infrastructure.db.repositories.revocation_repository import SqlRevocationRepository
from app.infrastructure.security.memory_stores import InMemoryAuthStateStore, InMemoryRevocationStore
from app.infrastructure.security.password_hasher import PasswordHasher
from app.infrastructure.security.token_service import JwtTokenService
from app.shared.config import get_settings


def _get_db_engine():
    settings = get_settings()
    if not settings.postgres_dsn:
        raise HTTPException(status_code=500, detail="POSTGRES_DSN is required.")
    return get_engine(settings.postgres_dsn)


def _get_accounts_repository() -> SqlAccountsRepository:
    return SqlAccountsRepository(_get_db_engine())


@lru_cache(maxsize=1)
def _get_password_hasher() -> PasswordHasher:
    return PasswordHasher()


@lru_cache(maxsize=1)
def _get_token_service() -> JwtTokenService:
    settings = get_settings()
    if not settings.session_signing_key:
        raise HTTPException(status_code=500, detail="SESSION_SIGNING_KEY is required.")
    return JwtTokenService(
        signing_key=settings.session_signing_key,
        issuer=settings.session_issuer,
    )


@lru_cache(maxsize=1)
def _get_memory_auth_state_store() -> InMemoryAuthStateStore:
    return InMemoryAuthStateStore()


@lru_cache(maxsize=1)
def _get_memory_revocation_store() -> InMemoryRevocationStore:
    return InMemoryRevocationStore()


def _get_auth_state_port() -> AuthStatePort:
    if get_settings().auth_state_backend == "memory":
        return _get_memory_auth_state_store()
    return SqlAuthStateRepository(_get_db_engine())


def _get_revocation_port() -> RevocationPort:
    if get_settings().auth_state_backend == "memory":
        return _get_memory_revocation_store()
    return SqlRevocationRepository(_get_db_engine())


@lru_cache(maxsize=1)
def _get_google_oidc_client() -> GoogleOidcClient:
    settings = get_settings()
    if not settings.google_client_id or not settings.google_client_secret:
        raise HTTPException(status_code=500, detail="GOOGLE_CLIENT_ID and GOOGLE_CLIENT_SECRET are required.")
    if not settings.google_redirect_uri:
        raise HTTPException(status_code=500, detail="GOOGLE_REDIRECT_URI is required.")
    return GoogleOidcClient(
        GoogleOidcClientSettings(
            client_id=settings.google_client_id,
            client_secret=settings.google_client_secret,
            redirect_uri=settings.google_redirect_uri,
            timeout_seconds=settings.provider_timeout_seconds,
            clock_skew_seconds=settings.session_clock_skew_seconds,
        )
    )


@lru_cache(maxsize=1)
def _get_apple_oidc_client() -> AppleOidcClient:
    settings = get_settings()
    required = {
        "APPLE_CLIENT_ID": settings.apple_client_id,
        "APPLE_TEAM_ID": settings.apple_team_id,
        "APPLE_KEY_ID": settings.apple_key_id,
        "APPLE_PRIVATE_KEY": settings.apple_private_key,
        "APPLE_REDIRECT_URI": settings.apple_redirect_uri,
    }
    missing = [name for name, value in required.items() if not value]
    if missing:
        raise HTTPException(status_code=500, detail=f"{', '.join(missing)} required.")
    return AppleOidcClient(
        AppleOidcClientSettings(
            client_id=settings.apple_client_id,
            team_id=settings.apple_team_id,
            key_id=settings.apple_key_id,
            private_key=settings.apple_private_key,
            redirect_uri=settings.apple_redirect_uri,
            timeout_seconds=settings.provider_timeout_seconds,
            clock_skew_seconds=settings.session_clock_skew_seconds,
        )
    )


def _get_identity_providers(provider: AuthProvider) -> dict[AuthProvider, IdentityProviderPort]:
    if provider is AuthProvider.GOOGLE:
        return {provider: _get_google_oidc_client()}
    return {provider: _get_apple_oidc_client()}


def get_session_issuer() -> SessionIssuer:
    settings = get_settings()
    return SessionIssuer(
        token_port=_get_token_service(),
        revocation_port=_get_revocation_port(),
        ttl_minutes=settings.session_ttl_minutes,
        clock_skew_seconds=settings.session_clock_skew_seconds,
    )


def _get_auth_state_store() -> AuthStateStore:
    return AuthStateStore(
        state_port=_get_auth_state_port(),
        ttl_seconds=get_settings().auth_state_ttl_seconds,
    )


def get_register_user_use_case() -> RegisterUserUseCase:
    return RegisterUserUseCase(
        account_resolver=AccountResolver(auth_port=_get_accounts_repository()),
        password_hasher=_get_password_hasher(),
        password_min_length=get_settings().password_min_length,
    )


def get_login_local_use_case() -> LoginLocalUseCase:
    auth_port = _get_accounts_repository()
    return LoginLocalUseCase(
        auth_port=auth_port,
        credential_verifier=CredentialVerifier(
            auth_port=auth_port,
            password_hasher=_get_password_hasher(),
        ),
        session_issuer=get_session_issuer(),
        require_verified_email=get_settings().auth_require_verified_email,
    )


def get_initiate_oauth_use_case(provider: AuthProvider) -> InitiateOauthUseCase:
    return InitiateOauthUseCase(
        providers=_get_identity_providers(provider),
        state_store=_get_auth_state_store(),
        allowed_redirects=frozenset(get_settings().frontend_allowed_redirects),
    )


def _build_oauth_callback_use_case(provider: AuthProvider) -> HandleOauthCallbackUseCase:
    settings = get_settings()
    auth_port = _get_accounts_repository()
    return HandleOauthCallbackUseCase(
        auth_port=auth_port,
        providers=_get_identity_providers(provider),
        state_store=_get_auth_state_store(),
        account_resolver=AccountResolver(auth_port=auth_port),
        session_issuer=get_session_issuer(),
        default_redirect=settings.frontend_success_url,
        require_verified_email=settings.auth_require_verified_email,
    )


def get_google_callback_use_case() -> HandleOauthCallbackUseCase:
    return _build_oauth_callback_use_case(AuthProvider.GOOGLE)


def get_apple_callback_use_case() -> HandleOauthCallbackUseCase:
    return _build_oauth_callback_use_case(AuthProvider.APPLE)


def get_logout_session_use_case() -> LogoutSessionUseCase:
    return LogoutSessionUseCase(session_issuer=get_session_issuer())


def get_get_current_user_use_case() -> GetCurrentUserUseCase:
    return GetCurrentUserUseCase(
        auth_port=_get_accounts_repository(),
        session_issuer=get_session_issuer(),
    )


def get_bearer_token(authorization: str | None = Header(default=None)) -> str:
    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(
            status_code=401,
            detail="invalid-token",
            headers={"WWW-Authenticate": "Bearer"},
        )
    token = authorization.replace("Bearer ", "", 1).strip()
    if not token:
        raise HTTPException(
            status_code=401,
            detail="invalid-token",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return token


def get_current_user(
    token: str = Depends(get_bearer_token),
    use_case: GetCurrentUserUseCase = Depends(get_get_current_user_use_case),
) -> User:
    try:
        return use_case.execute(token=token)
    except SessionError as exc:
        raise HTTPException(
            status_code=401,
            detail=exc.code,
            headers={"WWW-Authenticate": "Bearer"},
        ) from exc
