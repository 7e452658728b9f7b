from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timedelta, timezone
from urllib.parse import parse_qs, urlparse

import pytest
from fastapi.testclient import TestClient

from app.api.deps import (
    get_apple_callback_use_case,
    get_get_current_user_use_case,
    get_google_callback_use_case,
    get_initiate_oauth_use_case,
    get_login_local_use_case,
    get_logout_session_use_case,
    get_register_user_use_case,
)
from app.application.dto.auth import IdentityClaims, InitiateOauthInput
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
from app.domain.exceptions import AccountLinkConflictError, EmailAlreadyExistsError, ProviderTimeoutError
from app.infrastructure.security.memory_stores import InMemoryAuthStateStore, InMemoryRevocationStore
from app.infrastructure.security.token_service import JwtTokenService
from app.main import app
from app.shared.config import get_settings


SIGNING_KEY = "test-signing-key-with-at-least-32-bytes!"


class MutableClock:
    def __init__(self, now: datetime | None = None):
        self.now = now or datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


class FakeAuthPort:
    def __init__(self):
        self.users: dict[str, User] = {}
        self.logins: list[tuple[str, datetime]] = []
        self.password_updates: list[tuple[str, str]] = []

    def execute_in_transaction(self, fn):
        return fn(self)

    def get_user_by_id(self, *, user_id: str) -> User | None:
        return self.users.get(user_id)

    def get_user_by_email(self, *, email: str) -> User | None:
        email_l = email.lower()
        for user in self.users.values():
            if user.email.lower() == email_l:
                return user
        return None

    def get_user_by_provider_subject(self, *, provider: AuthProvider, subject: str) -> User | None:
        for user in self.users.values():
            if user.subject_for(provider) == subject:
                return user
        return None

    def create_user(
        self,
        *,
        user_id: str,
        email: str,
        display_name: str,
        password_digest: str | None,
        google_subject: str | None,
        apple_subject: str | None,
        avatar_url: str | None,
        is_verified: bool,
        created_at: datetime,
    ) -> User:
        if self.get_user_by_email(email=email) is not None:
            raise EmailAlreadyExistsError("Email already in use.")
        user = User(
            id=user_id,
            email=email,
            display_name=display_name,
            password_digest=password_digest,
            google_subject=google_subject,
            apple_subject=apple_subject,
            avatar_url=avatar_url,
            is_verified=is_verified,
            created_at=created_at,
            updated_at=created_at,
        )
        self.users[user.id] = user
        return user

    def link_provider_subject(
        self,
        *,
        user_id: str,
        provider: AuthProvider,
        subject: str,
        updated_at: datetime,
    ) -> User:
        owner = self.get_user_by_provider_subject(provider=provider, subject=subject)
        if owner is not None and owner.id != user_id:
            raise AccountLinkConflictError("Identity is already linked to another account.")
        user = self.users[user_id]
        current = user.subject_for(provider)
        if current is not None and current != subject:
            raise AccountLinkConflictError("Account is already linked.")
        field = "google_subject" if provider is AuthProvider.GOOGLE else "apple_subject"
        user = replace(user, updated_at=updated_at, **{field: subject})
        self.users[user_id] = user
        return user

    def update_profile(
        self,
        *,
        user_id: str,
        display_name: str,
        avatar_url: str | None,
        is_verified: bool,
        updated_at: datetime,
    ) -> User:
        user = replace(
            self.users[user_id],
            display_name=display_name,
            avatar_url=avatar_url,
            is_verified=is_verified,
            updated_at=updated_at,
        )
        self.users[user_id] = user
        return user

    def update_password_digest(self, *, user_id: str, password_digest: str, updated_at: datetime) -> None:
        self.users[user_id] = replace(self.users[user_id], password_digest=password_digest, updated_at=updated_at)
        self.password_updates.append((user_id, password_digest))

    def record_login(self, *, user_id: str, logged_in_at: datetime) -> None:
        self.users[user_id] = replace(self.users[user_id], last_login_at=logged_in_at)
        self.logins.append((user_id, logged_in_at))


class FakePasswordHasher:
    def __init__(self, *, needs_update: bool = False):
        self.needs_update = needs_update
        self.dummy_calls = 0
        self.verify_calls = 0

    def hash(self, plain_password: str) -> str:
        return f"hashed::{plain_password}"

    def verify_and_update(self, plain_password: str, password_hash: str) -> tuple[bool, str | None]:
        self.verify_calls += 1
        if password_hash != f"hashed::{plain_password}":
            return False, None
        if self.needs_update:
            return True, f"rehashed::{plain_password}"
        return True, None

    def dummy_verify(self) -> None:
        self.dummy_calls += 1


class FakeIdentityProvider:
    def __init__(self, provider: AuthProvider, claims: IdentityClaims | None = None):
        self.provider = provider
        self.claims = claims
        self.exchanged: list[tuple[str, str | None]] = []
        self.error: Exception | None = None

    def build_authorization_url(self, *, state: str) -> str:
        return f"https://idp.example.com/{self.provider.value}/authorize?state={state}"

    def exchange_code(self, *, code: str, user_payload: str | None = None) -> IdentityClaims:
        self.exchanged.append((code, user_payload))
        if self.error is not None:
            raise self.error
        return self.claims


DEFAULT_REDIRECT = "https://app.example.com/auth/complete"


class AuthHarness:
    def __init__(self):
        self.clock = MutableClock()
        self.auth_port = FakeAuthPort()
        self.hasher = FakePasswordHasher()
        self.google = FakeIdentityProvider(
            AuthProvider.GOOGLE,
            IdentityClaims(subject="google-sub-1", email="user@example.com", email_verified=True, name="Google User"),
        )
        self.apple = FakeIdentityProvider(
            AuthProvider.APPLE,
            IdentityClaims(subject="apple-sub-1", email="relay@privaterelay.appleid.com", email_verified=True),
        )
        providers = {AuthProvider.GOOGLE: self.google, AuthProvider.APPLE: self.apple}
        state_store = AuthStateStore(state_port=InMemoryAuthStateStore(), ttl_seconds=600, clock=self.clock)
        self.session_issuer = SessionIssuer(
            token_port=JwtTokenService(signing_key=SIGNING_KEY, issuer="auth-service"),
            revocation_port=InMemoryRevocationStore(),
            ttl_minutes=60,
            clock=self.clock,
        )
        self.initiate = InitiateOauthUseCase(
            providers=providers,
            state_store=state_store,
            allowed_redirects=frozenset(),
        )
        self.callback = HandleOauthCallbackUseCase(
            auth_port=self.auth_port,
            providers=providers,
            state_store=state_store,
            account_resolver=AccountResolver(auth_port=self.auth_port, clock=self.clock),
            session_issuer=self.session_issuer,
            default_redirect=DEFAULT_REDIRECT,
        )

    def start(self, provider: AuthProvider) -> str:
        output = self.initiate.execute(InitiateOauthInput(provider=provider))
        return parse_qs(urlparse(output.authorization_url).query)["state"][0]


@pytest.fixture
def flow():
    flow = AuthHarness()
    auth_port = flow.auth_port
    hasher = flow.hasher

    app.dependency_overrides[get_register_user_use_case] = lambda: RegisterUserUseCase(
        account_resolver=AccountResolver(auth_port=auth_port),
        password_hasher=hasher,
    )
    app.dependency_overrides[get_login_local_use_case] = lambda: LoginLocalUseCase(
        auth_port=auth_port,
        credential_verifier=CredentialVerifier(auth_port=auth_port, password_hasher=hasher),
        session_issuer=flow.session_issuer,
    )
    app.dependency_overrides[get_initiate_oauth_use_case] = lambda: flow.initiate
    app.dependency_overrides[get_google_callback_use_case] = lambda: flow.callback
    app.dependency_overrides[get_apple_callback_use_case] = lambda: flow.callback
    app.dependency_overrides[get_logout_session_use_case] = lambda: LogoutSessionUseCase(
        session_issuer=flow.session_issuer,
    )
    app.dependency_overrides[get_get_current_user_use_case] = lambda: GetCurrentUserUseCase(
        auth_port=auth_port,
        session_issuer=flow.session_issuer,
    )
    yield flow
    app.dependency_overrides.clear()


@pytest.fixture
def client(flow):
    return TestClient(app, follow_redirects=False)


def _register_and_login(client: TestClient) -> dict:
    client.post("/auth/register", json={"email": "user@example.com", "password": "12345678", "name": "User"})
    response = client.post("/auth/login", json={"email": "user@example.com", "password": "12345678"})
    assert response.status_code == 200
    return response.json()


def test_register_returns_201_then_409_for_same_email(client):
    first = client.post("/auth/register", json={"email": "user@example.com", "password": "12345678"})
    second = client.post("/auth/register", json={"email": "USER@example.com", "password": "12345678"})

    assert first.status_code == 201
    assert first.json()["user"]["email"] == "user@example.com"
    assert second.status_code == 409
    assert second.json() == {"detail": "email-taken"}


def test_register_reports_invalid_fields(client):
    response = client.post("/auth/register", json={"email": "user@example.com", "password": "short"})

    assert response.status_code == 400
    body = response.json()
    assert body["detail"] == "invalid-input"
    assert body["errors"][0]["field"] == "password"


def test_malformed_body_is_400_with_field_errors(client):
    response = client.post("/auth/register", json={"password": "12345678"})

    assert response.status_code == 400
    body = response.json()
    assert body["detail"] == "invalid-input"
    assert body["errors"][0]["field"] == "email"


def test_login_failures_return_identical_bodies(client):
    client.post("/auth/register", json={"email": "user@example.com", "password": "12345678"})

    unknown = client.post("/auth/login", json={"email": "nobody@example.com", "password": "12345678"})
    wrong = client.post("/auth/login", json={"email": "user@example.com", "password": "bad-password"})

    assert unknown.status_code == wrong.status_code == 401
    assert unknown.json() == wrong.json() == {"detail": "invalid-credentials"}


def test_login_then_me_then_logout(client):
    login = _register_and_login(client)
    headers = {"Authorization": f"Bearer {login['token']}"}

    me = client.get("/auth/me", headers=headers)
    logout = client.post("/auth/logout", headers=headers)
    me_after = client.get("/auth/me", headers=headers)

    assert login["token_type"] == "bearer"
    assert me.status_code == 200
    assert me.json()["email"] == "user@example.com"
    assert me.json()["providers"] == []
    assert logout.status_code == 200
    assert me_after.status_code == 401
    assert me_after.json() == {"detail": "token-revoked"}


@pytest.mark.parametrize("headers", [{}, {"Authorization": "Token abc"}, {"Authorization": "Bearer garbage"}])
def test_me_requires_valid_bearer_token(client, headers):
    response = client.get("/auth/me", headers=headers)

    assert response.status_code == 401


def test_initiate_redirects_to_provider(client):
    response = client.get("/auth/google/initiate")

    assert response.status_code == 302
    assert response.headers["location"].startswith("https://idp.example.com/google/authorize?state=")


def test_initiate_rejects_unknown_provider(client):
    response = client.get("/auth/facebook/initiate")

    assert response.status_code == 400


def test_google_callback_redirects_with_token_fragment(client, flow):
    state = flow.start(AuthProvider.GOOGLE)

    response = client.get("/auth/google/callback", params={"code": "code-1", "state": state})

    assert response.status_code == 302
    location = urlparse(response.headers["location"])
    assert f"{location.scheme}://{location.netloc}{location.path}" == DEFAULT_REDIRECT
    fragment = parse_qs(location.fragment)
    me = client.get("/auth/me", headers={"Authorization": f"Bearer {fragment['token'][0]}"})
    assert me.status_code == 200
    assert me.json()["providers"] == ["google"]


def test_callback_with_forged_state_redirects_with_invalid_state(client, flow):
    response = client.get("/auth/google/callback", params={"code": "code-1", "state": "forged"})

    assert response.status_code == 302
    location = urlparse(response.headers["location"])
    assert location.geturl().startswith(get_settings().frontend_error_url)
    assert parse_qs(location.query)["error"] == ["invalid_state"]
    assert flow.google.exchanged == []


def test_callback_with_consent_denied_redirects_with_access_denied(client, flow):
    state = flow.start(AuthProvider.GOOGLE)

    response = client.get("/auth/google/callback", params={"error": "access_denied", "state": state})

    assert parse_qs(urlparse(response.headers["location"]).query)["error"] == ["access_denied"]


def test_callback_timeout_redirects_with_generic_code(client, flow):
    flow.google.error = ProviderTimeoutError("Google did not respond.")
    state = flow.start(AuthProvider.GOOGLE)

    response = client.get("/auth/google/callback", params={"code": "code-1", "state": state})

    location = response.headers["location"]
    assert parse_qs(urlparse(location).query)["error"] == ["provider_timeout"]
    assert "Google did not respond" not in location


def test_apple_callback_accepts_form_post(client, flow):
    state = flow.start(AuthProvider.APPLE)

    response = client.post(
        "/auth/apple/callback",
        data={
            "code": "code-1",
            "state": state,
            "user": '{"name": {"firstName": "Jane", "lastName": "Appleseed"}}',
        },
    )

    assert response.status_code == 302
    assert "#token=" in response.headers["location"]
    assert flow.apple.exchanged == [("code-1", '{"name": {"firstName": "Jane", "lastName": "Appleseed"}}')]
