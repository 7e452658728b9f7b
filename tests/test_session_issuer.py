from __future__ import annotations

from datetime import datetime, timedelta, timezone

import jwt
import pytest

from app.application.services.session_issuer import SessionIssuer
from app.domain.exceptions import InfrastructureError, SessionExpiredError, SessionInvalidError, SessionRevokedError
from app.infrastructure.security.memory_stores import InMemoryRevocationStore
from app.infrastructure.security.token_service import JwtTokenService


SIGNING_KEY = "test-signing-key-with-at-least-32-bytes!"


class MutableClock:
    def __init__(self, now: datetime | None = None):
        self.now = now or datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


def _issuer(clock: MutableClock, *, signing_key: str = SIGNING_KEY, revocations=None) -> SessionIssuer:
    return SessionIssuer(
        token_port=JwtTokenService(signing_key=signing_key, issuer="auth-service"),
        revocation_port=revocations or InMemoryRevocationStore(),
        ttl_minutes=60,
        clock_skew_seconds=30,
        clock=clock,
    )


def test_issued_token_validates_to_same_claims():
    clock = MutableClock()
    issuer = _issuer(clock)

    session = issuer.issue(user_id="user-1")
    claims = issuer.validate(token=session.token)

    assert claims.user_id == "user-1"
    assert claims.token_id == session.token_id
    assert claims.issued_at == clock.now
    assert claims.expires_at == clock.now + timedelta(minutes=60)


def test_token_ids_are_unique():
    issuer = _issuer(MutableClock())

    assert len({issuer.issue(user_id="user-1").token_id for _ in range(20)}) == 20


def test_expiry_allows_clock_skew_tolerance():
    clock = MutableClock()
    issuer = _issuer(clock)
    session = issuer.issue(user_id="user-1")

    clock.advance(minutes=60, seconds=30)
    assert issuer.validate(token=session.token).user_id == "user-1"

    clock.advance(seconds=1)
    with pytest.raises(SessionExpiredError):
        issuer.validate(token=session.token)


def test_tampered_or_foreign_tokens_are_invalid():
    clock = MutableClock()
    session = _issuer(clock).issue(user_id="user-1")
    other_session = _issuer(clock).issue(user_id="user-2")
    header, _, signature = session.token.split(".")
    tampered = ".".join([header, other_session.token.split(".")[1], signature])

    other_issuer = _issuer(clock, signing_key="another-signing-key-of-32-bytes-or-more")

    with pytest.raises(SessionInvalidError):
        _issuer(clock).validate(token=tampered)
    with pytest.raises(SessionInvalidError):
        other_issuer.validate(token=session.token)
    with pytest.raises(SessionInvalidError):
        _issuer(clock).validate(token="not-a-token")


def test_unsigned_token_is_invalid():
    now = int(MutableClock().now.timestamp())
    token = jwt.encode(
        {"sub": "user-1", "jti": "x", "type": "session", "iss": "auth-service", "iat": now, "exp": now + 60},
        key=None,
        algorithm="none",
    )

    with pytest.raises(SessionInvalidError):
        _issuer(MutableClock()).validate(token=token)


def test_validly_signed_expired_token_reports_expired_before_revoked():
    clock = MutableClock()
    issuer = _issuer(clock)
    session = issuer.issue(user_id="user-1")
    issuer.revoke(token_id=session.token_id, expires_at=session.expires_at)

    with pytest.raises(SessionRevokedError):
        issuer.validate(token=session.token)

    clock.advance(hours=2)
    with pytest.raises(SessionExpiredError):
        issuer.validate(token=session.token)


def test_revocation_entries_are_pruned_after_token_expiry():
    clock = MutableClock()
    revocations = InMemoryRevocationStore()
    issuer = _issuer(clock, revocations=revocations)
    first = issuer.issue(user_id="user-1")
    issuer.revoke(token_id=first.token_id, expires_at=first.expires_at)

    clock.advance(hours=2)
    second = issuer.issue(user_id="user-1")
    issuer.revoke(token_id=second.token_id, expires_at=second.expires_at)

    assert set(revocations._revoked) == {second.token_id}


def test_revoking_one_token_leaves_others_valid():
    issuer = _issuer(MutableClock())
    first = issuer.issue(user_id="user-1")
    second = issuer.issue(user_id="user-1")

    issuer.revoke(token_id=first.token_id, expires_at=first.expires_at)

    assert issuer.validate(token=second.token).token_id == second.token_id


def test_token_service_requires_signing_key():
    with pytest.raises(InfrastructureError):
        JwtTokenService(signing_key="", issuer="auth-service")


def test_token_service_rejects_wrong_token_type():
    service = JwtTokenService(signing_key=SIGNING_KEY, issuer="auth-service")
    now = datetime(2024, 5, 1, tzinfo=timezone.utc)
    token = jwt.encode(
        {
            "sub": "user-1",
            "jti": "abc",
            "type": "refresh",
            "iss": "auth-service",
            "iat": int(now.timestamp()),
            "exp": int((now + timedelta(minutes=5)).timestamp()),
        },
        SIGNING_KEY,
        algorithm="HS256",
    )

    with pytest.raises(SessionInvalidError):
        service.decode_session_token(token=token)
