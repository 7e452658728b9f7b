from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass
from typing import Callable
from urllib.parse import urlencode

import httpx
import jwt

from app.application.dto.auth import IdentityClaims
from app.application.ports.identity_provider_port import IdentityProviderPort
from app.domain.entities.user import AuthProvider
from app.domain.exceptions import (
    IdentityTokenInvalidError,
    InfrastructureError,
    ProviderExchangeError,
    ProviderTimeoutError,
)
from app.infrastructure.clients.oauth_token_exchange import post_token_request


logger = logging.getLogger(__name__)


APPLE_ISSUER = "https://appleid.apple.com"
APPLE_AUTHORIZATION_ENDPOINT = "https://appleid.apple.com/auth/authorize"
APPLE_TOKEN_ENDPOINT = "https://appleid.apple.com/auth/token"
APPLE_KEYS_URL = "https://appleid.apple.com/auth/keys"
CLIENT_SECRET_TTL_SECONDS = 300


@dataclass(frozen=True)
class AppleOidcClientSettings:
    client_id: str
    team_id: str
    key_id: str
    private_key: str
    redirect_uri: str
    timeout_seconds: float = 10
    clock_skew_seconds: int = 30


class AppleOidcClient(IdentityProviderPort):
    """Sign in with Apple.

    Apple posts the callback as a form (``response_mode=form_post``) and only
    includes the user's name, as a JSON ``user`` field, on the first
    authorization. The email always comes from the verified id_token.
    """

    provider = AuthProvider.APPLE

    def __init__(
        self,
        settings: AppleOidcClientSettings,
        *,
        transport: httpx.BaseTransport | None = None,
        jwk_client: jwt.PyJWKClient | None = None,
        clock: Callable[[], float] = time.time,
    ):
        self._settings = settings
        self._transport = transport
        self._jwk_client = jwk_client or jwt.PyJWKClient(
            APPLE_KEYS_URL,
            cache_keys=True,
            timeout=int(max(settings.timeout_seconds, 1)),
        )
        self._clock = clock

    def build_authorization_url(self, *, state: str) -> str:
        params = {
            "client_id": self._settings.client_id,
            "redirect_uri": self._settings.redirect_uri,
            "response_type": "code",
            "response_mode": "form_post",
            "scope": "name email",
            "state": state,
        }
        return f"{APPLE_AUTHORIZATION_ENDPOINT}?{urlencode(params)}"

    def exchange_code(self, *, code: str, user_payload: str | None = None) -> IdentityClaims:
        token_response = post_token_request(
            provider=self.provider,
            url=APPLE_TOKEN_ENDPOINT,
            data={
                "code": code,
                "client_id": self._settings.client_id,
                "client_secret": self.build_client_secret(),
                "redirect_uri": self._settings.redirect_uri,
                "grant_type": "authorization_code",
            },
            timeout_seconds=self._settings.timeout_seconds,
            transport=self._transport,
        )
        raw_id_token = token_response.get("id_token")
        if not raw_id_token or not isinstance(raw_id_token, str):
            raise ProviderExchangeError("Apple token response has no id_token.")

        claims = self.verify_id_token(id_token=raw_id_token)
        name = parse_user_name(user_payload)
        if name is None:
            return claims
        return IdentityClaims(
            subject=claims.subject,
            email=claims.email,
            email_verified=claims.email_verified,
            name=name,
            picture=claims.picture,
        )

    def build_client_secret(self) -> str:
        now = int(self._clock())
        payload = {
            "iss": self._settings.team_id,
            "iat": now,
            "exp": now + CLIENT_SECRET_TTL_SECONDS,
            "aud": APPLE_ISSUER,
            "sub": self._settings.client_id,
        }
        try:
            return jwt.encode(
                payload,
                self._settings.private_key,
                algorithm="ES256",
                headers={"kid": self._settings.key_id},
            )
        except (ValueError, TypeError, jwt.PyJWTError) as exc:
            raise InfrastructureError("Apple private key is unusable.") from exc

    def verify_id_token(self, *, id_token: str) -> IdentityClaims:
        try:
            signing_key = self._jwk_client.get_signing_key_from_jwt(id_token)
        except jwt.PyJWKClientConnectionError as exc:
            if _is_timeout(exc.__cause__):
                raise ProviderTimeoutError("Apple key fetch timed out.") from exc
            logger.warning("apple_oidc_client: keys_unavailable error=%s", exc)
            raise ProviderExchangeError("Could not fetch Apple signing keys.") from exc
        except jwt.PyJWTError as exc:
            logger.warning("apple_oidc_client: id_token_rejected reason=%s", exc)
            raise IdentityTokenInvalidError("Invalid Apple id_token.") from exc

        try:
            payload = jwt.decode(
                id_token,
                key=signing_key.key,
                algorithms=["RS256"],
                audience=self._settings.client_id,
                issuer=APPLE_ISSUER,
                leeway=self._settings.clock_skew_seconds,
                options={"require": ["iss", "aud", "exp", "iat", "sub"]},
            )
        except jwt.PyJWTError as exc:
            logger.warning("apple_oidc_client: id_token_rejected reason=%s", exc)
            raise IdentityTokenInvalidError("Invalid Apple id_token.") from exc

        issued_at = payload.get("iat")
        if not isinstance(issued_at, (int, float)) or issued_at > self._clock() + self._settings.clock_skew_seconds:
            raise IdentityTokenInvalidError("Apple id_token issued in the future.")

        email = payload.get("email") if isinstance(payload.get("email"), str) else None
        email_verified_raw = payload.get("email_verified", False)
        email_verified = bool(email_verified_raw)
        if isinstance(email_verified_raw, str):
            email_verified = email_verified_raw.lower() == "true"

        return IdentityClaims(
            subject=str(payload["sub"]),
            email=email,
            email_verified=email_verified and email is not None,
        )


def parse_user_name(user_payload: str | None) -> str | None:
    if not user_payload:
        return None
    try:
        data = json.loads(user_payload)
    except ValueError:
        logger.debug("apple_oidc_client: unparseable_user_payload")
        return None
    if not isinstance(data, dict) or not isinstance(data.get("name"), dict):
        return None
    name = data["name"]
    parts = [name.get("firstName"), name.get("lastName")]
    full_name = " ".join(part.strip() for part in parts if isinstance(part, str) and part.strip())
    return full_name or None


def _is_timeout(exc: BaseException | None) -> bool:
    if isinstance(exc, TimeoutError):
        return True
    return isinstance(getattr(exc, "reason", None), TimeoutError)
