from __future__ import annotations

import logging
from dataclasses import dataclass
from urllib.parse import urlencode

import httpx
import requests as requests_lib
from google.auth import exceptions as google_auth_exceptions
from google.auth.transport import requests
from google.oauth2 import id_token

from app.application.dto.auth import IdentityClaims
from app.application.ports.identity_provider_port import IdentityProviderPort
from app.domain.entities.user import AuthProvider
from app.domain.exceptions import (
    IdentityTokenInvalidError,
    ProviderExchangeError,
    ProviderTimeoutError,
)
from app.infrastructure.clients.oauth_token_exchange import post_token_request


logger = logging.getLogger(__name__)


GOOGLE_AUTHORIZATION_ENDPOINT = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_ENDPOINT = "https://oauth2.googleapis.com/token"


@dataclass(frozen=True)
class GoogleOidcClientSettings:
    client_id: str
    client_secret: str
    redirect_uri: str
    timeout_seconds: float = 10
    clock_skew_seconds: int = 30


class GoogleOidcClient(IdentityProviderPort):
    provider = AuthProvider.GOOGLE

    def __init__(
        self,
        settings: GoogleOidcClientSettings,
        *,
        transport: httpx.BaseTransport | None = None,
    ):
        self._settings = settings
        self._transport = transport

    def build_authorization_url(self, *, state: str) -> str:
        params = {
            "client_id": self._settings.client_id,
            "redirect_uri": self._settings.redirect_uri,
            "response_type": "code",
            "scope": "openid email profile",
            "state": state,
            "access_type": "online",
            "prompt": "select_account",
        }
        return f"{GOOGLE_AUTHORIZATION_ENDPOINT}?{urlencode(params)}"

    def exchange_code(self, *, code: str, user_payload: str | None = None) -> IdentityClaims:
        token_response = post_token_request(
            provider=self.provider,
            url=GOOGLE_TOKEN_ENDPOINT,
            data={
                "code": code,
                "client_id": self._settings.client_id,
                "client_secret": self._settings.client_secret,
                "redirect_uri": self._settings.redirect_uri,
                "grant_type": "authorization_code",
            },
            timeout_seconds=self._settings.timeout_seconds,
            transport=self._transport,
        )
        raw_id_token = token_response.get("id_token")
        if not raw_id_token or not isinstance(raw_id_token, str):
            raise ProviderExchangeError("Google token response has no id_token.")
        return self.verify_id_token(id_token=raw_id_token)

    def verify_id_token(self, *, id_token: str) -> IdentityClaims:
        try:
            payload = id_token_verify(
                token=id_token,
                audience=self._settings.client_id,
                clock_skew_seconds=self._settings.clock_skew_seconds,
                timeout_seconds=self._settings.timeout_seconds,
            )
        except google_auth_exceptions.TransportError as exc:
            if isinstance(exc.__cause__, requests_lib.exceptions.Timeout):
                raise ProviderTimeoutError("Google certificate fetch timed out.") from exc
            logger.warning("google_oidc_client: certs_unavailable error=%s", exc.__class__.__name__)
            raise ProviderExchangeError("Could not fetch Google signing keys.") from exc
        except (ValueError, google_auth_exceptions.GoogleAuthError) as exc:
            logger.warning("google_oidc_client: id_token_rejected reason=%s", exc)
            raise IdentityTokenInvalidError("Invalid Google id_token.") from exc

        subject = payload.get("sub")
        if not subject:
            raise IdentityTokenInvalidError("Google id_token missing required claims.")

        email = payload.get("email") if isinstance(payload.get("email"), str) else None
        email_verified_raw = payload.get("email_verified", False)
        email_verified = bool(email_verified_raw)
        if isinstance(email_verified_raw, str):
            email_verified = email_verified_raw.lower() == "true"

        name = payload.get("name") if isinstance(payload.get("name"), str) else None
        picture = payload.get("picture") if isinstance(payload.get("picture"), str) else None
        return IdentityClaims(
            subject=str(subject),
            email=email,
            email_verified=email_verified and email is not None,
            name=name,
            picture=picture,
        )


class _BoundedRequest(requests.Request):
    def __init__(self, timeout_seconds: float):
        super().__init__()
        self._timeout_seconds = timeout_seconds

    def __call__(self, url, method="GET", body=None, headers=None, timeout=None, **kwargs):
        return super().__call__(
            url,
            method=method,
            body=body,
            headers=headers,
            timeout=timeout or self._timeout_seconds,
            **kwargs,
        )


def id_token_verify(*, token: str, audience: str, clock_skew_seconds: int, timeout_seconds: float) -> dict:
    request = _BoundedRequest(timeout_seconds)
    return id_token.verify_oauth2_token(
        token,
        request,
        audience,
        clock_skew_in_seconds=clock_skew_seconds,
    )
