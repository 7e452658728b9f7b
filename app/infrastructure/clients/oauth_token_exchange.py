from __future__ import annotations

import logging

import httpx

from app.domain.entities.user import AuthProvider
from app.domain.exceptions import ProviderExchangeError, ProviderTimeoutError


logger = logging.getLogger(__name__)


def post_token_request(
    *,
    provider: AuthProvider,
    url: str,
    data: dict,
    timeout_seconds: float,
    transport: httpx.BaseTransport | None = None,
) -> dict:
    """POST an authorization-code grant and return the decoded token response.

    Raw provider detail is logged here and never propagated in the raised error.
    """
    try:
        with httpx.Client(timeout=timeout_seconds, transport=transport) as client:
            response = client.post(url, data=data, headers={"Accept": "application/json"})
    except httpx.TimeoutException as exc:
        logger.warning("oauth_token_exchange: timeout provider=%s", provider.value)
        raise ProviderTimeoutError("Identity provider did not respond in time.") from exc
    except httpx.HTTPError as exc:
        logger.warning(
            "oauth_token_exchange: transport_error provider=%s error=%s",
            provider.value,
            exc.__class__.__name__,
        )
        raise ProviderExchangeError("Token exchange failed.") from exc

    if response.status_code >= 400:
        logger.warning(
            "oauth_token_exchange: rejected provider=%s status=%s error=%s",
            provider.value,
            response.status_code,
            _error_code(response),
        )
        raise ProviderExchangeError(f"Token exchange failed (status={response.status_code}).")

    try:
        payload = response.json()
    except ValueError as exc:
        logger.warning("oauth_token_exchange: invalid_json provider=%s", provider.value)
        raise ProviderExchangeError("Invalid token response.") from exc

    if not isinstance(payload, dict):
        raise ProviderExchangeError("Invalid token response.")
    if payload.get("error"):
        logger.warning(
            "oauth_token_exchange: error_payload provider=%s error=%s",
            provider.value,
            payload.get("error"),
        )
        raise ProviderExchangeError("Token exchange failed.")
    return payload


def _error_code(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        return ""
    if isinstance(payload, dict):
        return str(payload.get("error") or "")
    return ""
