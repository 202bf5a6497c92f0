"""Authorization-code and refresh-token grants against the provider token endpoints.

Every call returns either a ``Credential`` or an ``OAuthError``; transport
exceptions and malformed responses never escape this module. Nothing here is
retried: authorization codes are single use and a rejected refresh token stays
rejected.
"""

from __future__ import annotations

import time
from typing import Any, Dict, Optional

import requests

from wrapped_auth.config import AuthConfig
from wrapped_auth.connectors.oauth.base import (
    ERROR_MESSAGES,
    Credential,
    OAuthError,
    OAuthErrorKind,
    OAuthProvider,
    Provider,
    TokenResult,
)
from wrapped_auth.connectors.oauth.registry import get_oauth_provider
from wrapped_auth.utils.oauth_log import log_oauth_event


def now_ts() -> int:
    return int(time.time())


def make_error(provider: Provider, kind: OAuthErrorKind, detail: Optional[Dict[str, Any]] = None) -> OAuthError:
    log_oauth_event(provider, "error", type=kind.value, detail=detail)
    return OAuthError(kind=kind, provider=provider, message=ERROR_MESSAGES[kind], detail=detail)


def _error_fields(r: requests.Response) -> Dict[str, Any]:
    try:
        body = r.json()
    except ValueError:
        return {}
    if not isinstance(body, dict):
        return {}
    return {k: str(body[k]) for k in ("error", "error_description") if body.get(k)}


def _post_token_endpoint(
    provider: OAuthProvider,
    *,
    config: AuthConfig,
    data: Dict[str, str],
) -> TokenResult | Dict[str, Any]:
    try:
        r = requests.post(
            provider.token_url(),
            data=data,
            headers={"Accept": "application/json"},
            timeout=config.http_timeout,
        )
    except (requests.Timeout, requests.ConnectionError) as exc:
        return make_error(provider.key, OAuthErrorKind.NETWORK_ERROR, {"reason": type(exc).__name__})
    except requests.RequestException as exc:
        return make_error(provider.key, OAuthErrorKind.TOKEN_EXCHANGE_FAILED, {"reason": type(exc).__name__})

    if not 200 <= r.status_code < 300:
        return make_error(
            provider.key,
            OAuthErrorKind.TOKEN_EXCHANGE_FAILED,
            {"status": r.status_code, **_error_fields(r)},
        )

    try:
        body = r.json()
    except ValueError:
        return make_error(
            provider.key,
            OAuthErrorKind.TOKEN_EXCHANGE_FAILED,
            {"status": r.status_code, "reason": "invalid_json"},
        )
    if not isinstance(body, dict):
        return make_error(
            provider.key,
            OAuthErrorKind.TOKEN_EXCHANGE_FAILED,
            {"status": r.status_code, "reason": "unexpected_body"},
        )
    # HTTP 200 can still carry an OAuth error (GitHub does this)
    if body.get("error") or not body.get("access_token"):
        detail: Dict[str, Any] = {"status": r.status_code, "error": body.get("error") or "missing_access_token"}
        if body.get("error_description"):
            detail["error_description"] = body["error_description"]
        return make_error(provider.key, OAuthErrorKind.TOKEN_EXCHANGE_FAILED, detail)
    return body


def _to_credential(
    provider: OAuthProvider,
    body: Dict[str, Any],
    *,
    fallback_refresh_token: Optional[str] = None,
) -> Credential:
    expires_in = body.get("expires_in")
    try:
        expires_in = int(expires_in) if expires_in is not None else provider.default_expires_in
    except (TypeError, ValueError):
        expires_in = provider.default_expires_in
    if expires_in is not None and expires_in <= 0:
        expires_in = provider.default_expires_in

    refresh_token = None
    if provider.supports_refresh:
        refresh_token = str(body.get("refresh_token") or "").strip() or fallback_refresh_token

    return Credential(
        provider=provider.key,
        access_token=str(body["access_token"]),
        refresh_token=refresh_token,
        expires_at=now_ts() + expires_in if expires_in else None,
    )


def exchange_code(
    config: AuthConfig,
    provider_key: Provider,
    code: str,
    code_verifier: Optional[str] = None,
) -> TokenResult:
    provider = get_oauth_provider(provider_key, config)
    creds = config.credentials(provider.key)
    data = provider.token_request(
        code=code,
        redirect_uri=config.redirect_uri(provider.key),
        client_id=creds.client_id,
        client_secret=creds.client_secret,
        code_verifier=code_verifier,
    )
    log_oauth_event(provider.key, "token_exchange_start", has_pkce=bool(code_verifier))
    result = _post_token_endpoint(provider, config=config, data=data)
    if isinstance(result, OAuthError):
        return result
    credential = _to_credential(provider, result)
    log_oauth_event(provider.key, "token_exchange_success", expires_at=credential.expires_at)
    return credential


def refresh_access_token(config: AuthConfig, provider_key: Provider, refresh_token: str) -> TokenResult:
    provider = get_oauth_provider(provider_key, config)
    if not provider.supports_refresh:
        return make_error(provider.key, OAuthErrorKind.UNKNOWN_ERROR, {"reason": "refresh_not_supported"})
    creds = config.credentials(provider.key)
    data = provider.refresh_request(
        refresh_token=refresh_token,
        client_id=creds.client_id,
        client_secret=creds.client_secret,
    )
    log_oauth_event(provider.key, "token_refresh_start")
    result = _post_token_endpoint(provider, config=config, data=data)
    if isinstance(result, OAuthError):
        log_oauth_event(provider.key, "token_refresh_failed", type=result.kind.value)
        return result
    # no rotation in the response means the old refresh token is still the live one
    credential = _to_credential(provider, result, fallback_refresh_token=refresh_token)
    log_oauth_event(provider.key, "token_refresh_success", rotated=credential.refresh_token != refresh_token)
    return credential
