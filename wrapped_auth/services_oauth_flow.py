"""Start, callback, refresh and logout for each provider.

Browser-facing steps end in a redirect; failures become exactly one
``OAuthError`` and are redirected to ``/?error={provider}_{kind}&message=...``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional
from urllib.parse import quote

from wrapped_auth.config import AuthConfig, is_configured
from wrapped_auth.connectors.oauth.base import Credential, OAuthError, OAuthErrorKind, Provider
from wrapped_auth.connectors.oauth.registry import get_oauth_provider
from wrapped_auth.services_credentials import (
    clear_credentials,
    get_refresh_token,
    store_credential,
)
from wrapped_auth.services_oauth_state import (
    discard_flow_state,
    issue_flow_state,
    validate_and_consume,
)
from wrapped_auth.services_oauth_tokens import exchange_code, make_error, now_ts, refresh_access_token
from wrapped_auth.utils.cookies import CookieJar
from wrapped_auth.utils.oauth_log import log_oauth_event

logger = logging.getLogger(__name__)

AUTHENTICATED_REDIRECT = "/wrapped"
LOGGED_OUT_REDIRECT = "/?logged_out=true"
MAX_CODE_LENGTH = 200


@dataclass(frozen=True)
class FlowOutcome:
    location: str
    error: Optional[OAuthError] = None


@dataclass(frozen=True)
class RefreshOutcome:
    success: bool
    expires_in: Optional[int] = None
    message: Optional[str] = None
    error: Optional[OAuthError] = None


class RefreshRejected(Exception):
    """Refresh cannot proceed because of the request itself (status 400)."""


def error_redirect(error: OAuthError) -> str:
    return f"/?error={error.code}&message={quote(error.message, safe='')}"


def _fail(provider: Provider, kind: OAuthErrorKind, detail: Optional[dict] = None) -> FlowOutcome:
    error = make_error(provider, kind, detail)
    return FlowOutcome(location=error_redirect(error), error=error)


def build_authorization_url(
    config: AuthConfig,
    provider_key: Provider,
    *,
    state: str,
    code_challenge: Optional[str] = None,
) -> str:
    provider = get_oauth_provider(provider_key, config)
    creds = config.credentials(provider.key)
    url = provider.build_auth_url(
        client_id=creds.client_id,
        redirect_uri=config.redirect_uri(provider.key),
        state=state,
        code_challenge=code_challenge if provider.supports_pkce else None,
    )
    log_oauth_event(provider.key, "authorize_redirect", has_pkce=bool(code_challenge and provider.supports_pkce))
    return url


def start_flow(jar: CookieJar, *, config: AuthConfig, provider: Provider) -> FlowOutcome:
    if not is_configured(config, provider):
        return _fail(provider, OAuthErrorKind.NOT_CONFIGURED)
    issued = issue_flow_state(jar, config=config, provider=provider)
    url = build_authorization_url(
        config,
        provider,
        state=issued.state,
        code_challenge=issued.code_challenge,
    )
    return FlowOutcome(location=url)


def _classify_provider_error(error: str) -> OAuthErrorKind:
    if error == "access_denied":
        return OAuthErrorKind.ACCESS_DENIED
    return OAuthErrorKind.UNKNOWN_ERROR


def _valid_code(code: Optional[str]) -> bool:
    return bool(code) and len(code) <= MAX_CODE_LENGTH


def complete_callback(
    jar: CookieJar,
    *,
    config: AuthConfig,
    provider: Provider,
    code: Optional[str],
    state: Optional[str],
    error: Optional[str] = None,
    error_description: Optional[str] = None,
) -> FlowOutcome:
    try:
        return _complete_callback(
            jar,
            config=config,
            provider=provider,
            code=code,
            state=state,
            error=error,
            error_description=error_description,
        )
    except Exception as exc:
        logger.exception("Unhandled error during %s OAuth callback", provider.value)
        discard_flow_state(jar, provider)
        return _fail(provider, OAuthErrorKind.UNKNOWN_ERROR, {"reason": type(exc).__name__})


def _complete_callback(
    jar: CookieJar,
    *,
    config: AuthConfig,
    provider: Provider,
    code: Optional[str],
    state: Optional[str],
    error: Optional[str],
    error_description: Optional[str],
) -> FlowOutcome:
    if not is_configured(config, provider):
        discard_flow_state(jar, provider)
        return _fail(provider, OAuthErrorKind.NOT_CONFIGURED)

    if error:
        discard_flow_state(jar, provider)
        detail = {"error": error}
        if error_description:
            detail["error_description"] = error_description
        return _fail(provider, _classify_provider_error(error), detail)

    if not _valid_code(code):
        discard_flow_state(jar, provider)
        return _fail(provider, OAuthErrorKind.INVALID_CODE, {"length": len(code or "")})

    validation = validate_and_consume(jar, config=config, provider=provider, supplied_state=state)
    if not validation.valid:
        return _fail(provider, OAuthErrorKind.STATE_MISMATCH)

    result = exchange_code(config, provider, code, validation.code_verifier)
    if isinstance(result, OAuthError):
        return FlowOutcome(location=error_redirect(result), error=result)

    store_credential(jar, config=config, credential=result)
    return FlowOutcome(location=AUTHENTICATED_REDIRECT)


def refresh_credentials(jar: CookieJar, *, config: AuthConfig, provider: Provider) -> RefreshOutcome:
    """Refresh the access token of a refresh-capable provider.

    Raises ``RefreshRejected`` when the provider is not configured or no
    refresh token is stored. A failed grant clears the provider's credentials
    and is returned as an unsuccessful outcome; anything unexpected also clears
    them and propagates.
    """
    oauth_provider = get_oauth_provider(provider, config)
    if not oauth_provider.supports_refresh:
        return RefreshOutcome(success=True, message=f"{oauth_provider.label} tokens do not expire")

    if not is_configured(config, provider):
        raise RefreshRejected(f"{oauth_provider.label} integration is not configured")

    stored = get_refresh_token(jar, config=config, provider=provider)
    if not stored:
        raise RefreshRejected("No refresh token available")

    try:
        result = refresh_access_token(config, provider, stored)
        if isinstance(result, OAuthError):
            clear_credentials(jar, provider)
            return RefreshOutcome(success=False, error=result, message=result.message)
        store_credential(jar, config=config, credential=result)
    except Exception:
        log_oauth_event(provider, "token_refresh_error")
        clear_credentials(jar, provider)
        raise

    return RefreshOutcome(success=True, expires_in=_expires_in(result))


def _expires_in(credential: Credential) -> Optional[int]:
    if credential.expires_at is None:
        return None
    return max(0, credential.expires_at - now_ts())


def logout(jar: CookieJar) -> str:
    for provider in Provider:
        clear_credentials(jar, provider)
        discard_flow_state(jar, provider)
    return LOGGED_OUT_REDIRECT
