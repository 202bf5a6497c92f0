"""PKCE pairs and the single-use CSRF state cookie."""

from __future__ import annotations

import base64
import hashlib
import hmac
import secrets
from dataclasses import dataclass
from typing import Optional

from wrapped_auth.config import AuthConfig
from wrapped_auth.connectors.oauth.base import FlowState, Provider
from wrapped_auth.connectors.oauth.registry import get_oauth_provider
from wrapped_auth.utils.cookies import CookieJar
from wrapped_auth.utils.encrypt import decrypt, encrypt, issued_at
from wrapped_auth.utils.oauth_log import log_oauth_event, redact

STATE_COOKIE_MAX_AGE = 60 * 5
STATE_DELIMITER = ":"


@dataclass(frozen=True)
class IssuedState:
    state: str
    code_verifier: Optional[str] = None
    code_challenge: Optional[str] = None


@dataclass(frozen=True)
class StateValidation:
    valid: bool
    code_verifier: Optional[str] = None


def state_cookie_name(provider: Provider) -> str:
    return f"{provider.value}_oauth_state"


def _urlsafe_b64_no_pad(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).decode("ascii").rstrip("=")


def generate_state() -> str:
    return secrets.token_urlsafe(32)


def generate_pkce_verifier() -> str:
    return _urlsafe_b64_no_pad(secrets.token_bytes(32))


def build_pkce_challenge(verifier: str) -> str:
    digest = hashlib.sha256(verifier.encode("utf-8")).digest()
    return _urlsafe_b64_no_pad(digest)


def store_flow_state(
    jar: CookieJar,
    *,
    config: AuthConfig,
    provider: Provider,
    state: str,
    code_verifier: Optional[str] = None,
) -> None:
    if not state or STATE_DELIMITER in state:
        raise ValueError("state must be a non-empty URL-safe token")
    if code_verifier and STATE_DELIMITER in code_verifier:
        raise ValueError("code_verifier must be URL-safe")
    value = f"{state}{STATE_DELIMITER}{code_verifier}" if code_verifier else state
    jar.set(
        state_cookie_name(provider),
        encrypt(value, config.encrypt_key),
        max_age=STATE_COOKIE_MAX_AGE,
        samesite="lax",
    )
    log_oauth_event(provider, "state_stored", has_pkce=bool(code_verifier))


def issue_flow_state(jar: CookieJar, *, config: AuthConfig, provider: Provider) -> IssuedState:
    """Start a flow attempt; overwrites any earlier pending state for the provider."""
    state = generate_state()
    verifier = None
    challenge = None
    if get_oauth_provider(provider, config).supports_pkce:
        verifier = generate_pkce_verifier()
        challenge = build_pkce_challenge(verifier)
    store_flow_state(jar, config=config, provider=provider, state=state, code_verifier=verifier)
    return IssuedState(state=state, code_verifier=verifier, code_challenge=challenge)


def read_flow_state(jar: CookieJar, *, config: AuthConfig, provider: Provider) -> Optional[FlowState]:
    raw = jar.get(state_cookie_name(provider))
    if not raw:
        return None
    value = decrypt(raw, config.encrypt_key, ttl=STATE_COOKIE_MAX_AGE)
    if not value:
        return None
    stored_state, _, verifier = value.partition(STATE_DELIMITER)
    return FlowState(
        provider=provider,
        csrf_token=stored_state,
        pkce_verifier=verifier or None,
        created_at=issued_at(raw, config.encrypt_key) or 0,
    )


def discard_flow_state(jar: CookieJar, provider: Provider) -> None:
    jar.delete(state_cookie_name(provider))


def validate_and_consume(
    jar: CookieJar,
    *,
    config: AuthConfig,
    provider: Provider,
    supplied_state: Optional[str],
) -> StateValidation:
    flow = read_flow_state(jar, config=config, provider=provider)
    # single use: gone whatever the outcome
    discard_flow_state(jar, provider)

    if flow is None or not flow.csrf_token:
        log_oauth_event(provider, "state_missing")
        return StateValidation(valid=False)

    if not supplied_state or not hmac.compare_digest(
        supplied_state.encode("utf-8"), flow.csrf_token.encode("utf-8")
    ):
        log_oauth_event(
            provider,
            "state_mismatch",
            provided=redact(supplied_state),
            expected=redact(flow.csrf_token),
        )
        return StateValidation(valid=False)

    log_oauth_event(provider, "state_validated", has_pkce=bool(flow.pkce_verifier))
    return StateValidation(valid=True, code_verifier=flow.pkce_verifier)
