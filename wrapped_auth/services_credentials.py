"""Access/refresh tokens kept in encrypted, SameSite=strict cookies."""

from __future__ import annotations

import json
import time
from typing import Dict, Optional

from wrapped_auth.config import AuthConfig
from wrapped_auth.connectors.oauth.base import Credential, Provider
from wrapped_auth.utils.cookies import CookieJar
from wrapped_auth.utils.encrypt import decrypt, encrypt
from wrapped_auth.utils.oauth_log import log_oauth_event

TOKEN_COOKIE_MAX_AGE = 60 * 60 * 24 * 7
REFRESH_TOKEN_MAX_AGE = 60 * 60 * 24 * 30


def token_cookie_name(provider: Provider) -> str:
    return f"{provider.value}_token"


def refresh_cookie_name(provider: Provider) -> str:
    return f"{provider.value}_refresh_token"


def store_credential(jar: CookieJar, *, config: AuthConfig, credential: Credential) -> None:
    provider = credential.provider
    if not credential.access_token:
        raise ValueError("access_token is required")

    max_age = TOKEN_COOKIE_MAX_AGE
    if credential.expires_at is not None:
        max_age = max(1, credential.expires_at - int(time.time()))
    payload = json.dumps(
        {"access_token": credential.access_token, "expires_at": credential.expires_at},
        separators=(",", ":"),
    )
    jar.set(
        token_cookie_name(provider),
        encrypt(payload, config.encrypt_key),
        max_age=max_age,
        samesite="strict",
    )
    log_oauth_event(provider, "token_stored", expires_in=max_age)

    if credential.refresh_token:
        jar.set(
            refresh_cookie_name(provider),
            encrypt(credential.refresh_token, config.encrypt_key),
            max_age=REFRESH_TOKEN_MAX_AGE,
            samesite="strict",
        )
        log_oauth_event(provider, "refresh_token_stored")


def get_refresh_token(jar: CookieJar, *, config: AuthConfig, provider: Provider) -> Optional[str]:
    return decrypt(jar.get(refresh_cookie_name(provider)), config.encrypt_key) or None


def get_credential(jar: CookieJar, *, config: AuthConfig, provider: Provider) -> Optional[Credential]:
    raw = decrypt(jar.get(token_cookie_name(provider)), config.encrypt_key)
    if not raw:
        return None
    try:
        data = json.loads(raw)
    except ValueError:
        return None
    if not isinstance(data, dict):
        return None
    access_token = str(data.get("access_token") or "")
    if not access_token:
        return None
    expires_at = data.get("expires_at")
    if expires_at is not None:
        expires_at = int(expires_at)
        # the browser may still send a cookie whose token is already dead
        if expires_at <= int(time.time()):
            return None
    return Credential(
        provider=provider,
        access_token=access_token,
        refresh_token=get_refresh_token(jar, config=config, provider=provider),
        expires_at=expires_at,
    )


def clear_credentials(jar: CookieJar, provider: Provider) -> None:
    jar.delete(token_cookie_name(provider))
    jar.delete(refresh_cookie_name(provider))
    log_oauth_event(provider, "tokens_cleared")


def get_bearer_headers(jar: CookieJar, *, config: AuthConfig, provider: Provider) -> Optional[Dict[str, str]]:
    """Authorization header for calls to the provider's read API."""
    credential = get_credential(jar, config=config, provider=provider)
    if credential is None:
        return None
    return {"Authorization": f"Bearer {credential.access_token}"}
