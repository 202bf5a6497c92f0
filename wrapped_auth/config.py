"""Process configuration and the per-provider capability gate.

The configuration is read from the environment once, frozen, and handed by
reference to everything that needs provider credentials.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from functools import lru_cache
from types import MappingProxyType
from typing import Dict, List, Mapping, Optional
from urllib.parse import urlparse

from wrapped_auth.connectors.oauth.base import Provider
from wrapped_auth.connectors.oauth.providers.gitlab import DEFAULT_GITLAB_BASE_URL
from wrapped_auth.utils.encrypt import DEFAULT_ENCRYPT_KEY

logger = logging.getLogger(__name__)

PLACEHOLDER = "placeholder"
DEFAULT_HTTP_TIMEOUT_SECONDS = 10.0

ENV_TO_PROVIDER = {
    Provider.GITHUB: {"client_id": "GITHUB_CLIENT_ID", "client_secret": "GITHUB_CLIENT_SECRET"},
    Provider.GITLAB: {"client_id": "GITLAB_CLIENT_ID", "client_secret": "GITLAB_CLIENT_SECRET"},
}


@dataclass(frozen=True)
class ProviderCredentials:
    client_id: str = ""
    client_secret: str = ""


@dataclass(frozen=True)
class AuthConfig:
    public_app_url: str = "http://localhost:5173"
    environment: str = "development"
    encrypt_key: str = DEFAULT_ENCRYPT_KEY
    gitlab_base_url: str = DEFAULT_GITLAB_BASE_URL
    http_timeout: float = DEFAULT_HTTP_TIMEOUT_SECONDS
    providers: Mapping[Provider, ProviderCredentials] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "providers", MappingProxyType(dict(self.providers)))

    @property
    def is_production(self) -> bool:
        return self.environment.strip().lower() == "production"

    def credentials(self, provider: Provider) -> ProviderCredentials:
        return self.providers.get(provider) or ProviderCredentials()

    def redirect_uri(self, provider: Provider) -> str:
        return f"{self.public_app_url.rstrip('/')}/auth/{provider.value}/callback"


@dataclass
class EnvValidationResult:
    valid: bool
    errors: List[str]
    warnings: List[str]


def load_config(environ: Optional[Mapping[str, str]] = None) -> AuthConfig:
    env = os.environ if environ is None else environ

    def _get(name: str, default: str = "") -> str:
        return (env.get(name) or default).strip()

    providers = {
        provider: ProviderCredentials(
            client_id=_get(names["client_id"]),
            client_secret=_get(names["client_secret"]),
        )
        for provider, names in ENV_TO_PROVIDER.items()
    }
    try:
        timeout = float(_get("OAUTH_HTTP_TIMEOUT", str(DEFAULT_HTTP_TIMEOUT_SECONDS)))
    except ValueError:
        timeout = DEFAULT_HTTP_TIMEOUT_SECONDS
    return AuthConfig(
        public_app_url=_get("PUBLIC_APP_URL", "http://localhost:5173"),
        environment=_get("APP_ENV", "development"),
        encrypt_key=_get("ENCRYPT_KEY", DEFAULT_ENCRYPT_KEY),
        gitlab_base_url=_get("GITLAB_BASE_URL", DEFAULT_GITLAB_BASE_URL),
        http_timeout=timeout if timeout > 0 else DEFAULT_HTTP_TIMEOUT_SECONDS,
        providers=providers,
    )


def _valid_url(value: str) -> bool:
    parsed = urlparse(value)
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def validate_config(config: AuthConfig) -> EnvValidationResult:
    errors: List[str] = []
    warnings: List[str] = []

    if not config.public_app_url:
        errors.append("PUBLIC_APP_URL is required")
    elif not _valid_url(config.public_app_url):
        errors.append("PUBLIC_APP_URL must be a valid URL")

    github = config.credentials(Provider.GITHUB)
    if not github.client_id:
        errors.append("GITHUB_CLIENT_ID is required")
    if not github.client_secret:
        errors.append("GITHUB_CLIENT_SECRET is required")

    gitlab = config.credentials(Provider.GITLAB)
    for name, value in (("GITLAB_CLIENT_ID", gitlab.client_id), ("GITLAB_CLIENT_SECRET", gitlab.client_secret)):
        if not value:
            warnings.append(f"{name} is not set - GitLab integration will be disabled")
        elif value == PLACEHOLDER:
            warnings.append(f"{name} is set to placeholder - GitLab integration will not work")

    if config.encrypt_key == DEFAULT_ENCRYPT_KEY:
        if config.is_production:
            errors.append("ENCRYPT_KEY must be set in production")
        else:
            warnings.append("ENCRYPT_KEY is using the development default")

    for w in warnings:
        logger.warning("Environment warning: %s", w)
    for e in errors:
        logger.error("Environment error: %s", e)

    return EnvValidationResult(valid=not errors, errors=errors, warnings=warnings)


def ensure_valid_config(config: AuthConfig) -> EnvValidationResult:
    """Validate at startup; a broken production config is fatal."""
    result = validate_config(config)
    if not result.valid and config.is_production:
        raise ValueError(f"Missing required environment variables: {', '.join(result.errors)}")
    return result


def is_configured(config: AuthConfig, provider: Provider) -> bool:
    creds = config.credentials(provider)
    if provider == Provider.GITLAB:
        ok = bool(
            creds.client_id
            and creds.client_secret
            and creds.client_id != PLACEHOLDER
            and creds.client_secret != PLACEHOLDER
        )
    else:
        ok = bool(creds.client_id and creds.client_secret)
    if not ok:
        logger.info("OAuth provider %s is not configured", provider.value)
    return ok


def configured_providers(config: AuthConfig) -> Dict[str, bool]:
    return {p.value: is_configured(config, p) for p in Provider}


def secure_cookies(config: AuthConfig) -> bool:
    return config.is_production or config.public_app_url.startswith("https://")


@lru_cache(maxsize=1)
def get_config() -> AuthConfig:
    """FastAPI dependency; the environment is read once per process."""
    return load_config()
