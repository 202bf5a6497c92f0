from __future__ import annotations

from typing import TYPE_CHECKING, Dict, List, Optional, Type, Union

from wrapped_auth.connectors.oauth.base import OAuthProvider, Provider
from wrapped_auth.connectors.oauth.providers.github import GitHubOAuthProvider
from wrapped_auth.connectors.oauth.providers.gitlab import GitLabOAuthProvider

if TYPE_CHECKING:
    from wrapped_auth.config import AuthConfig


_PROVIDER_REGISTRY: Dict[Provider, Type] = {
    Provider.GITHUB: GitHubOAuthProvider,
    Provider.GITLAB: GitLabOAuthProvider,
}


def parse_provider(provider_key: Union[str, Provider, None]) -> Provider:
    if isinstance(provider_key, Provider):
        return provider_key
    key = (provider_key or "").strip().lower()
    try:
        return Provider(key)
    except ValueError:
        raise ValueError(f"Unsupported OAuth provider: {provider_key}") from None


def get_oauth_provider(
    provider_key: Union[str, Provider],
    config: Optional["AuthConfig"] = None,
) -> OAuthProvider:
    provider = parse_provider(provider_key)
    if provider == Provider.GITLAB and config is not None:
        return GitLabOAuthProvider(base_url=config.gitlab_base_url)
    return _PROVIDER_REGISTRY[provider]()


def list_oauth_provider_keys() -> List[str]:
    return sorted(p.value for p in _PROVIDER_REGISTRY)
