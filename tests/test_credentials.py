import time

import pytest

from wrapped_auth.config import AuthConfig, ProviderCredentials
from wrapped_auth.connectors.oauth.base import Credential, OAuthErrorKind, Provider
from wrapped_auth.services_credentials import (
    REFRESH_TOKEN_MAX_AGE,
    TOKEN_COOKIE_MAX_AGE,
    clear_credentials,
    get_bearer_headers,
    get_credential,
    get_refresh_token,
    refresh_cookie_name,
    store_credential,
    token_cookie_name,
)
from wrapped_auth.services_oauth_flow import RefreshRejected, refresh_credentials
from wrapped_auth.services_oauth_tokens import make_error
from wrapped_auth.utils.cookies import CookieJar


@pytest.fixture
def config():
    return AuthConfig(
        public_app_url="https://wrapped.example.com",
        encrypt_key="test-encrypt-key",
        providers={
            Provider.GITHUB: ProviderCredentials("gh-id", "gh-secret"),
            Provider.GITLAB: ProviderCredentials("gl-id", "gl-secret"),
        },
    )


def _roundtrip_jar(jar):
    """Simulate the next request: only the cookies the browser kept come back."""
    return CookieJar({name: w.value for name, w in jar.pending().items() if w.value is not None})


def test_github_credential_is_stored_without_refresh_token(config):
    jar = CookieJar(secure=True)
    store_credential(jar, config=config, credential=Credential(Provider.GITHUB, "gho_abc"))

    pending = jar.pending()
    token = pending[token_cookie_name(Provider.GITHUB)]
    assert token.samesite == "strict"
    assert token.max_age == TOKEN_COOKIE_MAX_AGE
    assert "gho_abc" not in token.value
    assert refresh_cookie_name(Provider.GITHUB) not in pending

    stored = get_credential(_roundtrip_jar(jar), config=config, provider=Provider.GITHUB)
    assert stored == Credential(Provider.GITHUB, "gho_abc")


def test_gitlab_credential_cookie_lifetimes(config):
    jar = CookieJar(secure=True)
    expires_at = int(time.time()) + 7200
    store_credential(jar, config=config, credential=Credential(Provider.GITLAB, "glpat", "glrt", expires_at))

    pending = jar.pending()
    assert 7190 <= pending["gitlab_token"].max_age <= 7200
    assert pending["gitlab_refresh_token"].max_age == REFRESH_TOKEN_MAX_AGE
    assert pending["gitlab_refresh_token"].samesite == "strict"

    next_jar = _roundtrip_jar(jar)
    stored = get_credential(next_jar, config=config, provider=Provider.GITLAB)
    assert stored.access_token == "glpat"
    assert stored.refresh_token == "glrt"
    assert stored.expires_at == expires_at
    assert get_refresh_token(next_jar, config=config, provider=Provider.GITLAB) == "glrt"


def test_store_requires_access_token(config):
    with pytest.raises(ValueError):
        store_credential(CookieJar(), config=config, credential=Credential(Provider.GITHUB, ""))


def test_credentials_are_read_with_the_same_key_only(config):
    jar = CookieJar(secure=True)
    store_credential(jar, config=config, credential=Credential(Provider.GITHUB, "gho_abc"))
    other = AuthConfig(encrypt_key="another-key")
    assert get_credential(_roundtrip_jar(jar), config=other, provider=Provider.GITHUB) is None


def test_garbage_cookie_reads_as_absent(config):
    jar = CookieJar({"github_token": "not-a-fernet-token", "gitlab_refresh_token": ""})
    assert get_credential(jar, config=config, provider=Provider.GITHUB) is None
    assert get_refresh_token(jar, config=config, provider=Provider.GITLAB) is None


def test_clear_is_idempotent(config):
    jar = CookieJar(secure=True)
    store_credential(
        jar,
        config=config,
        credential=Credential(Provider.GITLAB, "glpat", "glrt", int(time.time()) + 60),
    )
    clear_credentials(jar, Provider.GITLAB)
    clear_credentials(jar, Provider.GITLAB)

    assert get_credential(jar, config=config, provider=Provider.GITLAB) is None
    assert jar.pending()["gitlab_token"].value is None
    assert jar.pending()["gitlab_refresh_token"].value is None

    empty = CookieJar()
    clear_credentials(empty, Provider.GITHUB)
    assert get_credential(empty, config=config, provider=Provider.GITHUB) is None


def test_bearer_headers(config):
    jar = CookieJar(secure=True)
    assert get_bearer_headers(jar, config=config, provider=Provider.GITHUB) is None
    store_credential(jar, config=config, credential=Credential(Provider.GITHUB, "gho_abc"))
    assert get_bearer_headers(jar, config=config, provider=Provider.GITHUB) == {"Authorization": "Bearer gho_abc"}


def test_refresh_failure_fails_closed(config, monkeypatch):
    jar = CookieJar(secure=True)
    store_credential(
        jar,
        config=config,
        credential=Credential(Provider.GITLAB, "glpat", "glrt", int(time.time()) + 60),
    )
    jar = _roundtrip_jar(jar)

    def rejected(cfg, provider, refresh_token):
        return make_error(provider, OAuthErrorKind.TOKEN_EXCHANGE_FAILED, {"error": "invalid_grant"})

    monkeypatch.setattr("wrapped_auth.services_oauth_flow.refresh_access_token", rejected)

    outcome = refresh_credentials(jar, config=config, provider=Provider.GITLAB)

    assert outcome.success is False
    assert outcome.error.kind == OAuthErrorKind.TOKEN_EXCHANGE_FAILED
    assert get_credential(jar, config=config, provider=Provider.GITLAB) is None
    assert get_refresh_token(jar, config=config, provider=Provider.GITLAB) is None


def test_unexpected_refresh_error_clears_and_propagates(config, monkeypatch):
    jar = CookieJar(secure=True)
    store_credential(
        jar,
        config=config,
        credential=Credential(Provider.GITLAB, "glpat", "glrt", int(time.time()) + 60),
    )
    jar = _roundtrip_jar(jar)

    def broken(cfg, provider, refresh_token):
        raise RuntimeError("boom")

    monkeypatch.setattr("wrapped_auth.services_oauth_flow.refresh_access_token", broken)

    with pytest.raises(RuntimeError):
        refresh_credentials(jar, config=config, provider=Provider.GITLAB)
    assert get_refresh_token(jar, config=config, provider=Provider.GITLAB) is None


def test_refresh_requires_configured_provider_and_stored_token(config):
    with pytest.raises(RefreshRejected):
        refresh_credentials(CookieJar(), config=config, provider=Provider.GITLAB)

    unconfigured = AuthConfig(encrypt_key="test-encrypt-key")
    with pytest.raises(RefreshRejected):
        refresh_credentials(CookieJar(), config=unconfigured, provider=Provider.GITLAB)


def test_expired_access_token_reads_as_absent(config):
    jar = CookieJar(secure=True)
    store_credential(
        jar,
        config=config,
        credential=Credential(Provider.GITLAB, "glpat", "glrt", int(time.time()) - 5),
    )
    next_jar = _roundtrip_jar(jar)

    assert get_credential(next_jar, config=config, provider=Provider.GITLAB) is None
    assert get_bearer_headers(next_jar, config=config, provider=Provider.GITLAB) is None
    # the refresh token stays usable so the session can be renewed
    assert get_refresh_token(next_jar, config=config, provider=Provider.GITLAB) == "glrt"
