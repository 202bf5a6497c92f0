import time

import pytest

from wrapped_auth.config import AuthConfig, ProviderCredentials
from wrapped_auth.connectors.oauth.base import Provider
from wrapped_auth.services_oauth_state import (
    STATE_COOKIE_MAX_AGE,
    build_pkce_challenge,
    generate_pkce_verifier,
    generate_state,
    issue_flow_state,
    read_flow_state,
    state_cookie_name,
    store_flow_state,
    validate_and_consume,
)
from wrapped_auth.utils.cookies import CookieJar
from wrapped_auth.utils.encrypt import _get_fernet, encrypt


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


def test_pkce_verifier_is_url_safe_and_rfc7636_length():
    verifier = generate_pkce_verifier()
    assert 43 <= len(verifier) <= 128
    assert "=" not in verifier
    assert set(verifier) <= set("ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789-_")
    assert generate_pkce_verifier() != verifier


def test_pkce_challenge_generation_is_stable():
    verifier = "abc123_verifier"
    challenge = build_pkce_challenge(verifier)
    assert challenge == build_pkce_challenge(verifier)
    assert "=" not in challenge
    assert challenge != build_pkce_challenge("abc123_verifieR")


def test_pkce_challenge_matches_rfc7636_example():
    verifier = "dBjftJeZ4CVP-mB92K27uhbUJU1p1r_wW1gFWFOEjXk"
    assert build_pkce_challenge(verifier) == "E9Melhoa2OwvFrEMTJguCHaoeK1t8URWbuGJSstw-cM"


def test_state_tokens_are_unique_and_high_entropy():
    states = {generate_state() for _ in range(50)}
    assert len(states) == 50
    assert all(len(s) >= 22 for s in states)


def test_issued_state_validates_exactly_once(config):
    jar = CookieJar(secure=True)
    store_flow_state(jar, config=config, provider=Provider.GITLAB, state="abc123", code_verifier="v1")

    first = validate_and_consume(jar, config=config, provider=Provider.GITLAB, supplied_state="abc123")
    assert first.valid is True
    assert first.code_verifier == "v1"

    second = validate_and_consume(jar, config=config, provider=Provider.GITLAB, supplied_state="abc123")
    assert second.valid is False
    assert second.code_verifier is None


def test_replayed_cookie_is_rejected_after_consumption(config):
    jar = CookieJar(secure=True)
    issued = issue_flow_state(jar, config=config, provider=Provider.GITHUB)
    captured = jar.pending()[state_cookie_name(Provider.GITHUB)].value

    callback_jar = CookieJar({state_cookie_name(Provider.GITHUB): captured})
    assert validate_and_consume(
        callback_jar, config=config, provider=Provider.GITHUB, supplied_state=issued.state
    ).valid
    assert callback_jar.pending()[state_cookie_name(Provider.GITHUB)].value is None
    assert not validate_and_consume(
        callback_jar, config=config, provider=Provider.GITHUB, supplied_state=issued.state
    ).valid


@pytest.mark.parametrize("supplied", ["wrong", "", None, "abc12", "abc1234"])
def test_state_cookie_deleted_even_when_validation_fails(config, supplied):
    jar = CookieJar(secure=True)
    store_flow_state(jar, config=config, provider=Provider.GITHUB, state="abc123")

    result = validate_and_consume(jar, config=config, provider=Provider.GITHUB, supplied_state=supplied)

    assert result.valid is False
    assert jar.get(state_cookie_name(Provider.GITHUB)) is None
    assert jar.pending()[state_cookie_name(Provider.GITHUB)].value is None


def test_missing_cookie_is_invalid_and_still_deleted(config):
    jar = CookieJar(secure=True)
    result = validate_and_consume(jar, config=config, provider=Provider.GITLAB, supplied_state="abc123")
    assert result.valid is False
    assert jar.pending()[state_cookie_name(Provider.GITLAB)].value is None


def test_issue_adds_pkce_only_for_gitlab(config):
    jar = CookieJar(secure=True)
    gitlab = issue_flow_state(jar, config=config, provider=Provider.GITLAB)
    github = issue_flow_state(jar, config=config, provider=Provider.GITHUB)

    assert gitlab.code_verifier and gitlab.code_challenge == build_pkce_challenge(gitlab.code_verifier)
    assert github.code_verifier is None and github.code_challenge is None

    flow = read_flow_state(jar, config=config, provider=Provider.GITLAB)
    assert flow is not None
    assert flow.csrf_token == gitlab.state
    assert flow.pkce_verifier == gitlab.code_verifier
    assert abs(flow.created_at - int(time.time())) < 60


def test_new_start_overwrites_previous_state(config):
    jar = CookieJar(secure=True)
    old = issue_flow_state(jar, config=config, provider=Provider.GITHUB)
    new = issue_flow_state(jar, config=config, provider=Provider.GITHUB)

    flow = read_flow_state(jar, config=config, provider=Provider.GITHUB)
    assert flow is not None and flow.csrf_token == new.state
    assert not validate_and_consume(jar, config=config, provider=Provider.GITHUB, supplied_state=old.state).valid


def test_state_cookie_is_lax_and_short_lived(config):
    jar = CookieJar(secure=True)
    issue_flow_state(jar, config=config, provider=Provider.GITHUB)
    write = jar.pending()[state_cookie_name(Provider.GITHUB)]
    assert write.samesite == "lax"
    assert write.max_age == STATE_COOKIE_MAX_AGE == 300


def test_state_cookie_is_encrypted(config):
    jar = CookieJar(secure=True)
    store_flow_state(jar, config=config, provider=Provider.GITLAB, state="abc123", code_verifier="v1")
    raw = jar.pending()[state_cookie_name(Provider.GITLAB)].value
    assert "abc123" not in raw
    assert raw != "abc123:v1"


def test_tampered_or_foreign_cookie_is_rejected(config):
    foreign = encrypt("abc123", "some-other-key")
    jar = CookieJar({state_cookie_name(Provider.GITHUB): foreign})
    assert not validate_and_consume(jar, config=config, provider=Provider.GITHUB, supplied_state="abc123").valid

    plain = CookieJar({state_cookie_name(Provider.GITHUB): "abc123"})
    assert not validate_and_consume(plain, config=config, provider=Provider.GITHUB, supplied_state="abc123").valid


def test_expired_state_cookie_is_rejected(config):
    stale = _get_fernet(config.encrypt_key).encrypt_at_time(b"abc123", int(time.time()) - 600)
    jar = CookieJar({state_cookie_name(Provider.GITHUB): stale.decode().rstrip("=")})
    result = validate_and_consume(jar, config=config, provider=Provider.GITHUB, supplied_state="abc123")
    assert result.valid is False
    assert jar.get(state_cookie_name(Provider.GITHUB)) is None


def test_store_rejects_delimiter_in_values(config):
    jar = CookieJar(secure=True)
    with pytest.raises(ValueError):
        store_flow_state(jar, config=config, provider=Provider.GITHUB, state="a:b")
    with pytest.raises(ValueError):
        store_flow_state(jar, config=config, provider=Provider.GITHUB, state="abc", code_verifier="x:y")
