from __future__ import annotations

from typing import Dict, List, Optional
from urllib.parse import urlencode

from wrapped_auth.connectors.oauth.base import Provider

DEFAULT_GITLAB_BASE_URL = "https://gitlab.com"


class GitLabOAuthProvider:
    """GitLab OAuth application with PKCE. Access tokens live ~2h and refresh tokens rotate."""

    key = Provider.GITLAB
    label = "GitLab"
    supports_pkce = True
    supports_refresh = True
    default_expires_in: Optional[int] = 7200

    def __init__(self, base_url: str = DEFAULT_GITLAB_BASE_URL) -> None:
        self.base_url = (base_url or DEFAULT_GITLAB_BASE_URL).rstrip("/")

    def scopes(self) -> List[str]:
        return ["read_user", "read_api", "read_repository"]

    def authorize_url(self) -> str:
        return f"{self.base_url}/oauth/authorize"

    def token_url(self) -> str:
        return f"{self.base_url}/oauth/token"

    def build_auth_url(
        self,
        *,
        client_id: str,
        redirect_uri: str,
        state: str,
        code_challenge: Optional[str] = None,
    ) -> str:
        params = {
            "client_id": client_id,
            "redirect_uri": redirect_uri,
            "response_type": "code",
            "scope": " ".join(self.scopes()),
            "state": state,
        }
        if code_challenge:
            params["code_challenge"] = code_challenge
            params["code_challenge_method"] = "S256"
        return f"{self.authorize_url()}?{urlencode(params)}"

    def token_request(
        self,
        *,
        code: str,
        redirect_uri: str,
        client_id: str,
        client_secret: str,
        code_verifier: Optional[str] = None,
    ) -> Dict[str, str]:
        data = {
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": redirect_uri,
            "client_id": client_id,
            "client_secret": client_secret,
        }
        if code_verifier:
            data["code_verifier"] = code_verifier
        return data

    def refresh_request(
        self,
        *,
        refresh_token: str,
        client_id: str,
        client_secret: str,
    ) -> Dict[str, str]:
        return {
            "grant_type": "refresh_token",
            "refresh_token": refresh_token,
            "client_id": client_id,
            "client_secret": client_secret,
        }
