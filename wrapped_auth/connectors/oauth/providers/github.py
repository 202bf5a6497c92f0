from __future__ import annotations

from typing import Dict, List, Optional
from urllib.parse import urlencode

from wrapped_auth.connectors.oauth.base import Provider


class GitHubOAuthProvider:
    """GitHub OAuth App. Tokens never expire and there is no refresh grant."""

    key = Provider.GITHUB
    label = "GitHub"
    supports_pkce = False
    supports_refresh = False
    default_expires_in: Optional[int] = None

    def scopes(self) -> List[str]:
        return ["read:user", "repo"]

    def authorize_url(self) -> str:
        return "https://github.com/login/oauth/authorize"

    def token_url(self) -> str:
        return "https://github.com/login/oauth/access_token"

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
            "scope": " ".join(self.scopes()),
            "state": state,
        }
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
            "client_id": client_id,
            "client_secret": client_secret,
            "code": code,
            "redirect_uri": redirect_uri,
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
        raise ValueError("GitHub OAuth tokens cannot be refreshed")
