from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Protocol, Union


class Provider(str, Enum):
    GITHUB = "github"
    GITLAB = "gitlab"


class OAuthErrorKind(str, Enum):
    STATE_MISMATCH = "state_mismatch"
    ACCESS_DENIED = "access_denied"
    INVALID_CODE = "invalid_code"
    TOKEN_EXCHANGE_FAILED = "token_exchange_failed"
    NETWORK_ERROR = "network_error"
    UNKNOWN_ERROR = "unknown_error"
    NOT_CONFIGURED = "not_configured"


ERROR_MESSAGES: Dict[OAuthErrorKind, str] = {
    OAuthErrorKind.STATE_MISMATCH: "Security validation failed. Please try again.",
    OAuthErrorKind.ACCESS_DENIED: "Access was denied. Please authorize the application to continue.",
    OAuthErrorKind.INVALID_CODE: "Invalid authorization code. Please try again.",
    OAuthErrorKind.TOKEN_EXCHANGE_FAILED: "Failed to obtain access token. Please try again.",
    OAuthErrorKind.NETWORK_ERROR: "Network error occurred. Please check your connection and try again.",
    OAuthErrorKind.UNKNOWN_ERROR: "An unexpected error occurred. Please try again.",
    OAuthErrorKind.NOT_CONFIGURED: "This provider is not configured on the server.",
}


@dataclass(frozen=True)
class OAuthError:
    kind: OAuthErrorKind
    provider: Provider
    message: str
    detail: Optional[Dict[str, Any]] = None

    @property
    def code(self) -> str:
        return f"{self.provider.value}_{self.kind.value}"


@dataclass(frozen=True)
class Credential:
    provider: Provider
    access_token: str
    refresh_token: Optional[str] = None
    expires_at: Optional[int] = None  # unix seconds, None = never expires


@dataclass(frozen=True)
class FlowState:
    provider: Provider
    csrf_token: str
    pkce_verifier: Optional[str]
    created_at: int


TokenResult = Union[Credential, OAuthError]


class OAuthProvider(Protocol):
    key: Provider
    label: str
    supports_pkce: bool
    supports_refresh: bool
    default_expires_in: Optional[int]

    def scopes(self) -> List[str]:
        ...

    def authorize_url(self) -> str:
        ...

    def token_url(self) -> str:
        ...

    def build_auth_url(
        self,
        *,
        client_id: str,
        redirect_uri: str,
        state: str,
        code_challenge: Optional[str] = None,
    ) -> str:
        ...

    def token_request(
        self,
        *,
        code: str,
        redirect_uri: str,
        client_id: str,
        client_secret: str,
        code_verifier: Optional[str] = None,
    ) -> Dict[str, str]:
        ...

    def refresh_request(
        self,
        *,
        refresh_token: str,
        client_id: str,
        client_secret: str,
    ) -> Dict[str, str]:
        ...
