"""One log line per OAuth flow event. Never pass raw secrets in details."""
import logging
from typing import Any

from wrapped_auth.connectors.oauth.base import Provider

logger = logging.getLogger("wrapped_auth.oauth")


def redact(value: Any, keep: int = 8) -> str:
    if not value:
        return "<none>"
    return f"{str(value)[:keep]}..."


def log_oauth_event(provider: Provider, event: str, **details: Any) -> None:
    if details:
        extras = " ".join(f"{k}={v}" for k, v in sorted(details.items()))
        logger.info("OAuth [%s] %s %s", provider.value, event, extras)
    else:
        logger.info("OAuth [%s] %s", provider.value, event)
