"""Cookie value encryption (Fernet: AES-CBC + HMAC-SHA256, timestamped)."""
import base64
from functools import lru_cache
from typing import Optional

from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

DEFAULT_ENCRYPT_KEY = "dev-key-change-in-production-32-chars!"


@lru_cache(maxsize=8)
def _get_fernet(secret: str) -> Fernet:
    """Get Fernet cipher instance derived from the secret."""
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=32,
        salt=b'wrapped_auth_cookie_salt',
        iterations=100000,
    )
    key = base64.urlsafe_b64encode(kdf.derive(secret.encode()))
    return Fernet(key)


def _strip_padding(token: bytes) -> str:
    # "=" would force the cookie value to be quoted
    return token.decode().rstrip("=")


def _pad(value: str) -> bytes:
    return (value + "=" * (-len(value) % 4)).encode()


def encrypt(text: str, secret: str) -> str:
    """Encrypt a plaintext string into a cookie-safe token."""
    if not text:
        return ""
    return _strip_padding(_get_fernet(secret).encrypt(text.encode()))


def decrypt(encrypted_text: Optional[str], secret: str, ttl: Optional[int] = None) -> str:
    """Decrypt a token. Tampered, foreign or expired tokens yield an empty string."""
    if not encrypted_text:
        return ""
    try:
        return _get_fernet(secret).decrypt(_pad(encrypted_text), ttl=ttl).decode()
    except (InvalidToken, ValueError):
        return ""


def issued_at(encrypted_text: str, secret: str) -> Optional[int]:
    """Unix time the token was created, or None if it does not authenticate."""
    try:
        return _get_fernet(secret).extract_timestamp(_pad(encrypted_text))
    except (InvalidToken, ValueError):
        return None
