"""Cryptographic utilities for OAuth state tokens."""

from functools import lru_cache
from typing import Optional
import base64
import secrets

from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC
from pydantic import ValidationError

from content_sync.core.config import Settings, get_settings
from content_sync.models import OAuthState


class InvalidStateError(ValueError):
    """OAuth state is forged, corrupted or expired."""
    pass


@lru_cache(maxsize=8)
def generate_key(password: str, salt: bytes) -> bytes:
    """Generate encryption key from password."""
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=32,
        salt=salt,
        iterations=100000,
    )
    key = base64.urlsafe_b64encode(kdf.derive(password.encode()))
    return key


def encrypt_token(token: str, encryption_key: str, salt: bytes) -> str:
    """Encrypt a token."""
    f = Fernet(generate_key(encryption_key, salt))
    return f.encrypt(token.encode()).decode()


def decrypt_token(encrypted_token: str, encryption_key: str, salt: bytes, ttl: Optional[int] = None) -> str:
    """Decrypt a token, rejecting it when older than ``ttl`` seconds."""
    f = Fernet(generate_key(encryption_key, salt))
    return f.decrypt(encrypted_token.encode(), ttl=ttl).decode()


def generate_state_nonce() -> str:
    return secrets.token_urlsafe(16)


def encode_oauth_state(state: OAuthState, settings: Optional[Settings] = None) -> str:
    """Encrypt OAuth state into an opaque ``state`` parameter."""
    settings = settings or get_settings()
    return encrypt_token(
        state.model_dump_json(),
        settings.encryption_key,
        settings.oauth_state_salt.encode(),
    )


def decode_oauth_state(token: str, settings: Optional[Settings] = None) -> OAuthState:
    """Decrypt and validate an OAuth ``state`` parameter.

    Raises:
        InvalidStateError: If the token was tampered with, was encrypted with
            another key, or is older than ``settings.oauth_state_max_age``.
    """
    settings = settings or get_settings()
    try:
        payload = decrypt_token(
            token,
            settings.encryption_key,
            settings.oauth_state_salt.encode(),
            ttl=settings.oauth_state_max_age,
        )
    except (InvalidToken, ValueError) as e:
        raise InvalidStateError("Invalid or expired OAuth state") from e

    try:
        return OAuthState.model_validate_json(payload)
    except ValidationError as e:
        raise InvalidStateError(f"Malformed OAuth state: {e}") from e
