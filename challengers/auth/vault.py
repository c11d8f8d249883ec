"""
Encryption utilities for delegated osu! credentials.

Credentials travel as a "token triple" string::

    access_token|expires_at_unix_seconds|refresh_token

and are stored at rest as an AES-256-GCM envelope::

    base64(nonce):base64(auth_tag):base64(ciphertext)

The key is a base64 encoded 32 byte secret read from ``TOKEN_ENCRYPTION_KEY``.
It is validated once, when the vault is first built, and a bad key is a
fatal ``ConfigurationError``.
"""

from __future__ import annotations

import base64
import binascii
import secrets
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from ..config import CONFIG, ConfigurationError

TOKEN_DELIMITER = "|"
ENVELOPE_DELIMITER = ":"
KEY_LENGTH = 32
NONCE_LENGTH = 16
TAG_LENGTH = 16


class TokenVaultError(RuntimeError):
    """Base class for vault failures."""


class TokenDecryptionError(TokenVaultError):
    """Raised when an envelope is malformed or fails authentication."""


class TokenFormatError(TokenVaultError, ValueError):
    """Raised when a plaintext token triple cannot be parsed."""


@dataclass(frozen=True, slots=True)
class TokenTriple:
    """Parsed view of a credential triple."""

    access_token: str
    expires_at: datetime
    refresh_token: str

    @property
    def expires_timestamp(self) -> int:
        return int(self.expires_at.timestamp())

    def to_string(self) -> str:
        return create_token_string(self.access_token, self.expires_timestamp, self.refresh_token)

    def is_expired(self, buffer_seconds: float = 300, *, now: Optional[datetime] = None) -> bool:
        current = now or _utcnow()
        return (self.expires_at - current).total_seconds() <= buffer_seconds


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def create_token_string(access_token: str, expires_timestamp: int, refresh_token: str) -> str:
    """Join the three credential fields into the stored triple format."""

    return TOKEN_DELIMITER.join([access_token, str(int(expires_timestamp)), refresh_token])


def parse_token(token_string: str) -> TokenTriple:
    """Split a triple into its fields; ``expires_at`` is read as Unix seconds."""

    if not token_string:
        raise TokenFormatError("Token string is empty.")

    parts = token_string.split(TOKEN_DELIMITER)
    if len(parts) != 3:
        raise TokenFormatError("Expected format: access_token|timestamp|refresh_token")

    access_token, raw_expiry, refresh_token = parts
    if not access_token or not refresh_token:
        raise TokenFormatError("Access and refresh tokens must be non-empty.")

    try:
        expires_ts = int(raw_expiry)
    except ValueError as exc:
        raise TokenFormatError("Token expiry must be a Unix timestamp in seconds.") from exc

    try:
        expires_at = datetime.fromtimestamp(expires_ts, tz=timezone.utc)
    except (OverflowError, OSError, ValueError) as exc:
        raise TokenFormatError("Token expiry is out of range.") from exc

    return TokenTriple(access_token=access_token, expires_at=expires_at, refresh_token=refresh_token)


def is_token_expired(
    token_string: str,
    buffer_seconds: float = 300,
    *,
    now: Optional[datetime] = None,
) -> bool:
    """Return True when the token expires within ``buffer_seconds`` of ``now``."""

    return parse_token(token_string).is_expired(buffer_seconds, now=now)


def mask_token(token_string: Optional[str]) -> str:
    """Redact a triple for logging; the expiry is not secret and is kept."""

    if not token_string:
        return "[no token]"
    parts = token_string.split(TOKEN_DELIMITER)
    if len(parts) != 3:
        return "[invalid]"

    def _mask(value: str) -> str:
        return f"{value[:4]}...{value[-4:]}" if len(value) > 8 else "****"

    return TOKEN_DELIMITER.join([_mask(parts[0]), parts[1], _mask(parts[2])])


def _b64encode(raw: bytes) -> str:
    return base64.b64encode(raw).decode("ascii")


def _b64decode(value: str) -> bytes:
    return base64.b64decode(value.encode("ascii"), validate=True)


def decode_key(raw_key: Optional[str]) -> bytes:
    """Decode and validate the configured base64 key."""

    if not raw_key:
        raise ConfigurationError("TOKEN_ENCRYPTION_KEY must be set in environment")
    try:
        key = _b64decode(raw_key.strip())
    except (binascii.Error, ValueError, UnicodeEncodeError) as exc:
        raise ConfigurationError("TOKEN_ENCRYPTION_KEY must be base64 encoded") from exc
    if len(key) != KEY_LENGTH:
        raise ConfigurationError("TOKEN_ENCRYPTION_KEY must decode to exactly 32 bytes")
    return key


def generate_key() -> str:
    """Return a fresh base64 encoded key suitable for ``TOKEN_ENCRYPTION_KEY``."""

    return _b64encode(AESGCM.generate_key(bit_length=KEY_LENGTH * 8))


class TokenVault:
    """Pure encrypt/decrypt transform around a single AES-256-GCM key."""

    def __init__(self, key: bytes, *, nonce_factory: Callable[[int], bytes] = secrets.token_bytes) -> None:
        if len(key) != KEY_LENGTH:
            raise ConfigurationError("Token vault key must be exactly 32 bytes")
        self._aesgcm = AESGCM(key)
        self._nonce_factory = nonce_factory

    @classmethod
    def from_base64(cls, raw_key: Optional[str]) -> "TokenVault":
        return cls(decode_key(raw_key))

    def encrypt(self, plaintext: str) -> str:
        """Encrypt ``plaintext`` under a fresh nonce and return the envelope."""

        nonce = self._nonce_factory(NONCE_LENGTH)
        sealed = self._aesgcm.encrypt(nonce, plaintext.encode("utf-8"), None)
        ciphertext, tag = sealed[:-TAG_LENGTH], sealed[-TAG_LENGTH:]
        return ENVELOPE_DELIMITER.join([_b64encode(nonce), _b64encode(tag), _b64encode(ciphertext)])

    def decrypt(self, envelope: str) -> str:
        """Open an envelope produced by :meth:`encrypt`."""

        if not envelope or not isinstance(envelope, str):
            raise TokenDecryptionError("Encrypted token is empty.")

        parts = envelope.split(ENVELOPE_DELIMITER)
        if len(parts) != 3:
            raise TokenDecryptionError("Encrypted token envelope is malformed.")

        try:
            nonce, tag, ciphertext = (_b64decode(part) for part in parts)
        except (binascii.Error, ValueError, UnicodeEncodeError) as exc:
            raise TokenDecryptionError("Encrypted token envelope is not valid base64.") from exc

        if len(nonce) != NONCE_LENGTH or len(tag) != TAG_LENGTH:
            raise TokenDecryptionError("Encrypted token envelope has invalid nonce or tag length.")

        try:
            plaintext = self._aesgcm.decrypt(nonce, ciphertext + tag, None)
        except InvalidTag as exc:
            raise TokenDecryptionError("Encrypted token failed authentication.") from exc

        try:
            return plaintext.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise TokenDecryptionError("Decrypted token is not valid UTF-8.") from exc

    def encrypt_triple(self, triple: TokenTriple) -> str:
        return self.encrypt(triple.to_string())

    def decrypt_triple(self, envelope: str) -> TokenTriple:
        return parse_token(self.decrypt(envelope))


# Built once per process and shared; the key never changes at runtime.
_token_vault: Optional[TokenVault] = None


def get_token_vault() -> TokenVault:
    """Return the process-wide vault, validating the key on first use."""

    global _token_vault
    if _token_vault is None:
        _token_vault = TokenVault.from_base64(getattr(CONFIG, "token_encryption_key", None))
    return _token_vault


def reset_token_vault() -> None:
    """Drop the cached vault so the next call re-reads configuration."""

    global _token_vault
    _token_vault = None


def encrypt_token(token_string: str) -> str:
    """Encrypt a token triple for storage."""

    return get_token_vault().encrypt(token_string)


def decrypt_token(encrypted_token: str) -> str:
    """Decrypt a stored token triple."""

    return get_token_vault().decrypt(encrypted_token)


__all__ = [
    "TokenDecryptionError",
    "TokenFormatError",
    "TokenTriple",
    "TokenVault",
    "TokenVaultError",
    "create_token_string",
    "decode_key",
    "decrypt_token",
    "encrypt_token",
    "generate_key",
    "get_token_vault",
    "is_token_expired",
    "mask_token",
    "parse_token",
    "reset_token_vault",
]
