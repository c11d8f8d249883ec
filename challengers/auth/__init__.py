"""
Credentials and request gates

This package provides:
- AES-256-GCM encryption of delegated osu! token triples at rest
- Resolution of a schedule's credential (embedded or stored per owner)
- Shared-secret gates for the periodic trigger and the scheduling API
"""

from .credentials import (
    CredentialSource,
    EmbeddedCredentialSource,
    MissingCredentialError,
    StoredCredentialSource,
    resolve_credential_source,
)
from .gate import SharedSecretGate, get_cron_gate, get_scheduler_gate, reset_gates
from .vault import (
    TokenDecryptionError,
    TokenFormatError,
    TokenTriple,
    TokenVault,
    create_token_string,
    decrypt_token,
    encrypt_token,
    get_token_vault,
    is_token_expired,
    mask_token,
    parse_token,
)

__all__ = [
    "CredentialSource",
    "EmbeddedCredentialSource",
    "MissingCredentialError",
    "SharedSecretGate",
    "StoredCredentialSource",
    "TokenDecryptionError",
    "TokenFormatError",
    "TokenTriple",
    "TokenVault",
    "create_token_string",
    "decrypt_token",
    "encrypt_token",
    "get_cron_gate",
    "get_scheduler_gate",
    "get_token_vault",
    "is_token_expired",
    "mask_token",
    "parse_token",
    "reset_gates",
]
