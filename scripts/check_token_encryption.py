"""Round-trip a sample token triple through the configured encryption key.

Run with:

    python -m scripts.check_token_encryption [--token "access|expires|refresh"]

Requires TOKEN_ENCRYPTION_KEY. Only masked values are printed.
"""

from __future__ import annotations

import argparse
import sys
import time

from dotenv import load_dotenv


def check(token_string: str) -> int:
    from challengers.auth.vault import TokenVault, mask_token, parse_token  # Lazy import to ensure env is loaded
    from challengers.config import CONFIG, ConfigurationError, reload_config

    reload_config()
    try:
        vault = TokenVault.from_base64(CONFIG.token_encryption_key)
    except ConfigurationError as exc:
        print(f"Key check failed: {exc}", file=sys.stderr)
        return 1

    envelope = vault.encrypt(token_string)
    nonce, tag, ciphertext = envelope.split(":")
    print(f"Envelope parts: nonce={len(nonce)} chars, tag={len(tag)} chars, ciphertext={len(ciphertext)} chars")

    decrypted = vault.decrypt(envelope)
    if decrypted != token_string:
        print("Round trip FAILED: decrypted value differs", file=sys.stderr)
        return 1

    triple = parse_token(decrypted)
    print(f"Round trip OK: {mask_token(decrypted)} (expires {triple.expires_at.isoformat()})")
    return 0


def main() -> int:
    parser = argparse.ArgumentParser(description="Verify TOKEN_ENCRYPTION_KEY with a sample token triple")
    parser.add_argument(
        "--token",
        default=f"sample-access-token|{int(time.time()) + 86400}|sample-refresh-token",
        help="Token triple to round-trip",
    )
    args = parser.parse_args()

    load_dotenv()
    return check(args.token)


if __name__ == "__main__":
    sys.exit(main())
