"""
Credential resolution for scheduled challenges.

A schedule either embeds its owner's encrypted credential (legacy rows) or
relies on the owner's stored credential in ``user_osu_tokens``. The source is
chosen once per schedule; afterwards reading and writing back a refreshed
triple goes through the same object regardless of where it lives.
"""

from __future__ import annotations

import logging
from typing import Optional, Protocol

from ..db import DatabaseClient
from ..scheduling.models import ScheduledChallenge
from ..scheduling.store import ScheduleStore
from .vault import TokenTriple, TokenVault

logger = logging.getLogger(__name__)


class MissingCredentialError(LookupError):
    """Raised when a schedule has neither an embedded nor a stored credential."""

    def __init__(self, owner_id: int):
        self.owner_id = owner_id
        super().__init__(
            f"No stored osu! token for user {owner_id}. The owner must store a token before the challenge can run."
        )


class CredentialSource(Protocol):
    """Where a schedule's credential comes from and where refreshed triples go."""

    kind: str

    def load(self) -> TokenTriple:
        ...

    def save(self, triple: TokenTriple) -> None:
        ...


class EmbeddedCredentialSource:
    """Credential carried on the schedule row itself."""

    kind = "embedded"

    def __init__(
        self,
        schedule: ScheduledChallenge,
        *,
        store: ScheduleStore,
        vault: TokenVault,
        claim_token: str,
    ) -> None:
        self._schedule = schedule
        self._store = store
        self._vault = vault
        self._claim_token = claim_token

    def load(self) -> TokenTriple:
        return self._vault.decrypt_triple(self._schedule.embedded_credential or "")

    def save(self, triple: TokenTriple) -> None:
        encrypted = self._vault.encrypt_triple(triple)
        self._store.write_back_credential(self._schedule.id, self._claim_token, encrypted)
        self._schedule.embedded_credential = encrypted


class StoredCredentialSource:
    """Credential stored once per owner in ``user_osu_tokens``."""

    kind = "stored"

    def __init__(self, owner_id: int, encrypted_token: str, *, db: DatabaseClient, vault: TokenVault) -> None:
        self.owner_id = owner_id
        self._encrypted_token = encrypted_token
        self._db = db
        self._vault = vault

    def load(self) -> TokenTriple:
        return self._vault.decrypt_triple(self._encrypted_token)

    def save(self, triple: TokenTriple) -> None:
        encrypted = self._vault.encrypt_triple(triple)
        self._db.upsert_owner_credential(self.owner_id, encrypted)
        self._encrypted_token = encrypted


def resolve_credential_source(
    schedule: ScheduledChallenge,
    *,
    db: DatabaseClient,
    store: ScheduleStore,
    vault: TokenVault,
    claim_token: str,
) -> CredentialSource:
    """Pick the credential source for ``schedule``.

    Raises :class:`MissingCredentialError` when the schedule carries no
    embedded credential and the owner has no stored one.
    """

    if schedule.has_embedded_credential:
        logger.debug("Schedule %s uses its embedded credential", schedule.id)
        return EmbeddedCredentialSource(schedule, store=store, vault=vault, claim_token=claim_token)

    record: Optional[dict] = db.get_owner_credential(schedule.owner_id)
    encrypted = (record or {}).get("encrypted_token")
    if not encrypted:
        raise MissingCredentialError(schedule.owner_id)

    logger.debug("Schedule %s uses stored credential of owner %s", schedule.id, schedule.owner_id)
    return StoredCredentialSource(schedule.owner_id, encrypted, db=db, vault=vault)


__all__ = [
    "CredentialSource",
    "EmbeddedCredentialSource",
    "MissingCredentialError",
    "StoredCredentialSource",
    "resolve_credential_source",
]
