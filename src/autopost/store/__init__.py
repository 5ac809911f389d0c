"""Durable state — the publish ledger and credential usage records."""

from autopost.store.db import Database
from autopost.store.ledger import LedgerStore
from autopost.store.rotator import CredentialRotator

__all__ = [
    "CredentialRotator",
    "Database",
    "LedgerStore",
]
