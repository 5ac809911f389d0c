"""Credential rotator — least-recently-used selection across API keys.

Usage records live in the same database as the ledger and are keyed by a
non-reversible fingerprint of each key. Selection and the usage update run
in one ``BEGIN IMMEDIATE`` transaction, so two concurrent selections (in
one process or several) always see each other's bookkeeping.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from datetime import UTC, datetime

import sqlalchemy as sa
from sqlalchemy.engine import Connection

from autopost.models import EPOCH, Credential, CredentialUsageRecord
from autopost.store.db import Database, as_utc, credential_usage_table, dialect_insert

logger = logging.getLogger(__name__)

_table = credential_usage_table


def _now() -> datetime:
    return datetime.now(tz=UTC)


class CredentialRotator:
    """Picks the least-recently-used credential and records its usage."""

    def __init__(self, database: Database, clock: Callable[[], datetime] = _now) -> None:
        self._db = database
        self._clock = clock

    def register(self, credentials: Sequence[Credential]) -> None:
        """Create usage records for credentials seen for the first time."""
        with self._db.transaction(immediate=True) as conn:
            self._ensure_records(conn, credentials)

    def select_credential(self, candidates: Sequence[Credential]) -> Credential:
        """Pick and claim the candidate used longest ago.

        Ties go to the lowest ``total_uses``, then to input order.

        Raises:
            ValueError: If ``candidates`` is empty.
            LedgerWriteError: If the usage table cannot be updated.
        """
        if not candidates:
            raise ValueError("No credentials to select from")

        with self._db.transaction(immediate=True) as conn:
            self._ensure_records(conn, candidates)
            records = self._load(conn, [c.fingerprint for c in candidates])

            def sort_key(indexed: tuple[int, Credential]) -> tuple[datetime, int, int]:
                index, cred = indexed
                record = records[cred.fingerprint]
                return (record.last_used_at, record.total_uses, index)

            _, chosen = min(enumerate(candidates), key=sort_key)
            self.record_selection(chosen, connection=conn)

        logger.debug("Selected credential %s", chosen.fingerprint)
        return chosen

    def record_selection(self, credential: Credential, *, connection: Connection | None = None) -> None:
        """Count one use and stamp ``last_used_at``."""
        with self._db.using(connection, immediate=True) as conn:
            self._ensure_records(conn, [credential])
            conn.execute(
                sa.update(_table)
                .where(_table.c.credential_fingerprint == credential.fingerprint)
                .values(total_uses=_table.c.total_uses + 1, last_used_at=self._clock())
            )

    def record_usage_cost(
        self, credential: Credential, cost: int, *, connection: Connection | None = None
    ) -> None:
        """Accumulate the provider cost (tokens) of a completed use."""
        with self._db.using(connection, immediate=True) as conn:
            self._ensure_records(conn, [credential])
            conn.execute(
                sa.update(_table)
                .where(_table.c.credential_fingerprint == credential.fingerprint)
                .values(total_cost=_table.c.total_cost + int(cost))
            )

    def get(self, credential: Credential) -> CredentialUsageRecord | None:
        with self._db.transaction() as conn:
            return self._load(conn, [credential.fingerprint]).get(credential.fingerprint)

    def usage_report(self) -> list[CredentialUsageRecord]:
        """All usage records, most recently used first."""
        stmt = sa.select(_table).order_by(_table.c.last_used_at.desc())
        with self._db.transaction() as conn:
            rows = conn.execute(stmt).mappings().all()
        return [_row_to_record(row) for row in rows]

    # ── Private helpers ──────────────────────────────────────────

    def _ensure_records(self, conn: Connection, credentials: Sequence[Credential]) -> None:
        for cred in credentials:
            stmt = (
                dialect_insert(conn, _table)
                .values(
                    credential_fingerprint=cred.fingerprint,
                    last_used_at=EPOCH,
                    total_uses=0,
                    total_cost=0,
                )
                .on_conflict_do_nothing()
            )
            conn.execute(stmt)

    @staticmethod
    def _load(conn: Connection, fingerprints: list[str]) -> dict[str, CredentialUsageRecord]:
        stmt = sa.select(_table).where(_table.c.credential_fingerprint.in_(fingerprints))
        rows = conn.execute(stmt).mappings().all()
        records = [_row_to_record(row) for row in rows]
        return {r.credential_fingerprint: r for r in records}


def _row_to_record(row) -> CredentialUsageRecord:
    return CredentialUsageRecord(
        credential_fingerprint=row["credential_fingerprint"],
        last_used_at=as_utc(row["last_used_at"]) or EPOCH,
        total_uses=row["total_uses"] or 0,
        total_cost=row["total_cost"] or 0,
    )
