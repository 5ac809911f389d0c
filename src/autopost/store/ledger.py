"""Ledger store — the durable record of already-published items.

The table carries unique constraints on both ``identity`` and ``link``;
inserts use ``ON CONFLICT DO NOTHING`` so a retry after a crash, or two
runs racing on the same item, never error and never create a second row.
"""

from __future__ import annotations

import logging

import sqlalchemy as sa
from sqlalchemy.engine import Connection

from autopost.models import LedgerEntry
from autopost.store.db import Database, as_utc, dialect_insert, posted_table

logger = logging.getLogger(__name__)


class LedgerStore:
    """Membership test and insert-if-absent over the ``posted`` table."""

    def __init__(self, database: Database) -> None:
        self._db = database

    def exists(self, identity: str) -> bool:
        """Whether any entry has this value as its identity OR its link."""
        if not identity:
            return False
        stmt = (
            sa.select(sa.literal(1))
            .select_from(posted_table)
            .where(sa.or_(posted_table.c.identity == identity, posted_table.c.link == identity))
            .limit(1)
        )
        with self._db.transaction() as conn:
            return conn.execute(stmt).first() is not None

    def insert(self, entry: LedgerEntry, *, connection: Connection | None = None) -> bool:
        """Record a published item. Conflicts are silent no-ops.

        Args:
            entry: The entry to record.
            connection: Optional open transaction to join; when omitted the
                insert commits on its own before returning.

        Returns:
            True if a row was written, False if it already existed.

        Raises:
            LedgerWriteError: If the database cannot be written.
        """
        values = {
            "identity": entry.identity,
            "link": entry.link or None,
            "title": entry.title,
            "published_at": as_utc(entry.published_at),
            "source_feed": entry.source_feed,
            "provider_credential_used": entry.provider_credential_used,
            "usage_cost": entry.usage_cost,
            "post_url": entry.post_url,
            "recorded_at": as_utc(entry.recorded_at),
        }
        with self._db.using(connection) as conn:
            stmt = dialect_insert(conn, posted_table).values(**values).on_conflict_do_nothing()
            result = conn.execute(stmt)
            written = result.rowcount == 1

        if not written:
            logger.info("Ledger already has %s, insert skipped", entry.identity)
        return written

    def count(self) -> int:
        stmt = sa.select(sa.func.count()).select_from(posted_table)
        with self._db.transaction() as conn:
            return int(conn.execute(stmt).scalar_one())

    def recent(self, limit: int = 10) -> list[LedgerEntry]:
        """Most recently recorded entries, newest first."""
        stmt = (
            sa.select(posted_table)
            .order_by(posted_table.c.recorded_at.desc(), posted_table.c.id.desc())
            .limit(limit)
        )
        with self._db.transaction() as conn:
            rows = conn.execute(stmt).mappings().all()
        return [_row_to_entry(row) for row in rows]

    def get(self, identity: str) -> LedgerEntry | None:
        """Return the entry matching identity or link, if any."""
        stmt = (
            sa.select(posted_table)
            .where(sa.or_(posted_table.c.identity == identity, posted_table.c.link == identity))
            .limit(1)
        )
        with self._db.transaction() as conn:
            row = conn.execute(stmt).mappings().first()
        return _row_to_entry(row) if row is not None else None


def _row_to_entry(row) -> LedgerEntry:
    return LedgerEntry(
        identity=row["identity"],
        link=row["link"] or "",
        title=row["title"] or "",
        published_at=as_utc(row["published_at"]),
        source_feed=row["source_feed"],
        provider_credential_used=row["provider_credential_used"],
        usage_cost=row["usage_cost"] or 0,
        post_url=row["post_url"],
        recorded_at=as_utc(row["recorded_at"]),
    )
