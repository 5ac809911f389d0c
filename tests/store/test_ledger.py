"""Tests for the ledger store."""

from __future__ import annotations

import multiprocessing
import sqlite3
from concurrent.futures import ProcessPoolExecutor
from datetime import UTC, datetime

import pytest

from autopost.config import StoreConfig
from autopost.errors import LedgerWriteError
from autopost.models import LedgerEntry
from autopost.store import Database, LedgerStore


def _entry(identity: str, link: str = "", **kwargs) -> LedgerEntry:
    return LedgerEntry(identity=identity, link=link, title=f"T {identity}", **kwargs)


def _insert_worker(db_path: str, identity: str, link: str) -> bool:
    """Runs in a child process: open the ledger and insert one entry."""
    database = Database(StoreConfig(db_path=db_path))
    try:
        return LedgerStore(database).insert(_entry(identity, link))
    finally:
        database.dispose()


class TestDatabase:
    def test_creates_parent_directory(self, tmp_path):
        path = tmp_path / "deep" / "nested" / "posts.db"
        database = Database(StoreConfig(db_path=str(path)))
        database.dispose()
        assert path.exists()

    def test_uses_wal_journal(self, database, tmp_path):
        raw = sqlite3.connect(tmp_path / "ledger" / "posts.db")
        try:
            mode = raw.execute("PRAGMA journal_mode").fetchone()[0]
        finally:
            raw.close()
        assert mode.lower() == "wal"

    def test_unwritable_location_raises_ledger_error(self, tmp_path):
        blocker = tmp_path / "file"
        blocker.write_text("not a directory")
        with pytest.raises(LedgerWriteError):
            Database(StoreConfig(db_path=str(blocker / "posts.db")))

    def test_read_only_missing_file_creates_nothing(self, tmp_path):
        path = tmp_path / "data" / "posts.db"
        database = Database(StoreConfig(db_path=str(path)), read_only=True)
        try:
            assert LedgerStore(database).exists("anything") is False
        finally:
            database.dispose()
        assert not path.parent.exists()

    def test_read_only_sees_existing_entries(self, ledger, tmp_path):
        ledger.insert(_entry("guid-1", "https://x.example/1"))
        config = StoreConfig(db_path=str(tmp_path / "ledger" / "posts.db"))
        database = Database(config, read_only=True)
        try:
            reader = LedgerStore(database)
            assert reader.exists("https://x.example/1") is True
            with pytest.raises(LedgerWriteError):
                reader.insert(_entry("guid-2"))
        finally:
            database.dispose()
        assert ledger.count() == 1


class TestLedgerInsert:
    def test_insert_then_exists(self, ledger):
        assert ledger.exists("guid-1") is False
        assert ledger.insert(_entry("guid-1", "https://x.example/1")) is True
        assert ledger.exists("guid-1") is True

    def test_exists_matches_link_column(self, ledger):
        ledger.insert(_entry("guid-1", "https://x.example/1"))
        assert ledger.exists("https://x.example/1") is True

    def test_exists_empty_identity(self, ledger):
        assert ledger.exists("") is False

    def test_insert_is_idempotent(self, ledger):
        entry = _entry("guid-1", "https://x.example/1")
        assert ledger.insert(entry) is True
        assert ledger.insert(entry) is False
        assert ledger.count() == 1

    def test_identity_conflict_is_noop(self, ledger):
        ledger.insert(_entry("guid-1", "https://x.example/1"))
        assert ledger.insert(_entry("guid-1", "https://x.example/other")) is False
        assert ledger.count() == 1

    def test_link_conflict_is_noop(self, ledger):
        ledger.insert(_entry("guid-1", "https://x.example/1"))
        assert ledger.insert(_entry("guid-2", "https://x.example/1")) is False
        assert ledger.count() == 1
        assert ledger.exists("guid-2") is False

    def test_empty_links_do_not_collide(self, ledger):
        assert ledger.insert(_entry("guid-1", "")) is True
        assert ledger.insert(_entry("guid-2", "")) is True
        assert ledger.count() == 2

    def test_insert_persists_across_instances(self, tmp_path):
        config = StoreConfig(db_path=str(tmp_path / "posts.db"))
        first = Database(config)
        LedgerStore(first).insert(_entry("guid-1", "https://x.example/1"))
        first.dispose()

        second = Database(config)
        try:
            assert LedgerStore(second).exists("guid-1") is True
        finally:
            second.dispose()

    def test_insert_joins_caller_transaction(self, database, ledger):
        with pytest.raises(RuntimeError):
            with database.transaction() as conn:
                ledger.insert(_entry("guid-1"), connection=conn)
                raise RuntimeError("abort")
        assert ledger.exists("guid-1") is False


class TestLedgerReads:
    def test_round_trips_fields(self, ledger):
        published = datetime(2024, 5, 1, 9, 30, tzinfo=UTC)
        ledger.insert(
            _entry(
                "guid-1",
                "https://x.example/1",
                published_at=published,
                source_feed="https://x.example/rss",
                provider_credential_used="abc123def456",
                usage_cost=1234,
                post_url="https://blog.example/p/1",
            )
        )
        got = ledger.get("guid-1")
        assert got is not None
        assert got.published_at == published
        assert got.provider_credential_used == "abc123def456"
        assert got.usage_cost == 1234
        assert got.post_url == "https://blog.example/p/1"
        assert got.recorded_at.tzinfo is not None

    def test_get_missing(self, ledger):
        assert ledger.get("nope") is None

    def test_recent_newest_first(self, ledger):
        for hour, identity in ((8, "a"), (10, "b"), (9, "c")):
            ledger.insert(_entry(identity, recorded_at=datetime(2024, 5, 1, hour, tzinfo=UTC)))
        assert [e.identity for e in ledger.recent(2)] == ["b", "c"]


@pytest.mark.skipif(
    "fork" not in multiprocessing.get_all_start_methods(),
    reason="needs fork start method",
)
class TestCrossProcess:
    def test_concurrent_inserts_produce_one_row(self, tmp_path):
        db_path = str(tmp_path / "shared.db")
        Database(StoreConfig(db_path=db_path)).dispose()

        ctx = multiprocessing.get_context("fork")
        with ProcessPoolExecutor(max_workers=4, mp_context=ctx) as pool:
            futures = [
                pool.submit(_insert_worker, db_path, "guid-race", "https://x.example/race")
                for _ in range(8)
            ]
            results = [f.result() for f in futures]

        assert results.count(True) == 1

        database = Database(StoreConfig(db_path=db_path))
        try:
            assert LedgerStore(database).count() == 1
        finally:
            database.dispose()
