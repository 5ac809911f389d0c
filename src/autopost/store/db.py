"""SQLAlchemy engine, schema, and transactions for the ledger database.

SQLite is the default backend. Every connection runs in WAL mode with
``synchronous=FULL`` so a committed insert is on disk before the commit
returns, and waits up to ``busy_timeout_ms`` for other processes holding
the write lock.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import UTC, datetime
from pathlib import Path

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import SQLAlchemyError

from autopost.config import StoreConfig
from autopost.errors import LedgerWriteError

logger = logging.getLogger(__name__)

metadata = sa.MetaData()

posted_table = sa.Table(
    "posted",
    metadata,
    sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
    sa.Column("identity", sa.Text, nullable=False, unique=True),
    sa.Column("link", sa.Text, nullable=True, unique=True),
    sa.Column("title", sa.Text, nullable=False, default=""),
    sa.Column("published_at", sa.DateTime(timezone=True), nullable=True),
    sa.Column("source_feed", sa.Text, nullable=True),
    sa.Column("provider_credential_used", sa.Text, nullable=True),
    sa.Column("usage_cost", sa.Integer, nullable=False, default=0),
    sa.Column("post_url", sa.Text, nullable=True),
    sa.Column("recorded_at", sa.DateTime(timezone=True), nullable=False),
)

credential_usage_table = sa.Table(
    "credential_usage",
    metadata,
    sa.Column("credential_fingerprint", sa.Text, primary_key=True),
    sa.Column("last_used_at", sa.DateTime(timezone=True), nullable=False),
    sa.Column("total_uses", sa.Integer, nullable=False, default=0),
    sa.Column("total_cost", sa.Integer, nullable=False, default=0),
)

_IMMEDIATE = "autopost_immediate"


def as_utc(value: datetime | None) -> datetime | None:
    """SQLite hands back naive datetimes; everything stored is UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def dialect_insert(connection: Connection, table: sa.Table):
    """Dialect-specific INSERT supporting ``on_conflict_do_nothing``."""
    if connection.dialect.name == "postgresql":
        return postgresql.insert(table)
    return sqlite.insert(table)


def create_ledger_engine(config: StoreConfig, *, read_only: bool = False) -> Engine:
    """Create the engine, preparing the SQLite file and pragmas.

    With ``read_only`` an existing SQLite file is opened with ``mode=ro``
    and a missing one is replaced by an empty in-memory ledger, so nothing
    is created on disk.
    """
    url = sa.engine.make_url(config.resolved_url)
    is_sqlite = url.get_backend_name() == "sqlite"
    on_disk = is_sqlite and bool(url.database) and url.database != ":memory:"

    if on_disk and read_only:
        if Path(url.database).exists():
            url = url.set(database=f"file:{url.database}", query={"mode": "ro", "uri": "true"})
        else:
            url = sa.engine.make_url("sqlite://")
    elif on_disk:
        Path(url.database).parent.mkdir(parents=True, exist_ok=True)

    engine = sa.create_engine(url)

    if is_sqlite:
        busy_timeout = int(config.busy_timeout_ms)

        @sa.event.listens_for(engine, "connect")
        def _on_connect(dbapi_connection, connection_record):  # noqa: ARG001
            # Let SQLAlchemy's "begin" hook below emit BEGIN itself.
            dbapi_connection.isolation_level = None
            cursor = dbapi_connection.cursor()
            cursor.execute(f"PRAGMA busy_timeout = {busy_timeout}")
            if not read_only:
                cursor.execute("PRAGMA journal_mode = WAL")
                cursor.execute("PRAGMA synchronous = FULL")
            cursor.close()

        @sa.event.listens_for(engine, "begin")
        def _on_begin(conn):
            if conn.get_execution_options().get(_IMMEDIATE):
                conn.exec_driver_sql("BEGIN IMMEDIATE")
            else:
                conn.exec_driver_sql("BEGIN")

    return engine


class Database:
    """Owns the engine and hands out transactions.

    Any SQLAlchemy failure inside a transaction surfaces as
    :class:`LedgerWriteError`.
    """

    def __init__(self, config: StoreConfig, *, read_only: bool = False) -> None:
        self._config = config
        self.read_only = read_only
        try:
            self.engine = create_ledger_engine(config, read_only=read_only)
            if not read_only or self.engine.url.database in (None, "", ":memory:"):
                with self.transaction(immediate=True) as conn:
                    metadata.create_all(conn, checkfirst=True)
        except (SQLAlchemyError, OSError) as exc:
            raise LedgerWriteError(f"Ledger database unavailable: {exc}") from exc
        logger.debug("Ledger database ready at %s", self.engine.url)

    @contextmanager
    def transaction(self, *, immediate: bool = False) -> Iterator[Connection]:
        """Open a connection and a transaction, committing on clean exit.

        Args:
            immediate: Take the SQLite write lock at BEGIN so that a
                read-then-write sequence cannot interleave with another
                process.
        """
        try:
            with self.engine.connect() as conn:
                if immediate:
                    conn.execution_options(**{_IMMEDIATE: True})
                with conn.begin():
                    yield conn
        except SQLAlchemyError as exc:
            raise LedgerWriteError(f"Ledger transaction failed: {exc}") from exc

    @contextmanager
    def using(self, connection: Connection | None, *, immediate: bool = False) -> Iterator[Connection]:
        """Reuse a caller's connection, or open a fresh transaction."""
        if connection is not None:
            yield connection
            return
        with self.transaction(immediate=immediate) as conn:
            yield conn

    def dispose(self) -> None:
        self.engine.dispose()
