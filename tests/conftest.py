"""Shared fixtures for autopost tests."""

from __future__ import annotations

from datetime import UTC, datetime

import pytest

from autopost.config import StoreConfig
from autopost.models import Credential, FeedItem
from autopost.store import CredentialRotator, Database, LedgerStore

ENV_VARS = (
    "FEED_URLS", "ANTHROPIC_API_KEYS", "ANTHROPIC_API_KEY", "ANTHROPIC_MODEL",
    "DB_PATH", "DATABASE_URL", "MAX_ITEMS_PER_RUN", "POST_INTERVAL_CRON", "MODE",
    "USER_AGENT", "BLOG_ID", "CLIENT_ID", "CLIENT_SECRET", "REFRESH_TOKEN",
    "GHOST_URL", "GHOST_ADMIN_API_KEY", "IMGUR_CLIENT_ID", "LOGO_PATH",
    "SOURCE_LOGO_COORDS", "POST_LANGUAGE", "PACE_SECONDS", "SELECTION_MODE",
    "PUBLISH_PLATFORM", "BRAND_IMAGES",
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    """Keep the developer's environment out of config loading."""
    for key in ENV_VARS:
        monkeypatch.delenv(key, raising=False)


@pytest.fixture
def database(tmp_path):
    db = Database(StoreConfig(db_path=str(tmp_path / "ledger" / "posts.db")))
    yield db
    db.dispose()


@pytest.fixture
def ledger(database):
    return LedgerStore(database)


@pytest.fixture
def rotator(database):
    return CredentialRotator(database)


@pytest.fixture
def credentials():
    return [
        Credential(secret="sk-ant-alpha", label="key-1"),
        Credential(secret="sk-ant-bravo", label="key-2"),
        Credential(secret="sk-ant-charlie", label="key-3"),
    ]


def make_item(
    item_id: str,
    *,
    link: str | None = None,
    hour: int | None = None,
    feed: str = "https://feed.example.com/rss",
    body: str = '<p>Body text</p><img src="https://img.example.com/a.jpg">',
) -> FeedItem:
    return FeedItem(
        id=item_id,
        link=link if link is not None else f"https://news.example.com/{item_id}.html",
        title=f"Title {item_id}",
        published_at=datetime(2024, 5, 1, hour, tzinfo=UTC) if hour is not None else None,
        source_feed=feed,
        summary=f"Summary {item_id}",
        body_html=body,
    )


@pytest.fixture(name="make_item")
def make_item_fixture():
    return make_item
