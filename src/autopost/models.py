"""Pure data models for the autopost pipeline.

All Pydantic models and enums live here. No I/O, no business logic.
Services import from this module; this module only imports from stdlib
and third-party packages.
"""

from __future__ import annotations

import hashlib
from datetime import UTC, datetime
from enum import StrEnum

from pydantic import BaseModel, Field, SecretStr, field_validator

EPOCH = datetime(1970, 1, 1, tzinfo=UTC)


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class SelectionMode(StrEnum):
    """How the selector orders (and trims) the eligible items."""

    ALL_IN_FEED_ORDER = "all_in_feed_order"
    SINGLE_NEWEST_ACROSS_FEEDS = "single_newest_across_feeds"


class RunMode(StrEnum):
    """Operating mode of the scheduler shell."""

    ONCE = "once"
    CRON = "cron"


class ItemStatus(StrEnum):
    """Terminal states of one work item."""

    PUBLISHED = "published"
    SKIPPED_NO_IMAGE = "skipped_no_image"
    SKIPPED_TRANSFORM_FAILED = "skipped_transform_failed"
    SKIPPED_PUBLISH_FAILED = "skipped_publish_failed"


class Stage(StrEnum):
    """Pipeline step at which an item finished."""

    ENRICH = "enrich"
    IMAGE = "image"
    IMAGE_HOST = "image_host"
    TRANSFORM = "transform"
    PUBLISH = "publish"
    COMMIT = "commit"


# ---------------------------------------------------------------------------
# Feed models
# ---------------------------------------------------------------------------


class FeedItem(BaseModel):
    """One entry from a feed, normalized.

    ``id`` is the feed-provided unique id when present, else the link,
    else the title.
    """

    id: str
    link: str = ""
    title: str = ""
    published_at: datetime | None = None
    source_feed: str = ""
    summary: str = ""
    body_html: str = ""

    @field_validator("published_at")
    @classmethod
    def _normalize_tz(cls, value: datetime | None) -> datetime | None:
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value


class WorkItem(BaseModel):
    """A feed item confirmed eligible for this run."""

    item: FeedItem
    position: int = 0

    @property
    def identity(self) -> str:
        return self.item.id


class FeedFetchResult(BaseModel):
    """Items gathered from all configured feeds plus per-feed failures."""

    items: list[FeedItem] = Field(default_factory=list)
    errors: dict[str, str] = Field(default_factory=dict)


# ---------------------------------------------------------------------------
# Durable records
# ---------------------------------------------------------------------------


class LedgerEntry(BaseModel):
    """A published item. Created once, never mutated."""

    identity: str
    link: str = ""
    title: str = ""
    published_at: datetime | None = None
    source_feed: str | None = None
    provider_credential_used: str | None = None
    usage_cost: int = 0
    post_url: str | None = None
    recorded_at: datetime = Field(default_factory=_utcnow)


class CredentialUsageRecord(BaseModel):
    """Usage history of one provider credential, keyed by fingerprint."""

    credential_fingerprint: str
    last_used_at: datetime = EPOCH
    total_uses: int = 0
    total_cost: int = 0


class Credential(BaseModel):
    """A provider API key. Only the fingerprint is ever stored or logged."""

    secret: SecretStr
    label: str = ""

    @property
    def fingerprint(self) -> str:
        digest = hashlib.sha256(self.secret.get_secret_value().encode("utf-8"))
        return digest.hexdigest()[:12]

    def __str__(self) -> str:
        return self.label or f"key-{self.fingerprint}"


# ---------------------------------------------------------------------------
# Collaborator payloads
# ---------------------------------------------------------------------------


class EnrichedContent(BaseModel):
    """What the page enricher could recover from an article page."""

    body_html: str | None = None
    image_url: str | None = None


class TransformResult(BaseModel):
    """LLM output for one item."""

    html: str
    alt_text: str = ""
    image_title: str = ""
    tags: list[str] = Field(default_factory=list)
    usage_cost: int = 0


class PostDraft(BaseModel):
    """A post ready to send to the blog platform."""

    title: str
    html: str
    labels: list[str] = Field(default_factory=list)


class PublishedPost(BaseModel):
    """The blog platform's answer to a created post."""

    url: str = ""
    post_id: str = ""


# ---------------------------------------------------------------------------
# Run results
# ---------------------------------------------------------------------------


class ItemOutcome(BaseModel):
    """How one work item ended."""

    identity: str
    title: str = ""
    status: ItemStatus
    stage: Stage
    reason: str = ""
    post_url: str | None = None


class RunReport(BaseModel):
    """Summary of one pipeline run."""

    started_at: datetime = Field(default_factory=_utcnow)
    finished_at: datetime | None = None
    fetched: int = 0
    eligible: int = 0
    outcomes: list[ItemOutcome] = Field(default_factory=list)
    feed_errors: dict[str, str] = Field(default_factory=dict)

    @property
    def published(self) -> int:
        return sum(1 for o in self.outcomes if o.status == ItemStatus.PUBLISHED)

    @property
    def skipped(self) -> int:
        return len(self.outcomes) - self.published

    def add(self, outcome: ItemOutcome) -> None:
        self.outcomes.append(outcome)
