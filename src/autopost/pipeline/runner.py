"""Pipeline runner — feed items → rewritten, branded blog posts.

Each eligible item moves strictly in sequence through enrich → image →
brand/host → transform → publish → commit → pace. A failing stage turns
into an :class:`ItemOutcome`; only a ledger failure aborts the run.
"""

from __future__ import annotations

import html
import logging
import re
import time
from collections.abc import Callable, Sequence
from datetime import UTC, datetime

from autopost.config import AutopostConfig
from autopost.enrich import PageEnricher, extract_first_image, word_count
from autopost.errors import (
    EnrichmentError,
    ImageProcessingError,
    LedgerWriteError,
    ProviderError,
    PublishError,
)
from autopost.feeds.base import FeedSource
from autopost.images import ImageProcessor
from autopost.models import (
    Credential,
    FeedItem,
    ItemOutcome,
    ItemStatus,
    LedgerEntry,
    PostDraft,
    RunReport,
    Stage,
    TransformResult,
    WorkItem,
)
from autopost.publishers.base import BlogPublisher
from autopost.selector import ItemSelector
from autopost.store import CredentialRotator, Database, LedgerStore
from autopost.transform import Transformer

logger = logging.getLogger(__name__)

_SNIPPET_CHARS = 500


def compose_post_html(body_html: str, image_url: str | None, alt: str, title: str) -> str:
    """Prefix the post body with the lead image block."""
    if not image_url:
        return body_html
    image_block = (
        f'<p><img src="{html.escape(image_url, quote=True)}"'
        f' alt="{html.escape(alt, quote=True)}"'
        f' title="{html.escape(title, quote=True)}"'
        ' style="max-width:100%;height:auto" /></p>\n'
    )
    return image_block + body_html


def build_draft(item: FeedItem, image_url: str | None, result: TransformResult) -> PostDraft:
    """Assemble the post; image alt and title fall back to the article title."""
    return PostDraft(
        title=item.title,
        html=compose_post_html(
            result.html,
            image_url,
            result.alt_text or item.title,
            result.image_title or item.title,
        ),
        labels=result.tags,
    )


def _plain_snippet(item: FeedItem) -> str:
    text = re.sub(r"<[^>]+>", " ", item.summary or item.body_html or "")
    return " ".join(text.split())[:_SNIPPET_CHARS]


class PipelineRunner:
    """Runs one pass of the autoposting pipeline.

    All collaborators are injected; :func:`autopost.pipeline.build_runner`
    wires the production ones.

    Args:
        stop_after_first_publish: Return right after the first published
            item (``once`` mode).
        dry_run: Log the work queue and stop before any collaborator past
            selection is touched.
        sleep: Pacing function, replaced in tests.
    """

    def __init__(
        self,
        *,
        config: AutopostConfig,
        feed_source: FeedSource,
        selector: ItemSelector,
        ledger: LedgerStore,
        rotator: CredentialRotator,
        database: Database,
        enricher: PageEnricher,
        transformer: Transformer,
        publisher: BlogPublisher,
        credentials: Sequence[Credential],
        image_processor: ImageProcessor | None = None,
        stop_after_first_publish: bool = False,
        dry_run: bool = False,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.config = config
        self._feeds = feed_source
        self._selector = selector
        self._ledger = ledger
        self._rotator = rotator
        self._db = database
        self._enricher = enricher
        self._transformer = transformer
        self._publisher = publisher
        self._credentials = list(credentials)
        self._images = image_processor
        self.stop_after_first_publish = stop_after_first_publish
        self.dry_run = dry_run
        self._sleep = sleep
        self._stage = Stage.ENRICH

    def run(self) -> RunReport:
        """Fetch, select, and process this run's work queue.

        Raises:
            LedgerWriteError: If the ledger cannot be read or a published
                item cannot be recorded.
        """
        report = RunReport()

        fetched = self._feeds.fetch()
        report.fetched = len(fetched.items)
        report.feed_errors = dict(fetched.errors)
        for url, error in fetched.errors.items():
            logger.warning("Feed failed %s: %s", url, error)

        queue = self._selector.select_eligible(fetched.items)
        report.eligible = len(queue)

        cap = self.config.pipeline.max_items_per_run
        if cap > 0 and len(queue) > cap:
            logger.info("Capping run at %d of %d eligible items", cap, len(queue))
            queue = queue[:cap]

        if self.dry_run:
            for work in queue:
                logger.info("[dry-run] would process: %s (%s)", work.item.title, work.identity)
            report.finished_at = datetime.now(tz=UTC)
            return report

        for index, work in enumerate(queue):
            outcome = self.process_item(work)
            report.add(outcome)
            self._log_outcome(outcome)

            if outcome.status == ItemStatus.PUBLISHED and self.stop_after_first_publish:
                logger.info("Once mode: stopping after first published post")
                break
            if index < len(queue) - 1 and self.config.pipeline.pace_seconds > 0:
                self._sleep(self.config.pipeline.pace_seconds)

        report.finished_at = datetime.now(tz=UTC)
        logger.info(
            "Run finished: %d published, %d skipped, %d eligible, %d fetched",
            report.published,
            report.skipped,
            report.eligible,
            report.fetched,
        )
        return report

    def process_item(self, work: WorkItem) -> ItemOutcome:
        """Drive one work item to a terminal state.

        Collaborator failures are turned into skip outcomes right where
        they occur; nothing past a failed stage runs. Anything unexpected
        is logged with its traceback and skips the item at the stage it
        reached, so later items still run.

        Raises:
            LedgerWriteError: From credential selection or the commit step,
                or for any failure once the post has been published.
        """
        self._stage = Stage.ENRICH
        try:
            return self._process(work)
        except LedgerWriteError:
            raise
        except Exception as exc:
            item = work.item
            if self._stage == Stage.COMMIT:
                logger.critical(
                    "Published %r but failed before recording it: duplicate risk on next run",
                    item.id,
                )
                raise LedgerWriteError(f"Could not record {item.id!r}: {exc}") from exc
            logger.exception("Unexpected error on %r (%s) at %s", item.title, item.id, self._stage.value)
            status = (
                ItemStatus.SKIPPED_TRANSFORM_FAILED
                if self._stage == Stage.TRANSFORM
                else ItemStatus.SKIPPED_PUBLISH_FAILED
            )
            return self._skip(item, status, self._stage, f"unexpected error: {exc!r}")

    def _process(self, work: WorkItem) -> ItemOutcome:
        item = work.item

        body, page_image = self._enrich(item)

        self._stage = Stage.IMAGE
        image_url = page_image or extract_first_image(item.body_html or item.summary)
        if image_url is None and self.config.pipeline.image_required:
            return self._skip(item, ItemStatus.SKIPPED_NO_IMAGE, Stage.IMAGE, "no image found")

        if image_url and self._images is not None:
            self._stage = Stage.IMAGE_HOST
            try:
                image_url = self._images.brand_and_host(image_url)
            except ImageProcessingError as exc:
                return self._skip(item, ItemStatus.SKIPPED_PUBLISH_FAILED, Stage.IMAGE_HOST, str(exc))

        self._stage = Stage.TRANSFORM
        credential = self._rotator.select_credential(self._credentials)
        logger.info("Rewriting %r with credential %s", item.title, credential)
        try:
            result = self._transformer.transform(item.title, _plain_snippet(item), body, credential)
        except ProviderError as exc:
            return self._skip(item, ItemStatus.SKIPPED_TRANSFORM_FAILED, Stage.TRANSFORM, str(exc))

        self._stage = Stage.PUBLISH
        try:
            published = self._publisher.create_post(build_draft(item, image_url, result))
        except PublishError as exc:
            return self._skip(item, ItemStatus.SKIPPED_PUBLISH_FAILED, Stage.PUBLISH, str(exc))

        self._stage = Stage.COMMIT
        self._commit(item, credential, result.usage_cost, published.url)
        return ItemOutcome(
            identity=item.id,
            title=item.title,
            status=ItemStatus.PUBLISHED,
            stage=Stage.COMMIT,
            post_url=published.url,
        )

    # ── Stages ───────────────────────────────────────────────────

    def _needs_page(self, body: str) -> bool:
        if self.config.enrich.always_fetch:
            return True
        if word_count(body) < self.config.enrich.min_words:
            return True
        return extract_first_image(body) is None

    def _enrich(self, item: FeedItem) -> tuple[str, str | None]:
        body = item.body_html or item.summary
        if not item.link or not self._needs_page(body):
            return body, None

        try:
            enriched = self._enricher.enrich(item.link)
        except EnrichmentError as exc:
            logger.warning("Enrichment failed for %s, using feed content: %s", item.link, exc)
            return body, None

        return enriched.body_html or body, enriched.image_url

    def _commit(self, item: FeedItem, credential: Credential, cost: int, post_url: str) -> None:
        entry = LedgerEntry(
            identity=item.id,
            link=item.link,
            title=item.title,
            published_at=item.published_at,
            source_feed=item.source_feed or None,
            provider_credential_used=credential.fingerprint,
            usage_cost=cost,
            post_url=post_url or None,
        )
        try:
            with self._db.transaction(immediate=True) as conn:
                self._ledger.insert(entry, connection=conn)
                self._rotator.record_usage_cost(credential, cost, connection=conn)
        except LedgerWriteError:
            logger.critical(
                "Published %s but could not record %r in the ledger: duplicate risk on next run",
                post_url or "(no url)",
                item.id,
            )
            raise

    # ── Helpers ──────────────────────────────────────────────────

    @staticmethod
    def _skip(item: FeedItem, status: ItemStatus, stage: Stage, reason: str) -> ItemOutcome:
        return ItemOutcome(
            identity=item.id, title=item.title, status=status, stage=stage, reason=reason
        )

    @staticmethod
    def _log_outcome(outcome: ItemOutcome) -> None:
        if outcome.status == ItemStatus.PUBLISHED:
            logger.info("Published %r (%s): %s", outcome.title, outcome.identity, outcome.post_url)
        else:
            logger.warning(
                "Skipped %r (%s): %s at %s: %s",
                outcome.title,
                outcome.identity,
                outcome.status.value,
                outcome.stage.value,
                outcome.reason,
            )
