"""Pipeline orchestration — wiring, runner, and scheduler shell."""

from __future__ import annotations

import logging

from autopost.config import AutopostConfig
from autopost.models import RunMode
from autopost.pipeline.runner import PipelineRunner, compose_post_html
from autopost.pipeline.scheduler import SchedulerShell

logger = logging.getLogger(__name__)


def build_runner(config: AutopostConfig, *, dry_run: bool = False) -> PipelineRunner:
    """Construct a runner with the production collaborators.

    Opens the ledger database, registers the configured credentials and
    logs their historical usage. A dry run opens the ledger read-only and
    registers nothing.

    Raises:
        LedgerWriteError: If the ledger database cannot be opened.
    """
    from autopost.enrich import WebPageEnricher
    from autopost.feeds import RSSFeedSource
    from autopost.images import create_image_processor
    from autopost.publishers import create_publisher
    from autopost.selector import ItemSelector
    from autopost.store import CredentialRotator, Database, LedgerStore
    from autopost.transform import ClaudeTransformer

    database = Database(config.store, read_only=dry_run)
    ledger = LedgerStore(database)
    rotator = CredentialRotator(database)
    credentials = config.llm.credentials()
    if not dry_run:
        rotator.register(credentials)

    for record in rotator.usage_report():
        logger.info(
            "Credential %s: %d uses, %d tokens, last used %s",
            record.credential_fingerprint,
            record.total_uses,
            record.total_cost,
            record.last_used_at.isoformat(),
        )

    return PipelineRunner(
        config=config,
        feed_source=RSSFeedSource(config.feeds, config.http),
        selector=ItemSelector(ledger, config.feeds.selection_mode),
        ledger=ledger,
        rotator=rotator,
        database=database,
        enricher=WebPageEnricher(config.http),
        transformer=ClaudeTransformer(config.llm),
        publisher=create_publisher(config),
        credentials=credentials,
        image_processor=create_image_processor(config),
        stop_after_first_publish=config.schedule.mode == RunMode.ONCE,
        dry_run=dry_run,
    )


__all__ = ["PipelineRunner", "SchedulerShell", "build_runner", "compose_post_html"]
