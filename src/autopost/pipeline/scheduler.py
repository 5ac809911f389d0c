"""Scheduler shell — runs the pipeline once or on a cron cadence.

At most one run is active per process: a trigger that arrives while a run
is in progress is dropped, never queued.
"""

from __future__ import annotations

import logging
import threading

from apscheduler.schedulers.blocking import BlockingScheduler
from apscheduler.triggers.cron import CronTrigger

from autopost.config import ScheduleConfig
from autopost.errors import ConfigError, LedgerWriteError
from autopost.models import RunReport
from autopost.pipeline.runner import PipelineRunner

logger = logging.getLogger(__name__)

JOB_ID = "autopost-run"


class SchedulerShell:
    """Serializes pipeline runs and drives them from a cron schedule."""

    def __init__(self, runner: PipelineRunner, config: ScheduleConfig) -> None:
        self._runner = runner
        self._config = config
        self._lock = threading.Lock()
        self._scheduler: BlockingScheduler | None = None
        self._fatal: LedgerWriteError | None = None

    @property
    def is_running(self) -> bool:
        return self._lock.locked()

    def run_once(self) -> RunReport:
        """Run one pass, waiting for any active run to finish first."""
        with self._lock:
            return self._runner.run()

    def trigger(self) -> RunReport | None:
        """Start a run unless one is already active.

        Returns:
            The run's report, or None if the trigger was dropped.
        """
        if not self._lock.acquire(blocking=False):
            logger.warning("Previous run still in progress, skipping this trigger")
            return None
        try:
            return self._runner.run()
        finally:
            self._lock.release()

    def build_trigger(self) -> CronTrigger:
        """Parse the configured crontab expression.

        Raises:
            ConfigError: If the expression is invalid.
        """
        try:
            return CronTrigger.from_crontab(self._config.cron, timezone=self._config.timezone)
        except ValueError as exc:
            raise ConfigError(f"Invalid cron expression {self._config.cron!r}: {exc}") from exc

    def serve(self) -> None:
        """Run immediately, then on every cron tick until interrupted.

        Raises:
            ConfigError: If the cron expression is invalid.
            LedgerWriteError: If a run aborted on ledger failure.
        """
        trigger = self.build_trigger()

        self.trigger()

        self._scheduler = BlockingScheduler(timezone=self._config.timezone)
        self._scheduler.add_job(
            self._scheduled_run,
            trigger,
            id=JOB_ID,
            max_instances=1,
            coalesce=True,
            replace_existing=True,
        )
        logger.info("Scheduler started: cron=%r tz=%s", self._config.cron, self._config.timezone)

        try:
            self._scheduler.start()
        except (KeyboardInterrupt, SystemExit):
            logger.info("Scheduler stopping")
        finally:
            if self._scheduler.running:
                self._scheduler.shutdown(wait=False)

        if self._fatal is not None:
            raise self._fatal

    def _scheduled_run(self) -> None:
        try:
            self.trigger()
        except LedgerWriteError as exc:
            # The ledger can no longer guard against duplicates; stop serving.
            self._fatal = exc
            if self._scheduler is not None:
                self._scheduler.shutdown(wait=False)
