"""APScheduler: debounce timer for remote progress pushes.

A single date job with a fixed id. Arming again before it fires replaces the
job, which restarts the countdown; this is what coalesces a burst of edits
into one network write.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler

logger = logging.getLogger(__name__)

PUSH_JOB_ID = "progress_push"


class SchedulerTimer:
    """Cancellable one-shot timer backed by an AsyncIOScheduler.

    Must be armed from inside a running event loop.
    """

    def __init__(self, scheduler: AsyncIOScheduler | None = None, job_id: str = PUSH_JOB_ID):
        self.scheduler = scheduler or AsyncIOScheduler(timezone=timezone.utc)
        self.job_id = job_id

    @property
    def armed(self) -> bool:
        return self.scheduler.get_job(self.job_id) is not None

    def arm(self, delay: float, action: Callable[[], Awaitable[None]]) -> None:
        """Run action after delay seconds, replacing any pending run."""
        if not self.scheduler.running:
            self.scheduler.start()
        run_at = datetime.now(timezone.utc) + timedelta(seconds=delay)
        self.scheduler.add_job(
            action,
            "date",
            run_date=run_at,
            id=self.job_id,
            replace_existing=True,
            misfire_grace_time=None,
        )
        logger.debug("Push armed for %s", run_at.isoformat())

    def cancel(self) -> None:
        try:
            self.scheduler.remove_job(self.job_id)
        except JobLookupError:
            pass

    def shutdown(self) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
