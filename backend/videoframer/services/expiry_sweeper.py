"""Periodic deletion of expired artifacts and job records.

A file is eligible once its modification time is older than the TTL, so a
file still being written (or recently finished) is never touched. Job records
of finished jobs are purged on ``created_at`` with the same TTL; jobs still
pending or running are left for their runner to finish.
"""

import asyncio
import logging
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

from videoframer.services.job_store import JobStore
from videoframer.services.rate_limiter import RateLimiter

logger = logging.getLogger(__name__)


def format_bytes(num_bytes: int) -> str:
    if num_bytes <= 0:
        return "0 Bytes"
    units = ["Bytes", "KB", "MB", "GB", "TB"]
    value = float(num_bytes)
    i = 0
    while value >= 1024 and i < len(units) - 1:
        value /= 1024
        i += 1
    return f"{round(value, 2):g} {units[i]}"


@dataclass
class SweepReport:
    files_deleted: int = 0
    bytes_freed: int = 0
    jobs_removed: int = 0
    clients_pruned: int = 0


class ExpirySweeper:
    """Deletes artifacts and job records older than ``max_age_s``."""

    def __init__(
        self,
        directories: Iterable[str | Path],
        max_age_s: float = 1800,
        interval_s: float = 600,
        store: JobStore | None = None,
        rate_limiter: RateLimiter | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.directories = [Path(d) for d in directories]
        self.max_age_s = max_age_s
        self.interval_s = interval_s
        self.store = store
        self.rate_limiter = rate_limiter
        self._clock = clock
        self._task: asyncio.Task | None = None

    def _delete_if_expired(self, path: Path, now: float, report: SweepReport) -> None:
        try:
            stat = path.stat()
            if now - stat.st_mtime <= self.max_age_s:
                return
            path.unlink()
        except FileNotFoundError:
            return
        except OSError as e:
            logger.warning(f"Could not delete {path}: {e}")
            return
        report.files_deleted += 1
        report.bytes_freed += stat.st_size

    def sweep(self) -> SweepReport:
        """Run one pass and return what was removed."""
        now = self._clock()
        report = SweepReport()

        for directory in self.directories:
            if not directory.is_dir():
                continue
            for entry in directory.iterdir():
                if entry.is_file():
                    self._delete_if_expired(entry, now, report)

        if self.store is not None:
            expired = self.store.purge_older_than(
                self.max_age_s, now=datetime.fromtimestamp(now, timezone.utc)
            )
            report.jobs_removed = len(expired)
            for job in expired:
                if job.result_location:
                    self._delete_if_expired(Path(job.result_location), now, report)

        if self.rate_limiter is not None:
            report.clients_pruned = self.rate_limiter.cleanup()

        if report.files_deleted or report.jobs_removed:
            logger.info(
                f"Cleanup: deleted {report.files_deleted} files "
                f"({format_bytes(report.bytes_freed)}), removed {report.jobs_removed} job records"
            )
        else:
            logger.debug("Cleanup: nothing to delete")
        return report

    async def _run(self) -> None:
        while True:
            try:
                await asyncio.to_thread(self.sweep)
            except Exception:
                logger.exception("Cleanup pass failed")
            await asyncio.sleep(self.interval_s)

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        """Sweep now, then every ``interval_s``. Calling twice is a no-op."""
        if self.running:
            return
        self._task = asyncio.create_task(self._run())
        logger.info(
            f"Cleanup service started (max age {self.max_age_s}s, interval {self.interval_s}s)"
        )

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Cleanup service stopped")
