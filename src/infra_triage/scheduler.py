"""Periodic parish backfill for reports submitted without a resolved parish."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable

from apscheduler.schedulers import SchedulerNotRunningError
from apscheduler.schedulers.blocking import BlockingScheduler

from .models import BackfillResult

_log = logging.getLogger(__name__)


@dataclass
class BackfillSchedule:
    interval_minutes: int
    max_runs: int | None = None
    results: list[BackfillResult] = field(default_factory=list)


def run_backfill_schedule(backfill: Callable[[], BackfillResult], schedule: BackfillSchedule) -> list[BackfillResult]:
    """Run ``backfill`` now and then every ``interval_minutes``.

    Stops after ``max_runs`` runs when set; otherwise blocks until the
    process is interrupted. Collected results are returned.
    """

    def run_once() -> None:
        result = backfill()
        schedule.results.append(result)
        _log.info(
            "Backfill run %d: total=%d updated=%d skipped=%d",
            len(schedule.results),
            result.total,
            result.updated,
            result.skipped,
        )

    if schedule.max_runs == 1:
        run_once()
        return schedule.results

    scheduler = BlockingScheduler()

    def job_wrapper() -> None:
        run_once()
        if schedule.max_runs is not None and len(schedule.results) >= schedule.max_runs:
            try:
                scheduler.shutdown(wait=False)
            except SchedulerNotRunningError:
                pass

    scheduler.add_job(job_wrapper, "interval", minutes=schedule.interval_minutes, id="parish_backfill")
    job_wrapper()
    if schedule.max_runs is None or len(schedule.results) < schedule.max_runs:
        scheduler.start()
    return schedule.results
