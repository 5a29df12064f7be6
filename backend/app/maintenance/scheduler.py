"""APScheduler wrapper running the periodic maintenance jobs."""

from __future__ import annotations

import logging
import time
from typing import Awaitable, Callable

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from app.maintenance.confidence import decay_confidence_meters
from app.maintenance.leaderboard_nudges import check_leaderboard_fall_behind
from app.obs import metrics as obs_metrics
from app.settings import settings

logger = logging.getLogger(__name__)

JobFunc = Callable[[], Awaitable[object]]


async def run_job(name: str, func: JobFunc) -> bool:
	"""Run one job, recording its outcome. A failing job never propagates."""

	start = time.perf_counter()
	try:
		await func()
	except Exception:
		obs_metrics.record_job_run(name, result="error", duration_seconds=time.perf_counter() - start)
		logger.exception("maintenance_job_failed", extra={"job": name})
		return False
	elapsed = time.perf_counter() - start
	obs_metrics.record_job_run(name, result="ok", duration_seconds=elapsed)
	logger.info("maintenance_job_complete", extra={"job": name, "duration_ms": round(elapsed * 1000, 2)})
	return True


class JobScheduler:
	"""Minimal wrapper around AsyncIOScheduler for maintenance jobs."""

	def __init__(self) -> None:
		self._scheduler = AsyncIOScheduler(timezone="UTC")
		self._started = False

	@property
	def started(self) -> bool:
		return self._started

	def start(self) -> None:
		if not self._started:
			self._scheduler.start()
			self._started = True

	def shutdown(self) -> None:
		if self._started:
			self._scheduler.shutdown(wait=False)
			self._started = False

	def schedule_interval(self, job_id: str, func: JobFunc, *, hours: int = 1) -> None:
		async def _wrapped() -> None:
			await run_job(job_id, func)

		self._scheduler.add_job(_wrapped, trigger=IntervalTrigger(hours=hours), id=job_id, replace_existing=True)

	def job_ids(self) -> list[str]:
		return [job.id for job in self._scheduler.get_jobs()]


def build_maintenance_scheduler() -> JobScheduler:
	scheduler = JobScheduler()
	scheduler.schedule_interval(
		"confidence-decay",
		decay_confidence_meters,
		hours=settings.confidence_decay_interval_hours,
	)
	scheduler.schedule_interval(
		"leaderboard-fall-behind",
		check_leaderboard_fall_behind,
		hours=settings.leaderboard_nudge_interval_hours,
	)
	return scheduler


__all__ = ["JobScheduler", "build_maintenance_scheduler", "run_job"]
