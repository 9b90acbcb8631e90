"""Refresh scheduling for directory engines.

``RefreshTimer`` is a thin APScheduler wrapper; ``RefreshScheduler`` owns the
loading/error state machine of a single engine and coalesces overlapping
triggers into one in-flight run.
"""

from __future__ import annotations

import asyncio
import enum
import logging
import time
from contextlib import suppress
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Generic, Optional, TypeVar

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.date import DateTrigger
from apscheduler.triggers.interval import IntervalTrigger

from nomadnow.obs import metrics as obs_metrics
from nomadnow.settings import settings

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RefreshTimer:
	"""Minimal wrapper around AsyncIOScheduler for refresh jobs."""

	def __init__(self) -> None:
		self._scheduler = AsyncIOScheduler(timezone="UTC")
		self._started = False

	@property
	def running(self) -> bool:
		return self._started

	def start(self) -> None:
		if not self._started:
			self._scheduler.start()
			self._started = True

	def shutdown(self) -> None:
		if self._started:
			self._scheduler.shutdown(wait=False)
			self._started = False

	def schedule_interval(self, job_id: str, func: Callable[[], Any], *, seconds: float) -> None:
		trigger = IntervalTrigger(seconds=seconds)
		self._scheduler.add_job(
			func,
			trigger=trigger,
			id=job_id,
			replace_existing=True,
			max_instances=1,
			coalesce=True,
		)

	def schedule_once(self, job_id: str, func: Callable[[], Any], *, delay_seconds: float) -> None:
		run_at = datetime.now(timezone.utc) + timedelta(seconds=delay_seconds)
		self._scheduler.add_job(func, trigger=DateTrigger(run_date=run_at), id=job_id, replace_existing=True)

	def remove(self, job_id: str) -> None:
		with suppress(JobLookupError):
			self._scheduler.remove_job(job_id)

	def has_job(self, job_id: str) -> bool:
		return self._scheduler.get_job(job_id) is not None


class RefreshState(str, enum.Enum):
	IDLE = "idle"
	LOADING = "loading"


class RefreshOutcome(str, enum.Enum):
	NONE = "none"
	SUCCESS = "success"
	ERROR = "error"


class RefreshScheduler(Generic[T]):
	"""Runs ``load`` on demand and on a timer, handing results to ``on_success``.

	A failed run leaves whatever ``on_success`` last installed untouched and sets
	a transient error message that expires after ``error_ttl_seconds``. After
	``stop()`` every completion is discarded.
	"""

	def __init__(
		self,
		load: Callable[[], Awaitable[T]],
		on_success: Callable[[T], None],
		*,
		name: str = "directory",
		timer: Optional[RefreshTimer] = None,
		interval_seconds: Optional[float] = None,
		followup_delay_seconds: Optional[float] = None,
		error_ttl_seconds: Optional[float] = None,
		clock: Callable[[], float] = time.monotonic,
	) -> None:
		self._load = load
		self._on_success = on_success
		self.name = name
		self._timer = timer or RefreshTimer()
		self._owns_timer = timer is None
		self.interval_seconds = (
			settings.nomads_refresh_interval_seconds if interval_seconds is None else interval_seconds
		)
		self.followup_delay_seconds = (
			settings.nomads_profile_followup_delay_seconds
			if followup_delay_seconds is None
			else followup_delay_seconds
		)
		self.error_ttl_seconds = settings.nomads_error_ttl_seconds if error_ttl_seconds is None else error_ttl_seconds
		self._clock = clock

		self.state = RefreshState.IDLE
		self.last_outcome = RefreshOutcome.NONE
		self.runs = 0
		self._error: Optional[str] = None
		self._error_at = 0.0
		self._inflight: Optional[asyncio.Task[bool]] = None
		self._alive = True
		self._started = False

	@property
	def alive(self) -> bool:
		return self._alive

	@property
	def loading(self) -> bool:
		return self.state is RefreshState.LOADING

	@property
	def error(self) -> Optional[str]:
		if self._error is not None and self._clock() - self._error_at >= self.error_ttl_seconds:
			self._error = None
		return self._error

	def clear_error(self) -> None:
		self._error = None

	@property
	def _interval_job(self) -> str:
		return f"{self.name}:interval"

	@property
	def _followup_job(self) -> str:
		return f"{self.name}:followup"

	def start(self, *, periodic: bool = True) -> None:
		if not self._alive or self._started:
			return
		self._timer.start()
		if periodic and self.interval_seconds and self.interval_seconds > 0:
			self._timer.schedule_interval(self._interval_job, self._on_interval, seconds=self.interval_seconds)
		self._started = True

	async def stop(self) -> None:
		self._alive = False
		if self._started:
			self._timer.remove(self._interval_job)
			self._timer.remove(self._followup_job)
		if self._owns_timer:
			self._timer.shutdown()
		task, self._inflight = self._inflight, None
		if task is not None and not task.done():
			task.cancel()
			with suppress(asyncio.CancelledError):
				await task
		self.state = RefreshState.IDLE

	async def trigger(self, reason: str = "manual") -> bool:
		"""Run a refresh now, or join the one already running."""
		if not self._alive:
			return False
		task = self._inflight
		if task is not None and not task.done():
			obs_metrics.inc_refresh_coalesced()
			logger.debug("refresh coalesced name=%s reason=%s", self.name, reason)
		else:
			self.state = RefreshState.LOADING
			task = asyncio.create_task(self._run(reason), name=f"refresh:{self.name}")
			self._inflight = task
		try:
			return await asyncio.shield(task)
		except asyncio.CancelledError:
			if task.cancelled():
				return False
			raise

	async def notify_profile_updated(self) -> bool:
		"""Refresh immediately and once more after the follow-up delay."""
		refreshed = await self.trigger("profile_updated")
		if self._alive and self._started and self.followup_delay_seconds > 0:
			self._timer.schedule_once(self._followup_job, self._on_followup, delay_seconds=self.followup_delay_seconds)
		return refreshed

	async def _on_interval(self) -> None:
		await self.trigger("interval")

	async def _on_followup(self) -> None:
		await self.trigger("profile_followup")

	async def _run(self, reason: str) -> bool:
		self.state = RefreshState.LOADING
		started = time.perf_counter()
		try:
			result = await self._load()
		except asyncio.CancelledError:
			raise
		except Exception as exc:
			if not self._alive:
				return False
			self._error = str(exc) or type(exc).__name__
			self._error_at = self._clock()
			self.last_outcome = RefreshOutcome.ERROR
			obs_metrics.inc_refresh(reason, "error")
			logger.warning("directory refresh failed name=%s reason=%s error=%s", self.name, reason, self._error)
			return False
		finally:
			self.state = RefreshState.IDLE
			obs_metrics.observe_refresh_duration(time.perf_counter() - started)

		if not self._alive:
			logger.debug("discarding refresh result after stop name=%s", self.name)
			return False
		self._on_success(result)
		self.runs += 1
		self._error = None
		self.last_outcome = RefreshOutcome.SUCCESS
		obs_metrics.inc_refresh(reason, "success")
		return True


__all__ = ["RefreshOutcome", "RefreshScheduler", "RefreshState", "RefreshTimer"]
