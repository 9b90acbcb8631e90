"""Per-viewer directory engines for the HTTP surface."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable, Dict, Optional

from nomadnow.domain.directory.engine import NomadDirectory
from nomadnow.domain.directory.scheduler import RefreshTimer
from nomadnow.domain.directory.signals import SignalBus, signal_bus
from nomadnow.domain.directory.sources import LocalProfileSource, RemoteApiSource
from nomadnow.domain.directory.viewer import StoredViewerProvider
from nomadnow.domain.invitations.client import HttpInvitationService
from nomadnow.domain.preferences.store import build_store
from nomadnow.infra.auth import AuthenticatedUser
from nomadnow.obs import metrics as obs_metrics
from nomadnow.settings import settings

logger = logging.getLogger(__name__)

DirectoryFactory = Callable[[AuthenticatedUser, RefreshTimer, SignalBus], NomadDirectory]


def build_directory(user: AuthenticatedUser, timer: RefreshTimer, bus: SignalBus) -> NomadDirectory:
	"""Production wiring: users API first, then locally stored profiles."""
	return NomadDirectory(
		viewer=StoredViewerProvider(user.id),
		sources=[RemoteApiSource(), LocalProfileSource()],
		preference_store=build_store(),
		invitation_service=HttpInvitationService(),
		timer=timer,
		bus=bus,
	)


class DirectoryRegistry:
	"""Creates, starts and caches one ``NomadDirectory`` per viewer.

	Engines not requested for ``idle_ttl_seconds`` are closed by a sweep job on
	the shared timer, which also stops their refresh jobs.
	"""

	SWEEP_JOB = "directory-registry:sweep"

	def __init__(
		self,
		factory: DirectoryFactory = build_directory,
		*,
		bus: Optional[SignalBus] = None,
		idle_ttl_seconds: Optional[float] = None,
		sweep_interval_seconds: Optional[float] = None,
		clock: Callable[[], float] = time.monotonic,
	) -> None:
		self.factory = factory
		self.bus = bus or signal_bus
		self.idle_ttl_seconds = settings.nomads_engine_idle_ttl_seconds if idle_ttl_seconds is None else idle_ttl_seconds
		self.sweep_interval_seconds = (
			settings.nomads_engine_sweep_interval_seconds if sweep_interval_seconds is None else sweep_interval_seconds
		)
		self._clock = clock
		self._timer = RefreshTimer()
		self._engines: Dict[str, NomadDirectory] = {}
		self._starting: Dict[str, asyncio.Task[None]] = {}
		self._last_used: Dict[str, float] = {}
		self._lock = asyncio.Lock()

	def __len__(self) -> int:
		return len(self._engines)

	def __contains__(self, viewer_id: object) -> bool:
		return viewer_id in self._engines

	async def get(self, user: AuthenticatedUser) -> NomadDirectory:
		async with self._lock:
			engine = self._engines.get(user.id)
			if engine is None or not engine.alive:
				engine = self.factory(user, self._timer, self.bus)
				self._engines[user.id] = engine
				self._starting[user.id] = asyncio.create_task(engine.start(), name=f"directory-start:{user.id}")
				obs_metrics.set_active_directories(len(self._engines))
				logger.info("directory created viewer=%s", user.id)
				self._ensure_sweep()
			self._last_used[user.id] = self._clock()
			starting = self._starting.get(user.id)
		if starting is not None:
			try:
				await asyncio.shield(starting)
			finally:
				if starting.done() and self._starting.get(user.id) is starting:
					self._starting.pop(user.id, None)
		return engine

	async def discard(self, viewer_id: str) -> bool:
		async with self._lock:
			engine = self._engines.pop(viewer_id, None)
			starting = self._starting.pop(viewer_id, None)
			self._last_used.pop(viewer_id, None)
			obs_metrics.set_active_directories(len(self._engines))
		if starting is not None and not starting.done():
			starting.cancel()
		if engine is None:
			return False
		await engine.close()
		logger.info("directory closed viewer=%s", viewer_id)
		return True

	async def sweep_idle(self) -> list[str]:
		"""Close every engine idle for at least ``idle_ttl_seconds``."""
		if not self.idle_ttl_seconds or self.idle_ttl_seconds <= 0:
			return []
		now = self._clock()
		async with self._lock:
			idle = [
				viewer_id
				for viewer_id, last_used in self._last_used.items()
				if now - last_used >= self.idle_ttl_seconds and viewer_id not in self._starting
			]
		closed = [viewer_id for viewer_id in idle if await self.discard(viewer_id)]
		if closed:
			logger.info("directory sweep closed=%d remaining=%d", len(closed), len(self._engines))
		return closed

	def _ensure_sweep(self) -> None:
		if not self.idle_ttl_seconds or self.idle_ttl_seconds <= 0 or self.sweep_interval_seconds <= 0:
			return
		self._timer.start()
		if not self._timer.has_job(self.SWEEP_JOB):
			self._timer.schedule_interval(self.SWEEP_JOB, self.sweep_idle, seconds=self.sweep_interval_seconds)

	async def close(self) -> None:
		async with self._lock:
			engines = list(self._engines.values())
			starting = list(self._starting.values())
			self._engines.clear()
			self._starting.clear()
			self._last_used.clear()
			obs_metrics.set_active_directories(0)
		for task in starting:
			if not task.done():
				task.cancel()
		await asyncio.gather(*(engine.close() for engine in engines), return_exceptions=True)
		await asyncio.gather(*starting, return_exceptions=True)
		self._timer.remove(self.SWEEP_JOB)
		self._timer.shutdown()


directory_registry = DirectoryRegistry()


def get_registry() -> DirectoryRegistry:
	return directory_registry


__all__ = ["DirectoryRegistry", "build_directory", "directory_registry", "get_registry"]
