"""Directory engine: one viewer's live, filtered and windowed nomad list.

A refresh aggregates every source, enriches records for the viewer and swaps in
a new ``DirectorySnapshot``. Filter changes, hides and shows rebuild the
snapshot from the already aggregated records without touching the network.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Callable, List, Optional, Sequence, Tuple, Union

from nomadnow.domain.directory import geo, pipeline
from nomadnow.domain.directory.aggregator import aggregate
from nomadnow.domain.directory.exceptions import DirectoryError
from nomadnow.domain.directory.models import (
	DirectorySnapshot,
	DirectoryStats,
	FilterState,
	NomadRecord,
	ViewerProfile,
)
from nomadnow.domain.directory.scheduler import RefreshScheduler, RefreshTimer
from nomadnow.domain.directory.signals import (
	HIDDEN_USERS_KEY,
	ChangeSignal,
	SignalBus,
	SignalEvent,
	is_relevant_storage_key,
)
from nomadnow.domain.directory.sources import RatingProvider, SampleSource, Source
from nomadnow.domain.directory.viewer import StaticViewerProvider, ViewerProvider
from nomadnow.domain.directory.windowing import PaginationMeta, make_window
from nomadnow.domain.invitations.client import InvitationService
from nomadnow.domain.invitations.dispatcher import InvitationDispatcher
from nomadnow.domain.invitations.models import InvitationType
from nomadnow.domain.preferences.manager import PreferenceManager
from nomadnow.domain.preferences.store import PreferenceStore
from nomadnow.obs import metrics as obs_metrics
from nomadnow.settings import settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class _LoadResult:
	viewer: ViewerProfile
	records: Tuple[NomadRecord, ...]
	failures: Tuple[str, ...]
	used_sample: bool
	today_meetups: int
	success_rate: int
	generated_at: datetime


class NomadDirectory:
	def __init__(
		self,
		*,
		viewer: Union[ViewerProfile, ViewerProvider],
		sources: Sequence[Source],
		preference_store: PreferenceStore,
		invitation_service: InvitationService,
		sample: Optional[Source] = None,
		use_sample: Optional[bool] = None,
		ratings: Optional[RatingProvider] = None,
		pagination_mode: Optional[str] = None,
		page_size: Optional[int] = None,
		timer: Optional[RefreshTimer] = None,
		bus: Optional[SignalBus] = None,
		realtime: Optional[bool] = None,
		clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
		refresh_interval_seconds: Optional[float] = None,
		followup_delay_seconds: Optional[float] = None,
		error_ttl_seconds: Optional[float] = None,
		error_clock: Optional[Callable[[], float]] = None,
	) -> None:
		if isinstance(viewer, ViewerProfile):
			self._viewer_provider: ViewerProvider = StaticViewerProvider(viewer)
			self._viewer = viewer
		else:
			self._viewer_provider = viewer
			self._viewer = ViewerProfile.anonymous()
		self._sources = list(sources)
		if use_sample is None:
			use_sample = settings.nomads_sample_fallback
		self._sample = (sample or SampleSource(clock=clock)) if use_sample else None
		self._ratings = ratings
		self._clock = clock
		self._realtime = settings.nomads_realtime_updates if realtime is None else realtime
		self._bus = bus
		self._unsubscribe: Optional[Callable[[], None]] = None

		self._filters = FilterState()
		self._snapshot = DirectorySnapshot(generated_at=clock())
		self._window = make_window(
			pagination_mode or settings.nomads_pagination_mode,
			page_size or settings.nomads_page_size,
		)
		viewer_id = getattr(self._viewer_provider, "viewer_id", None) or (
			self._viewer.id if self._viewer.is_authenticated else None
		)
		self.preferences = PreferenceManager(viewer_id, preference_store, on_hidden_changed=self._refilter)
		self.invitations = InvitationDispatcher(
			invitation_service,
			viewer=lambda: self._viewer,
			is_known_receiver=lambda receiver_id: self._snapshot.find(receiver_id) is not None,
			clock=clock,
		)
		scheduler_kwargs = {}
		if error_clock is not None:
			scheduler_kwargs["clock"] = error_clock
		self._scheduler: RefreshScheduler[_LoadResult] = RefreshScheduler(
			self._load,
			self._install,
			name=f"directory:{viewer_id or 'anonymous'}:{id(self):x}",
			timer=timer,
			interval_seconds=refresh_interval_seconds,
			followup_delay_seconds=followup_delay_seconds,
			error_ttl_seconds=error_ttl_seconds,
			**scheduler_kwargs,
		)

	# Lifecycle

	async def start(self) -> None:
		await self.preferences.load()
		await self.refresh()
		self._scheduler.start(periodic=self._realtime)
		if self._bus is not None and self._unsubscribe is None:
			self._unsubscribe = self._bus.subscribe(self._on_signal)

	async def close(self) -> None:
		if self._unsubscribe is not None:
			self._unsubscribe()
			self._unsubscribe = None
		await self._scheduler.stop()
		await self.preferences.close()

	@property
	def alive(self) -> bool:
		return self._scheduler.alive

	async def refresh(self) -> bool:
		return await self._scheduler.trigger("manual")

	async def retry(self) -> bool:
		self._scheduler.clear_error()
		return await self._scheduler.trigger("retry")

	# Read surface

	@property
	def viewer(self) -> ViewerProfile:
		return self._viewer

	@property
	def snapshot(self) -> DirectorySnapshot:
		return self._snapshot

	@property
	def records(self) -> List[NomadRecord]:
		return list(self._window.items)

	@property
	def filtered(self) -> List[NomadRecord]:
		return list(self._snapshot.filtered)

	@property
	def stats(self) -> DirectoryStats:
		return self._snapshot.stats

	@property
	def filters(self) -> FilterState:
		return self._filters

	@property
	def loading(self) -> bool:
		return self._scheduler.loading

	@property
	def error(self) -> Optional[str]:
		return self._scheduler.error

	def clear_error(self) -> None:
		self._scheduler.clear_error()

	@property
	def pagination(self) -> PaginationMeta:
		return self._window.meta()

	def get_record(self, record_id: str) -> Optional[NomadRecord]:
		for record in self._snapshot.visible:
			if record.id == record_id:
				return record
		return None

	# Filters and windowing

	def set_filters(self, **changes: object) -> FilterState:
		self._filters = self._filters.merge(**changes)
		self._refilter()
		return self._filters

	def reset_filters(self) -> FilterState:
		self._filters = FilterState()
		self._refilter()
		return self._filters

	def page(self, number: int) -> bool:
		return self._window.page(number)

	def load_more(self) -> bool:
		return self._window.load_more()

	# Preferences

	def add_favorite(self, target_id: str) -> asyncio.Future[bool]:
		return self.preferences.add_favorite(target_id)

	def remove_favorite(self, target_id: str) -> asyncio.Future[bool]:
		return self.preferences.remove_favorite(target_id)

	def hide(self, target_id: str) -> asyncio.Future[bool]:
		return self.preferences.hide(target_id)

	def show(self, target_id: str) -> asyncio.Future[bool]:
		return self.preferences.show(target_id)

	def get_favorites(self) -> List[str]:
		return self.preferences.get_favorites()

	def get_hidden(self) -> List[str]:
		return self.preferences.get_hidden()

	# Invitations

	async def send_invitation(
		self,
		invitation_type: Union[InvitationType, str],
		receiver_id: str,
		message: Optional[str] = None,
	) -> bool:
		sent = await self.invitations.send(invitation_type, receiver_id, message)
		if sent and self.alive:
			today_meetups, success_rate = await self.invitations.today_stats()
			self._snapshot = replace(
				self._snapshot,
				stats=replace(self._snapshot.stats, today_meetups=today_meetups, success_rate=success_rate),
			)
		return sent

	# Change signals

	async def notify_profile_updated(self) -> bool:
		return await self._scheduler.notify_profile_updated()

	async def notify_storage_changed(self, key: Optional[str] = None) -> bool:
		if not is_relevant_storage_key(key):
			return False
		if key is None or key.startswith(settings.nomads_preferences_prefix) or key == HIDDEN_USERS_KEY:
			await self.preferences.load()
		return await self._scheduler.trigger("storage_changed")

	async def _on_signal(self, event: SignalEvent) -> None:
		if event.signal is ChangeSignal.PROFILE_UPDATED:
			if event.viewer_id in (None, self._viewer.id):
				await self.notify_profile_updated()
			else:
				await self._scheduler.trigger("profile_updated")
		elif event.signal is ChangeSignal.STORAGE_CHANGED:
			await self.notify_storage_changed(event.key)

	# Refresh internals

	async def _load(self) -> _LoadResult:
		try:
			viewer = await self._viewer_provider.get_profile()
		except Exception:
			logger.warning("viewer profile lookup failed; keeping previous profile", exc_info=True)
			viewer = self._viewer

		result = await aggregate(self._sources, sample=self._sample, ratings=self._ratings)
		if result.all_failed and not result.used_sample:
			raise DirectoryError("all_sources_failed")

		today_meetups, success_rate = await self.invitations.today_stats()
		now = self._clock()
		enriched = tuple(geo.enrich(record, viewer, now) for record in result.records)
		return _LoadResult(
			viewer=viewer,
			records=enriched,
			failures=tuple(str(failure) for failure in result.failures),
			used_sample=result.used_sample,
			today_meetups=today_meetups,
			success_rate=success_rate,
			generated_at=now,
		)

	def _install(self, loaded: _LoadResult) -> None:
		self._viewer = loaded.viewer
		base = DirectorySnapshot(
			records=loaded.records,
			stats=DirectoryStats(today_meetups=loaded.today_meetups, success_rate=loaded.success_rate),
			generated_at=loaded.generated_at,
			used_sample=loaded.used_sample,
			source_failures=loaded.failures,
		)
		self._snapshot = self._derive(base)
		self._window.reset(self._snapshot.filtered)

	def _refilter(self) -> None:
		self._snapshot = self._derive(self._snapshot)
		self._window.reset(self._snapshot.filtered)

	def _derive(self, snapshot: DirectorySnapshot) -> DirectorySnapshot:
		hidden = set(self.preferences.get_hidden())
		visible = tuple(record for record in snapshot.records if record.id not in hidden)
		filtered = tuple(pipeline.apply(visible, self._filters))
		stats = DirectoryStats.from_records(
			visible,
			today_meetups=snapshot.stats.today_meetups,
			success_rate=snapshot.stats.success_rate,
		)
		obs_metrics.set_snapshot_sizes(aggregated=len(snapshot.records), visible=len(visible), filtered=len(filtered))
		return replace(snapshot, visible=visible, filtered=filtered, stats=stats)


__all__ = ["NomadDirectory"]
