"""Viewer-local favorites/hidden state kept in step with the external store."""

from __future__ import annotations

import asyncio
import logging
from contextlib import suppress
from typing import Awaitable, Callable, List, Optional, Set, Tuple

from nomadnow.domain.preferences.store import PreferenceSet, PreferenceStore
from nomadnow.obs import metrics as obs_metrics

logger = logging.getLogger(__name__)

StoreCall = Callable[[str, str], Awaitable[bool]]


class PreferenceManager:
	"""Applies preference mutations locally first, then persists them in order.

	Mutators are synchronous so the caller sees the new state immediately; each
	returns the future of its persistence call. A failed write is logged and
	counted but the local change stays in place.
	"""

	def __init__(
		self,
		viewer_id: Optional[str],
		store: PreferenceStore,
		*,
		on_hidden_changed: Optional[Callable[[], None]] = None,
	) -> None:
		self.viewer_id = viewer_id
		self._store = store
		self._on_hidden_changed = on_hidden_changed
		self._state = PreferenceSet()
		self._lock = asyncio.Lock()
		self._load_lock = asyncio.Lock()
		self._pending: Set[asyncio.Future[bool]] = set()
		self._loading = False
		self._replay: List[Tuple[str, str]] = []
		self._alive = True
		self.loaded = False

	def get_favorites(self) -> List[str]:
		return list(self._state.favorites)

	def get_hidden(self) -> List[str]:
		return list(self._state.hidden)

	def is_hidden(self, target_id: str) -> bool:
		return target_id in self._state.hidden

	def is_favorite(self, target_id: str) -> bool:
		return target_id in self._state.favorites

	async def load(self) -> bool:
		"""Replace local state with the store's.

		Writes issued before the load are awaited first so the read sees them;
		mutations made while the load runs are replayed on top of the result.
		Concurrent loads run one after another.
		"""
		if not self.viewer_id or not self._alive:
			return False
		async with self._load_lock:
			self._loading = True
			self._replay = []
			try:
				await self.flush()
				async with self._lock:
					remote = await self._store.get_preferences(self.viewer_id)
			except Exception as exc:
				logger.warning("preference load failed viewer=%s reason=%s", self.viewer_id, getattr(exc, "reason", type(exc).__name__))
				return False
			finally:
				self._loading = False
			if not self._alive:
				return False

			state = remote.copy()
			for op, target_id in self._replay:
				getattr(state, op)(target_id)
			self._replay = []
			hidden_changed = state.hidden != self._state.hidden
			self._state = state
			self.loaded = True
		if hidden_changed:
			self._notify_hidden()
		return True

	def add_favorite(self, target_id: str) -> asyncio.Future[bool]:
		if target_id in self._state.hidden:
			logger.info("ignoring favorite for hidden user viewer=%s target=%s", self.viewer_id, target_id)
			return self._resolved(False)
		self._apply("add_favorite", target_id)
		return self._schedule("add_favorite", target_id, self._store.add_favorite)

	def remove_favorite(self, target_id: str) -> asyncio.Future[bool]:
		self._apply("remove_favorite", target_id)
		return self._schedule("remove_favorite", target_id, self._store.remove_favorite)

	def hide(self, target_id: str) -> asyncio.Future[bool]:
		if self._apply("hide", target_id):
			self._notify_hidden()
		return self._schedule("hide", target_id, self._store.hide_user)

	def show(self, target_id: str) -> asyncio.Future[bool]:
		if self._apply("show", target_id):
			self._notify_hidden()
		return self._schedule("show", target_id, self._store.show_user)

	async def flush(self) -> None:
		"""Wait for every persistence call issued so far."""
		pending = list(self._pending)
		if pending:
			await asyncio.gather(*pending, return_exceptions=True)

	async def close(self) -> None:
		self._alive = False
		pending = [task for task in self._pending if not task.done()]
		for task in pending:
			task.cancel()
		for task in pending:
			with suppress(asyncio.CancelledError):
				await task
		self._pending.clear()

	def _apply(self, op: str, target_id: str) -> bool:
		changed = getattr(self._state, op)(target_id)
		if self._loading:
			self._replay.append((op, target_id))
		return changed

	def _notify_hidden(self) -> None:
		if self._on_hidden_changed is None:
			return
		try:
			self._on_hidden_changed()
		except Exception:
			logger.exception("hidden-change callback failed viewer=%s", self.viewer_id)

	def _resolved(self, value: bool) -> asyncio.Future[bool]:
		future: asyncio.Future[bool] = asyncio.get_running_loop().create_future()
		future.set_result(value)
		return future

	def _schedule(self, op: str, target_id: str, call: StoreCall) -> asyncio.Future[bool]:
		if not self.viewer_id or not self._alive:
			return self._resolved(False)
		task = asyncio.create_task(self._persist(op, target_id, call), name=f"prefs:{op}:{self.viewer_id}")
		self._pending.add(task)
		task.add_done_callback(self._pending.discard)
		return task

	async def _persist(self, op: str, target_id: str, call: StoreCall) -> bool:
		# One write at a time, in issue order
		async with self._lock:
			if not self._alive or self.viewer_id is None:
				return False
			try:
				ok = bool(await call(self.viewer_id, target_id))
			except asyncio.CancelledError:
				raise
			except Exception as exc:
				logger.warning(
					"preference write failed viewer=%s op=%s target=%s reason=%s",
					self.viewer_id,
					op,
					target_id,
					getattr(exc, "reason", type(exc).__name__),
				)
				ok = False
		obs_metrics.inc_preference_write(op, "success" if ok else "failure")
		if not ok:
			logger.warning("preference %s not persisted viewer=%s target=%s; local state kept", op, self.viewer_id, target_id)
		return ok


__all__ = ["PreferenceManager"]
