"""External preference stores: favorites and hidden users per viewer."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Protocol

import httpx

from nomadnow.domain.directory.exceptions import PersistenceFailure
from nomadnow.infra import http as http_infra
from nomadnow.infra.redis import redis_client
from nomadnow.settings import settings

logger = logging.getLogger(__name__)


def _dedupe(ids: Iterable[Any]) -> List[str]:
	seen: set[str] = set()
	ordered: List[str] = []
	for raw in ids:
		if raw is None:
			continue
		value = str(raw)
		if value and value not in seen:
			seen.add(value)
			ordered.append(value)
	return ordered


@dataclass
class PreferenceSet:
	"""Ordered, duplicate-free favorites and hidden ids.

	Hidden wins: an id never sits in both lists.
	"""

	favorites: List[str] = field(default_factory=list)
	hidden: List[str] = field(default_factory=list)

	def __post_init__(self) -> None:
		self.hidden = _dedupe(self.hidden)
		hidden = set(self.hidden)
		self.favorites = [item for item in _dedupe(self.favorites) if item not in hidden]

	def copy(self) -> "PreferenceSet":
		return PreferenceSet(favorites=list(self.favorites), hidden=list(self.hidden))

	def add_favorite(self, target_id: str) -> bool:
		if target_id in self.hidden or target_id in self.favorites:
			return False
		self.favorites.append(target_id)
		return True

	def remove_favorite(self, target_id: str) -> bool:
		if target_id not in self.favorites:
			return False
		self.favorites.remove(target_id)
		return True

	def hide(self, target_id: str) -> bool:
		changed = False
		if target_id in self.favorites:
			self.favorites.remove(target_id)
			changed = True
		if target_id not in self.hidden:
			self.hidden.append(target_id)
			changed = True
		return changed

	def show(self, target_id: str) -> bool:
		if target_id not in self.hidden:
			return False
		self.hidden.remove(target_id)
		return True


class PreferenceStore(Protocol):
	"""Interface to the external preference store."""

	async def get_preferences(self, viewer_id: str) -> PreferenceSet:
		...

	async def add_favorite(self, viewer_id: str, target_id: str) -> bool:
		...

	async def remove_favorite(self, viewer_id: str, target_id: str) -> bool:
		...

	async def hide_user(self, viewer_id: str, target_id: str) -> bool:
		...

	async def show_user(self, viewer_id: str, target_id: str) -> bool:
		...


@dataclass
class RedisPreferenceStore:
	"""Sorted sets keyed by viewer; scores keep insertion order."""

	prefix: str = field(default_factory=lambda: settings.nomads_preferences_prefix)

	def _favorites_key(self, viewer_id: str) -> str:
		return f"{self.prefix}{viewer_id}:favorites"

	def _hidden_key(self, viewer_id: str) -> str:
		return f"{self.prefix}{viewer_id}:hidden"

	async def get_preferences(self, viewer_id: str) -> PreferenceSet:
		try:
			async with redis_client.pipeline(transaction=False) as pipe:
				pipe.zrange(self._favorites_key(viewer_id), 0, -1)
				pipe.zrange(self._hidden_key(viewer_id), 0, -1)
				favorites, hidden = await pipe.execute()
		except Exception as exc:
			raise PersistenceFailure(type(exc).__name__) from exc
		return PreferenceSet(favorites=list(favorites or []), hidden=list(hidden or []))

	async def add_favorite(self, viewer_id: str, target_id: str) -> bool:
		if await redis_client.zscore(self._hidden_key(viewer_id), target_id) is not None:
			return True
		await redis_client.zadd(self._favorites_key(viewer_id), {target_id: time.time()}, nx=True)
		return True

	async def remove_favorite(self, viewer_id: str, target_id: str) -> bool:
		await redis_client.zrem(self._favorites_key(viewer_id), target_id)
		return True

	async def hide_user(self, viewer_id: str, target_id: str) -> bool:
		async with redis_client.pipeline(transaction=True) as pipe:
			pipe.zadd(self._hidden_key(viewer_id), {target_id: time.time()}, nx=True)
			pipe.zrem(self._favorites_key(viewer_id), target_id)
			await pipe.execute()
		return True

	async def show_user(self, viewer_id: str, target_id: str) -> bool:
		await redis_client.zrem(self._hidden_key(viewer_id), target_id)
		return True


@dataclass
class HttpPreferenceStore:
	"""Read-modify-write client for ``/api/users/preferences``."""

	base_url: str = field(default_factory=lambda: settings.nomads_api_base_url)
	http: Optional[httpx.AsyncClient] = None

	@property
	def _url(self) -> str:
		return f"{self.base_url.rstrip('/')}/api/users/preferences"

	def _client(self) -> httpx.AsyncClient:
		return self.http or http_infra.get_client()

	async def _read(self, viewer_id: str) -> Dict[str, Any]:
		try:
			response = await self._client().get(self._url, params={"user_id": viewer_id})
			response.raise_for_status()
			body = response.json()
		except httpx.HTTPStatusError as exc:
			raise PersistenceFailure(f"http_{exc.response.status_code}") from exc
		except httpx.HTTPError as exc:
			raise PersistenceFailure("network_error") from exc
		except ValueError as exc:
			raise PersistenceFailure("invalid_json") from exc
		if not isinstance(body, dict) or body.get("success") is False:
			raise PersistenceFailure("rejected")
		stored = body.get("preferences") or {}
		return stored if isinstance(stored, dict) else {}

	async def _write(self, viewer_id: str, current: Dict[str, Any], **changes: List[str]) -> bool:
		payload = {
			"userId": viewer_id,
			"favorites": current.get("favorites") or [],
			"hidden_users": current.get("hidden_users") or [],
			"blocked_users": current.get("blocked_users") or [],
			"preferences": current.get("preferences") or {},
		}
		payload.update(changes)
		try:
			response = await self._client().post(self._url, json=payload)
		except httpx.HTTPError:
			logger.warning("preference write failed viewer=%s", viewer_id, exc_info=True)
			return False
		if response.status_code >= 400:
			logger.warning("preference write rejected viewer=%s status=%s", viewer_id, response.status_code)
			return False
		return True

	async def get_preferences(self, viewer_id: str) -> PreferenceSet:
		stored = await self._read(viewer_id)
		return PreferenceSet(favorites=list(stored.get("favorites") or []), hidden=list(stored.get("hidden_users") or []))

	async def add_favorite(self, viewer_id: str, target_id: str) -> bool:
		current = await self._read(viewer_id)
		favorites = _dedupe(current.get("favorites") or [])
		if target_id in favorites or target_id in (current.get("hidden_users") or []):
			return True
		return await self._write(viewer_id, current, favorites=favorites + [target_id])

	async def remove_favorite(self, viewer_id: str, target_id: str) -> bool:
		current = await self._read(viewer_id)
		favorites = [item for item in _dedupe(current.get("favorites") or []) if item != target_id]
		return await self._write(viewer_id, current, favorites=favorites)

	async def hide_user(self, viewer_id: str, target_id: str) -> bool:
		current = await self._read(viewer_id)
		hidden = _dedupe(current.get("hidden_users") or [])
		if target_id not in hidden:
			hidden.append(target_id)
		favorites = [item for item in _dedupe(current.get("favorites") or []) if item != target_id]
		return await self._write(viewer_id, current, favorites=favorites, hidden_users=hidden)

	async def show_user(self, viewer_id: str, target_id: str) -> bool:
		current = await self._read(viewer_id)
		hidden = [item for item in _dedupe(current.get("hidden_users") or []) if item != target_id]
		return await self._write(viewer_id, current, hidden_users=hidden)


def build_store() -> PreferenceStore:
	if settings.nomads_preferences_backend == "http":
		return HttpPreferenceStore()
	return RedisPreferenceStore()


__all__ = [
	"HttpPreferenceStore",
	"PreferenceSet",
	"PreferenceStore",
	"RedisPreferenceStore",
	"build_store",
]
