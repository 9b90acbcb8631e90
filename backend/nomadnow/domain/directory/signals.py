"""Change signals that prompt a directory refresh.

Profile edits and preference/profile storage changes arrive either in-process via
``SignalBus.publish`` or from other processes through a Redis stream relayed by
``RedisSignalBridge``.
"""

from __future__ import annotations

import asyncio
import enum
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, List, Optional, Union

from nomadnow.infra.redis import redis_client
from nomadnow.settings import settings

logger = logging.getLogger(__name__)

PROFILE_KEY_PREFIX = "user_profile_details"
HIDDEN_USERS_KEY = "hidden_nomad_users"


class ChangeSignal(str, enum.Enum):
	PROFILE_UPDATED = "profile_updated"
	STORAGE_CHANGED = "storage_changed"


@dataclass(frozen=True, slots=True)
class SignalEvent:
	signal: ChangeSignal
	key: Optional[str] = None
	viewer_id: Optional[str] = None


def is_relevant_storage_key(key: Optional[str]) -> bool:
	"""Only profile and preference keys affect the directory; ``None`` means unknown."""
	if key is None:
		return True
	return (
		key.startswith(PROFILE_KEY_PREFIX)
		or key == HIDDEN_USERS_KEY
		or key.startswith(settings.nomads_local_profile_prefix)
		or key.startswith(settings.nomads_preferences_prefix)
	)


Handler = Callable[[SignalEvent], Union[None, Awaitable[None]]]


class SignalBus:
	"""In-process fan-out of change signals to subscribed handlers."""

	def __init__(self) -> None:
		self._handlers: List[Handler] = []

	def subscribe(self, handler: Handler) -> Callable[[], None]:
		self._handlers.append(handler)
		return lambda: self.unsubscribe(handler)

	def unsubscribe(self, handler: Handler) -> None:
		try:
			self._handlers.remove(handler)
		except ValueError:
			pass

	@property
	def subscribers(self) -> int:
		return len(self._handlers)

	async def publish(self, event: SignalEvent) -> int:
		delivered = 0
		for handler in list(self._handlers):
			try:
				result = handler(event)
				if asyncio.iscoroutine(result):
					await result
				delivered += 1
			except Exception:
				logger.exception("signal handler failed signal=%s", event.signal.value)
		return delivered


signal_bus = SignalBus()


async def emit(signal: ChangeSignal, *, key: Optional[str] = None, viewer_id: Optional[str] = None) -> str:
	"""Append a signal to the shared stream so every process can pick it up."""
	payload: Dict[str, str] = {"signal": signal.value}
	if key:
		payload["key"] = key
	if viewer_id:
		payload["viewer_id"] = viewer_id
	return await redis_client.xadd(settings.nomads_signal_channel, payload, maxlen=1000)


class RedisSignalBridge:
	"""Relays signals from the Redis stream onto a ``SignalBus``."""

	def __init__(
		self,
		bus: SignalBus,
		*,
		stream: Optional[str] = None,
		batch_size: int = 50,
		block_ms: Optional[int] = 1000,
		poll_interval: float = 1.0,
	) -> None:
		self.bus = bus
		self.stream = stream or settings.nomads_signal_channel
		self.batch_size = batch_size
		self.block_ms = block_ms
		self.poll_interval = poll_interval
		self._last_id = "$"
		self._running = False

	def parse(self, payload: Dict[str, str]) -> Optional[SignalEvent]:
		try:
			signal = ChangeSignal(payload.get("signal"))
		except ValueError:
			logger.warning("ignoring unknown signal payload=%s", payload)
			return None
		return SignalEvent(signal=signal, key=payload.get("key") or None, viewer_id=payload.get("viewer_id") or None)

	async def handle_message(self, payload: Dict[str, str]) -> bool:
		event = self.parse(payload)
		if event is None:
			return False
		await self.bus.publish(event)
		return True

	async def process_once(self) -> int:
		if self._last_id == "$":
			# Start after whatever is already in the stream
			latest = await redis_client.xrevrange(self.stream, count=1)
			self._last_id = latest[0][0] if latest else "0-0"
		messages = await redis_client.xread(
			streams={self.stream: self._last_id},
			count=self.batch_size,
			block=self.block_ms,
		)
		if not messages:
			return 0
		processed = 0
		for _stream_name, entries in messages:
			for entry_id, payload in entries:
				await self.handle_message(dict(payload))
				self._last_id = entry_id
				processed += 1
		return processed

	async def run_forever(self) -> None:
		self._running = True
		while self._running:
			try:
				processed = await self.process_once()
			except asyncio.CancelledError:
				raise
			except Exception:
				logger.warning("signal bridge read failed", exc_info=True)
				processed = 0
			if processed == 0:
				await asyncio.sleep(self.poll_interval)

	def stop(self) -> None:
		self._running = False


__all__ = [
	"ChangeSignal",
	"RedisSignalBridge",
	"SignalBus",
	"SignalEvent",
	"emit",
	"is_relevant_storage_key",
	"signal_bus",
]
