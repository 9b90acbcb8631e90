"""Redis connection management.

Provides a stable proxy object so imports like `from nomadnow.infra.redis import redis_client`
always reference the same proxy instance. The underlying client can be swapped at
runtime (e.g., to fakeredis in tests) without breaking previously imported references.
"""

from __future__ import annotations

from typing import AsyncIterator

import redis.asyncio as redis

from nomadnow.settings import settings


class RedisProxy:
	"""Lightweight proxy that forwards attribute access to an underlying Redis client."""

	def __init__(self, client: redis.Redis):
		self._client: redis.Redis = client

	def set_client(self, client: redis.Redis) -> None:
		self._client = client

	async def scan_prefix(self, prefix: str, *, count: int = 100) -> AsyncIterator[str]:
		"""Yield every key starting with ``prefix`` using non-blocking SCAN."""
		cursor = 0
		while True:
			cursor, keys = await self._client.scan(cursor=cursor, match=f"{prefix}*", count=count)
			for key in keys:
				yield str(key)
			if cursor == 0:
				break

	# Fallback: delegate everything else to the underlying client
	def __getattr__(self, item):
		return getattr(self._client, item)


# Create proxy with the real client by default
_real_client = redis.from_url(settings.redis_url, decode_responses=True)
redis_client: RedisProxy = RedisProxy(_real_client)


def set_redis_client(client: redis.Redis) -> None:
	redis_client.set_client(client)
