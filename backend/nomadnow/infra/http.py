"""Shared httpx client management for outbound calls to external services."""

from __future__ import annotations

from typing import Optional

import httpx

from nomadnow.settings import settings

_client: Optional[httpx.AsyncClient] = None


def init_client() -> httpx.AsyncClient:
	global _client
	if _client is None:
		_client = httpx.AsyncClient(
			timeout=httpx.Timeout(settings.nomads_http_timeout_seconds),
			headers={"User-Agent": settings.service_name},
		)
	return _client


def set_client(client: Optional[httpx.AsyncClient]) -> None:
	global _client
	_client = client


def get_client() -> httpx.AsyncClient:
	if _client is None:
		return init_client()
	return _client


async def close_client() -> None:
	global _client
	if _client is not None:
		await _client.aclose()
		_client = None
