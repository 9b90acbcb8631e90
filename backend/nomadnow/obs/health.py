"""Health check helpers for liveness and readiness probes."""

from __future__ import annotations

import asyncio
import logging
from time import perf_counter
from typing import Any, Dict, Tuple

from nomadnow.infra.redis import redis_client
from nomadnow.settings import settings

LOGGER = logging.getLogger(__name__)


async def _redis_status(timeout: float = 0.2) -> Dict[str, Any]:
	start = perf_counter()
	try:
		await asyncio.wait_for(redis_client.ping(), timeout=timeout)
		latency = perf_counter() - start
		return {"ok": True, "latency_ms": round(latency * 1000, 2)}
	except Exception as exc:  # pragma: no cover - depends on runtime
		LOGGER.warning("Redis readiness check failed", exc_info=True)
		return {"ok": False, "error": str(exc)}


async def liveness() -> Dict[str, str]:
	return {"status": "ok", "service": settings.service_name}


async def readiness(active_directories: int = 0) -> Tuple[int, Dict[str, Any]]:
	redis_status = await _redis_status()
	ok = bool(redis_status.get("ok"))
	payload = {
		"status": "ok" if ok else "degraded",
		"redis": redis_status,
		"active_directories": active_directories,
	}
	return (200 if ok else 503), payload


__all__ = ["liveness", "readiness"]
