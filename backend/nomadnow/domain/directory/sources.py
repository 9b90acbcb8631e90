"""Record sources for the directory aggregator.

Each source owns the mapping from its raw payload shape to the canonical
``NomadRecord``; the aggregator never guesses field names itself.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Mapping, Optional, Protocol, Sequence

import httpx
from pydantic import ValidationError

from nomadnow.domain.directory.exceptions import SourceUnavailable
from nomadnow.domain.directory.models import Coordinates, NomadRecord, RatingSummary
from nomadnow.domain.directory.schemas import LocalProfilePayload, RemoteUserPayload, ProfilePayload
from nomadnow.infra import http as http_infra
from nomadnow.infra.redis import redis_client
from nomadnow.settings import settings

logger = logging.getLogger(__name__)

DEFAULT_PROFESSION = "Digital Nomad"
DEFAULT_LOCATION = "Unknown Location"
DEFAULT_BIO = "Digital nomad exploring the world!"


class Source(Protocol):
	"""A provider of already-normalized directory records."""

	name: str

	async def fetch(self) -> list[NomadRecord]:
		...


class RatingProvider(Protocol):
	"""Read-only view onto the rating subsystem."""

	async def get_summaries(self, user_ids: Sequence[str]) -> Mapping[str, RatingSummary]:
		...


def initials(name: str) -> str:
	name = (name or "").strip()
	return name[:2].upper() if name else "NN"


def _normalize(payload: ProfilePayload, *, name: str, source: str) -> NomadRecord:
	coords = payload.coordinates
	last_active = payload.last_active
	if last_active is None and isinstance(payload, RemoteUserPayload):
		last_active = payload.created_at
	return NomadRecord(
		id=payload.id,
		name=name,
		avatar=payload.avatar or initials(name),
		profession=payload.profession or DEFAULT_PROFESSION,
		company=payload.company or None,
		location=payload.location or DEFAULT_LOCATION,
		coordinates=Coordinates(lat=coords.lat, lng=coords.lng) if coords else None,
		interests=tuple(payload.interests),
		last_active=last_active,
		bio=payload.bio or DEFAULT_BIO,
		wifi_speed_mbps=payload.wifi_speed,
		meetup_count=payload.meetup_count,
		source=source,  # type: ignore[arg-type]
	)


def normalize_remote(raw: Mapping[str, Any]) -> NomadRecord:
	payload = RemoteUserPayload.model_validate(raw)
	return _normalize(payload, name=payload.name, source="remote")


def normalize_local(raw: Mapping[str, Any]) -> NomadRecord:
	payload = LocalProfilePayload.model_validate(raw)
	return _normalize(payload, name=payload.name, source="local")


def _normalize_many(
	items: Sequence[Any],
	normalizer: Callable[[Mapping[str, Any]], NomadRecord],
	source: str,
) -> list[NomadRecord]:
	records: list[NomadRecord] = []
	for item in items:
		if not isinstance(item, Mapping):
			logger.debug("skipping non-object record from %s", source)
			continue
		try:
			records.append(normalizer(item))
		except ValidationError as exc:
			logger.info("skipping malformed record from %s: %s", source, exc.error_count())
	return records


@dataclass
class RemoteApiSource:
	"""Primary source: the users API (``GET /api/users``)."""

	base_url: str = field(default_factory=lambda: settings.nomads_api_base_url)
	include_hidden: bool = field(default_factory=lambda: settings.nomads_include_hidden)
	http: Optional[httpx.AsyncClient] = None
	name: str = "remote"

	async def fetch(self) -> list[NomadRecord]:
		client = self.http or http_infra.get_client()
		url = f"{self.base_url.rstrip('/')}/api/users"
		params = {"include_hidden": "true" if self.include_hidden else "false"}
		try:
			response = await client.get(url, params=params)
			response.raise_for_status()
			body = response.json()
		except httpx.HTTPStatusError as exc:
			raise SourceUnavailable(self.name, f"http_{exc.response.status_code}") from exc
		except httpx.HTTPError as exc:
			raise SourceUnavailable(self.name, "network_error") from exc
		except ValueError as exc:
			raise SourceUnavailable(self.name, "invalid_json") from exc

		if isinstance(body, list):
			items = body
		elif isinstance(body, dict):
			if body.get("success") is False:
				raise SourceUnavailable(self.name, str(body.get("error") or "rejected"))
			items = body.get("users") or body.get("data") or []
		else:
			raise SourceUnavailable(self.name, "unexpected_payload")
		return _normalize_many(items, normalize_remote, self.name)


@dataclass
class LocalProfileSource:
	"""Fallback source: per-user profile blobs in Redis, scanned by key prefix."""

	prefix: str = field(default_factory=lambda: settings.nomads_local_profile_prefix)
	name: str = "local"

	async def fetch(self) -> list[NomadRecord]:
		try:
			keys = sorted([key async for key in redis_client.scan_prefix(self.prefix)])
			blobs = await redis_client.mget(keys) if keys else []
		except Exception as exc:
			raise SourceUnavailable(self.name, type(exc).__name__) from exc

		items: list[dict[str, Any]] = []
		for key, blob in zip(keys, blobs):
			if not blob:
				continue
			try:
				items.append(json.loads(blob))
			except (TypeError, ValueError):
				logger.info("skipping unreadable profile blob key=%s", key)
		return _normalize_many(items, normalize_local, self.name)


# (id, name, profession, city, lat, lng, interests, minutes since active, wifi)
_SAMPLE_ROWS: tuple[tuple[str, str, str, str, float, float, tuple[str, ...], int, float], ...] = (
	("sample-1", "Maya Chen", "Product Designer", "Chiang Mai", 18.7883, 98.9853, ("Design", "Coffee", "Hiking"), 5, 90.0),
	("sample-2", "Lucas Ferreira", "Backend Engineer", "Lisbon", 38.7223, -9.1393, ("Technology", "Surfing", "Coffee"), 45, 80.0),
	("sample-3", "Aisha Karim", "Content Strategist", "Canggu", -8.6478, 115.1385, ("Writing", "Yoga", "Travel"), 200, 25.0),
	("sample-4", "Tom Novak", "Data Scientist", "Mexico City", 19.4326, -99.1332, ("Technology", "Food", "Running"), 30, 60.0),
	("sample-5", "Sofia Rossi", "Marketing Consultant", "Medellín", 6.2442, -75.5812, ("Marketing", "Dancing", "Travel"), 1500, 55.0),
	("sample-6", "Kenji Sato", "Indie Game Developer", "Bangkok", 13.7563, 100.5018, ("Gaming", "Technology", "Food"), 0, 70.0),
)


@dataclass
class SampleSource:
	"""Lowest tier: a fixed, explicitly labeled sample set for total outages."""

	clock: Callable[[], datetime] = field(default=lambda: datetime.now(timezone.utc))
	name: str = "sample"

	async def fetch(self) -> list[NomadRecord]:
		now = self.clock()
		return [
			NomadRecord(
				id=row_id,
				name=name,
				avatar=initials(name),
				profession=profession,
				location=city,
				coordinates=Coordinates(lat=lat, lng=lng),
				interests=interests,
				last_active=now - timedelta(minutes=minutes),
				bio=DEFAULT_BIO,
				wifi_speed_mbps=wifi,
				source="sample",
			)
			for row_id, name, profession, city, lat, lng, interests, minutes, wifi in _SAMPLE_ROWS
		]


__all__ = [
	"LocalProfileSource",
	"RatingProvider",
	"RemoteApiSource",
	"SampleSource",
	"Source",
	"initials",
	"normalize_local",
	"normalize_remote",
]
