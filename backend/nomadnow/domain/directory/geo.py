"""Distance, presence and compatibility calculations for directory records.

Everything here is pure: results depend only on the arguments (``now`` defaults
to the current UTC time when omitted).
"""

from __future__ import annotations

import math
from dataclasses import replace
from datetime import datetime, timezone
from typing import Iterable, Optional, Sequence

from nomadnow.domain.directory.models import Coordinates, NomadRecord, ViewerProfile
from nomadnow.settings import settings

EARTH_RADIUS_KM = 6371.0
NEUTRAL_COMPATIBILITY = 50


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
	d_lat = math.radians(lat2 - lat1)
	d_lon = math.radians(lon2 - lon1)
	a = (
		math.sin(d_lat / 2) ** 2
		+ math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lon / 2) ** 2
	)
	c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
	return EARTH_RADIUS_KM * c


def distance(viewer: Optional[Coordinates], record: Optional[Coordinates]) -> float:
	"""Great-circle distance in km, rounded to 0.1 km.

	Missing coordinates on either side yield 0 so a distance filter never drops a
	record just because its location is unknown.
	"""
	if viewer is None or record is None:
		return 0.0
	km = haversine_km(viewer.lat, viewer.lng, record.lat, record.lng)
	return max(0.0, round(km, 1))


def _minutes_since(last_active: datetime, now: Optional[datetime]) -> float:
	now = now or datetime.now(timezone.utc)
	if last_active.tzinfo is None:
		last_active = last_active.replace(tzinfo=timezone.utc)
	if now.tzinfo is None:
		now = now.replace(tzinfo=timezone.utc)
	return (now - last_active).total_seconds() / 60.0


def online_status(last_active: Optional[datetime], now: Optional[datetime] = None) -> bool:
	if last_active is None:
		return False
	return _minutes_since(last_active, now) <= settings.nomads_online_window_minutes


def available_status(last_active: Optional[datetime], now: Optional[datetime] = None) -> bool:
	if last_active is None:
		return False
	return _minutes_since(last_active, now) <= settings.nomads_available_window_minutes


def last_seen_label(last_active: Optional[datetime], now: Optional[datetime] = None) -> str:
	if last_active is None:
		return "unknown"
	minutes = _minutes_since(last_active, now)
	if minutes < 1:
		return "just now"
	if minutes < 60:
		return f"{math.floor(minutes)}m ago"
	if minutes < 1440:
		return f"{math.floor(minutes / 60)}h ago"
	return f"{math.floor(minutes / 1440)}d ago"


def mutual_interests(candidate: Iterable[str], viewer: Iterable[str]) -> tuple[str, ...]:
	viewer_tags = set(viewer)
	seen: set[str] = set()
	shared: list[str] = []
	for tag in candidate:
		if tag in viewer_tags and tag not in seen:
			seen.add(tag)
			shared.append(tag)
	return tuple(shared)


def compatibility(candidate: Sequence[str], viewer: Sequence[str]) -> int:
	candidate_tags = set(candidate)
	viewer_tags = set(viewer)
	if not candidate_tags or not viewer_tags:
		return NEUTRAL_COMPATIBILITY
	common = len(candidate_tags & viewer_tags)
	return round(common / max(len(viewer_tags), len(candidate_tags)) * 100)


def enrich(record: NomadRecord, viewer: ViewerProfile, now: Optional[datetime] = None) -> NomadRecord:
	"""Return ``record`` with every derived field recomputed for ``viewer``."""
	now = now or datetime.now(timezone.utc)
	return replace(
		record,
		distance=distance(viewer.coordinates, record.coordinates),
		is_online=online_status(record.last_active, now),
		is_available=available_status(record.last_active, now),
		last_seen=last_seen_label(record.last_active, now),
		mutual_interests=mutual_interests(record.interests, viewer.interests),
		compatibility=compatibility(record.interests, viewer.interests),
	)
