"""Providers for the profile of the viewer a directory is computed for."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Optional, Protocol

from pydantic import ValidationError

from nomadnow.domain.directory.models import Coordinates, ViewerProfile
from nomadnow.domain.directory.schemas import LocalProfilePayload
from nomadnow.infra.redis import redis_client
from nomadnow.settings import settings

logger = logging.getLogger(__name__)


class ViewerProvider(Protocol):
	async def get_profile(self) -> ViewerProfile:
		...


@dataclass
class StaticViewerProvider:
	profile: ViewerProfile = field(default_factory=ViewerProfile.anonymous)

	async def get_profile(self) -> ViewerProfile:
		return self.profile


@dataclass
class StoredViewerProvider:
	"""Reads the viewer's interests and location from their stored profile blob.

	A missing or unreadable blob still yields an authenticated viewer, just
	without interests or coordinates.
	"""

	viewer_id: str
	prefix: str = field(default_factory=lambda: settings.nomads_local_profile_prefix)

	async def get_profile(self) -> ViewerProfile:
		fallback = ViewerProfile(id=self.viewer_id, is_authenticated=True)
		raw: Optional[str] = await redis_client.get(f"{self.prefix}{self.viewer_id}")
		if not raw:
			return fallback
		try:
			payload = LocalProfilePayload.model_validate(json.loads(raw))
		except (ValueError, ValidationError):
			logger.info("viewer profile unreadable viewer=%s", self.viewer_id)
			return fallback
		coords = payload.coordinates
		return ViewerProfile(
			id=self.viewer_id,
			is_authenticated=True,
			interests=tuple(payload.interests),
			coordinates=Coordinates(lat=coords.lat, lng=coords.lng) if coords else None,
		)


__all__ = ["StaticViewerProvider", "StoredViewerProvider", "ViewerProvider"]
