"""Client for the external invitation service."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional, Protocol

import httpx

from nomadnow.domain.invitations.models import InvitationRequest, InvitationResult
from nomadnow.infra import http as http_infra
from nomadnow.settings import settings

logger = logging.getLogger(__name__)


class InvitationService(Protocol):
	"""Interface for creating invitations."""

	async def create_invitation(self, request: InvitationRequest) -> InvitationResult:
		...


def _default_base_url() -> str:
	return settings.nomads_invitations_base_url or settings.nomads_api_base_url


@dataclass
class HttpInvitationService:
	"""``POST {base}/api/invitations``; failures come back as results, never raised."""

	base_url: str = field(default_factory=_default_base_url)
	http: Optional[httpx.AsyncClient] = None

	async def create_invitation(self, request: InvitationRequest) -> InvitationResult:
		client = self.http or http_infra.get_client()
		url = f"{self.base_url.rstrip('/')}/api/invitations"
		try:
			response = await client.post(url, json=request.to_payload())
		except httpx.HTTPError as exc:
			logger.warning("invitation request failed type=%s error=%s", request.type.value, type(exc).__name__)
			return InvitationResult(success=False, error="Network error")
		try:
			body = response.json()
		except ValueError:
			body = {}
		if not isinstance(body, dict):
			body = {}

		if response.is_error:
			error = body.get("error") or "Failed to create invitation"
			logger.warning("invitation rejected status=%s error=%s", response.status_code, error)
			return InvitationResult(success=False, error=str(error))
		if body.get("success") is False:
			return InvitationResult(success=False, error=str(body.get("error") or "Failed to create invitation"))
		data = body.get("data")
		return InvitationResult(success=True, data=data if isinstance(data, dict) else None)


__all__ = ["HttpInvitationService", "InvitationService"]
