"""Validate and send meetup/collaboration invitations."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable, Optional, Tuple

from nomadnow.domain.directory.exceptions import DispatchFailure, ValidationFailure
from nomadnow.domain.directory.models import ViewerProfile
from nomadnow.domain.invitations.client import InvitationService
from nomadnow.domain.invitations.models import InvitationRequest, InvitationType
from nomadnow.infra.redis import redis_client
from nomadnow.obs import metrics as obs_metrics
from nomadnow.settings import settings

logger = logging.getLogger(__name__)

COUNTER_TTL_SECONDS = 2 * 24 * 3600


def _day_key(now: datetime, suffix: str) -> str:
	return f"nomads:invitations:{now.strftime('%Y%m%d')}:{suffix}"


class InvitationDispatcher:
	"""Sends one invitation per call and reports a boolean outcome.

	Requests that fail local validation never reach the service. There are no
	retries; the caller decides whether to try again.
	"""

	def __init__(
		self,
		service: InvitationService,
		*,
		viewer: Callable[[], ViewerProfile],
		is_known_receiver: Callable[[str], bool],
		clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
		message_max_length: Optional[int] = None,
	) -> None:
		self._service = service
		self._viewer = viewer
		self._is_known_receiver = is_known_receiver
		self._clock = clock
		self.message_max_length = (
			settings.nomads_invitation_message_max_length if message_max_length is None else message_max_length
		)

	def build_request(
		self,
		invitation_type: InvitationType | str,
		receiver_id: str,
		message: Optional[str] = None,
	) -> InvitationRequest:
		kind = InvitationType.parse(invitation_type)
		if kind is None:
			raise ValidationFailure("unknown_type")
		viewer = self._viewer()
		if not viewer.is_authenticated or not viewer.id:
			raise ValidationFailure("not_authenticated")
		if not receiver_id:
			raise ValidationFailure("missing_receiver")
		if receiver_id == viewer.id:
			raise ValidationFailure("self_invite")
		if not self._is_known_receiver(receiver_id):
			raise ValidationFailure("unknown_receiver")
		text = (message or "").strip() or None
		if text is not None and len(text) > self.message_max_length:
			raise ValidationFailure("message_too_long")
		return InvitationRequest(
			sender_id=viewer.id,
			receiver_id=receiver_id,
			type=kind,
			message=text,
			created_at=self._clock(),
		)

	async def send(
		self,
		invitation_type: InvitationType | str,
		receiver_id: str,
		message: Optional[str] = None,
	) -> bool:
		try:
			request = self.build_request(invitation_type, receiver_id, message)
		except ValidationFailure as exc:
			logger.info("invitation rejected receiver=%s reason=%s", receiver_id, exc.reason)
			obs_metrics.inc_invitation(str(getattr(invitation_type, "value", invitation_type)), f"invalid_{exc.reason}")
			return False

		try:
			result = await self._service.create_invitation(request)
			if not result.success:
				raise DispatchFailure(result.error or None)
			ok = True
		except Exception as exc:
			reason = exc.reason if isinstance(exc, DispatchFailure) else type(exc).__name__
			logger.warning(
				"invitation dispatch failed type=%s receiver=%s reason=%s",
				request.type.value,
				request.receiver_id,
				reason,
			)
			ok = False

		obs_metrics.inc_invitation(request.type.value, "sent" if ok else "failed")
		await self._record_attempt(ok)
		return ok

	async def _record_attempt(self, ok: bool) -> None:
		now = self._clock()
		keys = [_day_key(now, "attempts")]
		if ok:
			keys.append(_day_key(now, "successes"))
		try:
			async with redis_client.pipeline(transaction=True) as pipe:
				for key in keys:
					pipe.incr(key)
					pipe.expire(key, COUNTER_TTL_SECONDS)
				await pipe.execute()
		except Exception:
			logger.warning("invitation counters unavailable", exc_info=True)

	async def today_stats(self) -> Tuple[int, int]:
		"""Return ``(successful_today, success_rate_percent)``."""
		now = self._clock()
		try:
			attempts_raw, successes_raw = await redis_client.mget(
				[_day_key(now, "attempts"), _day_key(now, "successes")]
			)
		except Exception:
			logger.warning("invitation counters unavailable", exc_info=True)
			return 0, 0
		attempts = int(attempts_raw or 0)
		successes = int(successes_raw or 0)
		if attempts <= 0:
			return successes, 0
		return successes, round(successes / attempts * 100)


__all__ = ["InvitationDispatcher"]
