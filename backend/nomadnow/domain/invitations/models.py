"""Invitation value objects."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional


class InvitationType(str, enum.Enum):
	MEETUP = "coffee_meetup"
	COLLABORATION = "work_together"

	@classmethod
	def parse(cls, value: "InvitationType | str") -> Optional["InvitationType"]:
		if isinstance(value, cls):
			return value
		try:
			return cls(str(value))
		except ValueError:
			return None


@dataclass(frozen=True, slots=True)
class InvitationRequest:
	sender_id: str
	receiver_id: str
	type: InvitationType
	message: Optional[str] = None
	created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

	def to_payload(self) -> Dict[str, Any]:
		payload: Dict[str, Any] = {
			"sender_id": self.sender_id,
			"receiver_id": self.receiver_id,
			"invitation_type": self.type.value,
		}
		if self.message:
			payload["message"] = self.message
		return payload


@dataclass(frozen=True, slots=True)
class InvitationResult:
	success: bool
	data: Optional[Dict[str, Any]] = None
	error: Optional[str] = None


__all__ = ["InvitationRequest", "InvitationResult", "InvitationType"]
