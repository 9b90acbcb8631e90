"""Domain models used by the nomad directory engine."""

from __future__ import annotations

from dataclasses import dataclass, field, fields, replace
from datetime import datetime, timezone
from typing import Literal, Optional, Sequence

from nomadnow.settings import settings

RecordSource = Literal["remote", "local", "sample"]


@dataclass(frozen=True, slots=True)
class Coordinates:
	lat: float
	lng: float


@dataclass(frozen=True, slots=True)
class RatingSummary:
	"""Opaque rating input supplied by the rating subsystem."""

	average_rating: float = 0.0
	total_ratings: int = 0


@dataclass(frozen=True, slots=True)
class NomadRecord:
	"""Canonical directory entry.

	Source fields are filled by the per-source normalizers; the derived block is
	written only by the enrichment step of a refresh cycle and is rebuilt from
	scratch on the next one.
	"""

	id: str
	name: str
	avatar: str
	profession: str = "Digital Nomad"
	company: Optional[str] = None
	location: str = "Unknown Location"
	coordinates: Optional[Coordinates] = None
	interests: tuple[str, ...] = ()
	rating: float = 0.0
	review_count: int = 0
	last_active: Optional[datetime] = None
	bio: str = ""
	wifi_speed_mbps: Optional[float] = None
	meetup_count: int = 0
	source: RecordSource = "remote"

	# Derived per refresh cycle
	distance: float = 0.0
	is_online: bool = False
	is_available: bool = False
	last_seen: str = "unknown"
	mutual_interests: tuple[str, ...] = ()
	compatibility: int = 0

	@property
	def is_sample(self) -> bool:
		return self.source == "sample"


@dataclass(frozen=True, slots=True)
class ViewerProfile:
	"""The viewer the directory is computed for."""

	id: Optional[str] = None
	is_authenticated: bool = False
	interests: tuple[str, ...] = ()
	coordinates: Optional[Coordinates] = None

	@classmethod
	def anonymous(cls) -> "ViewerProfile":
		return cls()


@dataclass(frozen=True, slots=True)
class FilterState:
	search_query: str = ""
	max_distance: Optional[float] = field(default_factory=lambda: settings.nomads_default_max_distance_km)
	interests: tuple[str, ...] = ()
	online_only: bool = False
	available_only: bool = False

	def __post_init__(self) -> None:
		if self.max_distance is not None and self.max_distance < 0:
			raise ValueError("max_distance must be non-negative")

	def merge(self, **changes: object) -> "FilterState":
		"""Return a copy with ``changes`` applied (partial update)."""
		known = {f.name for f in fields(self)}
		unknown = set(changes) - known
		if unknown:
			raise ValueError(f"unknown filter fields: {', '.join(sorted(unknown))}")
		if "interests" in changes:
			changes["interests"] = tuple(changes["interests"] or ())  # type: ignore[arg-type]
		if "search_query" in changes:
			changes["search_query"] = str(changes["search_query"] or "")
		return replace(self, **changes)  # type: ignore[arg-type]


@dataclass(frozen=True, slots=True)
class DirectoryStats:
	total_users: int = 0
	available_users: int = 0
	online_users: int = 0
	today_meetups: int = 0
	success_rate: int = 0

	@classmethod
	def from_records(
		cls,
		records: Sequence[NomadRecord],
		*,
		today_meetups: int = 0,
		success_rate: int = 0,
	) -> "DirectoryStats":
		return cls(
			total_users=len(records),
			available_users=sum(1 for r in records if r.is_online and r.is_available),
			online_users=sum(1 for r in records if r.is_online),
			today_meetups=today_meetups,
			success_rate=success_rate,
		)


@dataclass(frozen=True, slots=True)
class DirectorySnapshot:
	"""Immutable result of one refresh cycle; swapped in as a whole."""

	records: tuple[NomadRecord, ...] = ()
	visible: tuple[NomadRecord, ...] = ()
	filtered: tuple[NomadRecord, ...] = ()
	stats: DirectoryStats = field(default_factory=DirectoryStats)
	generated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
	used_sample: bool = False
	source_failures: tuple[str, ...] = ()

	def find(self, record_id: str) -> Optional[NomadRecord]:
		for record in self.records:
			if record.id == record_id:
				return record
		return None
