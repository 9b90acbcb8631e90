"""Pydantic schemas for directory sources and endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, field_validator

from nomadnow.domain.directory.models import DirectoryStats, FilterState, NomadRecord

ANONYMOUS_NAME = "Anonymous"

_optional_datetime = TypeAdapter(Optional[datetime])


def _alias(*names: str):
	return AliasChoices(*names)


def _text_or_none(value: Any) -> Optional[str]:
	if isinstance(value, (int, float)) and not isinstance(value, bool):
		value = str(value)
	if not isinstance(value, str):
		return None
	return value.strip() or None


def _datetime_or_none(value: Any) -> Optional[datetime]:
	if value in (None, ""):
		return None
	try:
		return _optional_datetime.validate_python(value)
	except ValidationError:
		return None


def _number_or_none(value: Any) -> Optional[float]:
	if value is None or isinstance(value, bool):
		return None
	try:
		number = float(value)
	except (TypeError, ValueError):
		return None
	return number if number >= 0 and number == number else None


def _display_name(value: Any) -> str:
	return _text_or_none(value) or ANONYMOUS_NAME


class CoordinatesPayload(BaseModel):
	model_config = ConfigDict(extra="ignore")

	lat: float = Field(..., ge=-90.0, le=90.0, validation_alias=_alias("lat", "latitude"))
	lng: float = Field(..., ge=-180.0, le=180.0, validation_alias=_alias("lng", "lon", "longitude"))


class ProfilePayload(BaseModel):
	"""Fields shared by every raw user shape, with the aliases seen in the wild.

	Only ``id`` is strict. Every other field falls back to its default when it
	is null or unparseable, so one bad attribute never drops the whole record.
	"""

	model_config = ConfigDict(extra="ignore")

	id: str = Field(..., min_length=1, validation_alias=_alias("id", "user_id", "userId"))
	avatar: Optional[str] = Field(default=None, validation_alias=_alias("avatar", "avatar_url", "avatarUrl"))
	profession: Optional[str] = None
	company: Optional[str] = None
	location: Optional[str] = Field(default=None, validation_alias=_alias("location", "current_city", "city"))
	coordinates: Optional[CoordinatesPayload] = None
	interests: list[str] = Field(default_factory=list)
	bio: Optional[str] = None
	last_active: Optional[datetime] = Field(
		default=None,
		validation_alias=_alias("last_active", "lastActive", "updated_at", "updatedAt", "last_seen_at"),
	)
	wifi_speed: Optional[float] = Field(
		default=None,
		ge=0,
		validation_alias=_alias("wifi_speed", "wifiSpeed", "wifi_speed_mbps", "internet_speed", "internetSpeed"),
	)
	meetup_count: int = Field(default=0, ge=0, validation_alias=_alias("meetup_count", "meetupCount"))

	@field_validator("id", mode="before")
	def _coerce_id(cls, value):  # type: ignore[override]
		if isinstance(value, (int, float)):
			return str(value)
		return value

	@field_validator("avatar", "profession", "company", "location", "bio", mode="before")
	def _lenient_text(cls, value):  # type: ignore[override]
		return _text_or_none(value)

	@field_validator("last_active", mode="before")
	def _lenient_last_active(cls, value):  # type: ignore[override]
		return _datetime_or_none(value)

	@field_validator("wifi_speed", mode="before")
	def _lenient_wifi_speed(cls, value):  # type: ignore[override]
		return _number_or_none(value)

	@field_validator("meetup_count", mode="before")
	def _lenient_meetup_count(cls, value):  # type: ignore[override]
		number = _number_or_none(value)
		return int(number) if number is not None else 0

	@field_validator("interests", mode="before")
	def _split_interests(cls, value):  # type: ignore[override]
		if value in (None, ""):
			return []
		if isinstance(value, str):
			return [part.strip() for part in value.split(",") if part.strip()]
		if isinstance(value, (list, tuple, set)):
			return [str(item).strip() for item in value if str(item).strip()]
		return []

	@field_validator("coordinates", mode="before")
	def _drop_partial_coordinates(cls, value):  # type: ignore[override]
		if not isinstance(value, dict):
			return None
		lat = next((value[k] for k in ("lat", "latitude") if value.get(k) is not None), None)
		lng = next((value[k] for k in ("lng", "lon", "longitude") if value.get(k) is not None), None)
		try:
			lat, lng = float(lat), float(lng)  # type: ignore[arg-type]
		except (TypeError, ValueError):
			return None
		if not (-90.0 <= lat <= 90.0 and -180.0 <= lng <= 180.0):
			return None
		return {"lat": lat, "lng": lng}


class RemoteUserPayload(ProfilePayload):
	"""Record shape served by the users API."""

	kind: Literal["remote"] = "remote"
	name: str = Field(default=ANONYMOUS_NAME, validation_alias=_alias("name", "display_name", "displayName"))
	created_at: Optional[datetime] = Field(default=None, validation_alias=_alias("created_at", "createdAt"))

	@field_validator("name", mode="before")
	def _lenient_name(cls, value):  # type: ignore[override]
		return _display_name(value)

	@field_validator("created_at", mode="before")
	def _lenient_created_at(cls, value):  # type: ignore[override]
		return _datetime_or_none(value)


class LocalProfilePayload(ProfilePayload):
	"""Per-user profile blob kept in the local fallback store."""

	kind: Literal["local"] = "local"
	name: str = Field(..., min_length=1, validation_alias=_alias("name", "display_name"))

	@field_validator("name", mode="before")
	def _lenient_name(cls, value):  # type: ignore[override]
		return _display_name(value)

class NomadCard(BaseModel):
	id: str
	name: str
	avatar: str
	profession: str
	company: Optional[str] = None
	location: str
	distance: float = Field(ge=0)
	interests: list[str] = Field(default_factory=list)
	rating: float = 0.0
	review_count: int = 0
	is_online: bool = False
	is_available: bool = False
	last_seen: str = "unknown"
	meetup_count: int = 0
	mutual_interests: list[str] = Field(default_factory=list)
	compatibility: int = Field(ge=0, le=100)
	bio: str = ""
	wifi_speed_mbps: Optional[float] = None
	is_sample: bool = False

	@classmethod
	def from_record(cls, record: NomadRecord) -> "NomadCard":
		return cls(
			id=record.id,
			name=record.name,
			avatar=record.avatar,
			profession=record.profession,
			company=record.company,
			location=record.location,
			distance=record.distance,
			interests=list(record.interests),
			rating=record.rating,
			review_count=record.review_count,
			is_online=record.is_online,
			is_available=record.is_available,
			last_seen=record.last_seen,
			meetup_count=record.meetup_count,
			mutual_interests=list(record.mutual_interests),
			compatibility=record.compatibility,
			bio=record.bio,
			wifi_speed_mbps=record.wifi_speed_mbps,
			is_sample=record.is_sample,
		)


class StatsOut(BaseModel):
	total_users: int = 0
	available_users: int = 0
	online_users: int = 0
	today_meetups: int = 0
	success_rate: int = 0

	@classmethod
	def from_stats(cls, stats: DirectoryStats) -> "StatsOut":
		return cls(
			total_users=stats.total_users,
			available_users=stats.available_users,
			online_users=stats.online_users,
			today_meetups=stats.today_meetups,
			success_rate=stats.success_rate,
		)


class FiltersOut(BaseModel):
	search_query: str = ""
	max_distance: Optional[float] = None
	interests: list[str] = Field(default_factory=list)
	online_only: bool = False
	available_only: bool = False

	@classmethod
	def from_state(cls, state: FilterState) -> "FiltersOut":
		return cls(
			search_query=state.search_query,
			max_distance=state.max_distance,
			interests=list(state.interests),
			online_only=state.online_only,
			available_only=state.available_only,
		)


class FiltersUpdate(BaseModel):
	"""Partial filter update; omitted fields keep their current value."""

	search_query: Optional[str] = Field(default=None, max_length=200)
	max_distance: Optional[float] = Field(default=None, ge=0)
	interests: Optional[list[str]] = None
	online_only: Optional[bool] = None
	available_only: Optional[bool] = None
	clear_max_distance: bool = False

	def changes(self) -> dict[str, object]:
		values = self.model_dump(exclude_unset=True, exclude={"clear_max_distance"})
		result = {key: value for key, value in values.items() if value is not None}
		if self.clear_max_distance:
			result["max_distance"] = None
		return result


class PaginationOut(BaseModel):
	mode: Literal["page", "infinite"]
	page_size: int
	current_page: int
	total_pages: int
	has_more: bool
	total: int


class DirectoryView(BaseModel):
	items: list[NomadCard] = Field(default_factory=list)
	stats: StatsOut = Field(default_factory=StatsOut)
	filters: FiltersOut = Field(default_factory=FiltersOut)
	pagination: PaginationOut
	loading: bool = False
	error: Optional[str] = None
	used_sample: bool = False
	generated_at: Optional[datetime] = None


class PreferencesOut(BaseModel):
	favorites: list[str] = Field(default_factory=list)
	hidden: list[str] = Field(default_factory=list)


class InvitationPayload(BaseModel):
	type: str = Field(default="coffee_meetup", min_length=1)
	message: Optional[str] = None


class InvitationResponse(BaseModel):
	sent: bool
