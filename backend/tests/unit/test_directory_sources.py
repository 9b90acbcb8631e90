import json

import httpx
import pytest

from nomadnow.domain.directory.exceptions import SourceUnavailable
from nomadnow.domain.directory.sources import (
	LocalProfileSource,
	RemoteApiSource,
	SampleSource,
	normalize_local,
	normalize_remote,
)


def _client(handler) -> httpx.AsyncClient:
	return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def test_normalize_remote_applies_aliases_and_defaults():
	record = normalize_remote(
		{
			"id": 42,
			"name": "  Ana  ",
			"avatar_url": "https://cdn.example/ana.png",
			"current_city": "Lisbon",
			"coordinates": {"latitude": 38.7, "lon": -9.1},
			"interests": "Coffee, Surfing ,",
			"wifiSpeed": 85,
			"updatedAt": "2024-06-01T11:00:00Z",
		}
	)

	assert record.id == "42"
	assert record.name == "Ana"
	assert record.avatar == "https://cdn.example/ana.png"
	assert record.location == "Lisbon"
	assert record.coordinates is not None
	assert (record.coordinates.lat, record.coordinates.lng) == (38.7, -9.1)
	assert record.interests == ("Coffee", "Surfing")
	assert record.wifi_speed_mbps == 85
	assert record.last_active is not None and record.last_active.hour == 11
	assert record.profession == "Digital Nomad"
	assert record.bio == "Digital nomad exploring the world!"
	assert record.source == "remote"


def test_normalize_remote_defaults_for_sparse_record():
	record = normalize_remote({"id": "u1"})
	assert record.name == "Anonymous"
	assert record.avatar == "AN"
	assert record.location == "Unknown Location"
	assert record.coordinates is None
	assert record.interests == ()
	assert record.rating == 0


def test_partial_coordinates_are_dropped():
	record = normalize_remote({"id": "u1", "coordinates": {"lat": 10.0}})
	assert record.coordinates is None


@pytest.mark.parametrize(
	"raw",
	[
		{"id": "u1", "name": None},
		{"id": "u1", "name": "   "},
		{"id": "u1", "name": ["not", "a", "name"]},
	],
)
def test_blank_or_invalid_name_falls_back_to_anonymous(raw):
	assert normalize_remote(raw).name == "Anonymous"


def test_null_and_garbage_fields_take_defaults():
	record = normalize_remote(
		{
			"id": "u2",
			"name": "Ana",
			"meetup_count": None,
			"updated_at": "not-a-date",
			"created_at": "also-not-a-date",
			"wifi_speed": "fast",
			"profession": None,
			"location": 12,
			"bio": {"text": "hi"},
			"coordinates": {"lat": "north", "lng": 3},
		}
	)
	assert record.meetup_count == 0
	assert record.last_active is None
	assert record.wifi_speed_mbps is None
	assert record.profession == "Digital Nomad"
	assert record.location == "12"
	assert record.bio == "Digital nomad exploring the world!"
	assert record.coordinates is None


def test_negative_counts_and_speeds_are_ignored():
	record = normalize_remote({"id": "u3", "meetup_count": -4, "wifi_speed": -1, "createdAt": "2024-05-01T00:00:00Z"})
	assert record.meetup_count == 0
	assert record.wifi_speed_mbps is None
	assert record.last_active is not None and record.last_active.month == 5


def test_local_whitespace_name_is_not_kept_blank():
	record = normalize_local({"user_id": "u8", "name": "   "})
	assert record.name == "Anonymous"
	assert record.avatar == "AN"


def test_normalize_local_uses_its_own_shape():
	record = normalize_local({"user_id": "u9", "name": "Bo", "location": "Bali", "internet_speed": 40})
	assert record.id == "u9"
	assert record.location == "Bali"
	assert record.wifi_speed_mbps == 40
	assert record.source == "local"


@pytest.mark.asyncio
async def test_remote_source_reads_users_and_skips_malformed():
	seen = {}

	def handler(request: httpx.Request) -> httpx.Response:
		seen["url"] = str(request.url)
		return httpx.Response(
			200,
			json={"success": True, "users": [{"id": "u1", "name": "Ana"}, {"name": "No Id"}, "junk"]},
		)

	async with _client(handler) as client:
		source = RemoteApiSource(base_url="http://users.test/", include_hidden=True, http=client)
		records = await source.fetch()

	assert [r.id for r in records] == ["u1"]
	assert seen["url"] == "http://users.test/api/users?include_hidden=true"


@pytest.mark.asyncio
async def test_remote_source_accepts_bare_list():
	async with _client(lambda request: httpx.Response(200, json=[{"id": "a"}, {"id": "b"}])) as client:
		records = await RemoteApiSource(base_url="http://users.test", http=client).fetch()
	assert [r.id for r in records] == ["a", "b"]


@pytest.mark.asyncio
@pytest.mark.parametrize(
	"response,reason",
	[
		(httpx.Response(500, json={"error": "boom"}), "http_500"),
		(httpx.Response(200, content=b"not json"), "invalid_json"),
		(httpx.Response(200, json={"success": False, "error": "denied"}), "denied"),
		(httpx.Response(200, json="text"), "unexpected_payload"),
	],
)
async def test_remote_source_failures_raise_source_unavailable(response, reason):
	async with _client(lambda request: response) as client:
		with pytest.raises(SourceUnavailable) as excinfo:
			await RemoteApiSource(base_url="http://users.test", http=client).fetch()
	assert excinfo.value.source == "remote"
	assert excinfo.value.reason == reason


@pytest.mark.asyncio
async def test_remote_source_network_error():
	def handler(request):
		raise httpx.ConnectError("refused", request=request)

	async with _client(handler) as client:
		with pytest.raises(SourceUnavailable) as excinfo:
			await RemoteApiSource(base_url="http://users.test", http=client).fetch()
	assert excinfo.value.reason == "network_error"


@pytest.mark.asyncio
async def test_local_source_scans_profiles_and_skips_unreadable(fake_redis):
	await fake_redis.set("nomads:profile:b", json.dumps({"id": "b", "name": "Bea"}))
	await fake_redis.set("nomads:profile:a", json.dumps({"id": "a", "name": "Al"}))
	await fake_redis.set("nomads:profile:broken", "{not json")
	await fake_redis.set("nomads:profile:nameless", json.dumps({"id": "c"}))
	await fake_redis.set("other:key", json.dumps({"id": "x", "name": "X"}))

	records = await LocalProfileSource(prefix="nomads:profile:").fetch()

	assert [r.id for r in records] == ["a", "b"]
	assert all(r.source == "local" for r in records)


@pytest.mark.asyncio
async def test_sample_source_is_labeled(now):
	records = await SampleSource(clock=lambda: now).fetch()
	assert records
	assert all(r.is_sample for r in records)
	assert len({r.id for r in records}) == len(records)
