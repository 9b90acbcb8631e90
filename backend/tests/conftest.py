import asyncio
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Callable, Optional

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from fakeredis.aioredis import FakeRedis

# Ensure backend package is importable when tests run from repo root
BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
	sys.path.insert(0, str(BACKEND_ROOT))

from nomadnow.domain.directory.engine import NomadDirectory
from nomadnow.domain.directory.exceptions import SourceUnavailable
from nomadnow.domain.directory.models import Coordinates, NomadRecord, ViewerProfile
from nomadnow.domain.directory.registry import DirectoryRegistry, get_registry
from nomadnow.domain.invitations.models import InvitationRequest, InvitationResult
from nomadnow.domain.preferences.store import PreferenceSet
from nomadnow.main import app
from nomadnow.settings import settings

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


class StaticSource:
	def __init__(self, name: str, records: list[NomadRecord]) -> None:
		self.name = name
		self.records = list(records)
		self.calls = 0

	async def fetch(self) -> list[NomadRecord]:
		self.calls += 1
		return list(self.records)


class FailingSource:
	def __init__(self, name: str, exc: Optional[Exception] = None) -> None:
		self.name = name
		self.exc = exc or SourceUnavailable(name, "network_error")
		self.calls = 0

	async def fetch(self) -> list[NomadRecord]:
		self.calls += 1
		raise self.exc


class MemoryPreferenceStore:
	"""In-memory store recording every call in order."""

	def __init__(self, initial: Optional[PreferenceSet] = None, *, fail_writes: bool = False) -> None:
		self.state = initial.copy() if initial else PreferenceSet()
		self.fail_writes = fail_writes
		self.calls: list[tuple[str, str]] = []
		self.load_gate: Optional[asyncio.Event] = None
		self.write_gate: Optional[asyncio.Event] = None

	async def get_preferences(self, viewer_id: str) -> PreferenceSet:
		if self.load_gate is not None:
			await self.load_gate.wait()
		return self.state.copy()

	async def _write(self, op: str, target_id: str) -> bool:
		self.calls.append((op, target_id))
		if self.write_gate is not None:
			await self.write_gate.wait()
		else:
			await asyncio.sleep(0)
		if self.fail_writes:
			return False
		getattr(self.state, op)(target_id)
		return True

	async def add_favorite(self, viewer_id: str, target_id: str) -> bool:
		return await self._write("add_favorite", target_id)

	async def remove_favorite(self, viewer_id: str, target_id: str) -> bool:
		return await self._write("remove_favorite", target_id)

	async def hide_user(self, viewer_id: str, target_id: str) -> bool:
		return await self._write("hide", target_id)

	async def show_user(self, viewer_id: str, target_id: str) -> bool:
		return await self._write("show", target_id)


class RecordingInvitationService:
	def __init__(self, result: Optional[InvitationResult] = None) -> None:
		self.result = result or InvitationResult(success=True, data={"id": "inv-1"})
		self.requests: list[InvitationRequest] = []

	async def create_invitation(self, request: InvitationRequest) -> InvitationResult:
		self.requests.append(request)
		return self.result


def build_record(
	record_id: str,
	*,
	name: Optional[str] = None,
	lat: Optional[float] = None,
	lng: Optional[float] = None,
	minutes_ago: Optional[float] = 10,
	interests: tuple[str, ...] = (),
	profession: str = "Digital Nomad",
	location: str = "Lisbon",
	source: str = "remote",
) -> NomadRecord:
	coords = Coordinates(lat=lat, lng=lng) if lat is not None and lng is not None else None
	last_active = NOW - timedelta(minutes=minutes_ago) if minutes_ago is not None else None
	display = name or f"Nomad {record_id}"
	return NomadRecord(
		id=record_id,
		name=display,
		avatar=display[:2].upper(),
		profession=profession,
		location=location,
		coordinates=coords,
		interests=interests,
		last_active=last_active,
		source=source,  # type: ignore[arg-type]
	)


# Ensure a selector-based event loop policy on Windows to avoid Proactor issues with async IO
if hasattr(asyncio, "WindowsSelectorEventLoopPolicy"):
	try:
		asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())
	except Exception:
		# Non-fatal; proceed with default policy
		pass


@pytest_asyncio.fixture(autouse=True)
async def fake_redis():
	from nomadnow.infra.redis import redis_client, set_redis_client
	original = redis_client._client
	client = FakeRedis(decode_responses=True)
	set_redis_client(client)
	try:
		yield client
	finally:
		set_redis_client(original)
		await client.flushall()


@pytest.fixture(autouse=True)
def force_test_settings():
	"""Ensure a consistent test environment.

	API tests authenticate via X-User-Id headers, which are only accepted in dev
	mode. Background refresh timers stay off unless a test starts one itself.
	"""
	original_env = settings.environment
	original_realtime = settings.nomads_realtime_updates
	original_page_size = settings.nomads_page_size
	settings.environment = "dev"
	settings.nomads_realtime_updates = False
	settings.nomads_page_size = 9
	try:
		yield
	finally:
		settings.environment = original_env
		settings.nomads_realtime_updates = original_realtime
		settings.nomads_page_size = original_page_size


@pytest.fixture
def now() -> datetime:
	return NOW


@pytest.fixture
def make_record() -> Callable[..., NomadRecord]:
	return build_record


@pytest.fixture
def viewer() -> ViewerProfile:
	return ViewerProfile(id="viewer-1", is_authenticated=True, interests=("Coffee", "Surfing"), coordinates=Coordinates(0.0, 0.0))


@pytest_asyncio.fixture
async def make_engine(viewer):
	"""Build engines wired to in-memory collaborators; closed after the test."""
	engines: list[NomadDirectory] = []

	def _make(
		sources,
		*,
		store: Optional[MemoryPreferenceStore] = None,
		service: Optional[RecordingInvitationService] = None,
		viewer_profile: Optional[ViewerProfile] = None,
		**kwargs,
	) -> NomadDirectory:
		kwargs.setdefault("realtime", False)
		kwargs.setdefault("clock", lambda: NOW)
		engine = NomadDirectory(
			viewer=viewer_profile or viewer,
			sources=sources,
			preference_store=store or MemoryPreferenceStore(),
			invitation_service=service or RecordingInvitationService(),
			**kwargs,
		)
		engines.append(engine)
		return engine

	yield _make

	for engine in engines:
		if engine.alive:
			await engine.close()


@pytest.fixture
def memory_store_cls():
	return MemoryPreferenceStore


@pytest.fixture
def invitation_service_cls():
	return RecordingInvitationService


@pytest.fixture
def static_source_cls():
	return StaticSource


@pytest.fixture
def failing_source_cls():
	return FailingSource


@pytest_asyncio.fixture
async def api_registry():
	"""Registry whose engines read a fixed directory and keep preferences in memory."""
	records = [
		build_record("u-near", name="Near Nomad", lat=0.01, lng=0.0, interests=("Coffee",), minutes_ago=5),
		build_record("u-mid", name="Mid Nomad", lat=0.1, lng=0.0, interests=("Design",), minutes_ago=300),
		build_record("u-far", name="Far Nomad", lat=5.0, lng=0.0, minutes_ago=2000),
	]
	stores: dict[str, MemoryPreferenceStore] = {}
	services: dict[str, RecordingInvitationService] = {}

	def factory(user, timer, bus):
		stores.setdefault(user.id, MemoryPreferenceStore())
		services.setdefault(user.id, RecordingInvitationService())
		return NomadDirectory(
			viewer=ViewerProfile(id=user.id, is_authenticated=True, coordinates=Coordinates(0.0, 0.0)),
			sources=[StaticSource("remote", records)],
			preference_store=stores[user.id],
			invitation_service=services[user.id],
			timer=timer,
			bus=bus,
			realtime=False,
			clock=lambda: NOW,
		)

	registry = DirectoryRegistry(factory)
	registry.stores = stores  # type: ignore[attr-defined]
	registry.services = services  # type: ignore[attr-defined]
	app.dependency_overrides[get_registry] = lambda: registry
	try:
		yield registry
	finally:
		app.dependency_overrides.pop(get_registry, None)
		await registry.close()


@pytest_asyncio.fixture
async def api_client(api_registry):
	transport = ASGITransport(app=app)
	async with AsyncClient(transport=transport, base_url="http://testserver") as client:
		yield client
