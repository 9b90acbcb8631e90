import json

import httpx
import pytest

from nomadnow.domain.directory.models import ViewerProfile
from nomadnow.domain.invitations.client import HttpInvitationService
from nomadnow.domain.invitations.dispatcher import InvitationDispatcher
from nomadnow.domain.invitations.models import InvitationRequest, InvitationResult, InvitationType


SENDER = ViewerProfile(id="me", is_authenticated=True)


def _dispatcher(service, *, viewer=SENDER, known=("u1", "u2"), now=None):
	kwargs = {}
	if now is not None:
		kwargs["clock"] = lambda: now
	return InvitationDispatcher(
		service,
		viewer=lambda: viewer,
		is_known_receiver=lambda receiver_id: receiver_id in known,
		**kwargs,
	)


@pytest.mark.asyncio
async def test_send_builds_request_and_reports_success(invitation_service_cls, now):
	service = invitation_service_cls()
	dispatcher = _dispatcher(service, now=now)

	assert await dispatcher.send("work_together", "u1", "  Cowork tomorrow?  ") is True

	request = service.requests[0]
	assert request.sender_id == "me"
	assert request.receiver_id == "u1"
	assert request.type is InvitationType.COLLABORATION
	assert request.message == "Cowork tomorrow?"
	assert request.created_at == now


@pytest.mark.asyncio
@pytest.mark.parametrize(
	"kwargs",
	[
		{"invitation_type": "dinner", "receiver_id": "u1"},
		{"invitation_type": "coffee_meetup", "receiver_id": "ghost"},
		{"invitation_type": "coffee_meetup", "receiver_id": "me"},
		{"invitation_type": "coffee_meetup", "receiver_id": ""},
		{"invitation_type": "coffee_meetup", "receiver_id": "u1", "message": "x" * 501},
	],
)
async def test_invalid_requests_never_reach_the_service(invitation_service_cls, kwargs):
	service = invitation_service_cls()
	dispatcher = _dispatcher(service, known=("u1", "me"))

	assert await dispatcher.send(**kwargs) is False
	assert service.requests == []


@pytest.mark.asyncio
async def test_anonymous_sender_is_rejected(invitation_service_cls):
	service = invitation_service_cls()
	dispatcher = _dispatcher(service, viewer=ViewerProfile.anonymous())
	assert await dispatcher.send(InvitationType.MEETUP, "u1") is False
	assert service.requests == []


@pytest.mark.asyncio
async def test_message_at_limit_is_accepted(invitation_service_cls):
	service = invitation_service_cls()
	assert await _dispatcher(service).send(InvitationType.MEETUP, "u1", "x" * 500) is True


@pytest.mark.asyncio
async def test_service_failure_and_exception_return_false(invitation_service_cls):
	rejected = invitation_service_cls(InvitationResult(success=False, error="Receiver not found"))
	assert await _dispatcher(rejected).send(InvitationType.MEETUP, "u1") is False
	assert len(rejected.requests) == 1

	class Exploding:
		async def create_invitation(self, request):
			raise RuntimeError("socket closed")

	assert await _dispatcher(Exploding()).send(InvitationType.MEETUP, "u1") is False


@pytest.mark.asyncio
async def test_daily_counters_feed_stats(invitation_service_cls, now):
	ok = _dispatcher(invitation_service_cls(), now=now)
	failing = _dispatcher(invitation_service_cls(InvitationResult(success=False)), now=now)

	assert await ok.today_stats() == (0, 0)
	await ok.send(InvitationType.MEETUP, "u1")
	await ok.send(InvitationType.MEETUP, "u2")
	await failing.send(InvitationType.MEETUP, "u1")
	# validation failures are not dispatch attempts
	await ok.send(InvitationType.MEETUP, "ghost")

	assert await ok.today_stats() == (2, 67)


@pytest.mark.asyncio
async def test_http_service_posts_payload():
	captured = {}

	def handler(request: httpx.Request) -> httpx.Response:
		captured["url"] = str(request.url)
		captured["body"] = json.loads(request.content)
		return httpx.Response(201, json={"success": True, "data": {"id": "inv-9", "status": "pending"}})

	request = InvitationRequest(sender_id="me", receiver_id="u1", type=InvitationType.MEETUP, message="Coffee?")
	async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
		result = await HttpInvitationService(base_url="http://inv.test", http=client).create_invitation(request)

	assert result.success is True
	assert result.data == {"id": "inv-9", "status": "pending"}
	assert captured["url"] == "http://inv.test/api/invitations"
	assert captured["body"] == {
		"sender_id": "me",
		"receiver_id": "u1",
		"invitation_type": "coffee_meetup",
		"message": "Coffee?",
	}


@pytest.mark.asyncio
async def test_http_service_maps_errors_to_results():
	request = InvitationRequest(sender_id="me", receiver_id="u1", type=InvitationType.MEETUP)

	def rejected(request):
		return httpx.Response(409, json={"success": False, "error": "Invitation already pending"})

	def unreachable(request):
		raise httpx.ConnectError("refused", request=request)

	async with httpx.AsyncClient(transport=httpx.MockTransport(rejected)) as client:
		result = await HttpInvitationService(base_url="http://inv.test", http=client).create_invitation(request)
	assert (result.success, result.error) == (False, "Invitation already pending")

	async with httpx.AsyncClient(transport=httpx.MockTransport(unreachable)) as client:
		result = await HttpInvitationService(base_url="http://inv.test", http=client).create_invitation(request)
	assert (result.success, result.error) == (False, "Network error")
