import pytest

HEADERS = {"X-User-Id": "viewer-api"}


@pytest.mark.asyncio
async def test_list_requires_authentication(api_client):
	response = await api_client.get("/nomads")
	assert response.status_code == 401
	assert response.json()["detail"] == "invalid_token"


@pytest.mark.asyncio
async def test_list_nomads(api_client):
	response = await api_client.get("/nomads", headers=HEADERS)
	assert response.status_code == 200
	body = response.json()
	assert [item["id"] for item in body["items"]] == ["u-near", "u-mid"]
	assert body["items"][0]["is_online"] is True
	assert body["stats"]["total_users"] == 3
	assert body["stats"]["online_users"] == 1
	assert body["stats"]["available_users"] == 1
	assert body["filters"]["max_distance"] == 50.0
	assert body["pagination"] == {
		"mode": "page",
		"page_size": 9,
		"current_page": 1,
		"total_pages": 1,
		"has_more": False,
		"total": 2,
	}
	assert body["used_sample"] is False
	assert body["error"] is None


@pytest.mark.asyncio
async def test_update_and_reset_filters(api_client):
	response = await api_client.put("/nomads/filters", json={"clear_max_distance": True}, headers=HEADERS)
	assert response.status_code == 200
	assert [item["id"] for item in response.json()["items"]] == ["u-near", "u-mid", "u-far"]

	response = await api_client.put(
		"/nomads/filters",
		json={"search_query": "design", "interests": []},
		headers=HEADERS,
	)
	assert [item["id"] for item in response.json()["items"]] == ["u-mid"]

	response = await api_client.put("/nomads/filters", json={"max_distance": -5}, headers=HEADERS)
	assert response.status_code == 422

	response = await api_client.delete("/nomads/filters", headers=HEADERS)
	body = response.json()
	assert body["filters"]["search_query"] == ""
	assert [item["id"] for item in body["items"]] == ["u-near", "u-mid"]


@pytest.mark.asyncio
async def test_page_out_of_range(api_client):
	response = await api_client.post("/nomads/page/2", headers=HEADERS)
	assert response.status_code == 400
	assert response.json()["detail"] == "page_out_of_range"


@pytest.mark.asyncio
async def test_favorite_and_hide(api_client, api_registry):
	response = await api_client.post("/nomads/u-mid/favorite", headers=HEADERS)
	assert response.json() == {"favorites": ["u-mid"], "hidden": []}

	response = await api_client.post("/nomads/u-mid/hide", headers=HEADERS)
	assert response.json() == {"favorites": [], "hidden": ["u-mid"]}

	listing = (await api_client.get("/nomads", headers=HEADERS)).json()
	assert [item["id"] for item in listing["items"]] == ["u-near"]
	assert (await api_client.get("/nomads/u-mid", headers=HEADERS)).status_code == 404

	response = await api_client.delete("/nomads/u-mid/hide", headers=HEADERS)
	assert response.json() == {"favorites": [], "hidden": []}
	assert api_registry.stores["viewer-api"].calls == [
		("add_favorite", "u-mid"),
		("hide", "u-mid"),
		("show", "u-mid"),
	]


@pytest.mark.asyncio
async def test_directories_are_per_viewer(api_client):
	await api_client.post("/nomads/u-near/hide", headers=HEADERS)
	other = await api_client.get("/nomads", headers={"X-User-Id": "someone-else"})
	assert [item["id"] for item in other.json()["items"]] == ["u-near", "u-mid"]


@pytest.mark.asyncio
async def test_send_invitation(api_client, api_registry):
	response = await api_client.post(
		"/nomads/u-near/invitations",
		json={"type": "work_together", "message": "Cowork at the library?"},
		headers=HEADERS,
	)
	assert response.status_code == 200
	assert response.json() == {"sent": True}
	request = api_registry.services["viewer-api"].requests[0]
	assert request.receiver_id == "u-near"
	assert request.message == "Cowork at the library?"

	stats = (await api_client.get("/nomads", headers=HEADERS)).json()["stats"]
	assert stats["today_meetups"] == 1
	assert stats["success_rate"] == 100

	response = await api_client.post("/nomads/nobody/invitations", json={}, headers=HEADERS)
	assert response.json() == {"sent": False}


@pytest.mark.asyncio
async def test_get_nomad(api_client):
	response = await api_client.get("/nomads/u-near", headers=HEADERS)
	assert response.status_code == 200
	body = response.json()
	assert body["name"] == "Near Nomad"
	assert body["distance"] == pytest.approx(1.1)
	assert body["last_seen"] == "5m ago"

	response = await api_client.get("/nomads/ghost", headers=HEADERS)
	assert response.status_code == 404
	assert response.json()["detail"] == "nomad_not_found"


@pytest.mark.asyncio
async def test_refresh_and_storage_signal(api_client):
	response = await api_client.post("/nomads/refresh", headers=HEADERS)
	assert response.status_code == 200
	assert response.json()["loading"] is False

	response = await api_client.post("/nomads/signals/storage-changed", json={"key": "theme"}, headers=HEADERS)
	assert response.status_code == 200


@pytest.mark.asyncio
async def test_health_and_metrics(api_client):
	response = await api_client.get("/health")
	assert response.status_code == 200
	assert response.json()["status"] == "ok"

	response = await api_client.get("/health/ready")
	assert response.status_code == 200
	assert response.json()["redis"]["ok"] is True

	await api_client.get("/nomads", headers=HEADERS)
	response = await api_client.get("/metrics")
	assert response.status_code == 200
	assert "nomadnow_directory_refreshes_total" in response.text
