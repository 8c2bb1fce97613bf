import pytest

from app.api.routers.trips import get_maps_client
from app.core import llm_provider
from app.core.errors import ExternalLookupFailed
from app.core.llm_provider import RemoteLLMProvider
from app.core.maps_service import DirectionsResult, PlaceResult

LOUVRE = PlaceResult(
    place_id="pid_louvre",
    name="Musée du Louvre",
    address="Rue de Rivoli, 75001 Paris, France",
    lat=48.8606,
    lng=2.3376,
)


async def create_trip(client, headers, **overrides) -> dict:
    body = {"title": "Spring in Paris", "destination": "Paris", **overrides}
    response = await client.post("/trips", json=body, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()


# ----------------------------------------------
# Health and authentication
# ----------------------------------------------
@pytest.mark.asyncio
async def test_health(client):
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"ok": True}


@pytest.mark.asyncio
async def test_register_login_refresh_logout(client):
    response = await client.post(
        "/auth/register",
        json={"email": "ada@example.com", "name": "Ada", "password": "s3cret-pass"},
    )
    assert response.status_code == 201
    user = response.json()["user"]
    assert user["email"] == "ada@example.com"
    assert "passwordHash" not in user and "password_hash" not in user

    me = await client.get("/auth/me")
    assert me.status_code == 200
    assert me.json()["user"]["id"] == user["id"]

    duplicate = await client.post(
        "/auth/register",
        json={"email": "ada@example.com", "name": "Ada", "password": "s3cret-pass"},
    )
    assert duplicate.status_code == 409

    client.cookies.clear()
    bad_login = await client.post(
        "/auth/login", json={"email": "ada@example.com", "password": "wrong-password"}
    )
    assert bad_login.status_code == 401
    assert bad_login.json()["detail"] == "Invalid credentials"

    login = await client.post(
        "/auth/login", json={"email": "ada@example.com", "password": "s3cret-pass"}
    )
    assert login.status_code == 200

    refreshed = await client.post("/auth/refresh")
    assert refreshed.status_code == 200
    assert refreshed.json()["user"]["id"] == user["id"]

    logout = await client.post("/auth/logout")
    assert logout.status_code == 204

    client.cookies.clear()
    assert (await client.get("/auth/me")).status_code == 401
    assert (await client.post("/auth/refresh")).status_code == 401


@pytest.mark.asyncio
async def test_invalid_bearer_token_is_rejected(client):
    response = await client.get("/trips", headers={"Authorization": "Bearer nope"})
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_foreign_origin_is_blocked(client, register_user):
    headers = await register_user("ada@example.com")

    blocked = await client.post(
        "/trips",
        json={"title": "x", "destination": "y"},
        headers={**headers, "Origin": "https://evil.example"},
    )
    assert blocked.status_code == 403
    assert blocked.json()["detail"] == "Origin not allowed"

    allowed = await client.post(
        "/trips",
        json={"title": "x", "destination": "y"},
        headers={**headers, "Origin": "http://localhost:5173"},
    )
    assert allowed.status_code == 201


# ----------------------------------------------
# Settings
# ----------------------------------------------
@pytest.mark.asyncio
async def test_settings_store_api_key_without_exposing_it(client, register_user, repo):
    headers = await register_user("ada@example.com")

    initial = await client.get("/settings", headers=headers)
    assert initial.json() == {
        "settings": {"llmProvider": "mock", "llmModel": None, "apiKeyProviders": []}
    }

    response = await client.put(
        "/settings",
        json={"llmProvider": "openai", "llmModel": "gpt-4o", "apiKey": "sk-live-123"},
        headers=headers,
    )
    assert response.status_code == 200
    assert response.json()["settings"] == {
        "llmProvider": "openai",
        "llmModel": "gpt-4o",
        "apiKeyProviders": ["openai"],
    }
    assert "sk-live-123" not in response.text

    stored = next(iter(repo.users.values())).settings
    assert stored.encrypted_api_keys["openai"] != "sk-live-123"

    unknown = await client.put("/settings", json={"llmProvider": "llama"}, headers=headers)
    assert unknown.status_code == 422


# ----------------------------------------------
# Trips and collaborators
# ----------------------------------------------
@pytest.mark.asyncio
async def test_create_trip_reindexes_days(client, register_user):
    headers = await register_user("ada@example.com")

    trip = await create_trip(
        client,
        headers,
        days=[
            {"dayIndex": 4, "date": "2024-05-03", "items": [{"title": "Orsay"}]},
            {"dayIndex": 0, "date": "2024-05-01", "items": [{"title": "Louvre"}]},
            {"dayIndex": 7, "date": "2024-05-02", "items": []},
        ],
    )

    assert [d["dayIndex"] for d in trip["days"]] == [0, 1, 2]
    assert trip["days"][0]["items"][0]["title"] == "Louvre"
    assert trip["days"][2]["items"][0]["title"] == "Orsay"
    assert all(d["id"] for d in trip["days"])
    assert trip["days"][0]["items"][0]["id"]

    listed = await client.get("/trips", headers=headers)
    assert [t["id"] for t in listed.json()] == [trip["id"]]


@pytest.mark.asyncio
async def test_create_trip_rejects_bad_dates(client, register_user):
    headers = await register_user("ada@example.com")

    response = await client.post(
        "/trips",
        json={"title": "x", "destination": "y", "days": [{"date": "someday", "items": []}]},
        headers=headers,
    )
    assert response.status_code == 400
    assert response.json()["detail"] == "Invalid date"


@pytest.mark.asyncio
async def test_update_replaces_days_and_keeps_order(client, register_user):
    headers = await register_user("ada@example.com")
    trip = await create_trip(client, headers)

    response = await client.put(
        f"/trips/{trip['id']}",
        json={
            "title": "Autumn in Paris",
            "days": [
                {"date": "2024-10-02T00:00:00Z", "items": [{"title": "b"}]},
                {"date": "2024-10-01T00:00:00Z", "items": [{"title": "a"}]},
            ],
        },
        headers=headers,
    )

    assert response.status_code == 200
    body = response.json()
    assert body["title"] == "Autumn in Paris"
    assert body["destination"] == "Paris"
    assert [d["items"][0]["title"] for d in body["days"]] == ["a", "b"]
    assert [d["dayIndex"] for d in body["days"]] == [0, 1]


@pytest.mark.asyncio
async def test_collaborator_roles(client, register_user):
    owner = await register_user("owner@example.com")
    viewer = await register_user("viewer@example.com")
    stranger = await register_user("stranger@example.com")
    trip = await create_trip(client, owner)
    trip_url = f"/trips/{trip['id']}"

    assert (await client.get(trip_url, headers=stranger)).status_code == 403

    added = await client.post(
        f"{trip_url}/collaborators",
        json={"email": "viewer@example.com", "role": "viewer"},
        headers=owner,
    )
    assert added.status_code == 201
    collaborator = added.json()["collaborators"][0]
    assert collaborator["role"] == "viewer"
    viewer_id = collaborator["userId"]

    assert (await client.get(trip_url, headers=viewer)).status_code == 200
    assert [t["id"] for t in (await client.get("/trips", headers=viewer)).json()] == [trip["id"]]
    assert (await client.put(trip_url, json={"title": "mine"}, headers=viewer)).status_code == 403
    assert (
        await client.post(f"{trip_url}/generate-itinerary", json={"prompt": "x"}, headers=viewer)
    ).status_code == 403

    duplicate = await client.post(
        f"{trip_url}/collaborators",
        json={"email": "viewer@example.com", "role": "editor"},
        headers=owner,
    )
    assert duplicate.status_code == 409

    self_invite = await client.post(
        f"{trip_url}/collaborators",
        json={"email": "owner@example.com", "role": "editor"},
        headers=owner,
    )
    assert self_invite.status_code == 400

    unknown = await client.post(
        f"{trip_url}/collaborators",
        json={"email": "nobody@example.com", "role": "editor"},
        headers=owner,
    )
    assert unknown.status_code == 404

    not_owner = await client.post(
        f"{trip_url}/collaborators",
        json={"email": "stranger@example.com", "role": "editor"},
        headers=viewer,
    )
    assert not_owner.status_code == 403

    promoted = await client.put(
        f"{trip_url}/collaborators/{viewer_id}", json={"role": "editor"}, headers=owner
    )
    assert promoted.status_code == 200
    assert (await client.put(trip_url, json={"title": "ours"}, headers=viewer)).status_code == 200
    assert (await client.delete(trip_url, headers=viewer)).status_code == 403

    removed = await client.delete(f"{trip_url}/collaborators/{viewer_id}", headers=owner)
    assert removed.status_code == 204
    assert (await client.get(trip_url, headers=viewer)).status_code == 403

    assert (await client.delete(trip_url, headers=owner)).status_code == 204
    assert (await client.get(trip_url, headers=owner)).status_code == 404


# ----------------------------------------------
# Generation
# ----------------------------------------------
@pytest.mark.asyncio
async def test_generate_with_mock_provider(client, register_user):
    headers = await register_user("ada@example.com")
    trip = await create_trip(
        client,
        headers,
        destination="Tokyo",
        startDate="2024-05-01T00:00:00Z",
        endDate="2024-05-03T00:00:00Z",
    )

    response = await client.post(
        f"/trips/{trip['id']}/generate-itinerary",
        json={"prompt": "temples and food"},
        headers=headers,
    )

    assert response.status_code == 200, response.text
    days = response.json()["days"]
    assert [d["dayIndex"] for d in days] == [0, 1, 2]
    assert [d["date"][:10] for d in days] == ["2024-05-01", "2024-05-02", "2024-05-03"]
    assert all(len(d["items"]) == 3 for d in days)
    assert days[0]["items"][0]["title"] == "Morning explore Tokyo"


@pytest.mark.asyncio
async def test_generate_without_dates_uses_three_days(client, register_user):
    headers = await register_user("ada@example.com")
    trip = await create_trip(client, headers)

    response = await client.post(
        f"/trips/{trip['id']}/generate-itinerary", json={"prompt": ""}, headers=headers
    )

    assert response.status_code == 200
    assert len(response.json()["days"]) == 3


@pytest.mark.asyncio
async def test_generate_with_openai_requires_api_key(client, register_user, repo):
    headers = await register_user("ada@example.com")
    await client.put("/settings", json={"llmProvider": "openai"}, headers=headers)
    trip = await create_trip(client, headers)

    response = await client.post(
        f"/trips/{trip['id']}/generate-itinerary", json={"prompt": "museums"}, headers=headers
    )

    assert response.status_code == 400
    assert response.json()["detail"] == "API key required for provider openai"
    assert repo.saved_trip_ids == []


@pytest.mark.asyncio
async def test_generate_with_unimplemented_provider(client, register_user):
    headers = await register_user("ada@example.com")
    await client.put("/settings", json={"llmProvider": "gemini", "apiKey": "g-key"}, headers=headers)
    trip = await create_trip(client, headers)

    response = await client.post(
        f"/trips/{trip['id']}/generate-itinerary", json={"prompt": "x"}, headers=headers
    )

    assert response.status_code == 400
    assert "not implemented" in response.json()["detail"]


@pytest.mark.asyncio
async def test_generate_failure_after_retry_is_bad_gateway(client, register_user, repo, monkeypatch):
    calls = []

    async def _fail(self, options):
        calls.append(options.api_key)
        raise RuntimeError("rate limited")

    monkeypatch.setattr(llm_provider.ai, "Client", lambda config: object())
    monkeypatch.setattr(RemoteLLMProvider, "generate_itinerary", _fail)

    headers = await register_user("ada@example.com")
    await client.put(
        "/settings", json={"llmProvider": "openai", "apiKey": "sk-live-123"}, headers=headers
    )
    trip = await create_trip(client, headers)

    response = await client.post(
        f"/trips/{trip['id']}/generate-itinerary", json={"prompt": "x"}, headers=headers
    )

    assert response.status_code == 502
    assert response.json()["detail"] == "rate limited"
    assert calls == ["sk-live-123", "sk-live-123"]
    assert repo.saved_trip_ids == []


# ----------------------------------------------
# Enrichment and routing
# ----------------------------------------------
@pytest.mark.asyncio
async def test_enrich_persists_only_when_updated(client, register_user, repo, maps_client):
    maps_client.places = {"Louvre, Paris": LOUVRE}
    headers = await register_user("ada@example.com")
    trip = await create_trip(
        client, headers, days=[{"date": "2024-05-01", "items": [{"title": "Louvre"}]}]
    )

    response = await client.post(f"/trips/{trip['id']}/enrich", headers=headers)

    assert response.status_code == 200
    item = response.json()["days"][0]["items"][0]
    assert item["location"]["placeId"] == "pid_louvre"
    assert item["location"]["address"] == LOUVRE.address
    assert [link["label"] for link in item["links"]] == ["Google Maps", "Search", "Booking"]
    assert repo.saved_trip_ids == [trip["id"]]

    again = await client.post(f"/trips/{trip['id']}/enrich", json={"dayIndex": 0}, headers=headers)
    assert again.status_code == 200
    assert again.json()["days"] == response.json()["days"]
    assert repo.saved_trip_ids == [trip["id"]]


@pytest.mark.asyncio
async def test_enrich_lookup_failure_is_not_persisted(client, register_user, repo, maps_client):
    maps_client.error = ExternalLookupFailed("You have exceeded your daily request quota")
    headers = await register_user("ada@example.com")
    trip = await create_trip(
        client, headers, days=[{"date": "2024-05-01", "items": [{"title": "Louvre"}]}]
    )

    response = await client.post(f"/trips/{trip['id']}/enrich", headers=headers)

    assert response.status_code == 502
    assert "quota" in response.json()["detail"]
    assert repo.saved_trip_ids == []
    assert repo.trips[trip["id"]].days[0].items[0].location is None


@pytest.mark.asyncio
async def test_route_day(client, register_user, maps_client):
    maps_client.directions = DirectionsResult(polyline="encoded", distance_meters=300, duration_seconds=150)
    headers = await register_user("ada@example.com")
    located = [
        {"title": "Louvre", "location": {"lat": 48.8606, "lng": 2.3376}},
        {"title": "Orsay", "location": {"lat": 48.86, "lng": 2.3266}},
    ]
    trip = await create_trip(
        client,
        headers,
        days=[
            {"date": "2024-05-01", "items": located},
            {"date": "2024-05-02", "items": located[:1]},
        ],
    )

    response = await client.post(
        f"/trips/{trip['id']}/route", json={"mode": "walking"}, headers=headers
    )

    assert response.status_code == 200
    days = response.json()["days"]
    assert days[0]["routes"] == {
        "mode": "walking",
        "polyline": "encoded",
        "distanceMeters": 300,
        "durationSeconds": 150,
    }
    assert days[1]["routes"] is None
    assert len(maps_client.direction_calls) == 1


@pytest.mark.asyncio
async def test_maps_endpoints_need_server_key(app, client, register_user, monkeypatch):
    app.dependency_overrides.pop(get_maps_client)
    monkeypatch.setenv("GOOGLE_MAPS_API_KEY", "")
    headers = await register_user("ada@example.com")
    trip = await create_trip(client, headers)

    response = await client.post(f"/trips/{trip['id']}/route", headers=headers)

    assert response.status_code == 503


@pytest.mark.asyncio
async def test_unknown_trip_is_not_found(client, register_user):
    headers = await register_user("ada@example.com")
    response = await client.post("/trips/trip_missing/enrich", headers=headers)
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_generate_client_init_failure_is_bad_gateway(client, register_user, repo, monkeypatch):
    def _broken(config):
        raise ValueError("unsupported provider config")

    monkeypatch.setattr(llm_provider.ai, "Client", _broken)

    headers = await register_user("ada@example.com")
    await client.put(
        "/settings", json={"llmProvider": "openai", "apiKey": "sk-live-123"}, headers=headers
    )
    trip = await create_trip(client, headers)

    response = await client.post(
        f"/trips/{trip['id']}/generate-itinerary", json={"prompt": "x"}, headers=headers
    )

    assert response.status_code == 502
    assert response.json()["detail"].startswith("Failed to initialize openai client")
    assert repo.saved_trip_ids == []
