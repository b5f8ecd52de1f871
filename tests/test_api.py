import pytest
from fastapi.testclient import TestClient

from main import app, get_generation_service, get_image_lookup, get_session_manager
from sessions import SessionManager

from tests.conftest import GENERATED_PLAN, ScriptedService, ok, wrap_in_prose

REQUEST = {
    "date": "2026-11-14",
    "window": [18, 36],
    "children": [{"age": 4, "preferences": "loves dinosaurs"}],
    "interests": ["Museums"],
    "budget": "££",
}


class StaticImages:
    async def lookup(self, title):
        return "https://img.test/pic.jpg"


@pytest.fixture
def client():
    sessions = SessionManager()
    app.dependency_overrides[get_session_manager] = lambda: sessions
    app.dependency_overrides[get_image_lookup] = lambda: StaticImages()
    app.dependency_overrides[get_generation_service] = lambda: None
    yield TestClient(app)
    app.dependency_overrides.clear()


def _use_generator(*replies):
    service = ScriptedService(*replies)
    app.dependency_overrides[get_generation_service] = lambda: service
    return service


def test_health(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json()["status"] == "ok"
    assert r.headers["X-Request-Id"]
    assert r.headers["X-Content-Type-Options"] == "nosniff"


def test_interests_lists_catalogue(client):
    interests = client.get("/api/interests").json()["interests"]
    assert interests[0] == "Museums"
    assert "Animals & Zoos" in interests


def test_plan_trip_without_generator_is_degraded(client):
    r = client.post("/api/plan-trip", json=REQUEST)

    assert r.status_code == 200
    body = r.json()
    assert body["degraded"] is True
    assert body["diagnostic"]
    assert [a["title"] for a in body["activities"]] == [
        "Simple Plan: Natural History Museum",
        "Simple Plan: London Eye",
    ]
    assert body["activities"][0]["time"] == "9:00 AM - 11:00 AM"
    assert body["total_duration"] == "9 hours"


def test_plan_trip_with_generator(client):
    _use_generator(ok(wrap_in_prose(GENERATED_PLAN)))

    body = client.post("/api/plan-trip", json=REQUEST).json()

    assert body["degraded"] is False
    assert body["activities"][0]["title"] == "Natural History Museum"


def test_plan_trip_accepts_time_range_alias(client):
    payload = {k: v for k, v in REQUEST.items() if k != "window"}
    payload["timeRange"] = {"start": 20, "end": 30}

    body = client.post("/api/plan-trip", json=payload).json()

    assert body["window"] == {"start": 20, "end": 30}
    assert body["activities"][0]["start_slot"] == 20


@pytest.mark.parametrize(
    "change",
    [
        {"window": [36, 18]},
        {"window": [18, 18]},
        {"window": [18, 60]},
        {"budget": "£££££"},
        {"children": [{"age": 40}]},
        {"interests": [f"interest {i}" for i in range(21)]},
    ],
)
def test_plan_trip_rejects_bad_input(client, change):
    r = client.post("/api/plan-trip", json={**REQUEST, **change})
    assert r.status_code == 422


def test_oversized_body_is_refused(client):
    r = client.post(
        "/api/plan-trip",
        content=b"{" + b" " * (60 * 1024) + b"}",
        headers={"Content-Type": "application/json"},
    )
    assert r.status_code == 413
    assert r.headers["X-Request-Id"]


def test_session_flow(client):
    _use_generator(ok(wrap_in_prose(GENERATED_PLAN)))

    sid = client.post("/api/sessions").json()["session_id"]
    assert client.get(f"/api/sessions/{sid}").json()["state"] == "idle"

    plan = client.post(f"/api/sessions/{sid}/plan", json=REQUEST).json()
    museum, park = plan["activities"]

    view = client.get(f"/api/sessions/{sid}").json()
    assert view["state"] == "ready"
    assert set(view["images"]) == {museum["id"], park["id"]}

    r = client.post(f"/api/sessions/{sid}/activities/{museum['id']}/complete")
    assert r.json() == {"activity_id": museum["id"], "completed": True}
    r = client.put(f"/api/sessions/{sid}/activities/{park['id']}/note", json={"note": "picnic blanket"})
    assert r.json()["note"] == "picnic blanket"

    r = client.post(f"/api/sessions/{sid}/reorder", json={"order": [park["id"], museum["id"]]})
    assert r.status_code == 200
    assert [a["start_slot"] for a in r.json()["activities"]] == [18, 21]

    r = client.post(f"/api/sessions/{sid}/reorder", json={"from_index": 1, "to_index": 0})
    assert [a["id"] for a in r.json()["activities"]] == [museum["id"], park["id"]]

    view = client.get(f"/api/sessions/{sid}").json()
    assert view["completed"] == [museum["id"]]
    assert view["notes"] == {park["id"]: "picnic blanket"}

    r = client.delete(f"/api/sessions/{sid}/itinerary")
    assert r.json()["state"] == "idle"
    r = client.post(f"/api/sessions/{sid}/reorder", json={"from_index": 0, "to_index": 1})
    assert r.status_code == 409


def test_session_errors(client):
    assert client.get("/api/sessions/missing").status_code == 404
    assert client.post("/api/sessions/missing/plan", json=REQUEST).status_code == 404

    sid = client.post("/api/sessions").json()["session_id"]
    client.post(f"/api/sessions/{sid}/plan", json=REQUEST)

    assert client.post(f"/api/sessions/{sid}/reorder", json={"order": ["a", "b"]}).status_code == 400
    assert client.post(f"/api/sessions/{sid}/reorder", json={"from_index": 0, "to_index": 9}).status_code == 400
    assert client.post(f"/api/sessions/{sid}/reorder", json={}).status_code == 422
    assert client.post(f"/api/sessions/{sid}/activities/nope/complete").status_code == 404
    assert client.put(f"/api/sessions/{sid}/activities/nope/note", json={"note": "x"}).status_code == 404
