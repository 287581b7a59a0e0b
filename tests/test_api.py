"""HTTP-level tests against an in-memory store."""

import pytest

from errors import StoreFailure


def test_root_and_health(client):
    r = client.get("/")
    assert r.status_code == 200
    assert "carbon ledger" in r.json()["message"]

    h = client.get("/health")
    assert h.status_code == 200
    assert h.json() == {"status": "OK", "message": "Server is running", "store": "connected"}


def test_schema(client):
    data = client.get("/schema").json()
    assert set(data) == {"scanentry", "useraccount", "center"}
    assert "co2Saved" in data["scanentry"]["properties"]


def test_categories(client):
    data = client.get("/api/carbon/categories").json()
    plastic = next(c for c in data["categories"] if c["category"] == "plastic")
    assert plastic == {"category": "plastic", "averageWeight": 0.05, "recycleFactor": 2.1}


def test_scan(client):
    r = client.post("/api/carbon/scan", json={"userId": "u1", "category": "Plastic", "quantity": 5})
    assert r.status_code == 200
    body = r.json()
    assert body["success"] is True
    assert body["co2Saved"] == 0.525
    assert body["totalCo2Saved"] == 0.525
    assert body["entry"]["category"] == "plastic"
    assert body["entry"]["quantity"] == 5
    assert body["entry"]["totalWeight"] == 0.25
    assert body["entry"]["timestamp"].startswith("2025-03-10T12:00:00")


def test_scan_running_total(client):
    client.post("/api/carbon/scan", json={"userId": "u1", "category": "metal"})
    r = client.post("/api/carbon/scan", json={"userId": "u1", "category": "glass", "quantity": 2})
    assert r.json()["totalCo2Saved"] == round(0.55 + 0.12, 4)


@pytest.mark.parametrize(
    "payload",
    [
        {"category": "plastic"},
        {"userId": "u1"},
        {"userId": "", "category": "plastic"},
        {"userId": "u1", "category": "plastic", "quantity": 0},
        {"userId": "u1", "category": "plastic", "quantity": -2},
        {"userId": "u1", "category": "plastic", "quantity": 1.5},
        {"userId": 42, "category": "plastic"},
        {"userId": "u1", "category": "plastic", "quantity": 10**400},
        {"userId": "u1", "category": "plastic", "quantity": 1_000_001},
    ],
)
def test_scan_bad_request(client, payload):
    r = client.post("/api/carbon/scan", json=payload)
    assert r.status_code == 400
    assert r.json()["detail"]


def test_scan_without_body(client):
    assert client.post("/api/carbon/scan").status_code == 400


def test_scan_unknown_category(client):
    r = client.post("/api/carbon/scan", json={"userId": "u1", "category": "styrofoam"})
    assert r.status_code == 400
    assert r.json() == {"detail": "Unknown category: styrofoam"}


def test_summary(client, clock):
    client.post("/api/carbon/scan", json={"userId": "u1", "category": "aluminum", "quantity": 10})
    clock.advance(days=10)
    client.post("/api/carbon/scan", json={"userId": "u1", "category": "plastic", "quantity": 5})
    clock.advance(minutes=5)
    client.post("/api/carbon/scan", json={"userId": "u1", "category": "aluminum", "quantity": 1})

    r = client.get("/api/carbon/summary/u1")
    assert r.status_code == 200
    body = r.json()
    assert body["totalCo2Saved"] == round(1.35 + 0.525 + 0.135, 4)
    assert body["weeklyCo2"] == round(0.525 + 0.135, 4)
    assert body["pieChartData"] == [
        {"category": "aluminum", "co2Saved": 1.485},
        {"category": "plastic", "co2Saved": 0.525},
    ]
    recent = body["recentEntries"]
    assert [e["quantity"] for e in recent] == [1, 5, 10]
    assert set(recent[0]) == {"category", "quantity", "totalWeight", "co2Saved", "timestamp"}


def test_summary_unknown_user(client):
    r = client.get("/api/carbon/summary/ghost")
    assert r.status_code == 404
    assert r.json() == {"detail": "User not found"}


def test_nearest(client):
    r = client.post("/api/location/nearest", json={"latitude": 31.22, "longitude": 75.64, "limit": 1})
    assert r.status_code == 200
    body = r.json()
    assert body["success"] is True
    assert len(body["nearestCenters"]) == 1
    center = body["nearestCenters"][0]
    assert center["name"] == "Near Hostel A"
    assert center["distance_km"] == pytest.approx(0.74, abs=0.01)
    assert set(center) == {"name", "city", "country", "latitude", "longitude", "distance_km"}


def test_nearest_default_limit(client):
    r = client.post("/api/location/nearest", json={"latitude": 31.22, "longitude": 75.64})
    distances = [c["distance_km"] for c in r.json()["nearestCenters"]]
    assert len(distances) == 5
    assert distances == sorted(distances)


@pytest.mark.parametrize(
    "payload",
    [
        {"longitude": 75.64},
        {"latitude": "31.22", "longitude": 75.64},
        {"latitude": 91, "longitude": 75.64},
        {"latitude": 31.22, "longitude": 75.64, "limit": 0},
        {"latitude": 10**400, "longitude": 75.64},
    ],
)
def test_nearest_bad_request(client, payload):
    assert client.post("/api/location/nearest", json=payload).status_code == 400


def test_store_failure_is_generic_500(client, store, monkeypatch, caplog):
    def boom(*args, **kwargs):
        raise StoreFailure("connection reset by peer")

    monkeypatch.setattr(store, "list_all_centers", boom)
    r = client.post("/api/location/nearest", json={"latitude": 31.22, "longitude": 75.64})
    assert r.status_code == 500
    assert r.json() == {"detail": "Server error"}
    assert "connection reset by peer" in caplog.text


def test_scan_store_failure(client, store, monkeypatch):
    def boom(*args, **kwargs):
        raise StoreFailure("write timed out")

    monkeypatch.setattr(store, "insert_scan_entry", boom)
    r = client.post("/api/carbon/scan", json={"userId": "u1", "category": "plastic"})
    assert r.status_code == 500
    assert "timed out" not in r.text


def test_summary_blank_user_is_404(client):
    client.post("/api/carbon/scan", json={"userId": "u1", "category": "plastic"})
    assert client.get("/api/carbon/summary/%20").status_code == 404
