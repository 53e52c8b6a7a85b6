import pytest


def _batch(locations, driver_id=4, job_id=11):
    return {"driver_id": driver_id, "job_id": job_id, "device_id": "tab-02", "locations": locations}


def _loc(lat, lon, at):
    return {"latitude": lat, "longitude": lon, "recorded_at": at}


TRAIL = [
    _loc(0.0, 0.0, "2024-06-01T06:00:00Z"),
    _loc(0.001, 0.0, "2024-06-01T06:00:10Z"),
    _loc(0.002, 0.0, "2024-06-01T06:00:20Z"),
]


def test_batch_stores_every_location(client, headers):
    r = client.post("/tracking/batch", json=_batch(TRAIL), headers=headers)
    assert r.status_code == 201
    assert r.json() == {"count": 3}


def test_invalid_location_rejects_the_batch(client, headers):
    r = client.post("/tracking/batch", json=_batch(TRAIL + [_loc(91.0, 0.0, "2024-06-01T06:00:30Z")]), headers=headers)
    assert r.status_code == 422
    assert r.json()["details"][0]["field"] == "body.locations.3.latitude"

    # nothing from the rejected batch was stored
    assert client.get("/tracking/jobs/11", headers=headers).json() == []


def test_empty_batch_is_rejected(client, headers):
    r = client.post("/tracking/batch", json=_batch([]), headers=headers)
    assert r.status_code == 422


def test_job_history_is_chronological(client, headers):
    client.post("/tracking/batch", json=_batch(list(reversed(TRAIL))), headers=headers)
    points = client.get("/tracking/jobs/11", headers=headers).json()
    assert [p["latitude"] for p in points] == [0.0, 0.001, 0.002]
    assert points[0]["recorded_at"].startswith("2024-06-01T06:00:00")
    assert points[0]["device_id"] == "tab-02"

    assert client.get("/tracking/jobs/11", headers={"X-Organization-Id": "2"}).json() == []


def test_distance_follows_the_trail(client, headers):
    client.post("/tracking/batch", json=_batch(TRAIL), headers=headers)
    body = client.get("/tracking/distance", params={"driver_id": 4}, headers=headers).json()
    assert body["point_count"] == 3
    assert body["distance_meters"] == pytest.approx(222.39, abs=0.01)
    assert body["distance_km"] == pytest.approx(0.22, abs=0.001)


def test_distance_window(client, headers):
    client.post("/tracking/batch", json=_batch(TRAIL), headers=headers)
    params = {"job_id": 11, "start": "2024-06-01T06:00:05Z", "end": "2024-06-01T06:00:20Z"}
    body = client.get("/tracking/distance", params=params, headers=headers).json()
    assert body["point_count"] == 2
    assert body["distance_meters"] == pytest.approx(111.19, abs=0.01)


def test_latest_location_per_driver(client, headers):
    client.post("/tracking/batch", json=_batch(TRAIL, driver_id=4, job_id=11), headers=headers)
    client.post("/tracking/batch", json=_batch([
        _loc(-1.29, 36.82, "2024-06-01T05:59:00Z"),
        _loc(-1.30, 36.83, "2024-06-01T06:01:00Z"),
    ], driver_id=5, job_id=12), headers=headers)
    client.post("/tracking/batch", json=_batch([_loc(1.0, 1.0, "2024-06-01T07:00:00Z")], driver_id=6), headers={"X-Organization-Id": "2"})

    latest = client.get("/tracking/latest", headers=headers).json()
    assert [(p["driver_id"], p["latitude"]) for p in latest] == [(4, 0.002), (5, -1.30)]
    assert latest[0]["recorded_at"].startswith("2024-06-01T06:00:20")

    by_job = client.get("/tracking/latest", params={"job_id": 12}, headers=headers).json()
    assert [p["driver_id"] for p in by_job] == [5]

    recent = client.get("/tracking/latest", params={"since": "2024-06-01T06:00:30Z"}, headers=headers).json()
    assert [p["driver_id"] for p in recent] == [5]
