import pytest
from fastapi.testclient import TestClient

from busops.main import create_app
from busops.runtime import Runtime

from .conftest import PASSWORD


@pytest.fixture
def client(runtime):
    with TestClient(create_app(runtime)) as c:
        yield c


def _login(client, email):
    res = client.post("/auth/login", json={"email": email, "password": PASSWORD})
    assert res.status_code == 200
    return {"Authorization": f"Bearer {res.json()['access_token']}"}


@pytest.fixture
def admin_headers(client, admin):
    return _login(client, admin.email)


@pytest.fixture
def driver_headers(client, driver):
    return _login(client, driver.email)


def _mission_payload(company_id, vehicle_id=None):
    return {
        "title": "Airport transfer",
        "departure_location": "Depot",
        "departure_address": "1 avenue du Dépôt, Lyon",
        "departure_lat": 45.75,
        "departure_lng": 4.85,
        "scheduled_departure_at": "2024-03-15T08:00:00",
        "arrival_location": "Lyon Saint-Exupéry",
        "arrival_address": "Colombier-Saugnieu",
        "arrival_lat": 45.7256,
        "arrival_lng": 5.0811,
        "estimated_arrival_at": "2024-03-15T09:00:00",
        "max_passengers": 50,
        "current_passengers": 12,
        "company_id": company_id,
        "vehicle_id": vehicle_id,
    }


def test_login_and_me(client, driver, driver_headers):
    res = client.get("/auth/me", headers=driver_headers)
    assert res.status_code == 200
    assert res.json()["email"] == "driver@busops.test"
    assert res.headers.get("X-Request-ID")


def test_bad_credentials(client, driver):
    res = client.post("/auth/login", json={"email": driver.email, "password": "nope-nope"})
    assert res.status_code == 401
    assert client.get("/auth/me").status_code == 401


def test_driver_cannot_create_missions(client, company, driver_headers):
    res = client.post("/missions", json=_mission_payload(company.id), headers=driver_headers)
    assert res.status_code == 403


def test_unknown_mission(client, admin_headers):
    res = client.get("/missions/nope", headers=admin_headers)
    assert res.status_code == 404
    assert res.json()["detail"] == "Mission not found: nope"


def test_driver_mission_flow(client, company, vehicle, driver, admin_headers, driver_headers):
    res = client.post("/missions", json=_mission_payload(company.id, vehicle.id), headers=admin_headers)
    assert res.status_code == 201
    mission_id = res.json()["id"]
    assert res.json()["status"] == "PENDING"

    res = client.post(f"/missions/{mission_id}/assign", json={"driver_id": driver.id}, headers=admin_headers)
    assert res.json()["status"] == "ASSIGNED"

    pending = client.get("/notifications/pending", headers=driver_headers).json()
    assert len(pending) == 1
    assert client.get("/notifications/unread-count", headers=driver_headers).json()["unread"] == 1

    res = client.post(
        f"/notifications/{pending[0]['id']}/accept", json={"mission_id": mission_id}, headers=driver_headers
    )
    assert res.status_code == 200
    assert res.json()["driver_id"] == driver.id
    assert [m["id"] for m in client.get("/missions", headers=driver_headers).json()] == [mission_id]

    res = client.post(f"/missions/{mission_id}/kilometrage/depot-start", json={"km_depot_start": 950}, headers=driver_headers)
    assert res.status_code == 400
    res = client.post(f"/missions/{mission_id}/kilometrage/depot-start", json={"km_depot_start": 1050}, headers=driver_headers)
    assert res.json()["status"] == "IN_PROGRESS"
    res = client.post(f"/missions/{mission_id}/kilometrage/depot-start", json={"km_depot_start": 1060}, headers=driver_headers)
    assert res.status_code == 409

    summary = client.get(f"/missions/{mission_id}/kilometrage", headers=driver_headers).json()
    assert summary["status"] == "depot_only"
    assert summary["vehicle_mileage"] == 1050

    res = client.post(
        f"/missions/{mission_id}/kilometrage/complete",
        json={"km_mission_end": 1140, "km_depot_end": 1160},
        headers=driver_headers,
    )
    assert res.json()["status"] == "COMPLETED"
    assert res.json()["distance_depot_to_depot"] == 110

    res = client.put(f"/missions/{mission_id}/times", json={"driving_minutes": 75, "rest_minutes": 10}, headers=driver_headers)
    assert res.status_code == 200

    totals = client.get(f"/work-times/{driver.id}/2024/3", headers=driver_headers).json()
    assert totals["total_driving_minutes"] == 75
    assert totals["working_days"] == 1
    days = client.get(f"/work-times/{driver.id}/2024/3/days", headers=driver_headers).json()
    assert [d["day"] for d in days] == [15]


def test_drivers_only_see_their_own_data(client, company, driver, other_driver, admin_headers):
    other_headers = _login(client, other_driver.email)
    mission_id = client.post("/missions", json=_mission_payload(company.id), headers=admin_headers).json()["id"]
    assert client.get(f"/missions/{mission_id}", headers=other_headers).status_code == 403
    assert client.get(f"/work-times/{driver.id}/2024/3", headers=other_headers).status_code == 403


def test_refuse_over_http(client, company, admin, driver, admin_headers, driver_headers):
    mission_id = client.post("/missions", json=_mission_payload(company.id), headers=admin_headers).json()["id"]
    client.post(f"/missions/{mission_id}/assign", json={"driver_id": driver.id}, headers=admin_headers)
    notice_id = client.get("/notifications/pending", headers=driver_headers).json()[0]["id"]
    res = client.post(f"/notifications/{notice_id}/refuse", json={"mission_id": mission_id}, headers=driver_headers)
    assert res.json()["status"] == "PENDING"
    assert res.json()["driver_id"] is None
    admin_notices = client.get("/notifications", headers=admin_headers).json()
    assert admin_notices[0]["type"] == "MISSION_REFUSED"


def test_fleet_endpoints(client, admin_headers, driver_headers):
    payload = {
        "brand": "Volvo",
        "model": "9700",
        "license_plate": "GH-789-IJ",
        "fleet_number": "BUS-07",
        "vin": "YV3T2U829JA000001",
        "first_registration": "2018-09-12",
        "engine_power": 460,
        "fuel_type": "DIESEL",
        "seats": 57,
        "category": "M3",
        "mileage": 250000,
    }
    res = client.post("/fleet/vehicles", json=payload, headers=admin_headers)
    assert res.status_code == 201
    vehicle_id = res.json()["id"]
    assert client.post("/fleet/vehicles", json=payload, headers=admin_headers).status_code == 400
    res = client.patch(f"/fleet/vehicles/{vehicle_id}/status", json={"is_active": False}, headers=admin_headers)
    assert res.json()["is_active"] is False
    active = client.get("/fleet/vehicles", params={"active_only": True}, headers=driver_headers).json()
    assert vehicle_id not in [v["id"] for v in active]
    assert client.delete(f"/fleet/vehicles/{vehicle_id}", headers=driver_headers).status_code == 403


def test_each_app_owns_its_runtime(settings):
    import busops.main

    assert not hasattr(busops.main, "app")
    first, second = create_app(), create_app()
    assert first.state.runtime is not second.state.runtime
    assert not first.state.runtime.is_initialized

    runtime = Runtime(settings)
    with TestClient(create_app(runtime)) as c:
        assert c.get("/health").json()["status"] == "ok"
        assert runtime.is_initialized
    assert not runtime.is_initialized
