"""
HTTP and WebSocket tests for the MediDispatch API.
"""

import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from medidispatch.api.main import create_app
from medidispatch.tests.conftest import report_payload


@pytest.fixture
def client():
    app = create_app(database_url="", seed_demo_data=False, poll_interval=60)
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def fleet(client):
    """Two hospitals, two ambulances and one pending report."""
    client.post("/api/hospitals", json={"id": "H1", "name": "City General", "total_beds": 4, "available_beds": 2})
    client.post("/api/hospitals", json={"id": "H2", "name": "Riverside", "total_beds": 3, "available_beds": 0})
    client.post("/api/ambulances", json={"id": "A1", "vehicle_number": "AMB-001"})
    client.post("/api/ambulances", json={"id": "A2", "vehicle_number": "AMB-002"})
    response = client.post("/api/reports", json=report_payload(id="R1"))
    assert response.status_code == 201
    return client


def test_root_and_health(client):
    assert client.get("/").json()["status"] == "healthy"

    health = client.get("/api/health").json()
    assert health["components"]["expiry_monitor"]["running"] is True
    assert health["config"]["persistent"] is False
    assert health["config"]["hold_duration_minutes"] == 30


def test_create_report_validation_error_body(client):
    response = client.post("/api/reports", json=report_payload(patient_phone="call me"))

    assert response.status_code == 422
    error = response.json()["error"]
    assert error["kind"] == "ValidationFailed"
    assert error["entity_kind"] == "report"
    assert any("patient_phone" in e["loc"] for e in error["errors"])


def test_dispatch_flow(fleet):
    client = fleet

    assigned = client.post("/api/reports/R1/assign", json={"ambulance_id": "A1", "hospital_id": "H1"})
    assert assigned.status_code == 200
    body = assigned.json()
    assert body["report"]["status"] == "en_route"
    assert body["ambulance"]["status"] == "busy"
    assert body["hospital"]["available_beds"] == 1

    incoming = client.get("/api/hospitals/H1/incoming").json()
    assert [i["ambulance_id"] for i in incoming] == ["A1"]
    assert [r["id"] for r in client.get("/api/reports", params={"status": "en_route"}).json()] == ["R1"]
    assert [a["id"] for a in client.get("/api/ambulances", params={"status": "available"}).json()] == ["A2"]

    released = client.post("/api/ambulances/A1/release", headers={"X-Hospital-Scope": "H1"})
    assert released.status_code == 200
    assert released.json()["report"]["status"] == "completed"
    assert released.json()["hospital"]["available_beds"] == 2

    stats = client.get("/api/stats").json()
    assert stats["completed_reports"] == 1
    assert stats["busy_ambulances"] == 0


def test_assign_to_full_hospital_is_409(fleet):
    response = fleet.post("/api/reports/R1/assign", json={"ambulance_id": "A1", "hospital_id": "H2"})

    assert response.status_code == 409
    assert response.json()["error"]["kind"] == "HospitalFull"
    assert fleet.get("/api/reports/R1").json()["status"] == "reported"


def test_assign_with_stale_version_is_409(fleet):
    fleet.put("/api/hospitals/H1/beds", json={"available_beds": 3, "available_icu_beds": 0})

    response = fleet.post(
        "/api/reports/R1/assign",
        json={"ambulance_id": "A1", "hospital_id": "H1", "hospital_version": 1},
    )

    error = response.json()["error"]
    assert response.status_code == 409
    assert error["kind"] == "Conflict"
    assert error["expected_version"] == 1
    assert error["actual_version"] == 2


def test_unknown_entity_is_404(fleet):
    response = fleet.post("/api/reports/R404/assign", json={"ambulance_id": "A1", "hospital_id": "H1"})

    assert response.status_code == 404
    assert response.json()["error"]["kind"] == "NotFound"
    assert fleet.get("/api/hospitals/H404/incoming").status_code == 404


def test_release_out_of_scope_is_403(fleet):
    fleet.post("/api/reports/R1/assign", json={"ambulance_id": "A1", "hospital_id": "H1"})

    response = fleet.post("/api/ambulances/A1/release", headers={"X-Hospital-Scope": "H2"})

    assert response.status_code == 403
    assert response.json()["error"]["kind"] == "OutOfScope"
    assert fleet.get("/api/ambulances/A1").json()["status"] == "busy"


def test_release_idle_ambulance_is_409(fleet):
    response = fleet.post("/api/ambulances/A2/release")

    assert response.status_code == 409
    assert response.json()["error"]["kind"] == "AmbulanceNotBusy"


def test_bed_update_out_of_range_is_422(fleet):
    response = fleet.put("/api/hospitals/H1/beds", json={"available_beds": 9, "available_icu_beds": 0})

    assert response.status_code == 422
    assert response.json()["error"]["kind"] == "OutOfRange"


def test_bed_update_with_expected_version(fleet):
    first = fleet.put("/api/hospitals/H1/beds", json={"available_beds": 1, "available_icu_beds": 0, "expected_version": 1})
    second = fleet.put("/api/hospitals/H1/beds", json={"available_beds": 4, "available_icu_beds": 0, "expected_version": 1})

    assert first.status_code == 200
    assert first.json()["version"] == 2
    assert second.status_code == 409
    assert fleet.get("/api/hospitals/H1").json()["available_beds"] == 1


def test_duplicate_vehicle_is_409(fleet):
    response = fleet.post("/api/ambulances", json={"vehicle_number": "amb-001"})

    assert response.status_code == 409
    assert response.json()["error"]["kind"] == "DuplicateVehicle"


def test_available_hospitals_filter(fleet):
    names = [h["name"] for h in fleet.get("/api/hospitals", params={"available": "true"}).json()]

    assert names == ["City General"]
    assert len(fleet.get("/api/hospitals").json()) == 2


def test_event_history_endpoint(fleet):
    fleet.post("/api/reports/R1/assign", json={"ambulance_id": "A1", "hospital_id": "H1"})

    events = fleet.get("/api/events", params={"kind": "hospital", "entity_id": "H1"}).json()["events"]

    assert [e["action"] for e in events] == ["assigned", "created"]


def test_websocket_streams_initial_state_and_mutations(fleet):
    with fleet.websocket_connect("/ws?kind=hospital") as websocket:
        initial = websocket.receive_json()
        assert initial["type"] == "initial_state"
        assert {h["id"] for h in initial["data"]["hospitals"]} == {"H1", "H2"}
        assert "ambulances" not in initial["data"]

        fleet.put("/api/hospitals/H2/beds", json={"available_beds": 2, "available_icu_beds": 0})

        message = websocket.receive_json()
        assert message["type"] == "mutation"
        assert message["data"]["entity_id"] == "H2"
        assert message["data"]["action"] == "beds_updated"
        assert message["data"]["payload"]["available_beds"] == 2

        websocket.send_json({"type": "ping"})
        assert websocket.receive_json()["type"] == "pong"


def test_websocket_rejects_unknown_kind(client):
    with pytest.raises(WebSocketDisconnect):
        with client.websocket_connect("/ws?kind=bogus") as websocket:
            websocket.receive_json()
