"""HTTP surface of the FastAPI application."""

import pytest
from fastapi.testclient import TestClient

from clinic_sync.dependencies import get_orchestrator
from clinic_sync.main import app


@pytest.fixture
def client(orchestrator):
    app.dependency_overrides[get_orchestrator] = lambda: orchestrator
    yield TestClient(app)
    app.dependency_overrides.clear()


APPOINTMENT = {
    "patient_id": "p1",
    "date": "2025-03-10",
    "time": "09:00",
    "duration": 30,
    "appointment_type": "cleaning",
}


def test_health_endpoint(client) -> None:
    """Health endpoint should return status ok."""

    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_version_endpoint(client) -> None:
    """Version endpoint should expose application version."""

    response = client.get("/version")
    assert response.status_code == 200
    assert "version" in response.json()


def test_create_appointment(client, store) -> None:
    response = client.post("/appointments", json=APPOINTMENT)

    assert response.status_code == 201
    body = response.json()
    assert body["outcome"]["status"] == "fully_synced"
    assert body["appointment"]["calendar_synced"] is True
    assert body["notification"]["status"] == "sent"
    assert body["appointment"]["id"] in store.appointments


def test_create_for_unknown_patient(client) -> None:
    response = client.post("/appointments", json={**APPOINTMENT, "patient_id": "ghost"})

    assert response.status_code == 404


def test_create_with_bad_time_is_rejected(client) -> None:
    response = client.post("/appointments", json={**APPOINTMENT, "time": "9am"})

    assert response.status_code == 422


def test_store_outage_maps_to_503(client, store) -> None:
    store.fail_writes = True

    response = client.post("/appointments", json=APPOINTMENT)

    assert response.status_code == 503
    assert response.json()["outcome"]["status"] == "persistence_failed"


def test_update_and_delete(client, messaging) -> None:
    created = client.post("/appointments", json=APPOINTMENT).json()
    appointment_id = created["appointment"]["id"]

    updated = client.put(
        f"/appointments/{appointment_id}",
        params={"notify_patient": "true"},
        json={**APPOINTMENT, "time": "10:15"},
    )
    assert updated.status_code == 200
    assert updated.json()["appointment"]["time"] == "10:15"
    assert updated.json()["notification"]["type"] == "update"

    deleted = client.delete(f"/appointments/{appointment_id}")
    assert deleted.status_code == 200
    assert deleted.json()["deleted"] is True
    assert client.delete(f"/appointments/{appointment_id}").status_code == 404


def test_resend_sent_notification_conflicts(client) -> None:
    created = client.post("/appointments", json=APPOINTMENT).json()

    response = client.post(f"/notifications/{created['notification']['id']}/resend")

    assert response.status_code == 409


def test_custom_message_requires_messaging_license(client, license_source) -> None:
    license_source.license = None

    response = client.post("/notifications", json={"patient_id": "p1", "message": "Ciao"})

    assert response.status_code == 403


def test_entitlement_endpoint(client) -> None:
    response = client.get("/integrations/entitlement")

    assert response.status_code == 200
    assert response.json()["calendar_enabled"] is True
    assert response.json()["messaging_enabled"] is True


@pytest.mark.anyio
async def test_resend_failed_notification_over_asgi(orchestrator, messaging) -> None:
    from httpx import ASGITransport, AsyncClient

    messaging.fail_send = True
    app.dependency_overrides[get_orchestrator] = lambda: orchestrator
    try:
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            created = (await client.post("/appointments", json=APPOINTMENT)).json()
            assert created["notification"]["status"] == "failed"
            assert created["outcome"]["status"] == "partially_synced"

            messaging.fail_send = False
            resent = await client.post(f"/notifications/{created['notification']['id']}/resend")
    finally:
        app.dependency_overrides.clear()

    assert resent.status_code == 200
    assert resent.json()["notification"]["status"] == "sent"
