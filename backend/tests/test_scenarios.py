"""
End-to-end scenarios over HTTP

Each test drives the API the way a client would and, where the scenario
involves the periodic sweep, runs one sweep tick against the same database.
"""
from datetime import date, datetime, timedelta

import pytest

from healthcard.services import appointment_service


@pytest.fixture
def sweep_tick(session_factory):
    async def _tick() -> int:
        async with session_factory() as db:
            changed = await appointment_service.complete_past_appointments(db)
            await db.commit()
            return changed

    return _tick


def yesterday() -> str:
    return (datetime.utcnow().date() - timedelta(days=1)).isoformat()


class TestSweepScenarios:
    """Appointments and the lifecycle sweep"""

    async def test_pending_past_appointment_is_never_advanced(
        self, client, make_user, auth_headers, sweep_tick
    ):
        doctor = await make_user("doctor")
        patient = await make_user("patient")
        headers = auth_headers(patient)

        created = await client.post(
            "/api/appointments",
            json={"doctor_id": str(doctor.id), "appointment_date": yesterday(), "appointment_time": "08:30"},
            headers=headers,
        )
        assert created.status_code == 201
        assert created.json()["status"] == "pending"

        await sweep_tick()

        after = await client.get(f"/api/appointments/{created.json()['id']}", headers=headers)
        assert after.json()["status"] == "pending"

    async def test_admin_scheduled_past_appointment_completes(
        self, client, make_user, auth_headers, sweep_tick
    ):
        admin = await make_user("admin")
        doctor = await make_user("doctor")
        patient = await make_user("patient")

        created = await client.post(
            "/api/appointments",
            json={
                "doctor_id": str(doctor.id),
                "patient_id": str(patient.id),
                "appointment_date": (date.today() + timedelta(days=5)).isoformat(),
                "appointment_time": "11:00",
            },
            headers=auth_headers(admin),
        )
        url = f"/api/appointments/{created.json()['id']}"

        updated = await client.put(
            url,
            json={"status": "scheduled", "appointment_date": yesterday()},
            headers=auth_headers(admin),
        )
        assert updated.json()["status"] == "scheduled"

        assert await sweep_tick() == 1
        assert (await client.get(url, headers=auth_headers(patient))).json()["status"] == "completed"

        assert await sweep_tick() == 0


class TestRecordScenarios:
    """Medical record ownership"""

    async def test_second_doctor_forbidden_admin_allowed(self, client, make_user, auth_headers):
        admin = await make_user("admin")
        doctor = await make_user("doctor")
        second_doctor = await make_user("doctor")
        patient = await make_user("patient")

        created = await client.post(
            "/api/medical-records",
            json={
                "patient_id": str(patient.id),
                "diagnosis": "Migraine",
                "treatment": "Sumatriptan",
                "visit_date": date.today().isoformat(),
            },
            headers=auth_headers(doctor),
        )
        assert created.status_code == 201
        url = f"/api/medical-records/{created.json()['id']}"

        forbidden = await client.put(url, json={"treatment": "Aspirin"}, headers=auth_headers(second_doctor))
        assert forbidden.status_code == 403

        allowed = await client.put(url, json={"treatment": "Aspirin"}, headers=auth_headers(admin))
        assert allowed.status_code == 200
        assert allowed.json()["treatment"] == "Aspirin"
        assert allowed.json()["doctor_id"] == str(doctor.id)

    async def test_record_for_a_doctor_identity_is_not_found(self, client, make_user, auth_headers):
        doctor = await make_user("doctor")
        colleague = await make_user("doctor")

        response = await client.post(
            "/api/medical-records",
            json={
                "patient_id": str(colleague.id),
                "diagnosis": "n/a",
                "treatment": "n/a",
                "visit_date": date.today().isoformat(),
            },
            headers=auth_headers(doctor),
        )
        assert response.status_code == 404
        assert response.json()["detail"] == "Patient not found"


class TestHealth:
    async def test_health(self, client):
        response = await client.get("/api/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"
