"""
Prescription route tests
"""
import pytest


@pytest.fixture
async def cast(make_user):
    class Cast:
        pass

    c = Cast()
    c.admin = await make_user("admin")
    c.doctor = await make_user("doctor")
    c.other_doctor = await make_user("doctor")
    c.patient = await make_user("patient")
    c.other_patient = await make_user("patient")
    return c


async def prescribe(client, headers, patient, **overrides):
    payload = {
        "patient_id": str(patient.id),
        "medication_name": "Amoxicillin",
        "dosage": "500mg",
        "frequency": "3x daily",
        "duration": "7 days",
        **overrides,
    }
    return await client.post("/api/prescriptions", json=payload, headers=headers)


class TestCreate:
    """POST /prescriptions"""

    async def test_doctor_prescribes(self, client, cast, auth_headers):
        response = await prescribe(client, auth_headers(cast.doctor), cast.patient, instructions="With food")
        assert response.status_code == 201
        body = response.json()
        assert body["is_active"] is True
        assert body["doctor_id"] == str(cast.doctor.id)
        assert body["instructions"] == "With food"
        assert body["date_prescribed"]

    async def test_patient_cannot_prescribe(self, client, cast, auth_headers):
        response = await prescribe(client, auth_headers(cast.patient), cast.patient)
        assert response.status_code == 403

    async def test_missing_dosage(self, client, cast, auth_headers):
        response = await client.post(
            "/api/prescriptions",
            json={"patient_id": str(cast.patient.id), "medication_name": "X", "frequency": "1", "duration": "1"},
            headers=auth_headers(cast.doctor),
        )
        assert response.status_code == 400

    async def test_unknown_patient(self, client, cast, auth_headers):
        response = await prescribe(client, auth_headers(cast.doctor), cast.admin)
        assert response.status_code == 404


class TestListing:
    """GET /prescriptions"""

    async def test_is_active_filter_for_staff(self, client, cast, auth_headers):
        first = (await prescribe(client, auth_headers(cast.doctor), cast.patient)).json()
        await prescribe(client, auth_headers(cast.doctor), cast.patient, medication_name="Ibuprofen")
        await client.put(
            f"/api/prescriptions/{first['id']}", json={"is_active": False}, headers=auth_headers(cast.doctor)
        )

        active = (await client.get("/api/prescriptions?is_active=true", headers=auth_headers(cast.doctor))).json()
        assert [p["medication_name"] for p in active["items"]] == ["Ibuprofen"]

        inactive = (await client.get("/api/prescriptions?is_active=false", headers=auth_headers(cast.admin))).json()
        assert [p["id"] for p in inactive["items"]] == [first["id"]]

    async def test_patient_filters_are_ignored(self, client, cast, auth_headers):
        first = (await prescribe(client, auth_headers(cast.doctor), cast.patient)).json()
        await prescribe(client, auth_headers(cast.doctor), cast.other_patient)
        await client.put(
            f"/api/prescriptions/{first['id']}", json={"is_active": False}, headers=auth_headers(cast.doctor)
        )

        response = await client.get(
            f"/api/prescriptions?is_active=true&patient_id={cast.other_patient.id}",
            headers=auth_headers(cast.patient),
        )
        assert response.status_code == 200
        assert [p["id"] for p in response.json()["items"]] == [first["id"]]

    async def test_doctor_sees_only_own(self, client, cast, auth_headers):
        await prescribe(client, auth_headers(cast.doctor), cast.patient)
        await prescribe(client, auth_headers(cast.other_doctor), cast.patient)

        body = (await client.get("/api/prescriptions", headers=auth_headers(cast.other_doctor))).json()
        assert body["total"] == 1
        assert body["items"][0]["doctor_id"] == str(cast.other_doctor.id)


class TestModify:
    """PUT / DELETE /prescriptions/{id}"""

    async def test_other_doctor_denied_admin_allowed(self, client, cast, auth_headers):
        rx = (await prescribe(client, auth_headers(cast.doctor), cast.patient)).json()
        url = f"/api/prescriptions/{rx['id']}"

        denied = await client.put(url, json={"dosage": "250mg"}, headers=auth_headers(cast.other_doctor))
        assert denied.status_code == 403

        allowed = await client.put(url, json={"dosage": "250mg"}, headers=auth_headers(cast.admin))
        assert allowed.status_code == 200
        assert allowed.json()["dosage"] == "250mg"

    async def test_patient_reads_but_cannot_delete(self, client, cast, auth_headers):
        rx = (await prescribe(client, auth_headers(cast.doctor), cast.patient)).json()
        url = f"/api/prescriptions/{rx['id']}"

        assert (await client.get(url, headers=auth_headers(cast.patient))).status_code == 200
        assert (await client.delete(url, headers=auth_headers(cast.patient))).status_code == 403

    async def test_doctor_deletes(self, client, cast, auth_headers):
        rx = (await prescribe(client, auth_headers(cast.doctor), cast.patient)).json()
        url = f"/api/prescriptions/{rx['id']}"

        assert (await client.delete(url, headers=auth_headers(cast.doctor))).status_code == 200
        assert (await client.get(url, headers=auth_headers(cast.doctor))).status_code == 404
