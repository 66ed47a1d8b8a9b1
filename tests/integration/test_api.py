"""
Integration tests for the HTTP API
"""
import datetime as dt

import httpx
import pytest

from main import PathwayServiceContext, app
from tests.fakes import InMemoryClinicalStore, plain_note, store_set, surgery_reschedule, surgical_transfer

CLINICIAN_HEADERS = {"X-User-Id": "u1", "X-User-Name": "Dr Jane Smith", "X-User-Role": "urologist"}


@pytest.fixture
def api_store(patient):
    return InMemoryClinicalStore([patient])


@pytest.fixture
async def async_client(api_store):
    """Async client against the app with in-memory stores attached"""
    app.state.pathway_service = PathwayServiceContext(stores=store_set(api_store))
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
    del app.state.pathway_service


def in_days(days: int) -> str:
    return (dt.date.today() + dt.timedelta(days=days)).isoformat()


@pytest.mark.asyncio
class TestPathwayTransitionEndpoint:
    """POST /api/v1/patients/{id}/pathway/transitions"""

    async def test_surgery_transition(self, async_client, api_store):
        response = await async_client.post(
            "/api/v1/patients/p1/pathway/transitions",
            headers=CLINICIAN_HEADERS,
            json={
                "target_pathway": "Surgery Pathway",
                "reason": "Biopsy confirmed",
                "clinical_rationale": "Fit for surgery",
                "surgery_date": in_days(14),
                "surgery_time": "08:30",
            }
        )

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["state"] == "done"
        assert data["appointment_details"]["surgery"]["time"] == "08:30"
        assert data["note"]["content"]["kind"] == "pathway_transfer"
        assert data["view"]["pipeline"]["current_stage"] == "surgery"
        assert api_store.patients["p1"].care_pathway == "Surgery Pathway"

    async def test_validation_failure(self, async_client, api_store):
        response = await async_client.post(
            "/api/v1/patients/p1/pathway/transitions",
            headers=CLINICIAN_HEADERS,
            json={"target_pathway": "Medication"}
        )

        assert response.status_code == 400
        data = response.json()
        assert data["error_kind"] == "validation"
        assert data["error"] == "At least one medication is required"
        assert api_store.calls == []

    async def test_missing_identity_fails_surgery_booking(self, async_client, api_store):
        response = await async_client.post(
            "/api/v1/patients/p1/pathway/transitions",
            json={
                "target_pathway": "Surgery Pathway",
                "reason": "Biopsy confirmed",
                "clinical_rationale": "Fit for surgery",
                "surgery_date": in_days(14),
                "surgery_time": "08:30",
            }
        )

        assert response.status_code == 502
        assert response.json()["error_kind"] == "booking"
        assert "update_pathway" not in api_store.calls

    async def test_discharge_waits_for_summary(self, async_client):
        response = await async_client.post(
            "/api/v1/patients/p1/pathway/transitions",
            headers=CLINICIAN_HEADERS,
            json={"target_pathway": "Discharge", "reason": "Treatment complete", "clinical_rationale": "Stable"}
        )

        assert response.status_code == 202
        assert response.json()["awaiting_discharge_summary"] is True

    async def test_discharge_with_summary(self, async_client, api_store):
        response = await async_client.post(
            "/api/v1/patients/p1/pathway/transitions",
            headers=CLINICIAN_HEADERS,
            json={
                "target_pathway": "Discharge",
                "reason": "Treatment complete",
                "clinical_rationale": "Stable",
                "discharge_summary": {"diagnosis": "BPH", "procedure": "TURP", "gp_actions": ["Annual PSA"]},
            }
        )

        assert response.status_code == 200
        assert api_store.summaries[0].gp_actions == ["Annual PSA"]
        assert api_store.patients["p1"].status == "Discharged"

    async def test_commit_failure(self, async_client, api_store):
        api_store.fail_update = "patient record locked"

        response = await async_client.post(
            "/api/v1/patients/p1/pathway/transitions",
            headers=CLINICIAN_HEADERS,
            json={"target_pathway": "Radiotherapy", "reason": "Patient preference", "clinical_rationale": "Fit"}
        )

        assert response.status_code == 502
        assert response.json()["error"] == "Pathway update failed: patient record locked"

    async def test_monitoring_with_recurring_follow_ups(self, async_client, api_store):
        response = await async_client.post(
            "/api/v1/patients/p1/pathway/transitions",
            headers=CLINICIAN_HEADERS,
            json={
                "target_pathway": "Active Monitoring",
                "reason": "Low risk disease",
                "clinical_rationale": "PSA stable",
                "follow_up_date": in_days(30),
                "follow_up_time": "11:00",
                "recurrence_interval": 6,
                "psa_results": [
                    {"value": "2.0 ng/mL", "test_date": "2024-01-01"},
                    {"value": "4.0 ng/mL", "test_date": "2024-12-31"},
                ],
            }
        )

        assert response.status_code == 200
        data = response.json()
        assert len(data["appointment_details"]["follow_ups"]) == 1
        assert data["warnings"] == ["High PSA velocity (2.00 ng/mL/year) for a transfer to Active Monitoring"]

    async def test_best_effort_failure_still_succeeds(self, async_client, api_store):
        api_store.fail_note = "notes service unavailable"

        response = await async_client.post(
            "/api/v1/patients/p1/pathway/transitions",
            headers=CLINICIAN_HEADERS,
            json={"target_pathway": "Radiotherapy", "reason": "Patient preference", "clinical_rationale": "Fit"}
        )

        assert response.status_code == 200
        assert response.json()["enrichment_errors"] == ["audit_note: notes service unavailable"]


@pytest.mark.asyncio
class TestPatientViewEndpoints:

    async def test_view(self, async_client):
        response = await async_client.get("/api/v1/patients/p1/view")

        assert response.status_code == 200
        data = response.json()
        assert data["patient"]["upi"] == "URP2024001"
        assert data["pipeline"]["current_stage"] == "opd"

    async def test_unknown_patient(self, async_client):
        assert (await async_client.get("/api/v1/patients/p9/view")).status_code == 404
        assert (await async_client.get("/api/v1/patients/p9/pipeline")).status_code == 404

    async def test_timeline(self, async_client, api_store):
        t0 = dt.datetime(2024, 3, 1, 9, 0)
        api_store.notes = [
            plain_note(t0 + dt.timedelta(minutes=5), note_id="plain"),
            surgery_reschedule(t0 + dt.timedelta(minutes=1), "child"),
            surgical_transfer(t0, "parent"),
        ]

        response = await async_client.get("/api/v1/patients/p1/timeline")

        assert response.status_code == 200
        entries = response.json()
        assert [(e["note"]["id"], e["indent_level"]) for e in entries] == [
            ("parent", 0), ("child", 1), ("plain", 0),
        ]

    async def test_pipeline(self, async_client):
        response = await async_client.get("/api/v1/patients/p1/pipeline")

        assert response.status_code == 200
        assert response.json()["stage_index"] == 1


@pytest.mark.asyncio
class TestClinicalAndSchedulingEndpoints:

    async def test_psa_velocity(self, async_client):
        response = await async_client.post("/api/v1/clinical/psa/velocity", json={"results": [
            {"value": 2.0, "test_date": "2024-01-01"},
            {"value": 4.0, "test_date": "2024-12-31"},
        ]})

        assert response.status_code == 200
        data = response.json()
        assert data["has_enough_data"] is True
        assert data["is_high_risk"] is True
        assert data["velocity_text"] == "2.00 ng/mL/year"

    async def test_psa_velocity_insufficient_data(self, async_client):
        response = await async_client.post("/api/v1/clinical/psa/velocity", json={"results": []})

        assert response.status_code == 200
        assert response.json()["has_enough_data"] is False

    async def test_psa_status(self, async_client):
        response = await async_client.post("/api/v1/clinical/psa/status", json={"value": "4.5", "age": 65})

        assert response.json()["status"] == "High"

    async def test_recurrence_preview(self, async_client):
        response = await async_client.post("/api/v1/scheduling/recurrence", json={
            "base_date": "2024-01-31", "base_time": "10:00", "interval_months": 3
        })

        assert response.status_code == 200
        data = response.json()
        assert data["total_occurrences"] == 4
        assert [o["date"] for o in data["occurrences"]] == ["2024-04-30", "2024-07-31", "2024-10-31"]

    async def test_recurrence_rejects_bad_interval(self, async_client):
        response = await async_client.post("/api/v1/scheduling/recurrence", json={
            "base_date": "2024-01-31", "interval_months": 5
        })

        assert response.status_code == 400


@pytest.mark.asyncio
class TestServiceEndpoints:

    async def test_health(self, async_client):
        response = await async_client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    async def test_metrics(self, async_client):
        await async_client.post("/api/v1/patients/p1/pathway/transitions", json={"target_pathway": ""})

        response = await async_client.get("/metrics")

        assert response.status_code == 200
        assert "pathway_transitions_total" in response.text
