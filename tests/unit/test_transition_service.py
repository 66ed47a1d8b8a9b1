"""
Unit tests for the pathway transition service
"""
import datetime as dt
from dataclasses import replace

import pytest

from core.cache import PatientViewCache
from domains.clinical.models.clinical import PSAResult
from domains.pathway.models.notes import PathwayTransferPayload, render_note
from domains.pathway.models.pathway import (
    DischargeSummary,
    MedicationEntry,
    PathwayTransitionRequest,
    Priority,
    TransitionState,
)
from domains.pathway.models.records import AppointmentType, CurrentUser, NoteType
from domains.pathway.services.transition_service import PathwayTransitionService
from stores import StaticIdentityProvider, StoreResult
from tests.fakes import TODAY, FakeRedis, InMemoryClinicalStore, make_cache_manager, store_set

SURGERY_DATE = dt.date(2024, 6, 10)


def surgery_request(**kwargs) -> PathwayTransitionRequest:
    return PathwayTransitionRequest(
        target_pathway="Surgery Pathway",
        reason="Biopsy confirmed",
        clinical_rationale="Gleason 3+4, fit for surgery",
        surgery_date=SURGERY_DATE,
        surgery_time="08:30",
        priority=Priority.HIGH,
        **kwargs
    )


def monitoring_request(**kwargs) -> PathwayTransitionRequest:
    kwargs.setdefault("target_pathway", "Active Monitoring")
    return PathwayTransitionRequest(
        reason="Low risk disease",
        clinical_rationale="PSA stable",
        **kwargs
    )


def discharge_request(pathway: str = "Discharge", **kwargs) -> PathwayTransitionRequest:
    return PathwayTransitionRequest(
        target_pathway=pathway,
        reason="Treatment complete",
        clinical_rationale="No further urology input needed",
        **kwargs
    )


def medication_request() -> PathwayTransitionRequest:
    return PathwayTransitionRequest(
        target_pathway="Medication",
        medications=[MedicationEntry(name="Tamsulosin", dosage="400mcg", frequency="once daily", duration="3 months")]
    )


def radiotherapy_request() -> PathwayTransitionRequest:
    return PathwayTransitionRequest(target_pathway="Radiotherapy", reason="Patient preference", clinical_rationale="Fit")


@pytest.mark.asyncio
class TestSurgeryTransition:
    """Surgery must be booked before the pathway is written"""

    async def test_books_surgery_then_commits_then_notes(self, service, store):
        result = await service.transition("p1", surgery_request())

        assert result.success
        assert result.state == TransitionState.DONE
        assert store.write_calls() == ["book_appointment:surgery", "update_pathway", "add_note"]

        surgery = result.appointment_details.surgery
        assert surgery.date == SURGERY_DATE
        assert surgery.time == "08:30"
        assert surgery.type == AppointmentType.SURGERY.value
        assert surgery.clinician_name == "Dr Jane Smith"
        assert surgery.priority == "high"

        assert store.updates[0].skip_auto_booking
        assert store.patients["p1"].care_pathway == "Surgery Pathway"

    async def test_audit_note_records_surgery(self, service, store):
        result = await service.transition("p1", surgery_request())

        assert result.note.type == NoteType.PATHWAY_TRANSFER.value
        assert result.note.author_name == "Dr Jane Smith"
        assert result.note.content.surgery == ["June 10, 2024 at 08:30"]
        assert result.note.content.priority == "high"

    @pytest.mark.parametrize("failure", [
        {"fail_booking": "theatre list full"},
        {"raise_on_booking": ConnectionError("booking service unreachable")},
    ])
    async def test_booking_failure_leaves_pathway_untouched(self, service, store, failure):
        for name, value in failure.items():
            setattr(store, name, value)

        result = await service.transition("p1", surgery_request())

        assert not result.success
        assert result.state == TransitionState.FAILED
        assert result.error_kind == "booking"
        assert result.error.startswith("Surgery booking failed")
        assert "update_pathway" not in store.calls
        assert store.notes == []
        assert store.patients["p1"].care_pathway == "OPD Queue"

    async def test_incomplete_identity_blocks_surgery(self, stores, store, pathway_config):
        service = PathwayTransitionService(
            stores, StaticIdentityProvider(CurrentUser(id="u1")), config=pathway_config, clock=lambda: TODAY
        )

        result = await service.transition("p1", surgery_request())

        assert result.error_kind == "booking"
        assert store.write_calls() == []

    async def test_commit_failure_after_booking_keeps_surgery(self, service, store):
        store.fail_update = "patient record locked"

        result = await service.transition("p1", surgery_request())

        assert result.error_kind == "commit"
        assert result.error == "Pathway update failed: patient record locked"
        assert result.appointment_details.surgery is not None
        assert len(store.appointments) == 1
        assert "add_note" not in store.calls


@pytest.mark.asyncio
class TestValidationFailures:

    async def test_invalid_request_touches_no_store(self, service, store):
        result = await service.transition("p1", PathwayTransitionRequest(target_pathway="Surgery Pathway"))

        assert not result.success
        assert result.state == TransitionState.FAILED
        assert result.error_kind == "validation"
        assert "Surgery date and time are required for the Surgery Pathway" in result.error
        assert store.calls == []

    async def test_past_surgery_date(self, service, store):
        result = await service.transition("p1", surgery_request().model_copy(
            update={"surgery_date": TODAY - dt.timedelta(days=1)}
        ))

        assert result.error == "Surgery date cannot be in the past"
        assert store.calls == []


@pytest.mark.asyncio
class TestDischargeSummary:

    @pytest.mark.parametrize("pathway", ["Discharge", "Post-op Transfer"])
    async def test_waits_for_summary(self, service, store, pathway):
        result = await service.transition("p1", discharge_request(pathway))

        assert not result.success
        assert result.awaiting_discharge_summary
        assert result.state == TransitionState.AWAITING_DISCHARGE_SUMMARY
        assert result.error is None
        assert store.calls == []

    async def test_saves_summary_before_commit(self, service, store):
        summary = DischargeSummary(discharge_date=TODAY, diagnosis="BPH", procedure="TURP")

        result = await service.transition("p1", discharge_request(discharge_summary=summary))

        assert result.success
        assert store.write_calls() == ["create_discharge_summary", "update_pathway", "add_note"]
        assert store.summaries == [summary]
        assert store.patients["p1"].status == "Discharged"
        assert result.view.pipeline.current_stage == "discharge"

    async def test_summary_failure_is_a_commit_failure(self, service, store):
        store.fail_summary = "summary service down"

        result = await service.transition("p1", discharge_request(discharge_summary=DischargeSummary()))

        assert result.error_kind == "commit"
        assert "update_pathway" not in store.calls

    async def test_medication_does_not_need_a_summary(self, service, store):
        result = await service.transition("p1", medication_request())

        assert result.success
        assert "create_discharge_summary" not in store.calls


@pytest.mark.asyncio
class TestMonitoringFollowUps:

    async def test_commit_asks_store_to_auto_book(self, service, store):
        await service.transition("p1", monitoring_request(
            follow_up_date=dt.date(2024, 7, 1), follow_up_time="11:00", recurrence_interval=3
        ))

        update = store.updates[0]
        assert not update.skip_auto_booking
        assert update.appointment_start_date == dt.date(2024, 7, 1)
        assert update.appointment_time == "11:00"
        assert update.appointment_interval == 3
        assert update.requested_by.display_name == "Dr Jane Smith"

    async def test_non_monitoring_skips_auto_booking(self, service, store):
        await service.transition("p1", discharge_request("Radiotherapy"))

        assert store.updates[0].skip_auto_booking
        assert store.updates[0].appointment_start_date is None

    async def test_recurring_series_follows_requested_date(self, service, store):
        result = await service.transition("p1", monitoring_request(
            follow_up_date=dt.date(2024, 7, 1), follow_up_time="11:00", recurrence_interval=3
        ))

        details = result.appointment_details
        assert details.auto_booked.date == dt.date(2024, 7, 1)
        assert [(a.date, a.time) for a in details.follow_ups] == [
            (dt.date(2024, 10, 1), "11:00"),
            (dt.date(2025, 1, 1), "11:00"),
            (dt.date(2025, 4, 1), "11:00"),
        ]
        assert all(a.type == AppointmentType.FOLLOW_UP.value for a in details.follow_ups)
        assert len(store.appointments) == 4
        assert result.note.content.follow_up == [
            "July 1, 2024 at 11:00 with Dr Jane Smith",
            "Recurring every 3 months: October 1, 2024, January 1, 2025, April 1, 2025",
        ]

    async def test_series_is_based_on_the_auto_booked_follow_up(self, service, store):
        result = await service.transition("p1", monitoring_request(recurrence_interval=6))

        details = result.appointment_details
        assert details.auto_booked.date == dt.date(2024, 9, 1)
        assert [a.date for a in details.follow_ups] == [dt.date(2025, 3, 1)]
        assert len(store.appointments) == 2

    async def test_requested_date_without_auto_booking(self, service, store):
        store.auto_book = False

        result = await service.transition("p1", monitoring_request(
            follow_up_date=dt.date(2024, 7, 1), recurrence_interval=6
        ))

        assert [(a.date, a.time) for a in result.appointment_details.follow_ups] == [(dt.date(2025, 1, 1), "09:00")]

    async def test_nothing_to_repeat(self, service, store):
        store.auto_book = False

        result = await service.transition("p1", monitoring_request(recurrence_interval=3))

        assert result.success
        assert result.appointment_details is None
        assert result.enrichment_errors == []

    async def test_partial_recurring_failure_is_best_effort(self, service, store):
        store.fail_booking_after = 2

        result = await service.transition("p1", monitoring_request(
            follow_up_date=dt.date(2024, 7, 1), recurrence_interval=3
        ))

        assert result.success
        assert result.state == TransitionState.DONE
        assert len(result.appointment_details.follow_ups) == 1
        assert result.appointment_details.failed_follow_ups == 2
        assert result.enrichment_errors == [
            "recurring_appointments: 2 of 3 recurring follow-ups could not be booked"
        ]
        assert "add_note" in store.calls

    async def test_high_velocity_is_a_warning_not_a_failure(self, service, store):
        result = await service.transition("p1", monitoring_request(psa_results=[
            PSAResult(value=2.0, test_date="2024-01-01"),
            PSAResult(value=4.0, test_date="2024-12-31"),
        ]))

        assert result.success
        assert result.warnings == ["High PSA velocity (2.00 ng/mL/year) for a transfer to Active Monitoring"]
        assert result.note.content.psa_velocity == "2.00 ng/mL/year"

    async def test_commit_failure_skips_enrichment(self, service, store):
        store.raise_on_update = TimeoutError("patient store timed out")

        result = await service.transition("p1", monitoring_request(
            follow_up_date=dt.date(2024, 7, 1), recurrence_interval=3
        ))

        assert result.error_kind == "commit"
        assert result.error == "Pathway update failed: patient store timed out"
        assert store.appointments == []
        assert "add_note" not in store.calls


@pytest.mark.asyncio
class TestPostOpFollowUps:
    """Post-operative pathways start with reviews at 6 and 12 months"""

    async def test_followup_books_six_and_twelve_month_reviews(self, service, store):
        result = await service.transition("p1", discharge_request("Post-op Followup"))

        assert result.success
        assert not store.updates[0].skip_auto_booking
        details = result.appointment_details
        assert [a.date for a in details.post_op_follow_ups] == [dt.date(2024, 12, 1), dt.date(2025, 6, 1)]
        assert details.auto_booked is None
        assert details.follow_ups == []
        assert result.note.content.follow_up == [
            "Post-operative review December 1, 2024 at 10:00 with Dr Jane Smith",
            "Post-operative review June 1, 2025 at 10:00 with Dr Jane Smith",
        ]

    async def test_transfer_books_reviews_after_the_summary(self, service, store):
        result = await service.transition(
            "p1", discharge_request("Post-op Transfer", discharge_summary=DischargeSummary(diagnosis="BPH"))
        )

        assert result.success
        assert store.write_calls() == ["create_discharge_summary", "update_pathway", "add_note"]
        assert len(result.appointment_details.post_op_follow_ups) == 2
        assert len(store.appointments) == 2

    async def test_no_reviews_booked(self, service, store):
        store.auto_book = False

        result = await service.transition("p1", discharge_request("Post-op Followup"))

        assert result.success
        assert result.appointment_details is None
        assert result.note.content.follow_up == []


@pytest.mark.asyncio
class TestAuditNote:

    async def test_exactly_one_transfer_note(self, service, store):
        result = await service.transition("p1", medication_request())

        notes = store.transfer_notes()
        assert len(notes) == 1
        assert result.note == notes[0]

        text = render_note(notes[0].content)
        assert text.startswith("PATHWAY TRANSFER - MEDICATION PRESCRIBED")
        assert "Transfer To: Medication" in text
        assert "- Tamsulosin 400mcg, once daily, for 3 months" in text

    async def test_note_failure_does_not_fail_transition(self, service, store):
        store.fail_note = "notes service unavailable"

        result = await service.transition("p1", surgery_request())

        assert result.success
        assert result.state == TransitionState.DONE
        assert result.note is None
        assert result.enrichment_errors == ["audit_note: notes service unavailable"]
        assert store.patients["p1"].care_pathway == "Surgery Pathway"

    async def test_persisted_note_is_not_duplicated(self, service, store):
        store.raise_on_note = ConnectionError("connection reset")
        store.persist_note_before_raising = True

        result = await service.transition("p1", surgery_request())

        assert result.success
        assert len(store.transfer_notes()) == 1
        assert result.enrichment_errors == ["audit_note: connection reset"]

    async def test_resubmitting_after_note_failure_duplicates_the_note(self, service, store):
        store.raise_on_note = ConnectionError("connection reset")
        store.persist_note_before_raising = True
        request = discharge_request("Radiotherapy")

        first = await service.transition("p1", request)
        store.raise_on_note = None
        second = await service.transition("p1", request)

        assert first.enrichment_errors == ["audit_note: connection reset"]
        assert second.success
        assert len(store.transfer_notes()) == 2
        assert store.calls.count("update_pathway") == 2

    async def test_retries_when_configured(self, stores, store, clinician, pathway_config):
        attempts = []
        add_note = store.add_note

        async def flaky_add_note(patient_id, draft):
            attempts.append(patient_id)
            if len(attempts) == 1:
                return StoreResult.failed("temporarily unavailable")
            return await add_note(patient_id, draft)

        store.add_note = flaky_add_note
        service = PathwayTransitionService(
            stores,
            StaticIdentityProvider(clinician),
            config=replace(pathway_config, enrichment_max_attempts=2),
            clock=lambda: TODAY
        )

        result = await service.transition("p1", surgery_request())

        assert len(attempts) == 2
        assert result.enrichment_errors == []
        assert isinstance(result.note.content, PathwayTransferPayload)


@pytest.mark.asyncio
class TestRefresh:

    async def test_view_reflects_the_transition(self, service, store):
        result = await service.transition("p1", surgery_request())

        view = result.view
        assert view.patient.care_pathway == "Surgery Pathway"
        assert view.pipeline.current_stage == "surgery"
        assert [a.type for a in view.appointments] == [AppointmentType.SURGERY.value]
        assert view.timeline[0].note.id == result.note.id

    async def test_refresh_failure_is_best_effort(self, service, store):
        store.raise_on_refresh = ConnectionError("read replica down")

        result = await service.transition("p1", surgery_request())

        assert result.success
        assert result.view is None
        assert result.enrichment_errors == ["refresh: read replica down"]

    async def test_failed_refresh_drops_the_cached_view(self, stores, store, clinician, pathway_config):
        cache = PatientViewCache(make_cache_manager(FakeRedis()))
        service = PathwayTransitionService(
            stores, StaticIdentityProvider(clinician), config=pathway_config, view_cache=cache,
            clock=lambda: TODAY
        )
        assert (await service.get_view("p1")).patient.care_pathway == "OPD Queue"
        store.raise_on_refresh = ConnectionError("read replica down")

        result = await service.transition("p1", radiotherapy_request())

        assert result.success
        assert await cache.get_view("p1") is None
        store.raise_on_refresh = None
        assert (await service.get_view("p1")).patient.care_pathway == "Radiotherapy"

    async def test_refresh_can_be_disabled(self, stores, store, clinician, pathway_config):
        service = PathwayTransitionService(
            stores,
            StaticIdentityProvider(clinician),
            config=replace(pathway_config, refresh_views=False),
            clock=lambda: TODAY
        )

        result = await service.transition("p1", surgery_request())

        assert result.success
        assert result.view is None
        assert "get_patient" not in store.calls

    async def test_get_view_for_unknown_patient(self, service):
        view = await service.get_view("missing")

        assert view.patient is None
        assert view.pipeline is None


@pytest.mark.asyncio
async def test_independent_services_share_no_state(clinician, pathway_config, patient):
    first, second = InMemoryClinicalStore([patient]), InMemoryClinicalStore([patient])
    services = [
        PathwayTransitionService(store_set(s), StaticIdentityProvider(clinician), config=pathway_config,
                                 clock=lambda: TODAY)
        for s in (first, second)
    ]

    await services[0].transition("p1", surgery_request())

    assert second.calls == []
    assert first.patients["p1"].care_pathway == "Surgery Pathway"
    assert second.patients["p1"].care_pathway == "OPD Queue"
