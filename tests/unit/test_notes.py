"""
Unit tests for note rendering and parsing
"""
import datetime as dt

from domains.pathway.models.notes import (
    AppointmentTypeChangePayload,
    InvestigationRequestPayload,
    PathwayTransferPayload,
    PlainTextPayload,
    ReschedulePayload,
    format_long_date,
    parse_note,
    render_note,
)


class TestPathwayTransferNotes:

    def test_render_layout(self):
        payload = PathwayTransferPayload(
            target_pathway="Active Monitoring",
            priority="high",
            reason="Stable PSA",
            clinical_rationale="Low risk disease",
            follow_up=["July 1, 2024 at 11:00 with Dr Jane Smith"],
            psa_velocity="0.40 ng/mL/year"
        )

        text = render_note(payload)

        assert text.splitlines()[:4] == [
            "PATHWAY TRANSFER",
            "Transfer To: Active Monitoring",
            "Priority: High",
            "PSA Velocity: 0.40 ng/mL/year",
        ]
        assert "Reason for Transfer:\nStable PSA" in text
        assert "Follow-up Appointment Scheduled:\n- July 1, 2024 at 11:00 with Dr Jane Smith" in text
        assert "Additional Notes:" not in text

    def test_parses_back_what_it_renders(self):
        payload = PathwayTransferPayload(
            target_pathway="Medication",
            reason="Symptomatic BPH",
            clinical_rationale="Trial of alpha blocker\nReview in 3 months",
            medications=["Tamsulosin 400mcg, once daily, for 3 months"],
            medication_prescribed=True
        )

        parsed = parse_note(render_note(payload))

        assert parsed == payload
        assert parsed.title == "PATHWAY TRANSFER - MEDICATION PRESCRIBED"

    def test_surgical_detection(self):
        assert PathwayTransferPayload(target_pathway="Surgery Pathway").is_surgical
        assert PathwayTransferPayload(target_pathway="Surgical Pathway").is_surgical
        assert not PathwayTransferPayload(target_pathway="Radiotherapy").is_surgical


class TestOtherNotes:

    def test_reschedule(self):
        text = render_note(ReschedulePayload(new_date="July 1, 2024", new_time="10:00"))

        assert text.startswith("SURGERY APPOINTMENT RESCHEDULED")
        assert "Reason: Not specified" in text

        parsed = parse_note(text)
        assert isinstance(parsed, ReschedulePayload)
        assert parsed.is_surgery
        assert parsed.new_date == "July 1, 2024"
        assert parsed.reason == ""

    def test_investigation_request(self):
        text = render_note(InvestigationRequestPayload(
            investigation_type="mri", test_name="MRI prostate", priority="urgent",
            clinical_notes="PI-RADS 4 lesion"
        ))

        parsed = parse_note(text)

        assert isinstance(parsed, InvestigationRequestPayload)
        assert parsed.investigation_type == "MRI"
        assert parsed.test_name == "MRI prostate"
        assert parsed.priority == "urgent"
        assert parsed.clinical_notes == "PI-RADS 4 lesion"

    def test_appointment_type_change(self):
        parsed = parse_note("Appointment type changed from Surgery to Follow-up")

        assert isinstance(parsed, AppointmentTypeChangePayload)

    def test_unknown_layout_is_plain_text(self):
        parsed = parse_note("Patient called to confirm appointment")

        assert parsed == PlainTextPayload(text="Patient called to confirm appointment")

    def test_empty(self):
        assert parse_note(None) == PlainTextPayload(text="")
        assert parse_note("   ") == PlainTextPayload(text="")


def test_format_long_date():
    assert format_long_date(dt.date(2024, 4, 30)) == "April 30, 2024"
    assert format_long_date(dt.date(2025, 1, 1)) == "January 1, 2025"
