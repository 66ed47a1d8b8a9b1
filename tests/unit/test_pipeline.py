"""
Unit tests for pipeline stage derivation
"""
import datetime as dt

import pytest

from domains.clinical.services.pipeline import get_pipeline_stage
from domains.pathway.models.records import Appointment, MDTMeeting, Patient

TODAY = dt.date(2024, 6, 1)


def make_patient(care_pathway: str = "", status: str = "Active") -> Patient:
    return Patient(id="p1", care_pathway=care_pathway, status=status)


class TestPipelineStage:

    @pytest.mark.parametrize("pathway,stage,index", [
        ("OPD Queue", "opd", 1),
        ("Investigation Pathway", "opd", 1),
        ("", "opd", 1),
        ("Surgery Pathway", "surgery", 3),
        ("Post-op Transfer", "surgery", 3),
        ("Radiotherapy", "surgery", 3),
        ("Medication", "medication", 3),
        ("Active Surveillance", "monitoring", 3),
        ("Discharge", "discharge", 4),
        ("GP Referral", "referral", 0),
    ])
    def test_stage_by_pathway(self, pathway, stage, index):
        pipeline = get_pipeline_stage(make_patient(pathway), today=TODAY)

        assert pipeline.current_stage == stage
        assert pipeline.stage_index == index

    def test_discharged_status_wins(self):
        pipeline = get_pipeline_stage(make_patient("Medication", status="Discharged"), today=TODAY)

        assert pipeline.current_stage == "discharge"
        assert all(stage.is_completed for stage in pipeline.stages[:4])
        assert pipeline.stages[4].is_active

    def test_mdt_meeting_moves_patient_past_opd(self):
        meetings = [MDTMeeting(patient_id="p1", meeting_date=TODAY + dt.timedelta(days=7))]

        pipeline = get_pipeline_stage(make_patient("OPD Queue"), mdt_meetings=meetings, today=TODAY)

        assert pipeline.current_stage == "mdt"
        assert pipeline.stage_index == 2

    def test_surgery_appointment_means_surgery_stage(self):
        appointments = [Appointment(patient_id="p1", date=TODAY, time="08:00", type="surgery")]

        pipeline = get_pipeline_stage(make_patient("OPD Queue"), appointments=appointments, today=TODAY)

        assert pipeline.current_stage == "surgery"

    def test_treatment_stage_follows_pathway(self):
        assert get_pipeline_stage(make_patient("Medication"), today=TODAY).stages[3].id == "medication"
        monitoring = get_pipeline_stage(make_patient("Active Monitoring"), today=TODAY).stages[3]
        assert (monitoring.id, monitoring.name) == ("monitoring", "Active Monitoring")
        assert get_pipeline_stage(make_patient("OPD Queue"), today=TODAY).stages[3].id == "surgery"

    def test_exactly_one_active_stage(self):
        pipeline = get_pipeline_stage(make_patient("Surgery Pathway"), today=TODAY)

        assert [stage.is_active for stage in pipeline.stages] == [False, False, False, True, False]
        assert [stage.is_completed for stage in pipeline.stages] == [True, True, True, False, False]
        assert pipeline.stages[4].is_pending
