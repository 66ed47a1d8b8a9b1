"""
Pipeline stage derivation

Referral -> OPD Queue -> MDT -> treatment -> Discharge, recomputed on demand
from the patient, their appointments and MDT meetings. Never stored.
"""

import datetime as dt
from typing import Iterable, Optional, List, Tuple

from domains.pathway.models.pathway import CarePathway
from domains.pathway.models.records import Patient, Appointment, MDTMeeting
from ..models.clinical import PipelineStage, StageInfo


BASE_STAGES: List[Tuple[str, str]] = [
    ("referral", "Referral"),
    ("opd", "OPD Queue"),
    ("mdt", "MDT"),
]

TREATMENT_STAGES = {
    CarePathway.MEDICATION.value: ("medication", "Medication"),
    CarePathway.ACTIVE_MONITORING.value: ("monitoring", "Active Monitoring"),
    CarePathway.ACTIVE_SURVEILLANCE.value: ("monitoring", "Active Monitoring"),
}

DISCHARGE_STAGE = ("discharge", "Discharge")


def _has_surgery_appointment(appointments: List[Appointment]) -> bool:
    return any(
        "surgery" in (apt.type or "").lower() or "surgery" in (apt.subtype or "").lower()
        for apt in appointments
    )


def _current_stage(
    patient: Patient,
    appointments: List[Appointment],
    meetings: List[MDTMeeting],
    today: dt.date
) -> Tuple[str, int]:
    pathway = patient.care_pathway or ""

    if patient.status == "Discharged" or pathway == CarePathway.DISCHARGE:
        return "discharge", 4
    if pathway in (CarePathway.POST_OP_TRANSFER, CarePathway.POST_OP_FOLLOWUP):
        return "surgery", 3
    if pathway in (CarePathway.SURGERY, "Surgical Pathway") or _has_surgery_appointment(appointments):
        return "surgery", 3
    if pathway == CarePathway.MEDICATION:
        return "medication", 3
    if pathway in (CarePathway.ACTIVE_MONITORING, CarePathway.ACTIVE_SURVEILLANCE):
        return "monitoring", 3
    if pathway == CarePathway.RADIOTHERAPY:
        return "surgery", 3

    has_upcoming = any(m.meeting_date and m.meeting_date >= today for m in meetings)
    if meetings or has_upcoming:
        return "mdt", 2
    if pathway in (CarePathway.INVESTIGATION, CarePathway.OPD_QUEUE, ""):
        return "opd", 1
    return "referral", 0


def get_pipeline_stage(
    patient: Patient,
    appointments: Optional[Iterable[Appointment]] = None,
    mdt_meetings: Optional[Iterable[MDTMeeting]] = None,
    today: Optional[dt.date] = None
) -> PipelineStage:
    """Determine the patient's current pipeline stage and the status of every stage"""
    appointments = list(appointments or [])
    meetings = list(mdt_meetings or [])
    today = today or dt.date.today()

    treatment = TREATMENT_STAGES.get(patient.care_pathway, ("surgery", "Surgery"))
    stages = BASE_STAGES + [treatment, DISCHARGE_STAGE]

    current, index = _current_stage(patient, appointments, meetings, today)

    return PipelineStage(
        current_stage=current,
        stage_index=index,
        stages=[
            StageInfo(
                id=stage_id,
                name=name,
                is_active=position == index,
                is_completed=position < index,
                is_pending=position > index
            )
            for position, (stage_id, name) in enumerate(stages)
        ]
    )
