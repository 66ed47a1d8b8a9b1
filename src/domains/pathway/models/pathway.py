"""
Pathway transition models
"""

import datetime as dt
from enum import Enum
from typing import Optional, List

from pydantic import BaseModel, Field

from domains.clinical.models.clinical import PSAResult, TimelineEntry, PipelineStage
from .records import Appointment, ClinicalNote, MDTMeeting, Patient


class CarePathway(str, Enum):
    """Care pathways a patient can be transferred to"""
    OPD_QUEUE = "OPD Queue"
    INVESTIGATION = "Investigation Pathway"
    ACTIVE_MONITORING = "Active Monitoring"
    ACTIVE_SURVEILLANCE = "Active Surveillance"
    MEDICATION = "Medication"
    SURGERY = "Surgery Pathway"
    RADIOTHERAPY = "Radiotherapy"
    POST_OP_TRANSFER = "Post-op Transfer"
    POST_OP_FOLLOWUP = "Post-op Followup"
    DISCHARGE = "Discharge"


MONITORING_PATHWAYS = frozenset({CarePathway.ACTIVE_MONITORING.value, CarePathway.ACTIVE_SURVEILLANCE.value})
DISCHARGE_SUMMARY_PATHWAYS = frozenset({CarePathway.POST_OP_TRANSFER.value, CarePathway.DISCHARGE.value})
POST_OP_PATHWAYS = frozenset({CarePathway.POST_OP_TRANSFER.value, CarePathway.POST_OP_FOLLOWUP.value})
VELOCITY_GATED_PATHWAYS = MONITORING_PATHWAYS | {CarePathway.DISCHARGE.value}
AUTO_BOOKING_PATHWAYS = MONITORING_PATHWAYS | POST_OP_PATHWAYS

# Months after the transfer at which post-operative reviews are auto-booked
POST_OP_FOLLOW_UP_MONTHS = (6, 12)


class Priority(str, Enum):
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"


class MedicationEntry(BaseModel):
    """One prescribed medication"""
    name: str = ""
    dosage: str = ""
    frequency: str = ""
    duration: str = ""
    instructions: str = ""

    @property
    def is_complete(self) -> bool:
        return bool(self.name.strip() and self.dosage.strip() and self.frequency.strip())

    def summary(self) -> str:
        parts = [f"{self.name.strip()} {self.dosage.strip()}", self.frequency.strip()]
        if self.duration.strip():
            parts.append(f"for {self.duration.strip()}")
        text = ", ".join(parts)
        if self.instructions.strip():
            text += f" ({self.instructions.strip()})"
        return text


class DischargeSummary(BaseModel):
    """Discharge summary captured before a discharge or post-op transfer"""
    discharge_date: dt.date = Field(default_factory=dt.date.today)
    diagnosis: str = ""
    procedure: str = ""
    clinical_summary: str = ""
    medications: List[str] = []
    follow_up_instructions: str = ""
    gp_actions: List[str] = []


class PathwayTransitionRequest(BaseModel):
    """A requested change of care pathway; consumed by one orchestration call"""
    target_pathway: str = Field(..., description="Pathway the patient moves to")
    reason: str = ""
    priority: Priority = Priority.NORMAL
    clinical_rationale: str = ""
    additional_notes: str = ""

    # Pathway specific payloads
    medications: List[MedicationEntry] = []
    surgery_date: Optional[dt.date] = None
    surgery_time: Optional[str] = None
    follow_up_date: Optional[dt.date] = None
    follow_up_time: Optional[str] = None
    recurrence_interval: Optional[int] = Field(None, description="Months between follow-ups (1, 3, 6 or 12)")
    discharge_summary: Optional[DischargeSummary] = None
    psa_results: List[PSAResult] = []

    @property
    def pathway_name(self) -> str:
        return self.target_pathway.strip()


class TransitionState(str, Enum):
    """Saga states of one transition"""
    VALIDATING = "validating"
    AWAITING_DISCHARGE_SUMMARY = "awaiting_discharge_summary"
    SAVING_DISCHARGE_SUMMARY = "saving_discharge_summary"
    BOOKING_PRECONDITION = "booking_precondition"
    COMMITTING = "committing"
    ENRICHING = "enriching"
    REFRESHING = "refreshing"
    DONE = "done"
    FAILED = "failed"


class StepPolicy(str, Enum):
    """What a step failure means for the transition"""
    FATAL = "fatal"
    BEST_EFFORT = "best_effort"


class AppointmentDetails(BaseModel):
    """Appointments created around a transition"""
    surgery: Optional[Appointment] = None
    auto_booked: Optional[Appointment] = None
    follow_ups: List[Appointment] = []
    post_op_follow_ups: List[Appointment] = []
    failed_follow_ups: int = 0


class PatientView(BaseModel):
    """Refreshed patient snapshot returned after a transition"""
    patient: Optional[Patient] = None
    appointments: List[Appointment] = []
    mdt_meetings: List[MDTMeeting] = []
    timeline: List[TimelineEntry] = []
    pipeline: Optional[PipelineStage] = None


class TransitionResult(BaseModel):
    """Outcome of a transition request"""
    success: bool
    pathway: str
    state: TransitionState
    appointment_details: Optional[AppointmentDetails] = None
    error: Optional[str] = None
    error_kind: Optional[str] = None
    warnings: List[str] = []
    awaiting_discharge_summary: bool = False
    note: Optional[ClinicalNote] = None
    enrichment_errors: List[str] = []
    view: Optional[PatientView] = None
