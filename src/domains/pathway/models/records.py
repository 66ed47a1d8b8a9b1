"""
Canonical clinical records shared by the pathway, scheduling and clinical domains.

Store adapters normalize whatever field names the backing store uses into these
models; nothing past the adapter boundary looks at raw records.
"""

import datetime as dt
from enum import Enum
from typing import Optional, List

from pydantic import BaseModel, Field

from .notes import NotePayload


class AppointmentType(str, Enum):
    """Appointment kinds created by the orchestrator"""
    UROLOGIST = "urologist"
    SURGERY = "surgery"
    FOLLOW_UP = "follow-up"


class NoteType(str, Enum):
    """Note types understood by the timeline"""
    CLINICAL = "clinical"
    PATHWAY_TRANSFER = "pathway_transfer"
    INVESTIGATION_REQUEST = "investigation_request"
    CLINICAL_INVESTIGATION = "clinical_investigation"
    NO_SHOW = "no_show"


class CurrentUser(BaseModel):
    """The clinician performing the action"""
    id: Optional[str] = None
    display_name: Optional[str] = None
    role: Optional[str] = None

    @property
    def is_complete(self) -> bool:
        return bool(self.id and self.id.strip() and self.display_name and self.display_name.strip())


class Patient(BaseModel):
    """Patient as seen by the pathway service"""
    id: str
    upi: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    date_of_birth: Optional[dt.date] = None
    age: Optional[int] = None
    care_pathway: str = ""
    status: str = ""
    assigned_urologist: Optional[str] = None


class Appointment(BaseModel):
    """Booked appointment"""
    id: Optional[str] = None
    patient_id: str
    date: dt.date
    time: str
    type: str = AppointmentType.UROLOGIST.value
    subtype: Optional[str] = None
    clinician_id: Optional[str] = None
    clinician_name: Optional[str] = None
    notes: str = ""
    priority: Optional[str] = None
    status: str = "scheduled"


class AppointmentDraft(BaseModel):
    """Appointment booking request sent to the appointment store"""
    date: dt.date
    time: str
    clinician_id: str
    clinician_name: str
    type: str
    subtype: Optional[str] = None
    notes: str = ""
    priority: Optional[str] = None


class ClinicalNote(BaseModel):
    """A stored clinical note with its content decoded"""
    id: Optional[str] = None
    patient_id: str
    content: NotePayload = Field(..., discriminator="kind")
    type: str = NoteType.CLINICAL.value
    author_name: Optional[str] = None
    author_role: Optional[str] = None
    created_at: dt.datetime


class NoteDraft(BaseModel):
    """Note creation request sent to the notes store"""
    content: NotePayload = Field(..., discriminator="kind")
    type: str = NoteType.CLINICAL.value
    author_id: Optional[str] = None
    author_name: Optional[str] = None
    author_role: Optional[str] = None


class MDTMeeting(BaseModel):
    """Multidisciplinary team meeting (read-only here)"""
    id: Optional[str] = None
    patient_id: str
    meeting_date: Optional[dt.date] = None
    status: str = ""
