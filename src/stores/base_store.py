"""
Store ports

Defines the collaborator interfaces the pathway orchestrator talks to, and the
field normalization every adapter applies so that nothing past the adapter
boundary has to know how the backing store names its fields.
"""

from abc import ABC, abstractmethod
from typing import Dict, List, Any, Optional
from dataclasses import dataclass, field
import datetime as dt
import logging

from pydantic import BaseModel

from domains.pathway.models.notes import parse_note
from domains.pathway.models.records import (
    Appointment,
    AppointmentDraft,
    ClinicalNote,
    CurrentUser,
    MDTMeeting,
    NoteDraft,
    Patient,
)
from domains.pathway.models.pathway import DischargeSummary

logger = logging.getLogger(__name__)


@dataclass
class StoreResult:
    """Standardized store write result"""
    success: bool
    data: Any = None
    error: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def ok(cls, data: Any = None, **metadata) -> "StoreResult":
        return cls(success=True, data=data, metadata=metadata)

    @classmethod
    def failed(cls, error: str, **metadata) -> "StoreResult":
        return cls(success=False, error=error, metadata=metadata)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for API responses"""
        data = self.data.model_dump(mode="json") if isinstance(self.data, BaseModel) else self.data
        result = {'success': self.success, 'data': data, 'metadata': self.metadata}
        if self.error:
            result['error'] = self.error
        return result


class PathwayUpdate(BaseModel):
    """Pathway write sent to the patient store"""
    pathway: str
    reason: str = ""
    notes: str = ""
    skip_auto_booking: bool = True
    appointment_start_date: Optional[dt.date] = None
    appointment_time: Optional[str] = None
    appointment_interval: Optional[int] = None
    requested_by: Optional[CurrentUser] = None


# ---------------------------------------------------------------------------
# Ports
# ---------------------------------------------------------------------------

class PatientStore(ABC):

    @abstractmethod
    async def update_pathway(self, patient_id: str, update: PathwayUpdate) -> StoreResult:
        """
        Persist a pathway change

        Returns:
            StoreResult whose data is the list of follow-up Appointments the
            store auto-booked, empty when it booked none
        """

    @abstractmethod
    async def get_patient(self, patient_id: str) -> Optional[Patient]:
        """Fetch a patient, or None when unknown"""

    @abstractmethod
    async def create_discharge_summary(self, patient_id: str, summary: DischargeSummary) -> StoreResult:
        """Persist a discharge summary"""


class AppointmentStore(ABC):

    @abstractmethod
    async def book_appointment(self, patient_id: str, draft: AppointmentDraft) -> StoreResult:
        """Book an appointment; data is the booked Appointment"""

    @abstractmethod
    async def list_appointments(self, patient_id: str) -> List[Appointment]:
        """List a patient's appointments"""


class NotesStore(ABC):

    @abstractmethod
    async def add_note(self, patient_id: str, draft: NoteDraft) -> StoreResult:
        """Append a note; data is the stored ClinicalNote"""

    @abstractmethod
    async def list_notes(self, patient_id: str) -> List[ClinicalNote]:
        """List a patient's notes newest first"""


class MDTStore(ABC):

    @abstractmethod
    async def list_meetings(self, patient_id: str) -> List[MDTMeeting]:
        """List a patient's MDT meetings"""


class IdentityProvider(ABC):

    @abstractmethod
    async def get(self) -> CurrentUser:
        """The clinician performing the current action"""


class StaticIdentityProvider(IdentityProvider):
    """Identity resolved upstream (gateway headers, tests)"""

    def __init__(self, user: Optional[CurrentUser] = None):
        self.user = user or CurrentUser()

    async def get(self) -> CurrentUser:
        return self.user


@dataclass
class StoreSet:
    """The stores one orchestrator instance works against"""
    patients: PatientStore
    appointments: AppointmentStore
    notes: NotesStore
    mdt: MDTStore
    resources: List[Any] = field(default_factory=list)

    async def cleanup(self) -> None:
        """Release clients shared by the stores"""
        for resource in self.resources:
            await resource.cleanup()


# ---------------------------------------------------------------------------
# Normalization
# ---------------------------------------------------------------------------

PATIENT_FIELD_MAPPINGS = {
    '_id': 'id',
    'patient_id': 'id',
    'firstName': 'first_name',
    'lastName': 'last_name',
    'dateOfBirth': 'date_of_birth',
    'dob': 'date_of_birth',
    'carePathway': 'care_pathway',
    'pathway': 'care_pathway',
    'assignedUrologist': 'assigned_urologist',
}

APPOINTMENT_FIELD_MAPPINGS = {
    '_id': 'id',
    'patientId': 'patient_id',
    'appointmentDate': 'date',
    'appointment_date': 'date',
    'appointmentTime': 'time',
    'appointment_time': 'time',
    'appointmentType': 'type',
    'appointment_type': 'type',
    'surgeryType': 'subtype',
    'surgery_type': 'subtype',
    'urologistId': 'clinician_id',
    'urologist_id': 'clinician_id',
    'clinicianId': 'clinician_id',
    'urologistName': 'clinician_name',
    'urologist_name': 'clinician_name',
    'clinicianName': 'clinician_name',
}

NOTE_FIELD_MAPPINGS = {
    '_id': 'id',
    'patientId': 'patient_id',
    'noteContent': 'content',
    'note_content': 'content',
    'noteType': 'type',
    'note_type': 'type',
    'authorName': 'author_name',
    'authorRole': 'author_role',
    'createdAt': 'created_at',
}

MDT_FIELD_MAPPINGS = {
    '_id': 'id',
    'patientId': 'patient_id',
    'meetingDate': 'meeting_date',
    'scheduledDate': 'meeting_date',
    'scheduled_date': 'meeting_date',
}

_EMPTY_VALUES = ('', 'nan', 'none', 'null')


def standardize_record(raw: Dict[str, Any], field_mappings: Dict[str, str]) -> Dict[str, Any]:
    """
    Rename storage field variants to the canonical names

    The first non-empty value wins when several variants map to the same field.
    """
    standardized: Dict[str, Any] = {}
    for original_key, value in raw.items():
        standard_key = field_mappings.get(original_key, original_key)
        if value is None or str(value).lower() in _EMPTY_VALUES:
            continue
        standardized.setdefault(standard_key, value)
    return standardized


def _date_only(value: Any) -> Any:
    if isinstance(value, dt.datetime):
        return value.date()
    if isinstance(value, str) and 'T' in value:
        return value.split('T', 1)[0]
    return value


def normalize_patient(raw: Dict[str, Any]) -> Patient:
    data = standardize_record(raw, PATIENT_FIELD_MAPPINGS)
    data['id'] = str(data.get('id', ''))
    if 'date_of_birth' in data:
        data['date_of_birth'] = _date_only(data['date_of_birth'])
    return Patient.model_validate(data)


def normalize_appointment(raw: Dict[str, Any], patient_id: Optional[str] = None) -> Appointment:
    data = standardize_record(raw, APPOINTMENT_FIELD_MAPPINGS)
    if 'id' in data:
        data['id'] = str(data['id'])
    data['patient_id'] = str(data.get('patient_id') or patient_id or '')
    data['date'] = _date_only(data.get('date'))
    # Stored times may carry seconds ("10:00:00")
    data['time'] = str(data.get('time', ''))[:5]
    if 'clinician_id' in data:
        data['clinician_id'] = str(data['clinician_id'])
    return Appointment.model_validate(data)


def normalize_note(raw: Dict[str, Any], patient_id: Optional[str] = None) -> ClinicalNote:
    data = standardize_record(raw, NOTE_FIELD_MAPPINGS)
    if 'id' in data:
        data['id'] = str(data['id'])
    data['patient_id'] = str(data.get('patient_id') or patient_id or '')
    content = data.get('content', '')
    data['content'] = content if isinstance(content, BaseModel) else parse_note(str(content))
    return ClinicalNote.model_validate(data)


def normalize_meeting(raw: Dict[str, Any], patient_id: Optional[str] = None) -> MDTMeeting:
    data = standardize_record(raw, MDT_FIELD_MAPPINGS)
    if 'id' in data:
        data['id'] = str(data['id'])
    data['patient_id'] = str(data.get('patient_id') or patient_id or '')
    if 'meeting_date' in data:
        data['meeting_date'] = _date_only(data['meeting_date'])
    return MDTMeeting.model_validate(data)
