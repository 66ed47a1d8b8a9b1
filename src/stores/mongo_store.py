"""
MongoDB store adapter

Repositories over the motor collections managed by DatabaseManager. The patient
store books the first follow-up itself when a pathway write asks for it.
"""

import logging
import datetime as dt
from typing import Dict, List, Any, Optional

from bson import ObjectId

from core.config import PathwayConfig, get_pathway_config
from core.database import BaseRepository, DatabaseManager
from domains.pathway.models.notes import render_note
from domains.pathway.models.pathway import CarePathway, DischargeSummary, POST_OP_FOLLOW_UP_MONTHS, POST_OP_PATHWAYS
from domains.pathway.models.records import (
    Appointment,
    AppointmentDraft,
    AppointmentType,
    ClinicalNote,
    MDTMeeting,
    NoteDraft,
    Patient,
)
from domains.scheduling.services.recurrence import add_months
from .base_store import (
    AppointmentStore,
    MDTStore,
    NotesStore,
    PathwayUpdate,
    PatientStore,
    StoreResult,
    normalize_appointment,
    normalize_meeting,
    normalize_note,
    normalize_patient,
)

logger = logging.getLogger(__name__)


def id_filter(record_id: str) -> Dict[str, Any]:
    """Match a document by ObjectId or by its string id"""
    if ObjectId.is_valid(record_id):
        return {"$or": [{"_id": ObjectId(record_id)}, {"id": record_id}]}
    return {"$or": [{"_id": record_id}, {"id": record_id}]}


def _as_datetime(value: dt.date) -> dt.datetime:
    # BSON has no date-only type
    return dt.datetime(value.year, value.month, value.day)


class MongoAppointmentStore(BaseRepository, AppointmentStore):

    def __init__(self, db_manager: DatabaseManager):
        super().__init__(db_manager, db_manager.config.appointments_collection)

    async def insert_appointment(self, patient_id: str, draft: AppointmentDraft, created_by: Optional[str] = None) -> Appointment:
        document = {
            "patient_id": patient_id,
            "date": _as_datetime(draft.date),
            "time": draft.time,
            "type": draft.type,
            "subtype": draft.subtype,
            "clinician_id": draft.clinician_id,
            "clinician_name": draft.clinician_name,
            "notes": draft.notes,
            "priority": draft.priority,
            "status": "scheduled",
            "created_by": created_by or draft.clinician_id,
        }
        inserted_id = await self.insert_one(document)
        document["_id"] = inserted_id
        return normalize_appointment(document, patient_id)

    async def book_appointment(self, patient_id: str, draft: AppointmentDraft) -> StoreResult:
        try:
            return StoreResult.ok(await self.insert_appointment(patient_id, draft))
        except Exception as e:
            logger.error(f"Failed to book {draft.type} appointment for patient {patient_id}: {e}")
            return StoreResult.failed(str(e))

    async def list_appointments(self, patient_id: str) -> List[Appointment]:
        documents = await self.find_many({"patient_id": patient_id}, sort=[("date", 1), ("time", 1)])
        return [normalize_appointment(doc, patient_id) for doc in documents]


class MongoPatientStore(BaseRepository, PatientStore):

    def __init__(
        self,
        db_manager: DatabaseManager,
        appointments: MongoAppointmentStore,
        pathway_config: Optional[PathwayConfig] = None
    ):
        super().__init__(db_manager, db_manager.config.patients_collection)
        self.appointments = appointments
        self.pathway_config = pathway_config or get_pathway_config()

    async def update_pathway(self, patient_id: str, update: PathwayUpdate) -> StoreResult:
        now = dt.datetime.utcnow()
        changes = {
            "care_pathway": update.pathway,
            "status": "Discharged" if update.pathway == CarePathway.DISCHARGE else "Active",
            "care_pathway_updated_at": now,
        }
        if update.notes:
            changes["notes"] = update.notes

        try:
            result = await self.collection.update_one(
                id_filter(patient_id),
                {"$set": {**changes, "updated_at": now}}
            )
        except Exception as e:
            logger.error(f"Pathway update failed for patient {patient_id}: {e}")
            return StoreResult.failed(str(e))

        if result.matched_count == 0:
            return StoreResult.failed(f"Patient {patient_id} not found")

        logger.info(f"Patient {patient_id} moved to {update.pathway}")

        auto_booked = []
        if not update.skip_auto_booking:
            auto_booked = await self._auto_book_follow_ups(patient_id, update)
        return StoreResult.ok(auto_booked)

    async def _auto_book_follow_ups(self, patient_id: str, update: PathwayUpdate) -> List[Appointment]:
        """
        Book the follow-ups a pathway starts with; failures here never fail the pathway write

        Post-operative pathways get reviews at 6 and 12 months, other pathways
        a single follow-up at the requested date.
        """
        user = update.requested_by
        if user is None or not user.is_complete:
            logger.warning(f"Could not auto-book follow-up for patient {patient_id}: no clinician identity")
            return []

        config = self.pathway_config
        today = dt.date.today()
        if update.pathway in POST_OP_PATHWAYS:
            drafts = [
                AppointmentDraft(
                    date=add_months(today, months),
                    time=config.default_follow_up_time,
                    clinician_id=user.id,
                    clinician_name=user.display_name,
                    type=AppointmentType.UROLOGIST.value,
                    notes=f"Auto-booked {months}-month post-operative follow-up. {update.reason}".strip()
                )
                for months in POST_OP_FOLLOW_UP_MONTHS
            ]
        else:
            drafts = [AppointmentDraft(
                date=update.appointment_start_date or add_months(today, config.default_follow_up_months),
                time=update.appointment_time or config.default_follow_up_time,
                clinician_id=user.id,
                clinician_name=user.display_name,
                type=AppointmentType.UROLOGIST.value,
                notes=f"Auto-booked for {update.pathway} follow-up. {update.reason}".strip()
            )]

        booked = []
        for draft in drafts:
            try:
                appointment = await self.appointments.insert_appointment(patient_id, draft, created_by=user.id)
            except Exception as e:
                logger.error(f"Auto-booking on {draft.date} failed (non-fatal) for patient {patient_id}: {e}")
                continue
            logger.info(f"Auto-booked follow-up for patient {patient_id} on {appointment.date} at {appointment.time}")
            booked.append(appointment)
        return booked

    async def get_patient(self, patient_id: str) -> Optional[Patient]:
        document = await self.find_one(id_filter(patient_id))
        return normalize_patient(document) if document else None

    async def create_discharge_summary(self, patient_id: str, summary: DischargeSummary) -> StoreResult:
        document = summary.model_dump()
        document["discharge_date"] = _as_datetime(summary.discharge_date)
        document["patient_id"] = patient_id
        try:
            summaries = self.db_manager.get_collection(self.db_manager.config.discharge_summaries_collection)
            result = await summaries.insert_one(document)
        except Exception as e:
            logger.error(f"Failed to save discharge summary for patient {patient_id}: {e}")
            return StoreResult.failed(str(e))
        return StoreResult.ok({"id": str(result.inserted_id)})


class MongoNotesStore(BaseRepository, NotesStore):

    def __init__(self, db_manager: DatabaseManager):
        super().__init__(db_manager, db_manager.config.notes_collection)

    async def add_note(self, patient_id: str, draft: NoteDraft) -> StoreResult:
        document = {
            "patient_id": patient_id,
            "content": render_note(draft.content),
            "type": draft.type,
            "author_id": draft.author_id,
            "author_name": draft.author_name,
            "author_role": draft.author_role,
        }
        try:
            inserted_id = await self.insert_one(document)
        except Exception as e:
            logger.error(f"Failed to add note for patient {patient_id}: {e}")
            return StoreResult.failed(str(e))
        document["_id"] = inserted_id
        return StoreResult.ok(normalize_note(document, patient_id))

    async def list_notes(self, patient_id: str) -> List[ClinicalNote]:
        documents = await self.find_many({"patient_id": patient_id}, sort=[("created_at", -1)])
        return [normalize_note(doc, patient_id) for doc in documents]


class MongoMDTStore(BaseRepository, MDTStore):

    def __init__(self, db_manager: DatabaseManager):
        super().__init__(db_manager, db_manager.config.mdt_meetings_collection)

    async def list_meetings(self, patient_id: str) -> List[MDTMeeting]:
        documents = await self.find_many({"patient_id": patient_id}, sort=[("meeting_date", -1)])
        return [normalize_meeting(doc, patient_id) for doc in documents]
