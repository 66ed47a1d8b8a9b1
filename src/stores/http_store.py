"""
Clinical REST API store adapter

Talks to the clinical records API over aiohttp. Responses follow the
{success, message, data} envelope; payload field names are camelCase on the
wire and normalized here.
"""

import asyncio
import logging
from typing import Dict, List, Any, Optional, Tuple

import aiohttp

from core.config import HTTPConfig, get_http_config
from domains.pathway.models.notes import render_note
from domains.pathway.models.pathway import DischargeSummary
from domains.pathway.models.records import (
    Appointment,
    AppointmentDraft,
    ClinicalNote,
    MDTMeeting,
    NoteDraft,
    Patient,
)
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


class ClinicalApiError(Exception):
    """The clinical API answered with a non-success status"""

    def __init__(self, status: int, message: str):
        super().__init__(f"Clinical API returned {status}: {message}")
        self.status = status
        self.message = message


class ClinicalApiClient:
    """Shared aiohttp session for the clinical records API"""

    def __init__(self, config: Optional[HTTPConfig] = None, session: Optional[aiohttp.ClientSession] = None):
        self.config = config or get_http_config()
        self._session = session
        self._owns_session = session is None

    async def initialize(self) -> None:
        """Create the pooled HTTP session"""
        if self._session is not None:
            return

        logger.info(f"Initializing clinical API client for {self.config.base_url}")
        connector = aiohttp.TCPConnector(
            limit=self.config.max_pool_size,
            limit_per_host=self.config.max_per_host,
            ttl_dns_cache=self.config.ttl_dns_cache
        )
        timeout = aiohttp.ClientTimeout(
            total=self.config.total_timeout,
            connect=self.config.connect_timeout
        )
        self._session = aiohttp.ClientSession(connector=connector, timeout=timeout)

    async def cleanup(self) -> None:
        if self._session and self._owns_session:
            await self._session.close()
            logger.info("Clinical API session closed")
        self._session = None

    def _headers(self) -> Dict[str, str]:
        headers = {'Content-Type': 'application/json', 'Accept': 'application/json'}
        if self.config.api_token:
            headers['Authorization'] = f"Bearer {self.config.api_token}"
        return headers

    async def request(self, method: str, path: str, payload: Optional[Dict[str, Any]] = None) -> Any:
        """
        Call the API and return the envelope's data

        Raises:
            ClinicalApiError: non-2xx status or success=false envelope
            aiohttp.ClientError, asyncio.TimeoutError: transport failures
        """
        if self._session is None:
            await self.initialize()

        url = f"{self.config.base_url.rstrip('/')}/{path.lstrip('/')}"
        async with self._session.request(method, url, json=payload, headers=self._headers()) as response:
            if response.status >= 400:
                error_text = await response.text()
                logger.error(f"Clinical API error: {method} {path} -> {response.status} - {error_text}")
                raise ClinicalApiError(response.status, error_text)

            body = await response.json(content_type=None)
            if isinstance(body, dict) and body.get('success') is False:
                raise ClinicalApiError(response.status, body.get('message', 'Request failed'))
            return body.get('data') if isinstance(body, dict) and 'data' in body else body


def _extract_list(data: Any, keys: Tuple[str, ...]) -> List[Dict[str, Any]]:
    if isinstance(data, list):
        return data
    if isinstance(data, dict):
        for key in keys:
            if isinstance(data.get(key), list):
                return data[key]
    return []


class _HttpStore:

    def __init__(self, client: ClinicalApiClient):
        self.client = client

    async def _write(self, method: str, path: str, payload: Dict[str, Any], action: str) -> Tuple[bool, Any, Optional[str]]:
        try:
            return True, await self.client.request(method, path, payload), None
        except ClinicalApiError as e:
            return False, None, e.message
        except asyncio.TimeoutError:
            logger.error(f"Clinical API timeout during {action}")
            return False, None, "timeout"
        except aiohttp.ClientError as e:
            logger.error(f"Clinical API exception during {action}: {e}")
            return False, None, str(e)


class HttpPatientStore(_HttpStore, PatientStore):

    async def update_pathway(self, patient_id: str, update: PathwayUpdate) -> StoreResult:
        payload = {
            'pathway': update.pathway,
            'reason': update.reason,
            'notes': update.notes,
            'skipAutoBooking': update.skip_auto_booking,
        }
        if update.appointment_start_date:
            payload['appointmentStartDate'] = update.appointment_start_date.isoformat()
        if update.appointment_time:
            payload['appointmentTime'] = update.appointment_time
        if update.appointment_interval:
            payload['appointmentInterval'] = update.appointment_interval

        ok, data, error = await self._write('PUT', f"/patients/{patient_id}/pathway", payload, "pathway update")
        if not ok:
            return StoreResult.failed(error or "Pathway update failed")

        auto_booked = []
        raw = data.get('autoBookedAppointment') if isinstance(data, dict) else None
        if raw:
            # Post-op transfers list every booked review under allAppointments
            series = raw.get('allAppointments') or [raw]
            clinician = {'urologistName': raw.get('urologistName'), 'urologistId': raw.get('urologistId')}
            auto_booked = [
                normalize_appointment({'type': 'urologist', **item, **clinician}, patient_id) for item in series
            ]
        return StoreResult.ok(auto_booked)

    async def get_patient(self, patient_id: str) -> Optional[Patient]:
        try:
            data = await self.client.request('GET', f"/patients/{patient_id}")
        except ClinicalApiError as e:
            if e.status == 404:
                return None
            raise
        if isinstance(data, dict) and isinstance(data.get('patient'), dict):
            data = data['patient']
        return normalize_patient(data) if data else None

    async def create_discharge_summary(self, patient_id: str, summary: DischargeSummary) -> StoreResult:
        payload = {
            'dischargeDate': summary.discharge_date.isoformat(),
            'diagnosis': summary.diagnosis,
            'procedure': summary.procedure,
            'clinicalSummary': summary.clinical_summary,
            'medications': summary.medications,
            'followUp': summary.follow_up_instructions,
            'gpActions': summary.gp_actions,
        }
        ok, data, error = await self._write('POST', f"/patients/{patient_id}/discharge-summary", payload,
                                            "discharge summary")
        return StoreResult.ok(data) if ok else StoreResult.failed(error or "Discharge summary was not saved")


class HttpAppointmentStore(_HttpStore, AppointmentStore):

    async def book_appointment(self, patient_id: str, draft: AppointmentDraft) -> StoreResult:
        payload = {
            'appointmentDate': draft.date.isoformat(),
            'appointmentTime': draft.time,
            'urologistId': draft.clinician_id,
            'urologistName': draft.clinician_name,
            'appointmentType': draft.type,
            'notes': draft.notes,
        }
        if draft.subtype:
            payload['surgeryType'] = draft.subtype
        if draft.priority:
            payload['priority'] = draft.priority

        ok, data, error = await self._write('POST', f"/booking/patients/{patient_id}/appointments", payload,
                                            "appointment booking")
        if not ok:
            return StoreResult.failed(error or "Appointment booking failed")

        raw = data if isinstance(data, dict) else {}
        raw = raw.get('appointment', raw)
        appointment = normalize_appointment(
            {**raw, **draft.model_dump(exclude_none=True)}, patient_id
        )
        return StoreResult.ok(appointment)

    async def list_appointments(self, patient_id: str) -> List[Appointment]:
        data = await self.client.request('GET', f"/booking/patients/{patient_id}/appointments")
        return [normalize_appointment(raw, patient_id) for raw in _extract_list(data, ('appointments',))]


class HttpNotesStore(_HttpStore, NotesStore):

    async def add_note(self, patient_id: str, draft: NoteDraft) -> StoreResult:
        payload = {'noteContent': render_note(draft.content), 'noteType': draft.type}
        ok, data, error = await self._write('POST', f"/patients/{patient_id}/notes", payload, "note creation")
        if not ok:
            return StoreResult.failed(error or "Note was not saved")
        if not isinstance(data, dict) or not (data.get('createdAt') or data.get('created_at')):
            return StoreResult.ok()
        return StoreResult.ok(normalize_note(data, patient_id))

    async def list_notes(self, patient_id: str) -> List[ClinicalNote]:
        data = await self.client.request('GET', f"/patients/{patient_id}/notes")
        return [normalize_note(raw, patient_id) for raw in _extract_list(data, ('notes',))]


class HttpMDTStore(_HttpStore, MDTStore):

    async def list_meetings(self, patient_id: str) -> List[MDTMeeting]:
        data = await self.client.request('GET', f"/patients/{patient_id}/mdt")
        return [normalize_meeting(raw, patient_id) for raw in _extract_list(data, ('meetings', 'mdtMeetings'))]
