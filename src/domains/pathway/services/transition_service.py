"""
Pathway transition service - orchestrates a care pathway change

Runs one transition as an ordered saga:

    VALIDATING -> [AWAITING_DISCHARGE_SUMMARY] -> [SAVING_DISCHARGE_SUMMARY]
               -> [BOOKING_PRECONDITION] -> COMMITTING -> ENRICHING
               -> REFRESHING -> DONE

Steps up to and including the pathway commit are fatal: any failure stops the
saga in FAILED and the caller retries the whole request. Steps after the commit
are best-effort enrichments whose failures are logged, counted and reported in
the result without affecting its success.
"""

import asyncio
import logging
import time
import datetime as dt
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Dict, List, Optional, TypeVar

from core.config import PathwayConfig, get_pathway_config
from core.cache import PatientViewCache
from core.metrics import (
    enrichment_failures,
    follow_ups_booked,
    transition_count,
    transition_duration,
    view_cache_hits,
    view_cache_misses,
)
from domains.clinical.models.clinical import VelocityResult
from domains.clinical.services.pipeline import get_pipeline_stage
from domains.clinical.services.timeline import reconcile
from domains.scheduling.services.recurrence import expand
from stores.base_store import IdentityProvider, PathwayUpdate, StoreResult, StoreSet
from ..exceptions import (
    BookingError,
    CommitError,
    EnrichmentError,
    PathwayTransitionError,
    TransitionValidationError,
)
from ..models.notes import PathwayTransferPayload, format_long_date
from ..models.pathway import (
    AUTO_BOOKING_PATHWAYS,
    AppointmentDetails,
    CarePathway,
    DISCHARGE_SUMMARY_PATHWAYS,
    MONITORING_PATHWAYS,
    POST_OP_PATHWAYS,
    PathwayTransitionRequest,
    PatientView,
    StepPolicy,
    TransitionResult,
    TransitionState,
)
from ..models.records import (
    Appointment,
    AppointmentDraft,
    AppointmentType,
    ClinicalNote,
    CurrentUser,
    NoteDraft,
    NoteType,
)
from .validation import validate_transition

logger = logging.getLogger(__name__)

T = TypeVar("T")

STEP_POLICIES: Dict[str, StepPolicy] = {
    "discharge_summary": StepPolicy.FATAL,
    "surgery_booking": StepPolicy.FATAL,
    "commit": StepPolicy.FATAL,
    "recurring_appointments": StepPolicy.BEST_EFFORT,
    "audit_note": StepPolicy.BEST_EFFORT,
    "refresh": StepPolicy.BEST_EFFORT,
}

_KNOWN_PATHWAYS = {p.value for p in CarePathway}


@dataclass
class _Saga:
    """Mutable state of one transition run"""
    patient_id: str
    request: PathwayTransitionRequest
    user: CurrentUser = field(default_factory=CurrentUser)
    state: TransitionState = TransitionState.VALIDATING
    warnings: List[str] = field(default_factory=list)
    velocity: Optional[VelocityResult] = None
    details: AppointmentDetails = field(default_factory=AppointmentDetails)
    note: Optional[ClinicalNote] = None
    view: Optional[PatientView] = None
    enrichment_errors: List[str] = field(default_factory=list)

    @property
    def pathway(self) -> str:
        return self.request.pathway_name

    def enter(self, state: TransitionState) -> None:
        logger.debug(f"Transition for patient {self.patient_id} to {self.pathway}: {self.state.value} -> {state.value}")
        self.state = state


class PathwayTransitionService:
    """Service layer for care pathway transitions"""

    def __init__(
        self,
        stores: StoreSet,
        identity: IdentityProvider,
        config: Optional[PathwayConfig] = None,
        view_cache: Optional[PatientViewCache] = None,
        clock: Callable[[], dt.date] = dt.date.today
    ):
        self.stores = stores
        self.identity = identity
        self.config = config or get_pathway_config()
        self.view_cache = view_cache
        self.clock = clock

    async def transition(self, patient_id: str, request: PathwayTransitionRequest) -> TransitionResult:
        """
        Move a patient to a new care pathway

        Args:
            patient_id: patient to transfer
            request: target pathway and supporting data

        Returns:
            TransitionResult; fatal failures are reported in it rather than raised
        """
        saga = _Saga(patient_id=patient_id, request=request)
        metric_pathway = saga.pathway if saga.pathway in _KNOWN_PATHWAYS else "other"
        start_time = time.perf_counter()

        try:
            result = await self._run(saga)
        finally:
            transition_duration.labels(pathway=metric_pathway).observe(time.perf_counter() - start_time)

        outcome = result.error_kind or ("awaiting" if result.awaiting_discharge_summary else "success")
        transition_count.labels(pathway=metric_pathway, outcome=outcome).inc()
        return result

    async def _run(self, saga: _Saga) -> TransitionResult:
        outcome = validate_transition(saga.request, self.clock(), self.config.psa_velocity_threshold)
        saga.warnings.extend(outcome.warnings)
        saga.velocity = outcome.velocity

        if not outcome.is_valid:
            return self._failed(saga, TransitionValidationError(outcome.errors))

        if saga.pathway in DISCHARGE_SUMMARY_PATHWAYS and saga.request.discharge_summary is None:
            saga.enter(TransitionState.AWAITING_DISCHARGE_SUMMARY)
            logger.info(f"Transfer of patient {saga.patient_id} to {saga.pathway} is waiting for a discharge summary")
            return self._result(saga, success=False, awaiting_discharge_summary=True)

        saga.user = await self.identity.get()

        try:
            if saga.pathway in DISCHARGE_SUMMARY_PATHWAYS:
                saga.enter(TransitionState.SAVING_DISCHARGE_SUMMARY)
                await self._save_discharge_summary(saga)

            if saga.pathway == CarePathway.SURGERY:
                saga.enter(TransitionState.BOOKING_PRECONDITION)
                saga.details.surgery = await self._book_surgery(saga)

            saga.enter(TransitionState.COMMITTING)
            auto_booked = await self._commit(saga)

        except (BookingError, CommitError) as e:
            return self._failed(saga, e)

        if saga.pathway in POST_OP_PATHWAYS:
            saga.details.post_op_follow_ups = auto_booked
        elif auto_booked:
            saga.details.auto_booked = auto_booked[0]
        follow_ups_booked.inc(len(auto_booked))
        logger.info(f"Patient {saga.patient_id} transferred to {saga.pathway}")

        saga.enter(TransitionState.ENRICHING)
        await self._best_effort(saga, "recurring_appointments", lambda: self._book_recurring(saga))
        saga.note = await self._best_effort(saga, "audit_note", lambda: self._create_audit_note(saga))

        if self.config.refresh_views:
            saga.enter(TransitionState.REFRESHING)
            saga.view = await self._best_effort(saga, "refresh", lambda: self._refresh(saga.patient_id))

        # A committed transition must not leave the previous view cached
        if saga.view is None and self.view_cache:
            await self.view_cache.invalidate(saga.patient_id)

        saga.enter(TransitionState.DONE)
        return self._result(saga, success=True)

    # ------------------------------------------------------------------
    # Fatal steps
    # ------------------------------------------------------------------

    async def _save_discharge_summary(self, saga: _Saga) -> None:
        try:
            result = await self.stores.patients.create_discharge_summary(
                saga.patient_id, saga.request.discharge_summary
            )
        except Exception as e:
            raise CommitError(f"Discharge summary could not be saved: {e}") from e
        if not result.success:
            raise CommitError(f"Discharge summary could not be saved: {result.error or 'unknown error'}")

    async def _book_surgery(self, saga: _Saga) -> Appointment:
        """Book the surgery; the pathway is only written once this succeeds"""
        user = saga.user
        if not user.is_complete:
            raise BookingError("Surgery booking failed: clinician identity is incomplete")

        request = saga.request
        draft = AppointmentDraft(
            date=request.surgery_date,
            time=request.surgery_time,
            clinician_id=user.id,
            clinician_name=user.display_name,
            type=AppointmentType.SURGERY.value,
            subtype=CarePathway.SURGERY.value,
            notes=request.reason,
            priority=request.priority.value
        )
        try:
            result = await self.stores.appointments.book_appointment(saga.patient_id, draft)
        except Exception as e:
            raise BookingError(f"Surgery booking failed: {e}") from e
        if not result.success:
            raise BookingError(f"Surgery booking failed: {result.error or 'appointment store rejected the booking'}")

        appointment = result.data or Appointment(patient_id=saga.patient_id, **draft.model_dump())
        logger.info(f"Surgery booked for patient {saga.patient_id} on {appointment.date} at {appointment.time}")
        return appointment

    async def _commit(self, saga: _Saga) -> List[Appointment]:
        """Persist the pathway; returns the follow-ups the store auto-booked"""
        request = saga.request
        monitoring = saga.pathway in MONITORING_PATHWAYS
        update = PathwayUpdate(
            pathway=saga.pathway,
            reason=request.reason,
            notes=request.additional_notes,
            skip_auto_booking=saga.pathway not in AUTO_BOOKING_PATHWAYS,
            appointment_start_date=request.follow_up_date if monitoring else None,
            appointment_time=request.follow_up_time if monitoring else None,
            appointment_interval=request.recurrence_interval if monitoring else None,
            requested_by=saga.user
        )
        try:
            result = await self.stores.patients.update_pathway(saga.patient_id, update)
        except Exception as e:
            raise CommitError(f"Pathway update failed: {e}") from e
        if not result.success:
            raise CommitError(f"Pathway update failed: {result.error or 'patient store rejected the update'}")
        return [apt for apt in result.data or [] if isinstance(apt, Appointment)]

    # ------------------------------------------------------------------
    # Best-effort steps
    # ------------------------------------------------------------------

    async def _best_effort(self, saga: _Saga, step: str, action: Callable[[], Awaitable[T]]) -> Optional[T]:
        """Run an enrichment step; failures are recorded, never raised"""
        try:
            return await action()
        except EnrichmentError as e:
            error = e
        except Exception as e:
            error = EnrichmentError(step, str(e), cause=e)

        logger.warning(f"Transition enrichment '{step}' failed for patient {saga.patient_id}: {error.message}")
        enrichment_failures.labels(step=step).inc()
        saga.enrichment_errors.append(error.message)
        return None

    async def _attempt(self, step: str, call: Callable[[], Awaitable[StoreResult]]) -> StoreResult:
        """Call a store up to the configured number of attempts"""
        last_error = "unknown error"
        for attempt in range(1, self.config.enrichment_max_attempts + 1):
            if attempt > 1:
                await asyncio.sleep(self.config.enrichment_retry_delay_seconds)
            try:
                result = await call()
            except Exception as e:
                last_error = str(e)
                logger.warning(f"Attempt {attempt} of '{step}' raised: {e}")
                continue
            if result.success:
                return result
            last_error = result.error or last_error
            logger.warning(f"Attempt {attempt} of '{step}' failed: {last_error}")
        raise EnrichmentError(step, last_error)

    def _recurrence_base(self, saga: _Saga):
        """The caller's follow-up date if given, otherwise the store's auto-booked one"""
        request = saga.request
        if request.follow_up_date is not None:
            return request.follow_up_date, request.follow_up_time or self._auto_booked_time(saga)
        auto_booked = saga.details.auto_booked
        if auto_booked is not None:
            return auto_booked.date, auto_booked.time
        return None, None

    def _auto_booked_time(self, saga: _Saga) -> str:
        auto_booked = saga.details.auto_booked
        return auto_booked.time if auto_booked else self.config.default_follow_up_time

    async def _book_recurring(self, saga: _Saga) -> None:
        step = "recurring_appointments"
        interval = saga.request.recurrence_interval
        if saga.pathway not in MONITORING_PATHWAYS or not interval:
            return

        base_date, base_time = self._recurrence_base(saga)
        if base_date is None:
            logger.info(f"No follow-up was booked for patient {saga.patient_id}; skipping recurring appointments")
            return

        user = saga.user
        if not user.is_complete:
            raise EnrichmentError(step, "clinician identity is incomplete")

        series = expand(base_date, base_time, interval)
        for index, (occurrence_date, occurrence_time) in enumerate(series, start=2):
            draft = AppointmentDraft(
                date=occurrence_date,
                time=occurrence_time,
                clinician_id=user.id,
                clinician_name=user.display_name,
                type=AppointmentType.FOLLOW_UP.value,
                notes=f"{saga.pathway} follow-up ({index} of {len(series) + 1}), every {interval} months",
                priority=saga.request.priority.value
            )
            try:
                result = await self._attempt(
                    step, lambda: self.stores.appointments.book_appointment(saga.patient_id, draft)
                )
            except EnrichmentError as e:
                logger.warning(f"Follow-up on {occurrence_date} was not booked for patient {saga.patient_id}: {e.message}")
                saga.details.failed_follow_ups += 1
                continue
            saga.details.follow_ups.append(
                result.data or Appointment(patient_id=saga.patient_id, **draft.model_dump())
            )
            follow_ups_booked.inc()

        if saga.details.failed_follow_ups:
            raise EnrichmentError(
                step, f"{saga.details.failed_follow_ups} of {len(series)} recurring follow-ups could not be booked"
            )

    def _build_audit_payload(self, saga: _Saga) -> PathwayTransferPayload:
        request = saga.request
        details = saga.details

        surgery = []
        if details.surgery:
            surgery.append(f"{format_long_date(details.surgery.date)} at {details.surgery.time}")

        follow_up = []
        if details.auto_booked:
            follow_up.append(
                f"{format_long_date(details.auto_booked.date)} at {details.auto_booked.time}"
                f" with {details.auto_booked.clinician_name or saga.user.display_name}"
            )
        elif request.follow_up_date and saga.pathway in MONITORING_PATHWAYS:
            follow_up.append(
                f"{format_long_date(request.follow_up_date)} at {request.follow_up_time or self.config.default_follow_up_time}"
            )
        follow_up.extend(
            f"Post-operative review {format_long_date(apt.date)} at {apt.time}"
            f" with {apt.clinician_name or saga.user.display_name}"
            for apt in details.post_op_follow_ups
        )
        if details.follow_ups:
            follow_up.append(
                f"Recurring every {request.recurrence_interval} months: "
                + ", ".join(format_long_date(apt.date) for apt in details.follow_ups)
            )

        velocity = saga.velocity
        return PathwayTransferPayload(
            target_pathway=saga.pathway,
            priority=request.priority.value,
            reason=request.reason,
            clinical_rationale=request.clinical_rationale,
            additional_notes=request.additional_notes,
            medications=[med.summary() for med in request.medications if med.is_complete],
            surgery=surgery,
            follow_up=follow_up,
            psa_velocity=velocity.velocity_text if velocity and velocity.has_enough_data else None,
            medication_prescribed=saga.pathway == CarePathway.MEDICATION and bool(request.medications)
        )

    async def _create_audit_note(self, saga: _Saga) -> Optional[ClinicalNote]:
        draft = NoteDraft(
            content=self._build_audit_payload(saga),
            type=NoteType.PATHWAY_TRANSFER.value,
            author_id=saga.user.id,
            author_name=saga.user.display_name,
            author_role=saga.user.role
        )
        result = await self._attempt(
            "audit_note", lambda: self.stores.notes.add_note(saga.patient_id, draft)
        )
        return result.data if isinstance(result.data, ClinicalNote) else None

    async def _refresh(self, patient_id: str) -> PatientView:
        view = await self.build_view(patient_id)
        if self.view_cache:
            await self.view_cache.store_view(patient_id, view.model_dump(mode="json"))
        return view

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------

    async def build_view(self, patient_id: str) -> PatientView:
        """Re-read the patient's records concurrently and derive timeline and pipeline"""
        patient, appointments, meetings, notes = await asyncio.gather(
            self.stores.patients.get_patient(patient_id),
            self.stores.appointments.list_appointments(patient_id),
            self.stores.mdt.list_meetings(patient_id),
            self.stores.notes.list_notes(patient_id),
        )
        return PatientView(
            patient=patient,
            appointments=appointments,
            mdt_meetings=meetings,
            timeline=reconcile(notes),
            pipeline=get_pipeline_stage(patient, appointments, meetings, self.clock()) if patient else None
        )

    async def get_view(self, patient_id: str) -> PatientView:
        """Patient view, served from cache when available"""
        if self.view_cache:
            cached = await self.view_cache.get_view(patient_id)
            if cached:
                view_cache_hits.inc()
                return PatientView.model_validate(cached)
            view_cache_misses.inc()

        view = await self.build_view(patient_id)
        if self.view_cache:
            await self.view_cache.store_view(patient_id, view.model_dump(mode="json"))
        return view

    # ------------------------------------------------------------------
    # Results
    # ------------------------------------------------------------------

    def _failed(self, saga: _Saga, error: PathwayTransitionError) -> TransitionResult:
        logger.error(f"Transition of patient {saga.patient_id} to {saga.pathway or '<none>'} "
                     f"failed during {saga.state.value}: {error.message}")
        saga.enter(TransitionState.FAILED)
        return self._result(saga, success=False, error=error.message, error_kind=error.kind)

    def _result(self, saga: _Saga, success: bool, **extra) -> TransitionResult:
        details = saga.details
        has_details = (details.surgery or details.auto_booked or details.follow_ups
                       or details.post_op_follow_ups or details.failed_follow_ups)
        return TransitionResult(
            success=success,
            pathway=saga.pathway,
            state=saga.state,
            appointment_details=details if has_details else None,
            warnings=saga.warnings,
            note=saga.note,
            enrichment_errors=saga.enrichment_errors,
            view=saga.view,
            **extra
        )
