"""
Pathway controller - HTTP endpoint handlers
"""

from typing import List
from fastapi import APIRouter, HTTPException, Path, Depends, Response
import logging

from core.dependencies import get_transition_service
from domains.clinical.models.clinical import TimelineEntry, PipelineStage
from ..models.pathway import PathwayTransitionRequest, TransitionResult, PatientView
from ..services.transition_service import PathwayTransitionService


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/patients", tags=["pathway"])

ERROR_STATUS = {
    "validation": 400,
    "booking": 502,
    "commit": 502,
}


@router.post("/{patient_id}/pathway/transitions", response_model=TransitionResult)
async def transition_pathway(
    request: PathwayTransitionRequest,
    response: Response,
    patient_id: str = Path(..., description="Patient ID"),
    service: PathwayTransitionService = Depends(get_transition_service)
) -> TransitionResult:
    """
    Transfer a patient to another care pathway

    Returns 202 when a discharge summary must be attached before the transfer
    can complete, 400 when the request fails validation and 502 when the
    surgery booking or the pathway write fails. Enrichment failures (recurring
    follow-ups, audit note, view refresh) do not change the status; they are
    listed in enrichment_errors.
    """
    try:
        result = await service.transition(patient_id, request)
    except Exception as e:
        logger.error(f"Error transferring patient {patient_id}: {e}")
        raise HTTPException(status_code=500, detail=str(e))

    if result.awaiting_discharge_summary:
        response.status_code = 202
    elif result.error_kind:
        response.status_code = ERROR_STATUS.get(result.error_kind, 500)

    return result


@router.get("/{patient_id}/view", response_model=PatientView)
async def get_patient_view(
    patient_id: str = Path(..., description="Patient ID"),
    service: PathwayTransitionService = Depends(get_transition_service)
) -> PatientView:
    """Patient, appointments, MDT meetings, timeline and pipeline stage in one view"""
    try:
        view = await service.get_view(patient_id)
    except Exception as e:
        logger.error(f"Error building view for patient {patient_id}: {e}")
        raise HTTPException(status_code=500, detail=str(e))

    if view.patient is None:
        raise HTTPException(status_code=404, detail=f"Patient {patient_id} not found")
    return view


@router.get("/{patient_id}/timeline", response_model=List[TimelineEntry])
async def get_patient_timeline(
    patient_id: str = Path(..., description="Patient ID"),
    service: PathwayTransitionService = Depends(get_transition_service)
) -> List[TimelineEntry]:
    """
    Clinical note timeline

    Surgical transfer notes are followed by the surgery reschedule notes that
    belong to them, indented one level.
    """
    try:
        view = await service.get_view(patient_id)
    except Exception as e:
        logger.error(f"Error building timeline for patient {patient_id}: {e}")
        raise HTTPException(status_code=500, detail=str(e))

    return view.timeline


@router.get("/{patient_id}/pipeline", response_model=PipelineStage)
async def get_patient_pipeline(
    patient_id: str = Path(..., description="Patient ID"),
    service: PathwayTransitionService = Depends(get_transition_service)
) -> PipelineStage:
    """Current referral-to-discharge pipeline stage"""
    try:
        view = await service.get_view(patient_id)

        if view.pipeline is None:
            raise HTTPException(status_code=404, detail=f"Patient {patient_id} not found")

        return view.pipeline

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error computing pipeline stage for patient {patient_id}: {e}")
        raise HTTPException(status_code=500, detail=str(e))
