"""
Clinical controller - PSA calculations
"""

from fastapi import APIRouter, HTTPException
import logging

from core.config import get_pathway_config
from ..models.clinical import PSAStatus, PSAStatusRequest, VelocityRequest, VelocityResult
from ..services.psa_status import psa_status_by_age
from ..services.psa_velocity import calculate_psa_velocity


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/clinical", tags=["clinical"])


@router.post("/psa/velocity", response_model=VelocityResult)
async def psa_velocity(request: VelocityRequest) -> VelocityResult:
    """
    PSA velocity between the two most recent results

    Never fails on bad input: has_enough_data is false and velocity_text
    explains why.
    """
    try:
        return calculate_psa_velocity(request.results, get_pathway_config().psa_velocity_threshold)
    except Exception as e:
        logger.error(f"Error calculating PSA velocity: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@router.post("/psa/status", response_model=PSAStatus)
async def psa_status(request: PSAStatusRequest) -> PSAStatus:
    """Age-adjusted PSA classification"""
    return psa_status_by_age(request.value, request.age)
