"""
Scheduling controller - recurring follow-up previews
"""

from fastapi import APIRouter, HTTPException
import logging

from ..models.scheduling import Occurrence, RecurrenceRequest, RecurrenceResponse
from ..services.recurrence import expand


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/scheduling", tags=["scheduling"])


@router.post("/recurrence", response_model=RecurrenceResponse)
async def preview_recurrence(request: RecurrenceRequest) -> RecurrenceResponse:
    """
    Preview the follow-ups a recurring series would book

    The base appointment is not repeated in the occurrence list.
    """
    try:
        series = expand(request.base_date, request.base_time, request.interval_months)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return RecurrenceResponse(
        base_date=request.base_date,
        interval_months=request.interval_months,
        total_occurrences=len(series) + 1,
        occurrences=[Occurrence(date=date, time=time) for date, time in series]
    )
