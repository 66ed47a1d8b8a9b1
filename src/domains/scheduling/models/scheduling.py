"""
Scheduling domain models
"""

import datetime as dt
from typing import List

from pydantic import BaseModel, Field


class RecurrenceRequest(BaseModel):
    """Preview request for a recurring follow-up series"""
    base_date: dt.date = Field(..., description="Date of the first (already booked) follow-up")
    base_time: str = Field("09:00", description="Time every occurrence is booked at")
    interval_months: int = Field(..., description="Months between follow-ups (1, 3, 6 or 12)")


class Occurrence(BaseModel):
    date: dt.date
    time: str


class RecurrenceResponse(BaseModel):
    """Occurrences following the base appointment"""
    base_date: dt.date
    interval_months: int
    total_occurrences: int
    occurrences: List[Occurrence]
