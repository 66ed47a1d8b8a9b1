"""
Clinical domain models
"""

import datetime as dt
from typing import Optional, List, Union

from pydantic import BaseModel, Field

from domains.pathway.models.records import ClinicalNote


class PSAResult(BaseModel):
    """A recorded PSA lab result"""
    value: Union[float, str, None] = Field(None, description="Numeric value or text such as '4.2 ng/mL'")
    test_date: Union[dt.datetime, dt.date, str, None] = Field(None, description="Date the sample was taken")


class VelocityResult(BaseModel):
    """PSA velocity between the two most recent results"""
    has_enough_data: bool
    velocity: Optional[float] = None
    is_high_risk: bool = False
    velocity_text: str
    latest_value: Optional[float] = None
    previous_value: Optional[float] = None
    time_diff_years: Optional[float] = None


class PSAStatus(BaseModel):
    """Age-adjusted PSA classification"""
    status: str
    threshold: Optional[float] = None
    message: str


class PSAStatusRequest(BaseModel):
    value: Union[float, str, None] = None
    age: Optional[int] = None


class VelocityRequest(BaseModel):
    results: List[PSAResult] = []


class TimelineEntry(BaseModel):
    """A note positioned in the rendered timeline"""
    note: ClinicalNote
    indent_level: int = 0


class StageInfo(BaseModel):
    id: str
    name: str
    is_active: bool = False
    is_completed: bool = False
    is_pending: bool = False


class PipelineStage(BaseModel):
    """Where a patient sits on the referral-to-discharge pipeline"""
    current_stage: str
    stage_index: int
    stages: List[StageInfo]
