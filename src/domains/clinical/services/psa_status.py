"""
Age-adjusted PSA status

Thresholds follow the PCFA/USANZ age bands used by the referral clinic.
"""

from typing import Optional, Union, NamedTuple

from ..models.clinical import PSAStatus
from .psa_velocity import parse_psa_value


class AgeBand(NamedTuple):
    min_age: int
    max_age: int
    normal_limit: float
    high: float
    elevated: Optional[float]
    label: str


AGE_BANDS = (
    AgeBand(10, 39, 1.5, 2.0, 1.5, "Age 10-39"),
    AgeBand(40, 49, 2.0, 2.0, None, "Age 40-49"),
    AgeBand(50, 59, 3.0, 3.0, None, "Age 50-59"),
    AgeBand(60, 69, 4.0, 4.0, 3.0, "Age 60-69"),
    AgeBand(70, 79, 5.5, 5.5, None, "Age 70-79"),
    AgeBand(80, 100, 6.5, 10.0, 6.5, "Age 80-100"),
)

DEFAULT_THRESHOLD = 4.0


def threshold_for_age(age: Optional[int]) -> float:
    """Age-adjusted upper limit of normal"""
    band = _band_for(age)
    return band.normal_limit if band else DEFAULT_THRESHOLD


def _band_for(age: Optional[int]) -> Optional[AgeBand]:
    if age is None or age < 10:
        return None
    return next((band for band in AGE_BANDS if band.min_age <= age <= band.max_age), None)


def psa_status_by_age(value: Union[float, str, None], age: Optional[int]) -> PSAStatus:
    """Classify a PSA value as Normal, Elevated, High or Low for the patient's age"""
    psa = parse_psa_value(value)
    if psa is None:
        return PSAStatus(status="Normal", threshold=None, message="Invalid PSA value")

    if psa < 0.0:
        return PSAStatus(status="Low", threshold=0.0, message="PSA < 0.0 ng/mL")

    band = _band_for(age)
    if band is None:
        suffix = " (age not available)" if age is None or age < 10 else ""
        if psa > DEFAULT_THRESHOLD:
            return PSAStatus(status="High", threshold=DEFAULT_THRESHOLD,
                             message=f"PSA > 4.0 ng/mL{suffix}")
        return PSAStatus(status="Normal", threshold=DEFAULT_THRESHOLD, message="PSA 0.0 - 4.0 ng/mL")

    if psa > band.high:
        return PSAStatus(status="High", threshold=band.high,
                         message=f"PSA > {band.high} ng/mL ({band.label})")
    if band.elevated is not None and psa > band.elevated:
        return PSAStatus(status="Elevated", threshold=band.elevated,
                         message=f"PSA > {band.elevated} ng/mL ({band.label})")

    return PSAStatus(status="Normal", threshold=band.normal_limit,
                     message=f"PSA 0.0 - {band.normal_limit} ng/mL ({band.label}: Normal range)")
