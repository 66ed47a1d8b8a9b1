"""
PSA velocity

Rate of change between the two most recent PSA results, in ng/mL per year.
Pure function: no I/O, same input always gives the same output.
"""

import math
import re
import datetime as dt
from typing import Iterable, Optional, Union

from ..models.clinical import PSAResult, VelocityResult


DAYS_PER_YEAR = 365.25
HIGH_RISK_VELOCITY = 0.75

_UNIT_SUFFIX = re.compile(r"\s*ng\s*/\s*ml\s*$", re.IGNORECASE)


def parse_psa_value(value: Union[float, int, str, None]) -> Optional[float]:
    """Return the numeric PSA value, or None when it cannot be read"""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    else:
        text = _UNIT_SUFFIX.sub("", str(value)).strip()
        try:
            number = float(text)
        except ValueError:
            return None
    return number if math.isfinite(number) else None


def parse_test_date(value: Union[dt.datetime, dt.date, str, None]) -> Optional[dt.datetime]:
    """Return the test date as a naive datetime, or None when it is not a valid date"""
    if value is None:
        return None
    if isinstance(value, dt.datetime):
        return _as_naive_utc(value)
    if isinstance(value, dt.date):
        return dt.datetime(value.year, value.month, value.day)
    text = str(value).strip()
    if not text:
        return None
    try:
        parsed = dt.datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        return None
    return _as_naive_utc(parsed)


def _as_naive_utc(value: dt.datetime) -> dt.datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(dt.timezone.utc).replace(tzinfo=None)


def format_velocity(velocity: float) -> str:
    return f"{velocity:.2f} ng/mL/year"


def _insufficient(text: str) -> VelocityResult:
    return VelocityResult(has_enough_data=False, velocity_text=text)


def calculate_psa_velocity(
    results: Optional[Iterable[PSAResult]],
    threshold: float = HIGH_RISK_VELOCITY
) -> VelocityResult:
    """
    Calculate PSA velocity from lab results

    Results are ordered newest first by test date (stable, so equal dates
    keep their input order) and the two most recent are compared.

    Args:
        results: PSA results in any order
        threshold: velocity above which the patient is flagged high risk

    Returns:
        VelocityResult; has_enough_data is False instead of raising when the
        inputs cannot produce a meaningful velocity
    """
    results = list(results or [])
    if len(results) < 2:
        return _insufficient("Insufficient data (need at least 2 PSA results)")

    dated = [(parse_test_date(r.test_date), r) for r in results]
    # Undated results sort last so they never displace a dated one
    dated.sort(key=lambda pair: pair[0] or dt.datetime.min, reverse=True)
    (latest_date, latest), (previous_date, previous) = dated[0], dated[1]

    latest_value = parse_psa_value(latest.value)
    previous_value = parse_psa_value(previous.value)
    if latest_value is None or previous_value is None:
        return _insufficient("Cannot calculate: invalid PSA values")

    if latest_date is None or previous_date is None:
        return _insufficient("Cannot calculate: invalid dates")

    if latest_date == previous_date or not previous_date < latest_date:
        return _insufficient("Cannot calculate: dates are invalid or identical")

    time_diff_years = (latest_date - previous_date).total_seconds() / 86400 / DAYS_PER_YEAR
    velocity = (latest_value - previous_value) / time_diff_years

    return VelocityResult(
        has_enough_data=True,
        velocity=velocity,
        is_high_risk=velocity > threshold,
        velocity_text=format_velocity(velocity),
        latest_value=latest_value,
        previous_value=previous_value,
        time_diff_years=time_diff_years
    )
