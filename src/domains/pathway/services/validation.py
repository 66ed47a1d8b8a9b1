"""
Transition request validation

Checks the fixed per-pathway preconditions before any store is touched, and
evaluates PSA velocity for the pathways it annotates.
"""

import datetime as dt
from dataclasses import dataclass, field
from typing import List, Optional

from domains.clinical.models.clinical import VelocityResult
from domains.clinical.services.psa_velocity import calculate_psa_velocity, HIGH_RISK_VELOCITY
from domains.scheduling.services.recurrence import ALLOWED_INTERVALS
from ..models.pathway import (
    CarePathway,
    PathwayTransitionRequest,
    MONITORING_PATHWAYS,
    VELOCITY_GATED_PATHWAYS,
)


@dataclass
class ValidationOutcome:
    """Result of validating a transition request"""
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    velocity: Optional[VelocityResult] = None

    @property
    def is_valid(self) -> bool:
        return not self.errors


def _blank(value: Optional[str]) -> bool:
    return not (value and value.strip())


def _require_reason_and_rationale(request: PathwayTransitionRequest, errors: List[str]) -> None:
    if _blank(request.reason):
        errors.append("Reason for transfer is required")
    if _blank(request.clinical_rationale):
        errors.append("Clinical rationale is required")


def _validate_medication(request: PathwayTransitionRequest, errors: List[str]) -> None:
    if not request.medications:
        errors.append("At least one medication is required")
    elif not all(med.is_complete for med in request.medications):
        errors.append("Every medication needs a name, dosage and frequency")


def _validate_surgery(request: PathwayTransitionRequest, today: dt.date, errors: List[str]) -> None:
    if request.surgery_date is None or _blank(request.surgery_time):
        errors.append("Surgery date and time are required for the Surgery Pathway")
    elif request.surgery_date < today:
        errors.append("Surgery date cannot be in the past")


def _validate_follow_up(request: PathwayTransitionRequest, today: dt.date, errors: List[str]) -> None:
    if request.follow_up_date is None:
        if not _blank(request.follow_up_time):
            errors.append("Follow-up time was given without a follow-up date")
        return
    if request.follow_up_date < today:
        errors.append("Follow-up date cannot be in the past")


def validate_transition(
    request: PathwayTransitionRequest,
    today: dt.date,
    velocity_threshold: float = HIGH_RISK_VELOCITY
) -> ValidationOutcome:
    """
    Validate a transition request against its target pathway's preconditions

    Args:
        request: the requested transition
        today: current date; date comparisons ignore the time of day
        velocity_threshold: PSA velocity (ng/mL/year) above which a warning is raised

    Returns:
        ValidationOutcome listing every failed precondition, plus non-blocking warnings
    """
    outcome = ValidationOutcome()
    errors = outcome.errors
    pathway = request.pathway_name

    if not pathway:
        errors.append("Target pathway is required")
        return outcome

    if pathway == CarePathway.MEDICATION:
        _validate_medication(request, errors)
    else:
        _require_reason_and_rationale(request, errors)

    if pathway == CarePathway.SURGERY:
        _validate_surgery(request, today, errors)

    if pathway in MONITORING_PATHWAYS:
        _validate_follow_up(request, today, errors)

    if request.recurrence_interval is not None and request.recurrence_interval not in ALLOWED_INTERVALS:
        errors.append(
            f"Recurrence interval must be one of {', '.join(str(i) for i in ALLOWED_INTERVALS)} months"
        )

    if request.psa_results:
        outcome.velocity = calculate_psa_velocity(request.psa_results, velocity_threshold)
        if pathway in VELOCITY_GATED_PATHWAYS and outcome.velocity.is_high_risk:
            outcome.warnings.append(
                f"High PSA velocity ({outcome.velocity.velocity_text}) for a transfer to {pathway}"
            )

    return outcome
