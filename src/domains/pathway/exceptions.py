"""
Pathway transition errors
"""

from typing import List, Optional


class PathwayTransitionError(Exception):
    """Base class for transition failures"""

    kind = "transition"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class TransitionValidationError(PathwayTransitionError):
    """The request fails a precondition of its target pathway; nothing was written"""

    kind = "validation"

    def __init__(self, errors: List[str]):
        self.errors = list(errors)
        super().__init__("; ".join(self.errors) or "Invalid transition request")


class BookingError(PathwayTransitionError):
    """The surgery booking precondition failed; the pathway was not written"""

    kind = "booking"


class CommitError(PathwayTransitionError):
    """The pathway write (or the discharge summary preceding it) failed"""

    kind = "commit"


class EnrichmentError(PathwayTransitionError):
    """A best-effort step after the commit failed"""

    kind = "enrichment"

    def __init__(self, step: str, message: str, cause: Optional[BaseException] = None):
        super().__init__(f"{step}: {message}")
        self.step = step
        self.cause = cause
