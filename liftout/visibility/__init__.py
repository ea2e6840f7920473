"""Visibility, verification and redaction of team data."""

from .anonymization import (
    UNDISCLOSED_LOCATION,
    anonymous_team_name,
    generalize_location,
    generalize_title,
    mask_company_names,
    project_team,
)
from .filters import TeamListFilter
from .resolver import (
    REASON_BLOCKED,
    REASON_VERIFICATION_REQUIRED,
    VisibilityDecision,
    VisibilityResolver,
    decide_visibility,
)
from .verification import VerificationGate, VerificationResult

__all__ = [
    "VisibilityDecision",
    "VisibilityResolver",
    "decide_visibility",
    "REASON_BLOCKED",
    "REASON_VERIFICATION_REQUIRED",
    "VerificationGate",
    "VerificationResult",
    "TeamListFilter",
    "project_team",
    "anonymous_team_name",
    "generalize_location",
    "generalize_title",
    "mask_company_names",
    "UNDISCLOSED_LOCATION",
]
