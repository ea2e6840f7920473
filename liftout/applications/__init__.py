"""Team applications, their status transitions and opportunity close/reopen."""

from .service import ApplicationService, application_view, opportunity_view
from .transitions import ALLOWED_TRANSITIONS, can_transition, check_transition

__all__ = [
    "ApplicationService",
    "application_view",
    "opportunity_view",
    "ALLOWED_TRANSITIONS",
    "can_transition",
    "check_transition",
]
