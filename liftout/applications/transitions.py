"""Application status transition table."""

from typing import Dict, FrozenSet

from liftout.domain.exceptions import InvalidStateTransitionError
from liftout.domain.models import ApplicationStatus

ALLOWED_TRANSITIONS: Dict[ApplicationStatus, FrozenSet[ApplicationStatus]] = {
    ApplicationStatus.SUBMITTED: frozenset({ApplicationStatus.REVIEWING, ApplicationStatus.REJECTED}),
    ApplicationStatus.REVIEWING: frozenset({ApplicationStatus.INTERVIEWING, ApplicationStatus.REJECTED}),
    ApplicationStatus.INTERVIEWING: frozenset({ApplicationStatus.ACCEPTED, ApplicationStatus.REJECTED}),
    ApplicationStatus.ACCEPTED: frozenset(),
    ApplicationStatus.REJECTED: frozenset(),
}


def can_transition(current: ApplicationStatus, new: ApplicationStatus) -> bool:
    return new in ALLOWED_TRANSITIONS[current]


def check_transition(current: ApplicationStatus, new: ApplicationStatus) -> None:
    """Raise InvalidStateTransitionError unless current -> new is allowed."""
    if not can_transition(current, new):
        allowed = ", ".join(sorted(s.value for s in ALLOWED_TRANSITIONS[current])) or "none"
        raise InvalidStateTransitionError(
            f"Cannot move application from {current.value} to {new.value} (allowed: {allowed})"
        )
