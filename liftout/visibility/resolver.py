"""Per-viewer visibility decisions for team profiles.

The decision is computed in a fixed order:

1. The team creator, active members and platform admins always see the
   unmasked profile.
2. Anonymous (and selective) teams are visible only to users of a verified
   company.
3. A company on the team's block list sees nothing, even when verified.
4. Everyone else sees the profile, masked when the team is anonymous.

Nothing is cached; every call reads current state.
"""

from dataclasses import dataclass
from typing import Optional

from sqlalchemy.orm import Session

from liftout.domain.exceptions import ForbiddenBlockedError, ForbiddenVerificationError
from liftout.domain.models import ActorContext, Team, UserType
from liftout.logging import get_logger

from .verification import VerificationGate, VerificationResult

logger = get_logger(__name__, component="visibility")

REASON_VERIFICATION_REQUIRED = "verification required"
REASON_BLOCKED = "blocked"


@dataclass(frozen=True)
class VisibilityDecision:
    can_view: bool
    reason: Optional[str] = None
    show_anonymous: bool = False

    @property
    def is_blocked(self) -> bool:
        return self.reason == REASON_BLOCKED


FULL_ACCESS = VisibilityDecision(can_view=True, show_anonymous=False)


def decide_visibility(
    team: Team,
    actor: ActorContext,
    verification: VerificationResult,
    is_member: bool,
) -> VisibilityDecision:
    """Pure visibility rule. See the module docstring for the ordering.

    Args:
        team: Team being viewed
        actor: The viewer
        verification: Result of VerificationGate.check for the viewer
        is_member: Whether the viewer is an active member of the team

    Returns:
        VisibilityDecision
    """
    if team.created_by == actor.user_id or is_member or actor.role == UserType.ADMIN:
        return FULL_ACCESS

    if team.requires_verified_viewer:
        if actor.role != UserType.COMPANY or not verification.is_verified:
            return VisibilityDecision(can_view=False, reason=REASON_VERIFICATION_REQUIRED)

    if team.is_blocked(verification.company_id):
        return VisibilityDecision(can_view=False, reason=REASON_BLOCKED)

    return VisibilityDecision(can_view=True, show_anonymous=team.is_effectively_anonymous)


class VisibilityResolver:
    """Looks up membership and verification, then applies decide_visibility."""

    def __init__(self, session: Session, gate: Optional[VerificationGate] = None):
        self.gate = gate or VerificationGate(session)

    def decide(self, team: Team, actor: ActorContext) -> VisibilityDecision:
        verification = self.gate.check(actor.user_id)
        decision = decide_visibility(team, actor, verification, team.is_active_member(actor.user_id))

        if not decision.can_view:
            logger.debug(
                f"Team {team.id} hidden from {actor.user_id}: {decision.reason}",
                extra={"event": "visibility.denied", "team_id": team.id, "reason": decision.reason},
            )
        return decision

    def can_view(self, team: Team, viewer_id: str, viewer_role: UserType) -> VisibilityDecision:
        return self.decide(team, ActorContext(user_id=viewer_id, role=viewer_role))

    def require_view(self, team: Team, actor: ActorContext) -> VisibilityDecision:
        """Like decide, but a denial raises the matching forbidden error.

        Raises:
            ForbiddenBlockedError: The actor's company is on the team's block list
            ForbiddenVerificationError: The team requires a verified company viewer
        """
        decision = self.decide(team, actor)
        if decision.can_view:
            return decision
        if decision.is_blocked:
            raise ForbiddenBlockedError("This team is not available to your company")
        raise ForbiddenVerificationError("Only verified companies can access anonymous teams")
