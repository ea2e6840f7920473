"""Shared list filter for every multi-team surface."""

from typing import Dict, List, Mapping, Optional, Tuple

from sqlalchemy.orm import Session

from liftout.domain.models import ActorContext, Team
from liftout.logging import get_logger
from liftout.persistence.repositories import UserRepository

from .anonymization import project_team
from .resolver import VisibilityDecision, VisibilityResolver, decide_visibility

logger = get_logger(__name__, component="visibility")


class TeamListFilter:
    """Drop teams the actor may not see and project the rest.

    Search, saved-team export and bulk export all go through ``apply`` so a
    team hidden on one surface is hidden on all of them. Hidden teams are
    removed, never returned in masked form.
    """

    def __init__(
        self,
        session: Session,
        resolver: Optional[VisibilityResolver] = None,
        region_overrides: Optional[Mapping[str, str]] = None,
    ):
        self.session = session
        self.resolver = resolver or VisibilityResolver(session)
        self.region_overrides = dict(region_overrides or {})

    def visible(self, teams: List[Team], actor: ActorContext) -> List[Tuple[Team, VisibilityDecision]]:
        # One verification lookup for the whole list
        verification = self.resolver.gate.check(actor.user_id)
        kept = []
        for team in teams:
            decision = decide_visibility(team, actor, verification, team.is_active_member(actor.user_id))
            if decision.can_view:
                kept.append((team, decision))

        hidden = len(teams) - len(kept)
        if hidden:
            logger.debug(
                f"Filtered {hidden} of {len(teams)} teams for {actor.user_id}",
                extra={"event": "visibility.list_filtered", "hidden_count": hidden},
            )
        return kept

    def apply(self, teams: List[Team], actor: ActorContext) -> List[Dict]:
        kept = self.visible(teams, actor)

        # Member profiles only matter for teams rendered unmasked
        user_ids = [m.user_id for team, d in kept if not d.show_anonymous for m in team.active_members]
        users = UserRepository(self.session).get_many(user_ids)

        return [project_team(team, decision, users, self.region_overrides) for team, decision in kept]
