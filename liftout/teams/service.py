"""Team profile reads and block-list management."""

from typing import Any, Callable, Dict, List, Mapping, Optional

from liftout.domain.exceptions import ForbiddenRoleError, NotFoundError, ValidationFailedError
from liftout.domain.models import ActorContext, Team, UserType
from liftout.logging import get_logger
from liftout.logging.context import log_context
from liftout.persistence.database import get_session
from liftout.persistence.repositories import CompanyRepository, TeamRepository, UserRepository
from liftout.utils.timestamps import utc_now
from liftout.visibility.anonymization import project_team
from liftout.visibility.resolver import VisibilityResolver

logger = get_logger(__name__, component="teams")


class TeamService:
    def __init__(
        self,
        session_factory: Callable = get_session,
        clock: Callable = utc_now,
        region_overrides: Optional[Mapping[str, str]] = None,
    ):
        self.session_factory = session_factory
        self.clock = clock
        self.region_overrides = dict(region_overrides or {})

    def get_team(self, actor: ActorContext, team_id: str) -> Dict[str, Any]:
        """Team profile as the actor may see it.

        Raises:
            NotFoundError: Unknown team
            ForbiddenVerificationError: Anonymous team and the actor is not a verified company user
            ForbiddenBlockedError: The actor's company is blocked by the team
        """
        with self.session_factory() as session:
            team = TeamRepository(session).get(team_id)
            if team is None:
                raise NotFoundError(f"Team {team_id} not found")

            decision = VisibilityResolver(session).require_view(team, actor)
            users = {}
            if not decision.show_anonymous:
                users = UserRepository(session).get_many(m.user_id for m in team.active_members)
        return project_team(team, decision, users, self.region_overrides)

    def block_company(self, actor: ActorContext, team_id: str, company_id: str) -> Dict[str, str]:
        """Add a company to the team's block list.

        Raises:
            ValidationFailedError: Missing company id or the company is already blocked
            NotFoundError: Unknown team or company
            ForbiddenRoleError: Actor is not the team creator, an admin or a lead
        """
        if not company_id:
            raise ValidationFailedError("Company ID is required")

        with log_context(actor_id=actor.user_id, team_id=team_id, company_id=company_id):
            with self.session_factory() as session:
                teams = TeamRepository(session)
                self._load_managed(teams, actor, team_id)

                company = CompanyRepository(session).get(company_id)
                if company is None:
                    raise NotFoundError(f"Company {company_id} not found")

                if not teams.add_blocked_company(team_id, company_id, self.clock()):
                    raise ValidationFailedError("Company is already blocked")

            logger.info(f"Company {company.name} blocked", extra={"event": "team.company_blocked"})
            return {"id": company.id, "name": company.name}

    def unblock_company(self, actor: ActorContext, team_id: str, company_id: str) -> None:
        if not company_id:
            raise ValidationFailedError("Company ID is required")

        with log_context(actor_id=actor.user_id, team_id=team_id, company_id=company_id):
            with self.session_factory() as session:
                teams = TeamRepository(session)
                self._load_managed(teams, actor, team_id)
                if not teams.remove_blocked_company(team_id, company_id):
                    raise ValidationFailedError("Company is not in blocked list")

            logger.info("Company unblocked", extra={"event": "team.company_unblocked"})

    def list_blocked_companies(self, actor: ActorContext, team_id: str) -> List[Dict[str, str]]:
        with self.session_factory() as session:
            team = self._load_managed(TeamRepository(session), actor, team_id)
            companies = CompanyRepository(session).get_many(team.blocked_companies)
        return [
            {"id": cid, "name": companies[cid].name}
            for cid in team.blocked_companies
            if cid in companies
        ]

    def _load_managed(self, teams: TeamRepository, actor: ActorContext, team_id: str) -> Team:
        team = teams.get(team_id)
        if team is None:
            raise NotFoundError(f"Team {team_id} not found")
        if not (team.can_be_managed_by(actor.user_id) or actor.role == UserType.ADMIN):
            raise ForbiddenRoleError("Only team admins can manage the block list")
        return team
