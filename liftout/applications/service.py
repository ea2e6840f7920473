"""Team applications and opportunity close/reopen.

Closing an opportunity rejects every other open application before the
selected team's application is accepted, all inside the caller's session so
the whole close commits or nothing does. Reopening never reverses an
application decision.
"""

from typing import Any, Callable, Dict, List, Optional, Tuple

from liftout.domain.exceptions import (
    DuplicateApplicationError,
    ForbiddenRoleError,
    InvalidStateTransitionError,
    NotFoundError,
    ValidationFailedError,
)
from liftout.domain.models import (
    OPEN_APPLICATION_STATUSES,
    ActorContext,
    ApplicationStatus,
    Opportunity,
    OpportunityStatus,
    TeamApplication,
    UserType,
)
from liftout.logging import get_logger
from liftout.logging.context import log_context
from liftout.notifications.dispatcher import NotificationDispatcher
from liftout.notifications.models import NotificationType
from liftout.notifications.payloads import application_status_payload
from liftout.persistence.database import get_session
from liftout.persistence.exceptions import DataIntegrityError
from liftout.persistence.repositories import (
    ApplicationRepository,
    CompanyUserRepository,
    OpportunityRepository,
    TeamRepository,
)
from liftout.utils.ids import new_id
from liftout.utils.timestamps import format_timestamp, utc_now

from .transitions import check_transition

logger = get_logger(__name__, component="applications")

FILLED_REJECTION_REASON = "Position has been filled"
DEFAULT_CLOSE_REASON = "Position filled"
CLOSE_AUDIT_KEYS = ("closedAt", "closedBy", "closeReason", "selectedTeamId", "previousStatus")


def application_view(application: TeamApplication) -> Dict[str, Any]:
    return {
        "id": application.id,
        "teamId": application.team_id,
        "opportunityId": application.opportunity_id,
        "appliedBy": application.applied_by,
        "coverLetter": application.cover_letter,
        "status": application.status.value,
        "rejectionReason": application.rejection_reason,
        "appliedAt": format_timestamp(application.applied_at),
        "reviewedAt": format_timestamp(application.reviewed_at),
        "finalDecisionAt": format_timestamp(application.final_decision_at),
    }


def opportunity_view(opportunity: Opportunity) -> Dict[str, Any]:
    return {
        "id": opportunity.id,
        "companyId": opportunity.company_id,
        "title": opportunity.title,
        "status": opportunity.status.value,
        "visibility": opportunity.visibility.value,
        "metadata": dict(opportunity.metadata),
    }


class ApplicationService:
    def __init__(
        self,
        dispatcher: Optional[NotificationDispatcher] = None,
        session_factory: Callable = get_session,
        clock: Callable = utc_now,
    ):
        self.dispatcher = dispatcher
        self.session_factory = session_factory
        self.clock = clock

    def create_application(
        self, actor: ActorContext, team_id: str, opportunity_id: str, cover_letter: Optional[str] = None
    ) -> Dict[str, Any]:
        """Apply to an opportunity on behalf of a team the actor manages.

        Raises:
            NotFoundError: Unknown team or opportunity
            ForbiddenRoleError: Actor is not an admin or lead of the team
            InvalidStateTransitionError: Opportunity is not accepting applications
            DuplicateApplicationError: The team already applied
        """
        now = self.clock()
        with log_context(actor_id=actor.user_id, team_id=team_id, opportunity_id=opportunity_id):
            with self.session_factory() as session:
                team = TeamRepository(session).get(team_id)
                if team is None:
                    raise NotFoundError(f"Team {team_id} not found")
                if not team.can_be_managed_by(actor.user_id):
                    raise ForbiddenRoleError("Only team admins or leads can submit applications")

                opportunity = OpportunityRepository(session).get(opportunity_id)
                if opportunity is None:
                    raise NotFoundError(f"Opportunity {opportunity_id} not found")
                if opportunity.status != OpportunityStatus.ACTIVE:
                    raise InvalidStateTransitionError(
                        f"Opportunity is {opportunity.status.value} and not accepting applications"
                    )

                repo = ApplicationRepository(session)
                if repo.find(team_id, opportunity_id) is not None:
                    raise DuplicateApplicationError("This team has already applied to this opportunity")

                try:
                    application = repo.add(
                        TeamApplication(
                            id=new_id(),
                            team_id=team_id,
                            opportunity_id=opportunity_id,
                            applied_by=actor.user_id,
                            cover_letter=cover_letter,
                            status=ApplicationStatus.SUBMITTED,
                            applied_at=now,
                        )
                    )
                except DataIntegrityError as e:
                    raise DuplicateApplicationError("This team has already applied to this opportunity") from e

            logger.info(
                f"Application {application.id} submitted",
                extra={"event": "application.created", "application_id": application.id},
            )
            return application_view(application)

    def update_status(
        self,
        actor: ActorContext,
        application_id: str,
        status: str,
        rejection_reason: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Move an application along the transition table.

        Raises:
            ValidationFailedError: Unknown status
            NotFoundError: Unknown application
            ForbiddenRoleError: Actor does not belong to the owning company
            InvalidStateTransitionError: Transition not allowed
        """
        new_status = _parse_status(status)
        now = self.clock()

        with log_context(actor_id=actor.user_id, application_id=application_id):
            with self.session_factory() as session:
                repo = ApplicationRepository(session)
                application = repo.get(application_id)
                if application is None:
                    raise NotFoundError(f"Application {application_id} not found")

                opportunity = OpportunityRepository(session).get(application.opportunity_id)
                self._authorize_company(session, actor, opportunity)
                check_transition(application.status, new_status)

                terminal = new_status in (ApplicationStatus.ACCEPTED, ApplicationStatus.REJECTED)
                previous = application.status
                application = repo.set_status(
                    application_id,
                    new_status,
                    rejection_reason=rejection_reason if new_status == ApplicationStatus.REJECTED else None,
                    reviewed_at=now if new_status == ApplicationStatus.REVIEWING else None,
                    final_decision_at=now if terminal else None,
                )
                pending = self._status_notifications(session, [application], opportunity)

            logger.info(
                f"Application {application_id} moved from {previous.value} to {new_status.value}",
                extra={"event": "application.status_changed", "status": new_status.value},
            )
            self._dispatch(pending)
            return application_view(application)

    def withdraw_application(self, actor: ActorContext, application_id: str) -> None:
        """Delete a non-terminal application on behalf of the applying team."""
        with log_context(actor_id=actor.user_id, application_id=application_id):
            with self.session_factory() as session:
                repo = ApplicationRepository(session)
                application = repo.get(application_id)
                if application is None:
                    raise NotFoundError(f"Application {application_id} not found")

                team = TeamRepository(session).get(application.team_id)
                if team is None or not team.can_be_managed_by(actor.user_id):
                    raise ForbiddenRoleError("Only team admins or leads can withdraw applications")
                if application.is_terminal:
                    raise InvalidStateTransitionError(
                        f"Cannot withdraw an application that is already {application.status.value}"
                    )
                repo.delete(application_id)

            logger.info("Application withdrawn", extra={"event": "application.withdrawn"})

    def close_opportunity(
        self,
        actor: ActorContext,
        opportunity_id: str,
        selected_team_id: Optional[str] = None,
        reason: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Mark an opportunity filled, rejecting every other open application.

        The selected team's application is accepted only while it is still
        open; one already accepted or rejected keeps its decision. Closing an
        already filled opportunity changes nothing and succeeds.
        """
        now = self.clock()
        with log_context(actor_id=actor.user_id, opportunity_id=opportunity_id):
            with self.session_factory() as session:
                opportunities = OpportunityRepository(session)
                opportunity = opportunities.get(opportunity_id)
                self._authorize_company(session, actor, opportunity)

                if opportunity.status == OpportunityStatus.FILLED:
                    logger.info("Opportunity already closed", extra={"event": "opportunity.close_noop"})
                    return {**opportunity_view(opportunity), "applicationsRejected": 0}

                repo = ApplicationRepository(session)
                before = {a.id: a.status for a in repo.list_for_opportunity(opportunity_id)}

                rejected = repo.reject_open_except(
                    opportunity_id, selected_team_id, FILLED_REJECTION_REASON, now
                )
                if selected_team_id is not None:
                    selected = repo.find(selected_team_id, opportunity_id)
                    if selected is not None and selected.status in OPEN_APPLICATION_STATUSES:
                        repo.set_status(selected.id, ApplicationStatus.ACCEPTED, final_decision_at=now)

                metadata = {
                    **opportunity.metadata,
                    "closedAt": format_timestamp(now),
                    "closedBy": actor.user_id,
                    "closeReason": reason or DEFAULT_CLOSE_REASON,
                    "selectedTeamId": selected_team_id,
                    "previousStatus": opportunity.status.value,
                }
                opportunity = opportunities.save_state(opportunity_id, OpportunityStatus.FILLED, metadata)

                changed = [a for a in repo.list_for_opportunity(opportunity_id) if before.get(a.id) != a.status]
                pending = self._status_notifications(session, changed, opportunity)

            logger.info(
                f"Opportunity {opportunity_id} closed, {rejected} applications rejected",
                extra={
                    "event": "opportunity.closed",
                    "selected_team_id": selected_team_id,
                    "rejected_count": rejected,
                },
            )
            self._dispatch(pending)
            return {**opportunity_view(opportunity), "applicationsRejected": rejected}

    def reopen_opportunity(self, actor: ActorContext, opportunity_id: str) -> Dict[str, Any]:
        """Return a filled opportunity to active. Applications are left as they are."""
        now = self.clock()
        with log_context(actor_id=actor.user_id, opportunity_id=opportunity_id):
            with self.session_factory() as session:
                opportunities = OpportunityRepository(session)
                opportunity = opportunities.get(opportunity_id)
                self._authorize_company(session, actor, opportunity)

                if opportunity.status != OpportunityStatus.FILLED:
                    return opportunity_view(opportunity)

                metadata = {k: v for k, v in opportunity.metadata.items() if k not in CLOSE_AUDIT_KEYS}
                metadata.update(reopenedAt=format_timestamp(now), reopenedBy=actor.user_id)
                opportunity = opportunities.save_state(opportunity_id, OpportunityStatus.ACTIVE, metadata)

            logger.info(f"Opportunity {opportunity_id} reopened", extra={"event": "opportunity.reopened"})
            return opportunity_view(opportunity)

    def override_application_status(self, actor: ActorContext, application_id: str, status: str) -> Dict[str, Any]:
        """Platform-admin correction that bypasses the transition table."""
        if actor.role != UserType.ADMIN:
            raise ForbiddenRoleError("Only platform administrators can override an application")
        new_status = _parse_status(status)

        with log_context(actor_id=actor.user_id, application_id=application_id):
            with self.session_factory() as session:
                repo = ApplicationRepository(session)
                application = repo.get(application_id)
                if application is None:
                    raise NotFoundError(f"Application {application_id} not found")
                previous = application.status
                terminal = new_status in (ApplicationStatus.ACCEPTED, ApplicationStatus.REJECTED)
                application = repo.set_status(
                    application_id, new_status, final_decision_at=self.clock() if terminal else None
                )

            logger.warning(
                f"Application {application_id} overridden from {previous.value} to {new_status.value}",
                extra={"event": "application.overridden", "previous_status": previous.value},
            )
            return application_view(application)

    def list_for_opportunity(self, actor: ActorContext, opportunity_id: str) -> List[Dict[str, Any]]:
        with self.session_factory() as session:
            opportunity = OpportunityRepository(session).get(opportunity_id)
            self._authorize_company(session, actor, opportunity)
            applications = ApplicationRepository(session).list_for_opportunity(opportunity_id)
        return [application_view(a) for a in applications]

    def _authorize_company(self, session, actor: ActorContext, opportunity: Optional[Opportunity]) -> None:
        if opportunity is None:
            raise NotFoundError("Opportunity not found")
        if actor.role == UserType.ADMIN:
            return
        membership = CompanyUserRepository(session).get_by_user(actor.user_id)
        if membership is None or membership.company_id != opportunity.company_id:
            raise ForbiddenRoleError("Not authorized to manage this opportunity")

    def _status_notifications(
        self, session, applications: List[TeamApplication], opportunity: Opportunity
    ) -> List[Tuple[str, Dict[str, Any]]]:
        """(recipient, payload) for the admins and leads of each application's team."""
        teams = {t.id: t for t in TeamRepository(session).get_many([a.team_id for a in applications])}
        pending = []
        for application in applications:
            team = teams.get(application.team_id)
            if team is None:
                continue
            payload = application_status_payload(application, team.name, opportunity.title)
            pending.extend((user_id, payload) for user_id in team.admin_member_ids())
        return pending

    def _dispatch(self, pending: List[Tuple[str, Dict[str, Any]]]) -> None:
        if self.dispatcher is None:
            return
        for user_id, payload in pending:
            self.dispatcher.notify(user_id, NotificationType.APPLICATION_STATUS, payload)


def _parse_status(status: str) -> ApplicationStatus:
    try:
        return ApplicationStatus(status)
    except ValueError:
        allowed = ", ".join(s.value for s in ApplicationStatus)
        raise ValidationFailedError(f"Invalid status '{status}'. Must be one of: {allowed}") from None
