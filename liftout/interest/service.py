"""Expressions of interest (EOIs).

``pending`` is the only non-terminal state. A pending EOI whose expiry has
passed reads as ``expired`` everywhere, whether or not the sweep has
persisted the flip yet. At most one pending EOI exists per (sender, target);
the partial unique index is authoritative and the lookup before insert only
produces a friendlier error in the common case.
"""

from typing import Any, Callable, Dict, List, Optional, Tuple

from liftout.config.models import InterestConfig
from liftout.domain.exceptions import (
    DuplicatePendingError,
    ForbiddenRoleError,
    InvalidStateTransitionError,
    NotFoundError,
    ValidationFailedError,
)
from liftout.domain.models import (
    ActorContext,
    EOIFromType,
    EOIStatus,
    EOITargetType,
    ExpressionOfInterest,
    InterestLevel,
    UserType,
)
from liftout.logging import get_logger
from liftout.logging.context import log_context
from liftout.notifications.dispatcher import NotificationDispatcher
from liftout.notifications.models import NotificationType
from liftout.notifications.payloads import eoi_received_payload, eoi_responded_payload
from liftout.persistence.database import get_session
from liftout.persistence.exceptions import DataIntegrityError
from liftout.persistence.repositories import (
    CompanyRepository,
    CompanyUserRepository,
    InterestRepository,
    OpportunityRepository,
    TeamRepository,
    UserRepository,
)
from liftout.utils.ids import new_id
from liftout.utils.timestamps import add_days, format_timestamp, utc_now
from liftout.visibility.anonymization import anonymous_team_name
from liftout.visibility.resolver import VisibilityResolver

logger = get_logger(__name__, component="eoi")

RESPONSES = (EOIStatus.ACCEPTED.value, EOIStatus.DECLINED.value)
DIRECTIONS = ("sent", "received")


def effective_status(eoi: ExpressionOfInterest, now) -> EOIStatus:
    return eoi.effective_status(now)


def eoi_view(eoi: ExpressionOfInterest, now) -> Dict[str, Any]:
    """JSON projection with the lazily corrected status."""
    return {
        "id": eoi.id,
        "fromType": eoi.from_type.value,
        "fromId": eoi.from_id,
        "toType": eoi.to_type.value,
        "toId": eoi.to_id,
        "status": eoi.effective_status(now).value,
        "interestLevel": eoi.interest_level.value,
        "message": eoi.message,
        "createdAt": format_timestamp(eoi.created_at),
        "expiresAt": format_timestamp(eoi.expires_at),
        "respondedAt": format_timestamp(eoi.responded_at),
        "metadata": eoi.metadata,
    }


class InterestService:
    def __init__(
        self,
        dispatcher: Optional[NotificationDispatcher] = None,
        config: Optional[InterestConfig] = None,
        session_factory: Callable = get_session,
        clock: Callable = utc_now,
    ):
        self.dispatcher = dispatcher
        self.config = config or InterestConfig()
        self.session_factory = session_factory
        self.clock = clock

    def create_eoi(
        self,
        actor: ActorContext,
        from_type: str,
        to_type: str,
        to_id: str,
        message: Optional[str] = None,
        interest_level: Optional[str] = None,
        from_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Express interest from the actor's team or company in a team or opportunity.

        Raises:
            ValidationFailedError: Unknown from_type, to_type or interest_level
            ForbiddenRoleError: Actor cannot act for the sending party
            NotFoundError: Target does not exist
            ForbiddenVerificationError / ForbiddenBlockedError: Company sender may not see the target team
            DuplicatePendingError: A pending EOI from the same sender to the same target exists
        """
        sender_type = _parse_enum(EOIFromType, from_type, "from_type")
        target_type = _parse_enum(EOITargetType, to_type, "to_type")
        level = _parse_enum(InterestLevel, interest_level or InterestLevel.MEDIUM.value, "interest_level")

        now = self.clock()
        with log_context(actor_id=actor.user_id, to_type=target_type.value, to_id=to_id):
            with self.session_factory() as session:
                sender_id, sender_name = self._resolve_sender(session, actor, sender_type, from_id)
                target_was_anonymous, target_name, recipients = self._resolve_target(
                    session, actor, sender_type, target_type, to_id
                )

                repo = InterestRepository(session)
                existing = repo.find_pending(sender_id, target_type, to_id)
                if existing is not None:
                    if not existing.is_terminal(now):
                        raise DuplicatePendingError("An expression of interest is already pending for this target")
                    # Overdue but not yet swept
                    repo.set_status(existing.id, EOIStatus.EXPIRED)

                eoi = ExpressionOfInterest(
                    id=new_id(),
                    from_type=sender_type,
                    from_id=sender_id,
                    to_type=target_type,
                    to_id=to_id,
                    status=EOIStatus.PENDING,
                    interest_level=level,
                    message=message,
                    created_at=now,
                    expires_at=add_days(now, self.config.expiry_days),
                    target_was_anonymous=target_was_anonymous,
                )
                try:
                    eoi = repo.add(eoi)
                except DataIntegrityError as e:
                    raise DuplicatePendingError(
                        "An expression of interest is already pending for this target"
                    ) from e

                users = UserRepository(session).get_many(recipients)
                notify_ids = [uid for uid in recipients if uid in users and users[uid].notify_on_interest]

            logger.info(
                f"EOI {eoi.id} created from {sender_type.value} {sender_id}",
                extra={"event": "eoi.created", "eoi_id": eoi.id, "recipient_count": len(notify_ids)},
            )
            payload = eoi_received_payload(eoi, sender_name, target_name)
            self._dispatch(notify_ids, NotificationType.EOI_RECEIVED, payload)
            return eoi_view(eoi, now)

    def respond_eoi(self, actor: ActorContext, eoi_id: str, response: str) -> Dict[str, Any]:
        """Accept or decline a pending EOI addressed to the actor's team or opportunity.

        Raises:
            ValidationFailedError: response is not accepted/declined
            NotFoundError: Unknown EOI
            InvalidStateTransitionError: EOI is no longer pending (including lazily expired)
            ForbiddenRoleError: Actor is not on the receiving side
        """
        if response not in RESPONSES:
            raise ValidationFailedError("Response must be 'accepted' or 'declined'")

        now = self.clock()
        with log_context(actor_id=actor.user_id, eoi_id=eoi_id):
            with self.session_factory() as session:
                repo = InterestRepository(session)
                eoi = repo.get(eoi_id)
                if eoi is None:
                    raise NotFoundError(f"Expression of interest {eoi_id} not found")

                current = eoi.effective_status(now)
                if current != EOIStatus.PENDING:
                    raise InvalidStateTransitionError(
                        f"This expression of interest is already {current.value}"
                    )

                target_name = self._authorize_receiver(session, actor, eoi)
                eoi = repo.set_status(eoi_id, EOIStatus(response), responded_at=now)
                sender_ids = self._sender_recipients(session, eoi)

            logger.info(
                f"EOI {eoi_id} {response}",
                extra={"event": "eoi.responded", "status": response},
            )
            if eoi.target_was_anonymous:
                target_name = anonymous_team_name(eoi.to_id)
            self._dispatch(sender_ids, NotificationType.EOI_RESPONDED, eoi_responded_payload(eoi, target_name))
            return eoi_view(eoi, now)

    def list_eois(self, actor: ActorContext, direction: str) -> List[Dict[str, Any]]:
        """EOIs sent by, or addressed to, the actor's teams and company."""
        if direction not in DIRECTIONS:
            raise ValidationFailedError("direction must be 'sent' or 'received'")

        now = self.clock()
        with self.session_factory() as session:
            teams = TeamRepository(session).list_for_member(actor.user_id)
            team_ids = [t.id for t in teams if t.is_active_member(actor.user_id)]
            membership = CompanyUserRepository(session).get_by_user(actor.user_id)
            company_id = membership.company_id if membership else None
            repo = InterestRepository(session)

            if direction == "sent":
                eois = repo.list_from([*team_ids, *([company_id] if company_id else [])])
            else:
                targets: List[Tuple[EOITargetType, str]] = [(EOITargetType.TEAM, tid) for tid in team_ids]
                if company_id:
                    targets.extend(
                        (EOITargetType.OPPORTUNITY, oid)
                        for oid in OpportunityRepository(session).list_ids_for_company(company_id)
                    )
                eois = repo.list_to(targets)

        return [eoi_view(e, now) for e in eois]

    def expire_stale(self, now=None) -> int:
        """Persist the expiry of every overdue pending EOI. Returns the number flipped."""
        now = now or self.clock()
        with self.session_factory() as session:
            count = InterestRepository(session).expire_pending(now)

        logger.info(
            f"Expired {count} stale expressions of interest",
            extra={"event": "eoi.expired_sweep", "expired_count": count},
        )
        return count

    def override_eoi_status(self, actor: ActorContext, eoi_id: str, status: str) -> Dict[str, Any]:
        """Platform-admin correction of an EOI, terminal or not."""
        if actor.role != UserType.ADMIN:
            raise ForbiddenRoleError("Only platform administrators can override an EOI")
        new_status = _parse_enum(EOIStatus, status, "status")

        now = self.clock()
        with log_context(actor_id=actor.user_id, eoi_id=eoi_id):
            with self.session_factory() as session:
                repo = InterestRepository(session)
                eoi = repo.get(eoi_id)
                if eoi is None:
                    raise NotFoundError(f"Expression of interest {eoi_id} not found")

                previous = eoi.status
                responded_at = now if new_status.value in RESPONSES else None
                try:
                    eoi = repo.set_status(eoi_id, new_status, responded_at=responded_at)
                except DataIntegrityError as e:
                    raise DuplicatePendingError(
                        "Another expression of interest is already pending for this target"
                    ) from e

            logger.warning(
                f"EOI {eoi_id} overridden from {previous.value} to {new_status.value}",
                extra={"event": "eoi.overridden", "previous_status": previous.value, "status": new_status.value},
            )
            return eoi_view(eoi, now)

    def _resolve_sender(
        self, session, actor: ActorContext, sender_type: EOIFromType, from_id: Optional[str]
    ) -> Tuple[str, str]:
        """Return (sender id, sender display name) or raise ForbiddenRoleError."""
        if sender_type == EOIFromType.TEAM:
            teams = TeamRepository(session)
            managed = teams.managed_team_ids(actor.user_id)
            if from_id is not None and from_id not in managed:
                raise ForbiddenRoleError("You must be a team lead or admin to express interest")
            if not managed:
                raise ForbiddenRoleError("You must be a team lead or admin to express interest")
            team = teams.get(from_id or managed[0])
            name = anonymous_team_name(team.id) if team.is_effectively_anonymous else team.name
            return team.id, name

        membership = CompanyUserRepository(session).get_by_user(actor.user_id)
        if membership is None or (from_id is not None and from_id != membership.company_id):
            raise ForbiddenRoleError("You must belong to a company to express interest")
        company = CompanyRepository(session).get(membership.company_id)
        return membership.company_id, company.name if company else "A company"

    def _resolve_target(
        self, session, actor: ActorContext, sender_type: EOIFromType, target_type: EOITargetType, to_id: str
    ) -> Tuple[bool, str, List[str]]:
        """Return (anonymity snapshot, target name, user ids to notify)."""
        if target_type == EOITargetType.TEAM:
            team = TeamRepository(session).get(to_id)
            if team is None:
                raise NotFoundError("Target team not found")

            if sender_type == EOIFromType.COMPANY:
                VisibilityResolver(session).require_view(team, actor)

            return team.is_effectively_anonymous, team.name, team.admin_member_ids()

        opportunity = OpportunityRepository(session).get(to_id)
        if opportunity is None:
            raise NotFoundError("Target opportunity not found")
        recipients = [cu.user_id for cu in CompanyUserRepository(session).list_for_company(opportunity.company_id)]
        return False, opportunity.title, recipients

    def _authorize_receiver(self, session, actor: ActorContext, eoi: ExpressionOfInterest) -> str:
        """Return the target's name if the actor may respond for it."""
        if eoi.to_type == EOITargetType.TEAM:
            team = TeamRepository(session).get(eoi.to_id)
            if team is None or not (actor.role == UserType.ADMIN or team.can_be_managed_by(actor.user_id)):
                raise ForbiddenRoleError("You do not have permission to respond to this expression of interest")
            return team.name

        opportunity = OpportunityRepository(session).get(eoi.to_id)
        membership = CompanyUserRepository(session).get_by_user(actor.user_id)
        owns = opportunity is not None and membership is not None and membership.company_id == opportunity.company_id
        if not (owns or actor.role == UserType.ADMIN):
            raise ForbiddenRoleError("You do not have permission to respond to this expression of interest")
        return opportunity.title if opportunity else "your opportunity"

    def _sender_recipients(self, session, eoi: ExpressionOfInterest) -> List[str]:
        if eoi.from_type == EOIFromType.TEAM:
            team = TeamRepository(session).get(eoi.from_id)
            ids = team.admin_member_ids() if team else []
        else:
            ids = [cu.user_id for cu in CompanyUserRepository(session).list_for_company(eoi.from_id)]
        users = UserRepository(session).get_many(ids)
        return [uid for uid in ids if uid in users and users[uid].notify_on_interest]

    def _dispatch(self, user_ids: List[str], type: str, payload: Dict[str, Any]) -> None:
        if self.dispatcher is None:
            return
        for user_id in user_ids:
            self.dispatcher.notify(user_id, type, payload)


def _parse_enum(enum_cls, value, field: str):
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ", ".join(m.value for m in enum_cls)
        raise ValidationFailedError(f"Invalid {field} '{value}'. Must be one of: {allowed}") from None
