"""Repositories: the only code that touches ORM rows.

Each repository wraps the caller's session, returns domain models, and maps
SQLAlchemy failures onto the persistence exceptions. Repositories never commit;
the enclosing ``get_session()`` block owns the transaction.
"""

import logging
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from liftout.domain.models import (
    OPEN_APPLICATION_STATUSES,
    ApplicationStatus,
    Company,
    CompanyUser,
    Conversation,
    EOIStatus,
    EOITargetType,
    ExpressionOfInterest,
    MemberStatus,
    Message,
    NdaLedger,
    Notification,
    Opportunity,
    OpportunityStatus,
    SavedItem,
    SavedItemType,
    Team,
    TeamApplication,
    User,
    VerificationStatus,
)

from .exceptions import DataIntegrityError, PersistenceError, RecordNotFoundError
from .schema import (
    APPLICATION_UNIQUE_CONSTRAINT,
    COMPANY_USER_UNIQUE_CONSTRAINT,
    PENDING_INTEREST_INDEX,
    CompanyModel,
    CompanyUserModel,
    ConversationModel,
    ConversationParticipantModel,
    InterestModel,
    MessageModel,
    NotificationModel,
    OpportunityModel,
    SavedItemModel,
    TeamApplicationModel,
    TeamBlockedCompanyModel,
    TeamMemberModel,
    TeamModel,
    UserModel,
    _format_datetime,
    _format_ledger_times,
)

logger = logging.getLogger(__name__)


class UserRepository:
    """Profiles and notification preferences."""

    def __init__(self, session: Session):
        self.session = session

    def get(self, user_id: str) -> Optional[User]:
        try:
            model = self.session.get(UserModel, user_id)
            return model.to_domain() if model else None
        except SQLAlchemyError as e:
            logger.error(f"Error retrieving user {user_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to retrieve user: {e}") from e

    def get_many(self, user_ids: Iterable[str]) -> Dict[str, User]:
        """Return the users that exist among user_ids, keyed by id."""
        ids = list(set(user_ids))
        if not ids:
            return {}
        try:
            stmt = select(UserModel).where(UserModel.id.in_(ids))
            return {m.id: m.to_domain() for m in self.session.execute(stmt).scalars()}
        except SQLAlchemyError as e:
            logger.error(f"Error retrieving {len(ids)} users: {e}", exc_info=True)
            raise PersistenceError(f"Failed to retrieve users: {e}") from e

    def add(self, user: User) -> User:
        try:
            model = UserModel.from_domain(user)
            self.session.add(model)
            self.session.flush()
            return model.to_domain()
        except IntegrityError as e:
            logger.error(f"Integrity error adding user {user.id}: {e}", exc_info=True)
            raise DataIntegrityError(f"Failed to add user due to constraint violation: {e}") from e
        except SQLAlchemyError as e:
            logger.error(f"Error adding user {user.id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to add user: {e}") from e

    def soft_delete(self, user_id: str, email: str, when: datetime) -> None:
        """Replace identifying profile fields and stamp deleted_at.

        Raises:
            RecordNotFoundError: If the user does not exist
        """
        try:
            result = self.session.execute(
                update(UserModel)
                .where(UserModel.id == user_id)
                .values(
                    email=email,
                    first_name="Deleted",
                    last_name="User",
                    notify_on_message=False,
                    notify_on_interest=False,
                    deleted_at=_format_datetime(when),
                )
            )
            self.session.flush()
            if result.rowcount == 0:
                raise RecordNotFoundError(f"User {user_id} not found")
        except RecordNotFoundError:
            raise
        except SQLAlchemyError as e:
            logger.error(f"Error deleting user {user_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to delete user: {e}") from e


class CompanyRepository:
    def __init__(self, session: Session):
        self.session = session

    def get(self, company_id: str) -> Optional[Company]:
        try:
            model = self.session.get(CompanyModel, company_id)
            return model.to_domain() if model else None
        except SQLAlchemyError as e:
            logger.error(f"Error retrieving company {company_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to retrieve company: {e}") from e

    def get_many(self, company_ids: Iterable[str]) -> Dict[str, Company]:
        ids = list(set(company_ids))
        if not ids:
            return {}
        try:
            stmt = select(CompanyModel).where(CompanyModel.id.in_(ids))
            return {m.id: m.to_domain() for m in self.session.execute(stmt).scalars()}
        except SQLAlchemyError as e:
            logger.error(f"Error retrieving {len(ids)} companies: {e}", exc_info=True)
            raise PersistenceError(f"Failed to retrieve companies: {e}") from e

    def add(self, company: Company) -> Company:
        try:
            model = CompanyModel.from_domain(company)
            self.session.add(model)
            self.session.flush()
            return model.to_domain()
        except IntegrityError as e:
            logger.error(f"Integrity error adding company {company.id}: {e}", exc_info=True)
            raise DataIntegrityError(f"Failed to add company due to constraint violation: {e}") from e
        except SQLAlchemyError as e:
            logger.error(f"Error adding company {company.id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to add company: {e}") from e

    def set_verification_status(self, company_id: str, status: VerificationStatus) -> None:
        try:
            result = self.session.execute(
                update(CompanyModel)
                .where(CompanyModel.id == company_id)
                .values(verification_status=status.value)
            )
            self.session.flush()
            if result.rowcount == 0:
                raise RecordNotFoundError(f"Company {company_id} not found")
        except RecordNotFoundError:
            raise
        except SQLAlchemyError as e:
            logger.error(f"Error updating verification for company {company_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to update company verification: {e}") from e


class CompanyUserRepository:
    """Company memberships. The schema allows one company per user."""

    def __init__(self, session: Session):
        self.session = session

    def get_by_user(self, user_id: str) -> Optional[CompanyUser]:
        try:
            stmt = select(CompanyUserModel).where(CompanyUserModel.user_id == user_id)
            model = self.session.execute(stmt).scalar_one_or_none()
            return model.to_domain() if model else None
        except SQLAlchemyError as e:
            logger.error(f"Error retrieving company membership for {user_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to retrieve company membership: {e}") from e

    def list_for_company(self, company_id: str) -> List[CompanyUser]:
        try:
            stmt = (
                select(CompanyUserModel)
                .where(CompanyUserModel.company_id == company_id)
                .order_by(CompanyUserModel.id)
            )
            return [m.to_domain() for m in self.session.execute(stmt).scalars()]
        except SQLAlchemyError as e:
            logger.error(f"Error listing users of company {company_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to list company users: {e}") from e

    def add(self, company_user: CompanyUser) -> CompanyUser:
        """Insert a membership.

        Raises:
            DataIntegrityError: If the user already belongs to a company
        """
        try:
            model = CompanyUserModel.from_domain(company_user)
            self.session.add(model)
            self.session.flush()
            return model.to_domain()
        except IntegrityError as e:
            logger.error(
                f"User {company_user.user_id} already belongs to a company: {e}", exc_info=True
            )
            raise DataIntegrityError(
                "User already belongs to a company", constraint=COMPANY_USER_UNIQUE_CONSTRAINT
            ) from e
        except SQLAlchemyError as e:
            logger.error(f"Error adding company user {company_user.user_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to add company user: {e}") from e

    def delete_by_user(self, user_id: str) -> int:
        try:
            result = self.session.execute(
                delete(CompanyUserModel).where(CompanyUserModel.user_id == user_id)
            )
            self.session.flush()
            return result.rowcount
        except SQLAlchemyError as e:
            logger.error(f"Error removing company membership of {user_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to remove company membership: {e}") from e


class TeamRepository:
    """Teams with their rosters and block lists."""

    def __init__(self, session: Session):
        self.session = session

    def get(self, team_id: str) -> Optional[Team]:
        try:
            model = self.session.get(TeamModel, team_id)
            return model.to_domain() if model else None
        except SQLAlchemyError as e:
            logger.error(f"Error retrieving team {team_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to retrieve team: {e}") from e

    def get_many(self, team_ids: Sequence[str]) -> List[Team]:
        """Return existing teams in the order of team_ids; unknown ids are skipped."""
        if not team_ids:
            return []
        try:
            stmt = select(TeamModel).where(TeamModel.id.in_(list(team_ids)))
            by_id = {m.id: m.to_domain() for m in self.session.execute(stmt).scalars()}
            seen = set()
            ordered = []
            for team_id in team_ids:
                if team_id in by_id and team_id not in seen:
                    seen.add(team_id)
                    ordered.append(by_id[team_id])
            return ordered
        except SQLAlchemyError as e:
            logger.error(f"Error retrieving {len(team_ids)} teams: {e}", exc_info=True)
            raise PersistenceError(f"Failed to retrieve teams: {e}") from e

    def add(self, team: Team) -> Team:
        try:
            model = TeamModel.from_domain(team)
            self.session.add(model)
            self.session.flush()
            return model.to_domain()
        except IntegrityError as e:
            logger.error(f"Integrity error adding team {team.id}: {e}", exc_info=True)
            raise DataIntegrityError(f"Failed to add team due to constraint violation: {e}") from e
        except SQLAlchemyError as e:
            logger.error(f"Error adding team {team.id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to add team: {e}") from e

    def search(self, industry: Optional[str] = None) -> List[Team]:
        """Teams in an industry (all teams when None), newest first. No visibility filtering.

        Free-text and location matching are left to the caller, which has to
        run them against each viewer's projection of the team.
        """
        try:
            stmt = select(TeamModel)
            if industry:
                stmt = stmt.where(func.lower(TeamModel.industry) == industry.strip().lower())
            stmt = stmt.order_by(TeamModel.created_at.desc(), TeamModel.id)
            return [m.to_domain() for m in self.session.execute(stmt).scalars()]
        except SQLAlchemyError as e:
            logger.error(f"Error searching teams: {e}", exc_info=True)
            raise PersistenceError(f"Failed to search teams: {e}") from e

    def list_for_member(self, user_id: str) -> List[Team]:
        """Teams in which user_id holds a roster entry, active or not."""
        try:
            stmt = (
                select(TeamModel)
                .join(TeamMemberModel, TeamMemberModel.team_id == TeamModel.id)
                .where(TeamMemberModel.user_id == user_id)
                .order_by(TeamModel.id)
            )
            return [m.to_domain() for m in self.session.execute(stmt).scalars().unique()]
        except SQLAlchemyError as e:
            logger.error(f"Error listing teams of member {user_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to list member teams: {e}") from e

    def list_for_participants(self, user_ids: Iterable[str]) -> List[Team]:
        """Teams that any of user_ids created or belongs to as an active member."""
        ids = list(user_ids)
        if not ids:
            return []
        try:
            member_stmt = select(TeamMemberModel.team_id).where(
                TeamMemberModel.user_id.in_(ids),
                TeamMemberModel.status == MemberStatus.ACTIVE.value,
            )
            stmt = (
                select(TeamModel)
                .where(or_(TeamModel.id.in_(member_stmt), TeamModel.created_by.in_(ids)))
                .order_by(TeamModel.id)
            )
            return [m.to_domain() for m in self.session.execute(stmt).scalars()]
        except SQLAlchemyError as e:
            logger.error(f"Error listing teams of participants {ids}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to list participant teams: {e}") from e

    def managed_team_ids(self, user_id: str) -> List[str]:
        """Ids of teams the user created or administers as an active admin/lead."""
        try:
            admin_stmt = select(TeamMemberModel.team_id).where(
                TeamMemberModel.user_id == user_id,
                TeamMemberModel.status == MemberStatus.ACTIVE.value,
                or_(TeamMemberModel.is_admin.is_(True), TeamMemberModel.is_lead.is_(True)),
            )
            creator_stmt = select(TeamModel.id).where(TeamModel.created_by == user_id)
            ids = set(self.session.execute(admin_stmt).scalars())
            ids.update(self.session.execute(creator_stmt).scalars())
            return sorted(ids)
        except SQLAlchemyError as e:
            logger.error(f"Error listing teams managed by {user_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to list managed teams: {e}") from e

    def add_blocked_company(self, team_id: str, company_id: str, when: datetime) -> bool:
        """Add company_id to the block list. Returns False if it was already there."""
        try:
            if self.session.get(TeamBlockedCompanyModel, {"team_id": team_id, "company_id": company_id}):
                return False
            self.session.add(
                TeamBlockedCompanyModel(
                    team_id=team_id, company_id=company_id, blocked_at=_format_datetime(when)
                )
            )
            self.session.flush()
            self.session.expire_all()
            return True
        except SQLAlchemyError as e:
            logger.error(f"Error blocking company {company_id} for team {team_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to block company: {e}") from e

    def remove_blocked_company(self, team_id: str, company_id: str) -> bool:
        try:
            result = self.session.execute(
                delete(TeamBlockedCompanyModel).where(
                    TeamBlockedCompanyModel.team_id == team_id,
                    TeamBlockedCompanyModel.company_id == company_id,
                )
            )
            self.session.flush()
            self.session.expire_all()
            return result.rowcount > 0
        except SQLAlchemyError as e:
            logger.error(f"Error unblocking company {company_id} for team {team_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to unblock company: {e}") from e

    def remove_member_everywhere(self, user_id: str) -> int:
        try:
            result = self.session.execute(
                delete(TeamMemberModel).where(TeamMemberModel.user_id == user_id)
            )
            self.session.flush()
            self.session.expire_all()
            return result.rowcount
        except SQLAlchemyError as e:
            logger.error(f"Error removing memberships of {user_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to remove team memberships: {e}") from e


class OpportunityRepository:
    def __init__(self, session: Session):
        self.session = session

    def get(self, opportunity_id: str) -> Optional[Opportunity]:
        try:
            model = self.session.get(OpportunityModel, opportunity_id)
            return model.to_domain() if model else None
        except SQLAlchemyError as e:
            logger.error(f"Error retrieving opportunity {opportunity_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to retrieve opportunity: {e}") from e

    def add(self, opportunity: Opportunity) -> Opportunity:
        try:
            model = OpportunityModel.from_domain(opportunity)
            self.session.add(model)
            self.session.flush()
            return model.to_domain()
        except IntegrityError as e:
            logger.error(f"Integrity error adding opportunity {opportunity.id}: {e}", exc_info=True)
            raise DataIntegrityError(f"Failed to add opportunity due to constraint violation: {e}") from e
        except SQLAlchemyError as e:
            logger.error(f"Error adding opportunity {opportunity.id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to add opportunity: {e}") from e

    def list_ids_for_company(self, company_id: str) -> List[str]:
        try:
            stmt = select(OpportunityModel.id).where(OpportunityModel.company_id == company_id)
            return list(self.session.execute(stmt).scalars())
        except SQLAlchemyError as e:
            logger.error(f"Error listing opportunities of {company_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to list opportunities: {e}") from e

    def save_state(self, opportunity_id: str, status: OpportunityStatus, metadata: dict) -> Opportunity:
        """Overwrite status and the audit metadata in one statement.

        Raises:
            RecordNotFoundError: If the opportunity does not exist
        """
        try:
            model = self.session.get(OpportunityModel, opportunity_id)
            if model is None:
                raise RecordNotFoundError(f"Opportunity {opportunity_id} not found")
            model.status = status.value
            # Reassign so the JSON column is marked dirty
            model.audit_metadata = dict(metadata)
            self.session.flush()
            return model.to_domain()
        except RecordNotFoundError:
            raise
        except SQLAlchemyError as e:
            logger.error(f"Error saving opportunity {opportunity_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to save opportunity: {e}") from e


class ConversationRepository:
    """Conversations, their participants and messages."""

    def __init__(self, session: Session):
        self.session = session

    def get(self, conversation_id: str) -> Optional[Conversation]:
        try:
            model = self.session.get(ConversationModel, conversation_id)
            return model.to_domain() if model else None
        except SQLAlchemyError as e:
            logger.error(f"Error retrieving conversation {conversation_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to retrieve conversation: {e}") from e

    def add(self, conversation: Conversation) -> Conversation:
        try:
            model = ConversationModel.from_domain(conversation)
            self.session.add(model)
            self.session.flush()
            return model.to_domain()
        except IntegrityError as e:
            logger.error(f"Integrity error adding conversation {conversation.id}: {e}", exc_info=True)
            raise DataIntegrityError(
                f"Failed to add conversation due to constraint violation: {e}"
            ) from e
        except SQLAlchemyError as e:
            logger.error(f"Error adding conversation {conversation.id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to add conversation: {e}") from e

    def save_nda_ledger(self, conversation_id: str, ledger: NdaLedger) -> None:
        try:
            result = self.session.execute(
                update(ConversationModel)
                .where(ConversationModel.id == conversation_id)
                .values(
                    nda_accepted_by=list(ledger.accepted_by),
                    nda_accepted_at=_format_ledger_times(ledger),
                )
            )
            self.session.flush()
            if result.rowcount == 0:
                raise RecordNotFoundError(f"Conversation {conversation_id} not found")
        except RecordNotFoundError:
            raise
        except SQLAlchemyError as e:
            logger.error(f"Error saving NDA ledger of {conversation_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to save NDA ledger: {e}") from e

    def add_message(self, message: Message) -> Message:
        """Insert a message and bump the conversation's counters."""
        try:
            model = MessageModel.from_domain(message)
            self.session.add(model)
            self.session.execute(
                update(ConversationModel)
                .where(ConversationModel.id == message.conversation_id)
                .values(
                    message_count=ConversationModel.message_count + 1,
                    last_message_at=_format_datetime(message.sent_at),
                )
            )
            self.session.flush()
            return model.to_domain()
        except SQLAlchemyError as e:
            logger.error(
                f"Error adding message to conversation {message.conversation_id}: {e}", exc_info=True
            )
            raise PersistenceError(f"Failed to add message: {e}") from e

    def list_messages(self, conversation_id: str, limit: int = 100, before: Optional[datetime] = None) -> List[Message]:
        """Messages oldest first; ``before`` pages backwards from a timestamp."""
        try:
            stmt = select(MessageModel).where(MessageModel.conversation_id == conversation_id)
            if before is not None:
                stmt = stmt.where(MessageModel.sent_at < _format_datetime(before))
            stmt = stmt.order_by(MessageModel.sent_at.desc(), MessageModel.id.desc()).limit(limit)
            models = list(self.session.execute(stmt).scalars())
            return [m.to_domain() for m in reversed(models)]
        except SQLAlchemyError as e:
            logger.error(f"Error listing messages of {conversation_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to list messages: {e}") from e

    def list_messages_by_sender(self, user_id: str) -> List[Message]:
        try:
            stmt = (
                select(MessageModel)
                .where(MessageModel.sender_id == user_id)
                .order_by(MessageModel.sent_at)
            )
            return [m.to_domain() for m in self.session.execute(stmt).scalars()]
        except SQLAlchemyError as e:
            logger.error(f"Error listing messages sent by {user_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to list messages: {e}") from e

    def list_for_user(self, user_id: str, include_left: bool = False) -> List[Conversation]:
        """Conversations the user takes part in, most recently active first."""
        try:
            stmt = (
                select(ConversationModel)
                .join(
                    ConversationParticipantModel,
                    ConversationParticipantModel.conversation_id == ConversationModel.id,
                )
                .where(ConversationParticipantModel.user_id == user_id)
            )
            if not include_left:
                stmt = stmt.where(ConversationParticipantModel.left_at.is_(None))
            stmt = stmt.order_by(
                ConversationModel.last_message_at.desc(), ConversationModel.created_at.desc()
            )
            return [m.to_domain() for m in self.session.execute(stmt).scalars().unique()]
        except SQLAlchemyError as e:
            logger.error(f"Error listing conversations of {user_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to list conversations: {e}") from e

    def mark_left(self, user_id: str, when: datetime, conversation_id: Optional[str] = None) -> int:
        """Set left_at for the user's active participation(s).

        Limited to one conversation when conversation_id is given.
        """
        try:
            stmt = update(ConversationParticipantModel).where(
                ConversationParticipantModel.user_id == user_id,
                ConversationParticipantModel.left_at.is_(None),
            )
            if conversation_id is not None:
                stmt = stmt.where(ConversationParticipantModel.conversation_id == conversation_id)
            result = self.session.execute(stmt.values(left_at=_format_datetime(when)))
            self.session.flush()
            self.session.expire_all()
            return result.rowcount
        except SQLAlchemyError as e:
            logger.error(f"Error marking {user_id} as left: {e}", exc_info=True)
            raise PersistenceError(f"Failed to update participation: {e}") from e

    def redact_messages_by_sender(self, user_id: str, replacement: str) -> int:
        try:
            result = self.session.execute(
                update(MessageModel).where(MessageModel.sender_id == user_id).values(content=replacement)
            )
            self.session.flush()
            return result.rowcount
        except SQLAlchemyError as e:
            logger.error(f"Error redacting messages of {user_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to redact messages: {e}") from e


class InterestRepository:
    """Expressions of interest."""

    def __init__(self, session: Session):
        self.session = session

    def get(self, eoi_id: str) -> Optional[ExpressionOfInterest]:
        try:
            model = self.session.get(InterestModel, eoi_id)
            return model.to_domain() if model else None
        except SQLAlchemyError as e:
            logger.error(f"Error retrieving EOI {eoi_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to retrieve EOI: {e}") from e

    def find_pending(self, from_id: str, to_type: EOITargetType, to_id: str) -> Optional[ExpressionOfInterest]:
        try:
            stmt = select(InterestModel).where(
                InterestModel.from_id == from_id,
                InterestModel.to_type == to_type.value,
                InterestModel.to_id == to_id,
                InterestModel.status == EOIStatus.PENDING.value,
            )
            model = self.session.execute(stmt).scalar_one_or_none()
            return model.to_domain() if model else None
        except SQLAlchemyError as e:
            logger.error(f"Error looking up pending EOI from {from_id} to {to_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to look up pending EOI: {e}") from e

    def add(self, eoi: ExpressionOfInterest) -> ExpressionOfInterest:
        """Insert an EOI.

        Raises:
            DataIntegrityError: If a pending EOI already exists for the same
                sender and target (partial unique index)
        """
        try:
            model = InterestModel.from_domain(eoi)
            self.session.add(model)
            self.session.flush()
            return model.to_domain()
        except IntegrityError as e:
            logger.warning(
                f"Pending EOI already exists from {eoi.from_id} to {eoi.to_type.value}/{eoi.to_id}",
                extra={"event": "eoi.duplicate_rejected_by_index"},
            )
            raise DataIntegrityError(
                "A pending expression of interest already exists", constraint=PENDING_INTEREST_INDEX
            ) from e
        except SQLAlchemyError as e:
            logger.error(f"Error adding EOI {eoi.id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to add EOI: {e}") from e

    def set_status(
        self, eoi_id: str, status: EOIStatus, responded_at: Optional[datetime] = None
    ) -> ExpressionOfInterest:
        try:
            model = self.session.get(InterestModel, eoi_id)
            if model is None:
                raise RecordNotFoundError(f"EOI {eoi_id} not found")
            model.status = status.value
            if responded_at is not None:
                model.responded_at = _format_datetime(responded_at)
            self.session.flush()
            return model.to_domain()
        except RecordNotFoundError:
            raise
        except IntegrityError as e:
            raise DataIntegrityError(
                "A pending expression of interest already exists", constraint=PENDING_INTEREST_INDEX
            ) from e
        except SQLAlchemyError as e:
            logger.error(f"Error updating EOI {eoi_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to update EOI: {e}") from e

    def expire_pending(self, now: datetime) -> int:
        """Flip every pending EOI whose expiry has passed. Returns the row count."""
        try:
            result = self.session.execute(
                update(InterestModel)
                .where(
                    InterestModel.status == EOIStatus.PENDING.value,
                    InterestModel.expires_at <= _format_datetime(now),
                )
                .values(status=EOIStatus.EXPIRED.value)
            )
            self.session.flush()
            return result.rowcount
        except SQLAlchemyError as e:
            logger.error(f"Error expiring stale EOIs: {e}", exc_info=True)
            raise PersistenceError(f"Failed to expire EOIs: {e}") from e

    def list_from(self, from_ids: Iterable[str]) -> List[ExpressionOfInterest]:
        ids = list(set(from_ids))
        if not ids:
            return []
        try:
            stmt = (
                select(InterestModel)
                .where(InterestModel.from_id.in_(ids))
                .order_by(InterestModel.created_at.desc())
            )
            return [m.to_domain() for m in self.session.execute(stmt).scalars()]
        except SQLAlchemyError as e:
            logger.error(f"Error listing EOIs sent by {ids}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to list sent EOIs: {e}") from e

    def list_to(self, targets: Iterable[Tuple[EOITargetType, str]]) -> List[ExpressionOfInterest]:
        pairs = list(set(targets))
        if not pairs:
            return []
        try:
            conditions = [
                (InterestModel.to_type == to_type.value) & (InterestModel.to_id == to_id)
                for to_type, to_id in pairs
            ]
            stmt = select(InterestModel).where(or_(*conditions)).order_by(InterestModel.created_at.desc())
            return [m.to_domain() for m in self.session.execute(stmt).scalars()]
        except SQLAlchemyError as e:
            logger.error(f"Error listing received EOIs: {e}", exc_info=True)
            raise PersistenceError(f"Failed to list received EOIs: {e}") from e


class ApplicationRepository:
    """Team applications to opportunities."""

    def __init__(self, session: Session):
        self.session = session

    def get(self, application_id: str) -> Optional[TeamApplication]:
        try:
            model = self.session.get(TeamApplicationModel, application_id)
            return model.to_domain() if model else None
        except SQLAlchemyError as e:
            logger.error(f"Error retrieving application {application_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to retrieve application: {e}") from e

    def find(self, team_id: str, opportunity_id: str) -> Optional[TeamApplication]:
        try:
            stmt = select(TeamApplicationModel).where(
                TeamApplicationModel.team_id == team_id,
                TeamApplicationModel.opportunity_id == opportunity_id,
            )
            model = self.session.execute(stmt).scalar_one_or_none()
            return model.to_domain() if model else None
        except SQLAlchemyError as e:
            logger.error(
                f"Error looking up application of {team_id} to {opportunity_id}: {e}", exc_info=True
            )
            raise PersistenceError(f"Failed to look up application: {e}") from e

    def add(self, application: TeamApplication) -> TeamApplication:
        """Insert an application.

        Raises:
            DataIntegrityError: If the team already applied to the opportunity
        """
        try:
            model = TeamApplicationModel.from_domain(application)
            self.session.add(model)
            self.session.flush()
            return model.to_domain()
        except IntegrityError as e:
            logger.warning(
                f"Team {application.team_id} already applied to {application.opportunity_id}",
                extra={"event": "application.duplicate_rejected_by_constraint"},
            )
            raise DataIntegrityError(
                "Team has already applied to this opportunity", constraint=APPLICATION_UNIQUE_CONSTRAINT
            ) from e
        except SQLAlchemyError as e:
            logger.error(f"Error adding application {application.id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to add application: {e}") from e

    def set_status(
        self,
        application_id: str,
        status: ApplicationStatus,
        rejection_reason: Optional[str] = None,
        reviewed_at: Optional[datetime] = None,
        final_decision_at: Optional[datetime] = None,
    ) -> TeamApplication:
        """Update status; timestamp and reason columns are written only when given."""
        try:
            model = self.session.get(TeamApplicationModel, application_id)
            if model is None:
                raise RecordNotFoundError(f"Application {application_id} not found")
            model.status = status.value
            if rejection_reason is not None:
                model.rejection_reason = rejection_reason
            if reviewed_at is not None:
                model.reviewed_at = _format_datetime(reviewed_at)
            if final_decision_at is not None:
                model.final_decision_at = _format_datetime(final_decision_at)
            self.session.flush()
            return model.to_domain()
        except RecordNotFoundError:
            raise
        except SQLAlchemyError as e:
            logger.error(f"Error updating application {application_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to update application: {e}") from e

    def reject_open_except(
        self, opportunity_id: str, selected_team_id: Optional[str], reason: str, when: datetime
    ) -> int:
        """Reject every open application to the opportunity other than the selected team's."""
        try:
            stmt = update(TeamApplicationModel).where(
                TeamApplicationModel.opportunity_id == opportunity_id,
                TeamApplicationModel.status.in_([s.value for s in OPEN_APPLICATION_STATUSES]),
            )
            if selected_team_id is not None:
                stmt = stmt.where(TeamApplicationModel.team_id != selected_team_id)
            result = self.session.execute(
                stmt.values(
                    status=ApplicationStatus.REJECTED.value,
                    rejection_reason=reason,
                    final_decision_at=_format_datetime(when),
                )
            )
            self.session.flush()
            self.session.expire_all()
            return result.rowcount
        except SQLAlchemyError as e:
            logger.error(f"Error rejecting applications to {opportunity_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to reject applications: {e}") from e

    def list_for_opportunity(self, opportunity_id: str) -> List[TeamApplication]:
        try:
            stmt = (
                select(TeamApplicationModel)
                .where(TeamApplicationModel.opportunity_id == opportunity_id)
                .order_by(TeamApplicationModel.applied_at)
            )
            return [m.to_domain() for m in self.session.execute(stmt).scalars()]
        except SQLAlchemyError as e:
            logger.error(f"Error listing applications to {opportunity_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to list applications: {e}") from e

    def list_for_teams(self, team_ids: Iterable[str]) -> List[TeamApplication]:
        ids = list(set(team_ids))
        if not ids:
            return []
        try:
            stmt = (
                select(TeamApplicationModel)
                .where(TeamApplicationModel.team_id.in_(ids))
                .order_by(TeamApplicationModel.applied_at)
            )
            return [m.to_domain() for m in self.session.execute(stmt).scalars()]
        except SQLAlchemyError as e:
            logger.error(f"Error listing applications of teams {ids}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to list applications: {e}") from e

    def delete(self, application_id: str) -> None:
        try:
            result = self.session.execute(
                delete(TeamApplicationModel).where(TeamApplicationModel.id == application_id)
            )
            self.session.flush()
            if result.rowcount == 0:
                raise RecordNotFoundError(f"Application {application_id} not found")
        except RecordNotFoundError:
            raise
        except SQLAlchemyError as e:
            logger.error(f"Error deleting application {application_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to delete application: {e}") from e

    def redact_cover_letters(self, user_id: str, replacement: str) -> int:
        try:
            result = self.session.execute(
                update(TeamApplicationModel)
                .where(
                    TeamApplicationModel.applied_by == user_id,
                    TeamApplicationModel.cover_letter.is_not(None),
                )
                .values(cover_letter=replacement)
            )
            self.session.flush()
            return result.rowcount
        except SQLAlchemyError as e:
            logger.error(f"Error redacting cover letters of {user_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to redact cover letters: {e}") from e


class SavedItemRepository:
    def __init__(self, session: Session):
        self.session = session

    def add(self, item: SavedItem) -> SavedItem:
        """Save an item; saving the same item twice is a no-op."""
        try:
            key = {"user_id": item.user_id, "item_type": item.item_type.value, "item_id": item.item_id}
            existing = self.session.get(SavedItemModel, key)
            if existing:
                return existing.to_domain()
            model = SavedItemModel.from_domain(item)
            self.session.add(model)
            self.session.flush()
            return model.to_domain()
        except SQLAlchemyError as e:
            logger.error(f"Error saving item {item.item_id} for {item.user_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to save item: {e}") from e

    def list_for_user(self, user_id: str, item_type: SavedItemType) -> List[SavedItem]:
        try:
            stmt = (
                select(SavedItemModel)
                .where(SavedItemModel.user_id == user_id, SavedItemModel.item_type == item_type.value)
                .order_by(SavedItemModel.created_at)
            )
            return [m.to_domain() for m in self.session.execute(stmt).scalars()]
        except SQLAlchemyError as e:
            logger.error(f"Error listing saved items of {user_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to list saved items: {e}") from e


class NotificationRepository:
    def __init__(self, session: Session):
        self.session = session

    def add(self, notification: Notification) -> Notification:
        try:
            model = NotificationModel.from_domain(notification)
            self.session.add(model)
            self.session.flush()
            return model.to_domain()
        except SQLAlchemyError as e:
            logger.error(f"Error recording notification for {notification.user_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to record notification: {e}") from e

    def list_for_user(self, user_id: str) -> List[Notification]:
        try:
            stmt = (
                select(NotificationModel)
                .where(NotificationModel.user_id == user_id)
                .order_by(NotificationModel.created_at)
            )
            return [m.to_domain() for m in self.session.execute(stmt).scalars()]
        except SQLAlchemyError as e:
            logger.error(f"Error listing notifications of {user_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to list notifications: {e}") from e
