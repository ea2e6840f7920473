"""ORM models and conversion to and from the domain models.

Timestamps are stored as ISO 8601 strings with a ``Z`` suffix and a fixed
width, so lexical comparison in SQL matches chronological order (the EOI
expiry sweep relies on it).
"""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    inspect,
    text,
)
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, relationship

from liftout.domain.models import (
    ApplicationStatus,
    Company,
    CompanyRole,
    CompanyUser,
    Conversation,
    ConversationParticipant,
    ConversationStatus,
    EOIFromType,
    EOIStatus,
    EOITargetType,
    ExpressionOfInterest,
    InterestLevel,
    MemberStatus,
    Message,
    NdaLedger,
    Notification,
    Opportunity,
    OpportunityStatus,
    OpportunityVisibility,
    ParticipantRole,
    SavedItem,
    SavedItemType,
    Team,
    TeamApplication,
    TeamMember,
    TeamVisibility,
    User,
    UserType,
    VerificationStatus,
)
from liftout.logging import get_logger

logger = get_logger(__name__, component="database")

Base = declarative_base()

PENDING_INTEREST_INDEX = "uq_interests_pending_target"
APPLICATION_UNIQUE_CONSTRAINT = "uq_team_applications_team_opportunity"
COMPANY_USER_UNIQUE_CONSTRAINT = "uq_company_users_user"


class UserModel(Base):
    __tablename__ = "users"

    id = Column(String(64), primary_key=True)
    email = Column(String(320), nullable=False)
    first_name = Column(String(255), nullable=False, default="")
    last_name = Column(String(255), nullable=False, default="")
    user_type = Column(String(20), nullable=False)
    notify_on_message = Column(Boolean, nullable=False, default=True)
    notify_on_interest = Column(Boolean, nullable=False, default=True)
    created_at = Column(String(50), nullable=True)
    deleted_at = Column(String(50), nullable=True)

    __table_args__ = (Index("idx_users_email", "email"),)

    def to_domain(self) -> User:
        return User(
            id=self.id,
            email=self.email,
            first_name=self.first_name or "",
            last_name=self.last_name or "",
            user_type=UserType(self.user_type),
            notify_on_message=bool(self.notify_on_message),
            notify_on_interest=bool(self.notify_on_interest),
            created_at=_parse_datetime(self.created_at),
            deleted_at=_parse_datetime(self.deleted_at),
        )

    @classmethod
    def from_domain(cls, user: User) -> "UserModel":
        return cls(
            id=user.id,
            email=user.email,
            first_name=user.first_name,
            last_name=user.last_name,
            user_type=user.user_type.value,
            notify_on_message=user.notify_on_message,
            notify_on_interest=user.notify_on_interest,
            created_at=_format_datetime(user.created_at),
            deleted_at=_format_datetime(user.deleted_at),
        )


class CompanyModel(Base):
    __tablename__ = "companies"

    id = Column(String(64), primary_key=True)
    name = Column(String(255), nullable=False)
    verification_status = Column(String(20), nullable=False, default="unverified")
    created_at = Column(String(50), nullable=True)

    def to_domain(self) -> Company:
        return Company(
            id=self.id,
            name=self.name,
            verification_status=VerificationStatus(self.verification_status),
            created_at=_parse_datetime(self.created_at),
        )

    @classmethod
    def from_domain(cls, company: Company) -> "CompanyModel":
        return cls(
            id=company.id,
            name=company.name,
            verification_status=company.verification_status.value,
            created_at=_format_datetime(company.created_at),
        )


class CompanyUserModel(Base):
    """A user's membership in a company. One company per user."""

    __tablename__ = "company_users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(64), nullable=False)
    company_id = Column(String(64), ForeignKey("companies.id", ondelete="CASCADE"), nullable=False)
    role = Column(String(20), nullable=False, default="member")

    __table_args__ = (
        UniqueConstraint("user_id", name=COMPANY_USER_UNIQUE_CONSTRAINT),
        Index("idx_company_users_company", "company_id"),
    )

    def to_domain(self) -> CompanyUser:
        return CompanyUser(user_id=self.user_id, company_id=self.company_id, role=CompanyRole(self.role))

    @classmethod
    def from_domain(cls, company_user: CompanyUser) -> "CompanyUserModel":
        return cls(
            user_id=company_user.user_id,
            company_id=company_user.company_id,
            role=company_user.role.value,
        )


class TeamModel(Base):
    __tablename__ = "teams"

    id = Column(String(64), primary_key=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    industry = Column(String(255), nullable=True)
    location = Column(String(255), nullable=True)
    size = Column(Integer, nullable=False, default=0)
    visibility = Column(String(20), nullable=False, default="public")
    is_anonymous = Column(Boolean, nullable=False, default=False)
    created_by = Column(String(64), nullable=False)
    created_at = Column(String(50), nullable=True)

    members = relationship(
        "TeamMemberModel",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="TeamMemberModel.joined_at",
    )
    blocks = relationship(
        "TeamBlockedCompanyModel",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="TeamBlockedCompanyModel.blocked_at",
    )

    __table_args__ = (Index("idx_teams_industry", "industry"),)

    def to_domain(self) -> Team:
        return Team(
            id=self.id,
            name=self.name,
            description=self.description,
            industry=self.industry,
            location=self.location,
            size=self.size or 0,
            visibility=TeamVisibility(self.visibility),
            is_anonymous=bool(self.is_anonymous),
            blocked_companies=[b.company_id for b in self.blocks],
            created_by=self.created_by,
            members=[m.to_domain() for m in self.members],
            created_at=_parse_datetime(self.created_at),
        )

    @classmethod
    def from_domain(cls, team: Team) -> "TeamModel":
        model = cls(
            id=team.id,
            name=team.name,
            description=team.description,
            industry=team.industry,
            location=team.location,
            size=team.size,
            visibility=team.visibility.value,
            is_anonymous=team.is_anonymous,
            created_by=team.created_by,
            created_at=_format_datetime(team.created_at),
        )
        model.members = [TeamMemberModel.from_domain(team.id, m) for m in team.members]
        model.blocks = [
            TeamBlockedCompanyModel(team_id=team.id, company_id=company_id, blocked_at=_format_datetime(team.created_at))
            for company_id in team.blocked_companies
        ]
        return model


class TeamMemberModel(Base):
    __tablename__ = "team_members"

    team_id = Column(String(64), ForeignKey("teams.id", ondelete="CASCADE"), primary_key=True)
    user_id = Column(String(64), primary_key=True)
    role = Column(String(100), nullable=False, default="member")
    title = Column(String(255), nullable=True)
    seniority = Column(String(50), nullable=True)
    years_experience = Column(Integer, nullable=True)
    is_admin = Column(Boolean, nullable=False, default=False)
    is_lead = Column(Boolean, nullable=False, default=False)
    status = Column(String(20), nullable=False, default="active")
    joined_at = Column(String(50), nullable=True)

    __table_args__ = (Index("idx_team_members_user", "user_id"),)

    def to_domain(self) -> TeamMember:
        return TeamMember(
            user_id=self.user_id,
            role=self.role,
            title=self.title,
            seniority=self.seniority,
            years_experience=self.years_experience,
            is_admin=bool(self.is_admin),
            is_lead=bool(self.is_lead),
            status=MemberStatus(self.status),
            joined_at=_parse_datetime(self.joined_at),
        )

    @classmethod
    def from_domain(cls, team_id: str, member: TeamMember) -> "TeamMemberModel":
        return cls(
            team_id=team_id,
            user_id=member.user_id,
            role=member.role,
            title=member.title,
            seniority=member.seniority,
            years_experience=member.years_experience,
            is_admin=member.is_admin,
            is_lead=member.is_lead,
            status=member.status.value,
            joined_at=_format_datetime(member.joined_at),
        )


class TeamBlockedCompanyModel(Base):
    __tablename__ = "team_blocked_companies"

    team_id = Column(String(64), ForeignKey("teams.id", ondelete="CASCADE"), primary_key=True)
    company_id = Column(String(64), primary_key=True)
    blocked_at = Column(String(50), nullable=True)


class OpportunityModel(Base):
    __tablename__ = "opportunities"

    id = Column(String(64), primary_key=True)
    company_id = Column(String(64), nullable=False)
    title = Column(String(255), nullable=False)
    status = Column(String(20), nullable=False, default="active")
    visibility = Column(String(20), nullable=False, default="public")
    # "metadata" is reserved on declarative classes
    audit_metadata = Column("metadata", JSON, nullable=False, default=dict)
    created_at = Column(String(50), nullable=True)

    __table_args__ = (Index("idx_opportunities_company", "company_id"),)

    def to_domain(self) -> Opportunity:
        return Opportunity(
            id=self.id,
            company_id=self.company_id,
            title=self.title,
            status=OpportunityStatus(self.status),
            visibility=OpportunityVisibility(self.visibility),
            metadata=dict(self.audit_metadata or {}),
            created_at=_parse_datetime(self.created_at),
        )

    @classmethod
    def from_domain(cls, opportunity: Opportunity) -> "OpportunityModel":
        return cls(
            id=opportunity.id,
            company_id=opportunity.company_id,
            title=opportunity.title,
            status=opportunity.status.value,
            visibility=opportunity.visibility.value,
            audit_metadata=dict(opportunity.metadata),
            created_at=_format_datetime(opportunity.created_at),
        )


class ConversationModel(Base):
    __tablename__ = "conversations"

    id = Column(String(64), primary_key=True)
    team_id = Column(String(64), nullable=True)
    company_id = Column(String(64), nullable=True)
    opportunity_id = Column(String(64), nullable=True)
    subject = Column(String(255), nullable=True)
    status = Column(String(20), nullable=False, default="active")
    # Snapshot of the team's anonymity at creation; no update path writes it
    is_anonymous = Column(Boolean, nullable=False, default=False)
    nda_accepted_by = Column(JSON, nullable=False, default=list)
    nda_accepted_at = Column(JSON, nullable=False, default=dict)
    last_message_at = Column(String(50), nullable=True)
    message_count = Column(Integer, nullable=False, default=0)
    created_at = Column(String(50), nullable=True)

    participants = relationship(
        "ConversationParticipantModel",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="ConversationParticipantModel.position",
    )

    def to_domain(self) -> Conversation:
        return Conversation(
            id=self.id,
            team_id=self.team_id,
            company_id=self.company_id,
            opportunity_id=self.opportunity_id,
            subject=self.subject,
            status=ConversationStatus(self.status),
            is_anonymous=bool(self.is_anonymous),
            participants=[p.to_domain() for p in self.participants],
            nda_ledger=NdaLedger(
                accepted_by=list(self.nda_accepted_by or []),
                accepted_at={
                    uid: _parse_datetime(ts) for uid, ts in (self.nda_accepted_at or {}).items()
                },
            ),
            last_message_at=_parse_datetime(self.last_message_at),
            message_count=self.message_count or 0,
            created_at=_parse_datetime(self.created_at),
        )

    @classmethod
    def from_domain(cls, conversation: Conversation) -> "ConversationModel":
        model = cls(
            id=conversation.id,
            team_id=conversation.team_id,
            company_id=conversation.company_id,
            opportunity_id=conversation.opportunity_id,
            subject=conversation.subject,
            status=conversation.status.value,
            is_anonymous=conversation.is_anonymous,
            nda_accepted_by=list(conversation.nda_ledger.accepted_by),
            nda_accepted_at=_format_ledger_times(conversation.nda_ledger),
            last_message_at=_format_datetime(conversation.last_message_at),
            message_count=conversation.message_count,
            created_at=_format_datetime(conversation.created_at),
        )
        model.participants = [
            ConversationParticipantModel.from_domain(conversation.id, p) for p in conversation.participants
        ]
        return model


class ConversationParticipantModel(Base):
    __tablename__ = "conversation_participants"

    conversation_id = Column(
        String(64), ForeignKey("conversations.id", ondelete="CASCADE"), primary_key=True
    )
    user_id = Column(String(64), primary_key=True)
    role = Column(String(20), nullable=False, default="participant")
    position = Column(Integer, nullable=False)
    joined_at = Column(String(50), nullable=False)
    left_at = Column(String(50), nullable=True)

    __table_args__ = (Index("idx_participants_user", "user_id"),)

    def to_domain(self) -> ConversationParticipant:
        return ConversationParticipant(
            user_id=self.user_id,
            role=ParticipantRole(self.role),
            position=self.position,
            joined_at=_parse_datetime(self.joined_at),
            left_at=_parse_datetime(self.left_at),
        )

    @classmethod
    def from_domain(cls, conversation_id: str, participant: ConversationParticipant) -> "ConversationParticipantModel":
        return cls(
            conversation_id=conversation_id,
            user_id=participant.user_id,
            role=participant.role.value,
            position=participant.position,
            joined_at=_format_datetime(participant.joined_at),
            left_at=_format_datetime(participant.left_at),
        )


class MessageModel(Base):
    __tablename__ = "messages"

    id = Column(String(64), primary_key=True)
    conversation_id = Column(
        String(64), ForeignKey("conversations.id", ondelete="CASCADE"), nullable=False
    )
    sender_id = Column(String(64), nullable=False)
    content = Column(Text, nullable=False)
    sent_at = Column(String(50), nullable=False)

    __table_args__ = (
        Index("idx_messages_conversation", "conversation_id", "sent_at"),
        Index("idx_messages_sender", "sender_id"),
    )

    def to_domain(self) -> Message:
        return Message(
            id=self.id,
            conversation_id=self.conversation_id,
            sender_id=self.sender_id,
            content=self.content,
            sent_at=_parse_datetime(self.sent_at),
        )

    @classmethod
    def from_domain(cls, message: Message) -> "MessageModel":
        return cls(
            id=message.id,
            conversation_id=message.conversation_id,
            sender_id=message.sender_id,
            content=message.content,
            sent_at=_format_datetime(message.sent_at),
        )


class InterestModel(Base):
    """Expressions of interest.

    The partial unique index admits at most one pending row per
    (sender, target); terminal rows are unconstrained.
    """

    __tablename__ = "interests"

    id = Column(String(64), primary_key=True)
    from_type = Column(String(20), nullable=False)
    from_id = Column(String(64), nullable=False)
    to_type = Column(String(20), nullable=False)
    to_id = Column(String(64), nullable=False)
    status = Column(String(20), nullable=False, default="pending")
    interest_level = Column(String(20), nullable=False, default="medium")
    message = Column(Text, nullable=True)
    created_at = Column(String(50), nullable=False)
    expires_at = Column(String(50), nullable=False)
    responded_at = Column(String(50), nullable=True)
    # Snapshot of the target's anonymity at creation; no update path writes it
    target_was_anonymous = Column(Boolean, nullable=False, default=False)

    __table_args__ = (
        Index(
            PENDING_INTEREST_INDEX,
            "from_id",
            "to_type",
            "to_id",
            unique=True,
            sqlite_where=text("status = 'pending'"),
            postgresql_where=text("status = 'pending'"),
        ),
        Index("idx_interests_target", "to_type", "to_id"),
        Index("idx_interests_expiry", "status", "expires_at"),
    )

    def to_domain(self) -> ExpressionOfInterest:
        return ExpressionOfInterest(
            id=self.id,
            from_type=EOIFromType(self.from_type),
            from_id=self.from_id,
            to_type=EOITargetType(self.to_type),
            to_id=self.to_id,
            status=EOIStatus(self.status),
            interest_level=InterestLevel(self.interest_level),
            message=self.message,
            created_at=_parse_datetime(self.created_at),
            expires_at=_parse_datetime(self.expires_at),
            responded_at=_parse_datetime(self.responded_at),
            target_was_anonymous=bool(self.target_was_anonymous),
        )

    @classmethod
    def from_domain(cls, eoi: ExpressionOfInterest) -> "InterestModel":
        return cls(
            id=eoi.id,
            from_type=eoi.from_type.value,
            from_id=eoi.from_id,
            to_type=eoi.to_type.value,
            to_id=eoi.to_id,
            status=eoi.status.value,
            interest_level=eoi.interest_level.value,
            message=eoi.message,
            created_at=_format_datetime(eoi.created_at),
            expires_at=_format_datetime(eoi.expires_at),
            responded_at=_format_datetime(eoi.responded_at),
            target_was_anonymous=eoi.target_was_anonymous,
        )


class TeamApplicationModel(Base):
    __tablename__ = "team_applications"

    id = Column(String(64), primary_key=True)
    team_id = Column(String(64), nullable=False)
    opportunity_id = Column(String(64), nullable=False)
    applied_by = Column(String(64), nullable=False)
    cover_letter = Column(Text, nullable=True)
    status = Column(String(20), nullable=False, default="submitted")
    rejection_reason = Column(Text, nullable=True)
    applied_at = Column(String(50), nullable=False)
    reviewed_at = Column(String(50), nullable=True)
    final_decision_at = Column(String(50), nullable=True)

    __table_args__ = (
        UniqueConstraint("team_id", "opportunity_id", name=APPLICATION_UNIQUE_CONSTRAINT),
        Index("idx_team_applications_opportunity", "opportunity_id", "status"),
    )

    def to_domain(self) -> TeamApplication:
        return TeamApplication(
            id=self.id,
            team_id=self.team_id,
            opportunity_id=self.opportunity_id,
            applied_by=self.applied_by,
            cover_letter=self.cover_letter,
            status=ApplicationStatus(self.status),
            rejection_reason=self.rejection_reason,
            applied_at=_parse_datetime(self.applied_at),
            reviewed_at=_parse_datetime(self.reviewed_at),
            final_decision_at=_parse_datetime(self.final_decision_at),
        )

    @classmethod
    def from_domain(cls, application: TeamApplication) -> "TeamApplicationModel":
        return cls(
            id=application.id,
            team_id=application.team_id,
            opportunity_id=application.opportunity_id,
            applied_by=application.applied_by,
            cover_letter=application.cover_letter,
            status=application.status.value,
            rejection_reason=application.rejection_reason,
            applied_at=_format_datetime(application.applied_at),
            reviewed_at=_format_datetime(application.reviewed_at),
            final_decision_at=_format_datetime(application.final_decision_at),
        )


class SavedItemModel(Base):
    __tablename__ = "saved_items"

    user_id = Column(String(64), primary_key=True)
    item_type = Column(String(20), primary_key=True)
    item_id = Column(String(64), primary_key=True)
    created_at = Column(String(50), nullable=True)

    def to_domain(self) -> SavedItem:
        return SavedItem(
            user_id=self.user_id,
            item_type=SavedItemType(self.item_type),
            item_id=self.item_id,
            created_at=_parse_datetime(self.created_at),
        )

    @classmethod
    def from_domain(cls, item: SavedItem) -> "SavedItemModel":
        return cls(
            user_id=item.user_id,
            item_type=item.item_type.value,
            item_id=item.item_id,
            created_at=_format_datetime(item.created_at),
        )


class NotificationModel(Base):
    __tablename__ = "notifications"

    id = Column(String(64), primary_key=True)
    user_id = Column(String(64), nullable=False)
    type = Column(String(50), nullable=False)
    payload = Column(JSON, nullable=False, default=dict)
    created_at = Column(String(50), nullable=False)

    __table_args__ = (Index("idx_notifications_user", "user_id", "created_at"),)

    def to_domain(self) -> Notification:
        return Notification(
            id=self.id,
            user_id=self.user_id,
            type=self.type,
            payload=dict(self.payload or {}),
            created_at=_parse_datetime(self.created_at),
        )

    @classmethod
    def from_domain(cls, notification: Notification) -> "NotificationModel":
        return cls(
            id=notification.id,
            user_id=notification.user_id,
            type=notification.type,
            payload=dict(notification.payload),
            created_at=_format_datetime(notification.created_at),
        )


def _format_datetime(dt: Optional[datetime]) -> Optional[str]:
    """Format as fixed-width ISO 8601 UTC with microseconds and ``Z``."""
    if dt is None:
        return None

    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    else:
        dt = dt.astimezone(timezone.utc)

    return dt.strftime("%Y-%m-%dT%H:%M:%S.%fZ")


def _parse_datetime(dt_str: Optional[str]) -> Optional[datetime]:
    if dt_str is None or dt_str == "":
        return None

    dt_str = dt_str.rstrip("Z")

    try:
        dt = datetime.strptime(dt_str, "%Y-%m-%dT%H:%M:%S.%f")
    except ValueError:
        dt = datetime.strptime(dt_str, "%Y-%m-%dT%H:%M:%S")

    return dt.replace(tzinfo=timezone.utc)


def _format_ledger_times(ledger: NdaLedger) -> dict:
    return {uid: _format_datetime(ts) for uid, ts in ledger.accepted_at.items()}


def create_schema(engine: Engine) -> None:
    """Create all tables and indexes that do not exist yet (idempotent)."""
    logger.info("Creating database schema if not exists")

    try:
        Base.metadata.create_all(engine, checkfirst=True)
        tables = inspect(engine).get_table_names()
        logger.info(
            f"Database schema ready. Tables: {', '.join(tables)}",
            extra={"event": "database.schema.ready", "table_count": len(tables)},
        )
    except Exception as e:
        logger.error(f"Failed to create database schema: {e}", exc_info=True)
        raise
