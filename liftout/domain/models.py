"""Core domain models for the matching engine.

Teams, companies and the objects that connect them (conversations, expressions
of interest, applications, opportunities). Repositories return these models and
services only ever reason about them, never about ORM rows.

Two fields are snapshots taken at construction and are frozen on the model:
``Conversation.is_anonymous`` and ``ExpressionOfInterest.target_was_anonymous``.
A team changing its visibility later never rewrites them.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from liftout.utils.timestamps import ensure_utc


class UserType(str, Enum):
    """Actor roles supplied by the identity provider."""

    INDIVIDUAL = "individual"
    COMPANY = "company"
    ADMIN = "admin"


class TeamVisibility(str, Enum):
    PUBLIC = "public"
    ANONYMOUS = "anonymous"
    SELECTIVE = "selective"


class MemberStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


class VerificationStatus(str, Enum):
    UNVERIFIED = "unverified"
    PENDING = "pending"
    VERIFIED = "verified"
    REJECTED = "rejected"


class CompanyRole(str, Enum):
    OWNER = "owner"
    ADMIN = "admin"
    MEMBER = "member"


class ConversationStatus(str, Enum):
    ACTIVE = "active"
    ARCHIVED = "archived"
    BLOCKED = "blocked"


class ParticipantRole(str, Enum):
    CREATOR = "creator"
    PARTICIPANT = "participant"


class EOIStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    DECLINED = "declined"
    EXPIRED = "expired"


class InterestLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class EOIFromType(str, Enum):
    TEAM = "team"
    COMPANY = "company"


class EOITargetType(str, Enum):
    TEAM = "team"
    OPPORTUNITY = "opportunity"


class ApplicationStatus(str, Enum):
    SUBMITTED = "submitted"
    REVIEWING = "reviewing"
    INTERVIEWING = "interviewing"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class OpportunityStatus(str, Enum):
    ACTIVE = "active"
    PAUSED = "paused"
    FILLED = "filled"
    EXPIRED = "expired"


class OpportunityVisibility(str, Enum):
    PUBLIC = "public"
    PRIVATE = "private"


class SavedItemType(str, Enum):
    TEAM = "team"
    OPPORTUNITY = "opportunity"


OPEN_APPLICATION_STATUSES = frozenset(
    {ApplicationStatus.SUBMITTED, ApplicationStatus.REVIEWING, ApplicationStatus.INTERVIEWING}
)
TERMINAL_APPLICATION_STATUSES = frozenset({ApplicationStatus.ACCEPTED, ApplicationStatus.REJECTED})


class DomainModel(BaseModel):
    """Base model that normalises every datetime field to aware UTC."""

    @field_validator("*")
    @classmethod
    def ensure_utc_datetimes(cls, v: Any) -> Any:
        if isinstance(v, datetime):
            return ensure_utc(v)
        return v


class ActorContext(DomainModel):
    """Resolved identity of the caller: ``(user_id, role, company_id?)``."""

    user_id: str = Field(..., min_length=1)
    role: UserType
    company_id: Optional[str] = None

    model_config = {"frozen": True}

    @property
    def is_admin(self) -> bool:
        return self.role == UserType.ADMIN

    @property
    def is_company(self) -> bool:
        return self.role == UserType.COMPANY


class User(DomainModel):
    id: str
    email: str
    first_name: str = ""
    last_name: str = ""
    user_type: UserType = UserType.INDIVIDUAL
    notify_on_message: bool = True
    notify_on_interest: bool = True
    created_at: Optional[datetime] = None
    deleted_at: Optional[datetime] = None

    @property
    def display_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip() or "Unknown"

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None


class TeamMember(DomainModel):
    """Roster entry. ``role`` is the member's job role, not a permission."""

    user_id: str
    role: str = "member"
    title: Optional[str] = None
    seniority: Optional[str] = None
    years_experience: Optional[int] = None
    is_admin: bool = False
    is_lead: bool = False
    status: MemberStatus = MemberStatus.ACTIVE
    joined_at: Optional[datetime] = None

    @property
    def is_active(self) -> bool:
        return self.status == MemberStatus.ACTIVE

    @property
    def can_manage_team(self) -> bool:
        """Active admins and leads act on behalf of the team."""
        return self.is_active and (self.is_admin or self.is_lead)


class Team(DomainModel):
    id: str
    name: str
    description: Optional[str] = None
    industry: Optional[str] = None
    location: Optional[str] = None
    size: int = 0
    visibility: TeamVisibility = TeamVisibility.PUBLIC
    # Legacy alias of visibility == anonymous. Read together with visibility
    # (OR) until every row has been backfilled.
    is_anonymous: bool = False
    blocked_companies: List[str] = Field(default_factory=list)
    created_by: str
    members: List[TeamMember] = Field(default_factory=list)
    created_at: Optional[datetime] = None

    @property
    def is_effectively_anonymous(self) -> bool:
        return self.visibility == TeamVisibility.ANONYMOUS or self.is_anonymous

    @property
    def requires_verified_viewer(self) -> bool:
        """Anonymous and selective tiers are gated behind company verification."""
        return self.is_effectively_anonymous or self.visibility == TeamVisibility.SELECTIVE

    @property
    def active_members(self) -> List[TeamMember]:
        return [m for m in self.members if m.is_active]

    def is_blocked(self, company_id: Optional[str]) -> bool:
        return company_id is not None and company_id in self.blocked_companies

    def is_active_member(self, user_id: str) -> bool:
        return any(m.user_id == user_id for m in self.active_members)

    def can_be_managed_by(self, user_id: str) -> bool:
        if self.created_by == user_id:
            return True
        return any(m.user_id == user_id and m.can_manage_team for m in self.members)

    def admin_member_ids(self) -> List[str]:
        return [m.user_id for m in self.members if m.can_manage_team]


class Company(DomainModel):
    id: str
    name: str
    verification_status: VerificationStatus = VerificationStatus.UNVERIFIED
    created_at: Optional[datetime] = None

    @property
    def is_verified(self) -> bool:
        return self.verification_status == VerificationStatus.VERIFIED


class CompanyUser(DomainModel):
    """Membership of a user in their (single) company."""

    user_id: str
    company_id: str
    role: CompanyRole = CompanyRole.MEMBER


class ConversationParticipant(DomainModel):
    user_id: str
    role: ParticipantRole = ParticipantRole.PARTICIPANT
    position: int = 0
    joined_at: datetime
    left_at: Optional[datetime] = None

    @property
    def is_active(self) -> bool:
        return self.left_at is None


class NdaLedger(DomainModel):
    """Per-conversation record of who accepted the confidentiality terms."""

    accepted_by: List[str] = Field(default_factory=list)
    accepted_at: Dict[str, datetime] = Field(default_factory=dict)

    def has_accepted(self, user_id: str) -> bool:
        return user_id in self.accepted_by

    def record(self, user_id: str, when: datetime) -> "NdaLedger":
        """Return a ledger including user_id; unchanged if already present."""
        if self.has_accepted(user_id):
            return self
        return NdaLedger(
            accepted_by=[*self.accepted_by, user_id],
            accepted_at={**self.accepted_at, user_id: when},
        )

    def to_json(self) -> Dict[str, Any]:
        return {
            "ndaAcceptedBy": list(self.accepted_by),
            "ndaAcceptedAt": {uid: ts.isoformat() for uid, ts in self.accepted_at.items()},
        }


class Conversation(DomainModel):
    id: str
    team_id: Optional[str] = None
    company_id: Optional[str] = None
    opportunity_id: Optional[str] = None
    subject: Optional[str] = None
    status: ConversationStatus = ConversationStatus.ACTIVE
    is_anonymous: bool = Field(False, frozen=True)
    participants: List[ConversationParticipant] = Field(default_factory=list)
    nda_ledger: NdaLedger = Field(default_factory=NdaLedger)
    last_message_at: Optional[datetime] = None
    message_count: int = 0
    created_at: Optional[datetime] = None

    @property
    def ordered_participants(self) -> List[ConversationParticipant]:
        return sorted(self.participants, key=lambda p: p.position)

    def participant(self, user_id: str) -> Optional[ConversationParticipant]:
        for p in self.participants:
            if p.user_id == user_id:
                return p
        return None

    def is_active_participant(self, user_id: str) -> bool:
        p = self.participant(user_id)
        return p is not None and p.is_active

    def active_participant_ids(self) -> List[str]:
        return [p.user_id for p in self.ordered_participants if p.is_active]


class Message(DomainModel):
    id: str
    conversation_id: str
    sender_id: str
    content: str
    sent_at: datetime


class ExpressionOfInterest(DomainModel):
    id: str
    from_type: EOIFromType
    from_id: str
    to_type: EOITargetType
    to_id: str
    status: EOIStatus = EOIStatus.PENDING
    interest_level: InterestLevel = InterestLevel.MEDIUM
    message: Optional[str] = None
    created_at: datetime
    expires_at: datetime
    responded_at: Optional[datetime] = None
    target_was_anonymous: bool = Field(False, frozen=True)

    def effective_status(self, now: datetime) -> EOIStatus:
        """Status as readers should see it; pending past expiry reads as expired."""
        if self.status == EOIStatus.PENDING and ensure_utc(now) >= self.expires_at:
            return EOIStatus.EXPIRED
        return self.status

    def is_terminal(self, now: datetime) -> bool:
        return self.effective_status(now) != EOIStatus.PENDING

    @property
    def metadata(self) -> Dict[str, Any]:
        return {"isAnonymous": self.target_was_anonymous}


class TeamApplication(DomainModel):
    id: str
    team_id: str
    opportunity_id: str
    applied_by: str
    cover_letter: Optional[str] = None
    status: ApplicationStatus = ApplicationStatus.SUBMITTED
    rejection_reason: Optional[str] = None
    applied_at: datetime
    reviewed_at: Optional[datetime] = None
    final_decision_at: Optional[datetime] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_APPLICATION_STATUSES


class Opportunity(DomainModel):
    id: str
    company_id: str
    title: str
    status: OpportunityStatus = OpportunityStatus.ACTIVE
    visibility: OpportunityVisibility = OpportunityVisibility.PUBLIC
    metadata: Dict[str, Any] = Field(default_factory=dict)
    created_at: Optional[datetime] = None


class SavedItem(DomainModel):
    user_id: str
    item_type: SavedItemType
    item_id: str
    created_at: Optional[datetime] = None


class Notification(DomainModel):
    """In-app notification written by the dispatcher."""

    id: str
    user_id: str
    type: str
    payload: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime
