"""Domain models and error kinds shared by every service."""

from .exceptions import (
    DuplicateApplicationError,
    DuplicatePendingError,
    EngineError,
    ForbiddenBlockedError,
    ForbiddenParticipantError,
    ForbiddenRoleError,
    ForbiddenVerificationError,
    InternalError,
    InvalidStateTransitionError,
    NdaRequiredError,
    NotFoundError,
    UnauthorizedError,
    ValidationFailedError,
)
from .models import (
    ActorContext,
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

__all__ = [
    "ActorContext",
    "ApplicationStatus",
    "Company",
    "CompanyRole",
    "CompanyUser",
    "Conversation",
    "ConversationParticipant",
    "ConversationStatus",
    "EOIFromType",
    "EOIStatus",
    "EOITargetType",
    "ExpressionOfInterest",
    "InterestLevel",
    "MemberStatus",
    "Message",
    "NdaLedger",
    "Notification",
    "Opportunity",
    "OpportunityStatus",
    "OpportunityVisibility",
    "ParticipantRole",
    "SavedItem",
    "SavedItemType",
    "Team",
    "TeamApplication",
    "TeamMember",
    "TeamVisibility",
    "User",
    "UserType",
    "VerificationStatus",
    "EngineError",
    "UnauthorizedError",
    "ForbiddenVerificationError",
    "ForbiddenBlockedError",
    "ForbiddenRoleError",
    "ForbiddenParticipantError",
    "NdaRequiredError",
    "DuplicatePendingError",
    "DuplicateApplicationError",
    "NotFoundError",
    "InvalidStateTransitionError",
    "ValidationFailedError",
    "InternalError",
]
