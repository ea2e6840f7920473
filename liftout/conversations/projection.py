"""Per-viewer rendering of conversations and messages.

On an anonymous conversation each participant other than the viewer is
replaced by a pseudonym derived from their ordinal in the full participant
list (ordered by ``position``, departed participants included). Ordinals
never change once assigned, so the same participant gets the same pseudonym
on every read and in every notification.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional

from liftout.domain.models import Conversation, Message, User
from liftout.utils.timestamps import format_timestamp


@dataclass(frozen=True)
class ParticipantView:
    user_id: str
    first_name: str
    last_name: str
    role: str
    is_self: bool = False


@dataclass
class ConversationView:
    id: str
    subject: Optional[str]
    status: str
    is_anonymous: bool
    participants: List[ParticipantView] = field(default_factory=list)
    team_id: Optional[str] = None
    opportunity_id: Optional[str] = None
    nda_accepted: bool = False
    message_count: int = 0
    last_message_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "subject": self.subject,
            "status": self.status,
            "isAnonymous": self.is_anonymous,
            "teamId": self.team_id,
            "opportunityId": self.opportunity_id,
            "ndaAccepted": self.nda_accepted,
            "messageCount": self.message_count,
            "lastMessageAt": format_timestamp(self.last_message_at),
            "participants": [
                {
                    "userId": p.user_id,
                    "firstName": p.first_name,
                    "lastName": p.last_name,
                    "role": p.role,
                    "isSelf": p.is_self,
                }
                for p in self.participants
            ],
        }


def pseudonym(ordinal: int) -> Dict[str, str]:
    return {
        "user_id": f"anonymous-{ordinal}",
        "first_name": "Anonymous",
        "last_name": f"User {ordinal + 1}",
    }


def _identity(conversation: Conversation, ordinal: int, user_id: str, viewer_id: str, users: Mapping[str, User]) -> Dict[str, str]:
    if conversation.is_anonymous and user_id != viewer_id:
        return pseudonym(ordinal)

    user = users.get(user_id)
    return {
        "user_id": user_id,
        "first_name": user.first_name if user else "",
        "last_name": user.last_name if user else "",
    }


def project_participants(
    conversation: Conversation, viewer_id: str, users: Mapping[str, User]
) -> List[ParticipantView]:
    """Active participants as the viewer may see them."""
    views = []
    for ordinal, participant in enumerate(conversation.ordered_participants):
        if not participant.is_active:
            continue
        identity = _identity(conversation, ordinal, participant.user_id, viewer_id, users)
        views.append(
            ParticipantView(
                role=participant.role.value,
                is_self=participant.user_id == viewer_id,
                **identity,
            )
        )
    return views


def display_name_for(
    conversation: Conversation, subject_id: str, viewer_id: str, users: Mapping[str, User]
) -> str:
    """Name of subject_id as rendered for viewer_id."""
    for ordinal, participant in enumerate(conversation.ordered_participants):
        if participant.user_id == subject_id:
            identity = _identity(conversation, ordinal, subject_id, viewer_id, users)
            return f"{identity['first_name']} {identity['last_name']}".strip() or "Unknown"
    return "Unknown"


def project_conversation(
    conversation: Conversation, viewer_id: str, users: Mapping[str, User]
) -> ConversationView:
    return ConversationView(
        id=conversation.id,
        subject=conversation.subject,
        status=conversation.status.value,
        is_anonymous=conversation.is_anonymous,
        participants=project_participants(conversation, viewer_id, users),
        team_id=conversation.team_id,
        opportunity_id=conversation.opportunity_id,
        nda_accepted=conversation.nda_ledger.has_accepted(viewer_id),
        message_count=conversation.message_count,
        last_message_at=conversation.last_message_at,
    )


def project_message(
    message: Message, conversation: Conversation, viewer_id: str, users: Mapping[str, User]
) -> Dict[str, Any]:
    ordinals = {p.user_id: i for i, p in enumerate(conversation.ordered_participants)}
    ordinal = ordinals.get(message.sender_id)

    if ordinal is None and conversation.is_anonymous and message.sender_id != viewer_id:
        sender = {"user_id": "anonymous", "first_name": "Anonymous", "last_name": ""}
    elif ordinal is None:
        sender = {"user_id": message.sender_id, "first_name": "", "last_name": ""}
    else:
        sender = _identity(conversation, ordinal, message.sender_id, viewer_id, users)

    return {
        "id": message.id,
        "conversationId": message.conversation_id,
        "senderId": sender["user_id"],
        "senderName": f"{sender['first_name']} {sender['last_name']}".strip(),
        "content": message.content,
        "sentAt": format_timestamp(message.sent_at),
        "isOwn": message.sender_id == viewer_id,
    }


__all__ = [
    "ParticipantView",
    "ConversationView",
    "pseudonym",
    "project_participants",
    "project_conversation",
    "project_message",
    "display_name_for",
]
