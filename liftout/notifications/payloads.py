"""Builders for notification payloads and e-mail template context.

Payloads are stored verbatim on the in-app Notification row and are also the
template context for the matching e-mail, so anything identifying must be
masked before it reaches these functions.
"""

from typing import Any, Dict, Optional

from liftout.domain.models import ExpressionOfInterest, TeamApplication, User
from liftout.utils.timestamps import format_timestamp

from .models import NotificationType

MESSAGE_PREVIEW_LENGTH = 140


def _preview(content: str) -> str:
    content = " ".join(content.split())
    if len(content) <= MESSAGE_PREVIEW_LENGTH:
        return content
    return content[: MESSAGE_PREVIEW_LENGTH - 3].rstrip() + "..."


def new_message_payload(
    conversation_id: str,
    message_id: str,
    sender_name: str,
    content: str,
    subject: Optional[str] = None,
) -> Dict[str, Any]:
    """``sender_name`` is already projected for the recipient."""
    return {
        "conversation_id": conversation_id,
        "message_id": message_id,
        "sender_name": sender_name,
        "subject": subject or "New message",
        "preview": _preview(content),
    }


def eoi_received_payload(eoi: ExpressionOfInterest, sender_name: str, target_name: str) -> Dict[str, Any]:
    return {
        "eoi_id": eoi.id,
        "from_type": eoi.from_type.value,
        "sender_name": sender_name,
        "target_type": eoi.to_type.value,
        "target_name": target_name,
        "interest_level": eoi.interest_level.value,
        "message": eoi.message or "",
        "expires_at": format_timestamp(eoi.expires_at),
    }


def eoi_responded_payload(eoi: ExpressionOfInterest, target_name: str) -> Dict[str, Any]:
    return {
        "eoi_id": eoi.id,
        "status": eoi.status.value,
        "target_name": target_name,
    }


def application_status_payload(
    application: TeamApplication, team_name: str, opportunity_title: str
) -> Dict[str, Any]:
    return {
        "application_id": application.id,
        "team_name": team_name,
        "opportunity_title": opportunity_title,
        "status": application.status.value,
        "rejection_reason": application.rejection_reason or "",
    }


EMAIL_TEMPLATES = {
    NotificationType.NEW_MESSAGE: "new_message",
    NotificationType.EOI_RECEIVED: "eoi_received",
    NotificationType.EOI_RESPONDED: "eoi_responded",
    NotificationType.APPLICATION_STATUS: "application_status",
}


def build_email_context(recipient: User, payload: Dict[str, Any]) -> Dict[str, Any]:
    """Template context: the payload plus the recipient's greeting name."""
    return {**payload, "recipient_name": recipient.first_name or "there"}
