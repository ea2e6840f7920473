"""Conversation access control, confidentiality workflow and projection."""

from .projection import ConversationView, ParticipantView, project_conversation, project_message, pseudonym
from .service import ConversationService, requires_nda

__all__ = [
    "ConversationService",
    "ConversationView",
    "ParticipantView",
    "project_conversation",
    "project_message",
    "pseudonym",
    "requires_nda",
]
