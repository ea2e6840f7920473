"""Notification types, results and exceptions."""

from dataclasses import dataclass
from typing import Optional


class NotificationError(Exception):
    """Base exception for notification-related errors."""

    pass


class NotificationTemplateError(NotificationError):
    """Raised when a template is missing or references an undefined variable."""

    pass


class SMTPDeliveryError(NotificationError):
    """Raised when a single SMTP delivery attempt fails."""

    pass


class NotificationType:
    NEW_MESSAGE = "new_message"
    EOI_RECEIVED = "eoi_received"
    EOI_RESPONDED = "eoi_responded"
    APPLICATION_STATUS = "application_status"


@dataclass
class EmailResult:
    """Outcome of one e-mail send, including retries.

    Attributes:
        recipient: Address the message was addressed to
        template: Template family that was rendered
        attempts: SMTP attempts made
        status: "sent", "skipped" or "failed"
        error: Last error message when failed or skipped
    """

    recipient: str
    template: str
    attempts: int
    status: str
    error: Optional[str] = None

    def is_success(self) -> bool:
        return self.status == "sent"
