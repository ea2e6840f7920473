"""In-app notifications and templated e-mail delivery.

- NotificationDispatcher: fire-and-forget fan-out on a thread pool
- EmailSender: Jinja2 rendering plus SMTP delivery with retry/backoff
- TemplateRenderer / SMTPClient: the pieces EmailSender is built from
- payload builders for each notification type
"""

from .dispatcher import NotificationDispatcher
from .email import EmailSender
from .models import (
    EmailResult,
    NotificationError,
    NotificationTemplateError,
    NotificationType,
    SMTPDeliveryError,
)
from .payloads import (
    application_status_payload,
    build_email_context,
    eoi_received_payload,
    eoi_responded_payload,
    new_message_payload,
)
from .smtp_client import SMTPClient, build_sender_address, normalize_recipient
from .templates import TemplateRenderer

__all__ = [
    "NotificationDispatcher",
    "EmailSender",
    "EmailResult",
    "NotificationType",
    "NotificationError",
    "NotificationTemplateError",
    "SMTPDeliveryError",
    "TemplateRenderer",
    "SMTPClient",
    "build_sender_address",
    "normalize_recipient",
    "new_message_payload",
    "eoi_received_payload",
    "eoi_responded_payload",
    "application_status_payload",
    "build_email_context",
]
