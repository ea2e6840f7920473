"""Templated e-mail delivery with retry and exponential backoff."""

import time
from email.message import EmailMessage
from typing import Callable, Dict, Optional

from liftout.config.environment import EnvironmentConfig
from liftout.config.models import EmailConfig
from liftout.logging import get_logger

from .models import EmailResult, NotificationTemplateError, SMTPDeliveryError
from .smtp_client import SMTPClient, build_sender_address, normalize_recipient
from .templates import TemplateRenderer

logger = get_logger(__name__, component="email")

MAX_BACKOFF_SECONDS = 60.0


class EmailSender:
    """Render a template family and deliver it to one recipient.

    ``send`` never raises: every outcome is reported through EmailResult so
    the notification pool can log it and move on.
    """

    def __init__(
        self,
        env_config: EnvironmentConfig,
        email_config: Optional[EmailConfig] = None,
        renderer: Optional[TemplateRenderer] = None,
        smtp_client: Optional[SMTPClient] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.env_config = env_config
        self.email_config = email_config or EmailConfig()
        self.renderer = renderer or TemplateRenderer()
        self.smtp_client = smtp_client or SMTPClient()
        self.sleep = sleep

    def send(self, to: str, template: str, context: Dict) -> EmailResult:
        if not self.env_config.smtp_configured:
            logger.debug(
                f"SMTP not configured, skipping '{template}' e-mail",
                extra={"event": "email.skip", "reason": "smtp_not_configured"},
            )
            return EmailResult(recipient=to, template=template, attempts=0, status="skipped", error="smtp not configured")

        try:
            recipient = normalize_recipient(to)
            rendered = self.renderer.render(template, context)
        except (ValueError, NotificationTemplateError) as e:
            logger.error(
                f"Cannot build '{template}' e-mail: {e}",
                extra={"event": "email.build.failure", "template": template},
            )
            return EmailResult(recipient=to, template=template, attempts=0, status="failed", error=str(e))

        message = EmailMessage()
        message["Subject"] = rendered["subject"]
        message["From"] = build_sender_address(self.env_config)
        message["To"] = recipient
        message.set_content(rendered["text_body"])
        message.add_alternative(rendered["html_body"], subtype="html")

        max_attempts = self.email_config.max_retries + 1
        last_error = None

        for attempt in range(1, max_attempts + 1):
            if attempt > 1:
                delay = min(
                    self.email_config.retry_initial_delay
                    * (self.email_config.retry_backoff_multiplier ** (attempt - 2)),
                    MAX_BACKOFF_SECONDS,
                )
                logger.warning(
                    f"Retrying '{template}' e-mail (attempt {attempt}/{max_attempts}) after {delay:.1f}s",
                    extra={"event": "email.send.attempt", "attempt": attempt},
                )
                self.sleep(delay)

            try:
                self.smtp_client.send(message, self.env_config, self.email_config.use_tls)
            except SMTPDeliveryError as e:
                last_error = str(e)
                logger.warning(
                    f"SMTP delivery failed (attempt {attempt}/{max_attempts}): {e}",
                    extra={
                        "event": "email.send.failure",
                        "attempt": attempt,
                        "retry_remaining": attempt < max_attempts,
                    },
                )
                continue

            logger.info(
                f"Sent '{template}' e-mail (attempts: {attempt})",
                extra={"event": "email.send.success", "template": template, "attempt": attempt},
            )
            return EmailResult(recipient=recipient, template=template, attempts=attempt, status="sent")

        logger.error(
            f"Giving up on '{template}' e-mail after {max_attempts} attempts",
            extra={"event": "email.send.exhausted", "template": template, "attempts": max_attempts},
        )
        return EmailResult(
            recipient=recipient, template=template, attempts=max_attempts, status="failed", error=last_error
        )
