"""Thin smtplib wrapper used by the e-mail sender."""

import logging
import smtplib
import ssl
from email.message import EmailMessage
from typing import Callable, Optional

from email_validator import EmailNotValidError, validate_email

from liftout.config.environment import EnvironmentConfig

from .models import SMTPDeliveryError

logger = logging.getLogger(__name__)


class SMTPClient:
    """Opens a connection per message, negotiates TLS, authenticates, sends.

    Factories are injectable so tests can substitute mocks for smtplib.
    """

    def __init__(
        self,
        smtp_factory: Optional[Callable] = None,
        smtp_ssl_factory: Optional[Callable] = None,
    ):
        self.smtp_factory = smtp_factory or smtplib.SMTP
        self.smtp_ssl_factory = smtp_ssl_factory or smtplib.SMTP_SSL

    def send(self, message: EmailMessage, env_config: EnvironmentConfig, use_tls: bool = True) -> None:
        """Deliver one message.

        Port 465 uses implicit TLS; any other port uses STARTTLS when
        use_tls is set.

        Raises:
            SMTPDeliveryError: On any SMTP or network failure
        """
        smtp = None
        try:
            if env_config.smtp_port == 465:
                logger.debug(f"Connecting to {env_config.smtp_host}:{env_config.smtp_port} with implicit TLS")
                smtp = self.smtp_ssl_factory(
                    env_config.smtp_host, env_config.smtp_port, context=ssl.create_default_context()
                )
            else:
                logger.debug(f"Connecting to {env_config.smtp_host}:{env_config.smtp_port}")
                smtp = self.smtp_factory(env_config.smtp_host, env_config.smtp_port)
                if use_tls:
                    smtp.starttls(context=ssl.create_default_context())

            if env_config.smtp_user and env_config.smtp_pass:
                smtp.login(env_config.smtp_user, env_config.smtp_pass)

            smtp.send_message(message)
            logger.debug(f"Message sent to {message['To']}")

        except smtplib.SMTPException as e:
            raise SMTPDeliveryError(f"SMTP error during message delivery: {e}") from e
        except OSError as e:
            raise SMTPDeliveryError(f"Network error during SMTP connection: {e}") from e
        finally:
            if smtp is not None:
                try:
                    smtp.quit()
                except (smtplib.SMTPException, OSError) as e:
                    logger.warning(f"Error closing SMTP connection: {e}")


def normalize_recipient(address: str) -> str:
    """Validate and normalise a single recipient address.

    Raises:
        ValueError: If the address is not a valid e-mail address
    """
    try:
        return validate_email(address.strip(), check_deliverability=False).normalized
    except EmailNotValidError as e:
        raise ValueError(f"Invalid recipient address '{address}': {e}") from e


def build_sender_address(env_config: EnvironmentConfig) -> str:
    """Build the From header, e.g. ``Liftout <noreply@liftout.io>``.

    Prefers SMTP_SENDER_EMAIL, then SMTP_USER, then noreply@<smtp host>.
    """
    sender_email = env_config.smtp_sender_email or env_config.smtp_user or f"noreply@{env_config.smtp_host}"
    return f"{env_config.smtp_sender_name} <{sender_email}>"
