"""Environment variable loading and validation."""

import os
from typing import Optional

from email_validator import EmailNotValidError, validate_email

from .exceptions import ConfigurationError

DEFAULT_DATABASE_URL = "sqlite:///./data/liftout.db"
VALID_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class EnvironmentConfig:
    """Secrets and deployment settings read from the process environment."""

    def __init__(
        self,
        database_url: Optional[str] = None,
        smtp_host: Optional[str] = None,
        smtp_port: int = 587,
        smtp_user: Optional[str] = None,
        smtp_pass: Optional[str] = None,
        smtp_sender_name: Optional[str] = None,
        smtp_sender_email: Optional[str] = None,
        log_level: Optional[str] = None,
        environment: str = "local",
    ):
        self.database_url = database_url or DEFAULT_DATABASE_URL
        self.smtp_host = smtp_host
        self.smtp_port = smtp_port
        self.smtp_user = smtp_user
        self.smtp_pass = smtp_pass
        self.smtp_sender_name = smtp_sender_name or "Liftout"
        self.smtp_sender_email = smtp_sender_email
        self.log_level = log_level
        self.environment = environment

    @property
    def smtp_configured(self) -> bool:
        """True when an SMTP host is available for outbound e-mail."""
        return bool(self.smtp_host)


def load_environment_config() -> EnvironmentConfig:
    """
    Load and validate environment variables.

    All variables are optional. Without SMTP_HOST the engine still records
    in-app notifications but skips e-mail delivery.

    Variables:
    - DATABASE_URL: SQLAlchemy URL (default: sqlite:///./data/liftout.db)
    - SMTP_HOST / SMTP_PORT: Outbound mail server (port defaults to 587)
    - SMTP_USER / SMTP_PASS: Credentials, both or neither
    - SMTP_SENDER_NAME / SMTP_SENDER_EMAIL: From header
    - LOG_LEVEL: Overrides the YAML logging level
    - ENVIRONMENT: Label stamped on log records (default: local)

    Raises:
        ConfigurationError: If any value is malformed
    """
    errors = []

    smtp_host = os.getenv("SMTP_HOST")
    smtp_port_str = os.getenv("SMTP_PORT", "587")
    smtp_user = os.getenv("SMTP_USER")
    smtp_pass = os.getenv("SMTP_PASS")
    sender_email = os.getenv("SMTP_SENDER_EMAIL")
    log_level = os.getenv("LOG_LEVEL")

    smtp_port = 587
    try:
        smtp_port = int(smtp_port_str)
        if not 1 <= smtp_port <= 65535:
            errors.append(f"Invalid SMTP_PORT: {smtp_port}. Must be between 1 and 65535.")
    except ValueError:
        errors.append(f"Invalid SMTP_PORT: '{smtp_port_str}'. Must be a valid integer.")

    if bool(smtp_user) != bool(smtp_pass):
        errors.append("SMTP_USER and SMTP_PASS must be set together for authentication.")

    if sender_email:
        try:
            validate_email(sender_email, check_deliverability=False)
        except EmailNotValidError as e:
            errors.append(f"Invalid SMTP_SENDER_EMAIL '{sender_email}': {e}")

    if log_level and log_level.upper() not in VALID_LOG_LEVELS:
        errors.append(
            f"Invalid LOG_LEVEL: '{log_level}'. Must be one of: {', '.join(VALID_LOG_LEVELS)}"
        )

    if errors:
        raise ConfigurationError(
            "Environment variable validation failed",
            errors=errors,
            suggestions=[
                "Copy .env.example to .env and adjust the values",
                "Leave SMTP_HOST unset to disable e-mail delivery",
            ],
        )

    return EnvironmentConfig(
        database_url=os.getenv("DATABASE_URL"),
        smtp_host=smtp_host,
        smtp_port=smtp_port,
        smtp_user=smtp_user,
        smtp_pass=smtp_pass,
        smtp_sender_name=os.getenv("SMTP_SENDER_NAME"),
        smtp_sender_email=sender_email,
        log_level=log_level.upper() if log_level else None,
        environment=os.getenv("ENVIRONMENT", "local"),
    )
