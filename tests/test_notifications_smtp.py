"""Unit tests for SMTP client wrapper.

Tests the SMTPClient for:
- Connection handling (SMTP and SMTP_SSL)
- TLS/STARTTLS negotiation
- Authentication (with and without credentials)
- Error wrapping and connection cleanup
- Recipient normalisation and sender address building
"""

import smtplib
from email.message import EmailMessage
from unittest.mock import MagicMock, Mock

import pytest

from liftout.config.environment import EnvironmentConfig
from liftout.notifications.models import SMTPDeliveryError
from liftout.notifications.smtp_client import SMTPClient, build_sender_address, normalize_recipient


@pytest.fixture
def env_config_with_auth():
    """Environment config with SMTP authentication."""
    return EnvironmentConfig(
        smtp_host="smtp.example.com",
        smtp_port=587,
        smtp_user="mailer@example.com",
        smtp_pass="secret123",
    )


@pytest.fixture
def env_config_implicit_tls():
    """Environment config for implicit TLS (port 465)."""
    return EnvironmentConfig(
        smtp_host="smtp.gmail.com",
        smtp_port=465,
        smtp_user="mailer@gmail.com",
        smtp_pass="apppassword",
    )


@pytest.fixture
def sample_message():
    msg = EmailMessage()
    msg["Subject"] = "New expression of interest"
    msg["From"] = "Liftout <noreply@liftout.io>"
    msg["To"] = "founder@example.com"
    msg.set_content("Someone is interested in your team")
    return msg


def test_smtp_client_defaults_to_smtplib():
    client = SMTPClient()

    assert client.smtp_factory is smtplib.SMTP
    assert client.smtp_ssl_factory is smtplib.SMTP_SSL


def test_send_with_starttls(env_config_with_auth, sample_message):
    """Test sending email with STARTTLS (port 587)."""
    mock_smtp = MagicMock()
    mock_factory = Mock(return_value=mock_smtp)

    SMTPClient(smtp_factory=mock_factory).send(sample_message, env_config_with_auth, use_tls=True)

    mock_factory.assert_called_once_with("smtp.example.com", 587)
    mock_smtp.starttls.assert_called_once()
    mock_smtp.login.assert_called_once_with("mailer@example.com", "secret123")
    mock_smtp.send_message.assert_called_once_with(sample_message)
    mock_smtp.quit.assert_called_once()


def test_send_with_implicit_tls(env_config_implicit_tls, sample_message):
    """Test sending email with implicit TLS (port 465)."""
    mock_smtp_ssl = MagicMock()
    mock_ssl_factory = Mock(return_value=mock_smtp_ssl)

    SMTPClient(smtp_ssl_factory=mock_ssl_factory).send(sample_message, env_config_implicit_tls)

    call_args = mock_ssl_factory.call_args
    assert call_args[0] == ("smtp.gmail.com", 465)
    assert "context" in call_args[1]
    mock_smtp_ssl.starttls.assert_not_called()
    mock_smtp_ssl.send_message.assert_called_once_with(sample_message)
    mock_smtp_ssl.quit.assert_called_once()


def test_send_without_auth_or_tls(sample_message):
    """Test sending through a local relay with neither credentials nor TLS."""
    mock_smtp = MagicMock()
    mock_factory = Mock(return_value=mock_smtp)
    env_config = EnvironmentConfig(smtp_host="localhost", smtp_port=25)

    SMTPClient(smtp_factory=mock_factory).send(sample_message, env_config, use_tls=False)

    mock_factory.assert_called_once_with("localhost", 25)
    mock_smtp.starttls.assert_not_called()
    mock_smtp.login.assert_not_called()
    mock_smtp.send_message.assert_called_once_with(sample_message)


def test_smtp_exception_is_wrapped(env_config_with_auth, sample_message):
    """Test that SMTP exceptions are wrapped and the connection is still closed."""
    mock_smtp = MagicMock()
    mock_smtp.send_message.side_effect = smtplib.SMTPException("Connection failed")

    client = SMTPClient(smtp_factory=Mock(return_value=mock_smtp))

    with pytest.raises(SMTPDeliveryError) as exc_info:
        client.send(sample_message, env_config_with_auth)

    assert "SMTP error" in str(exc_info.value)
    mock_smtp.quit.assert_called_once()


def test_network_error_is_wrapped(env_config_with_auth, sample_message):
    mock_smtp = MagicMock()
    mock_smtp.starttls.side_effect = OSError("Network unreachable")

    client = SMTPClient(smtp_factory=Mock(return_value=mock_smtp))

    with pytest.raises(SMTPDeliveryError) as exc_info:
        client.send(sample_message, env_config_with_auth)

    assert "Network error" in str(exc_info.value)


def test_connection_refused_before_session(env_config_with_auth, sample_message):
    """Test that a failed connect has nothing to close."""
    client = SMTPClient(smtp_factory=Mock(side_effect=ConnectionRefusedError("refused")))

    with pytest.raises(SMTPDeliveryError):
        client.send(sample_message, env_config_with_auth)


def test_quit_failure_is_not_raised(env_config_with_auth, sample_message):
    mock_smtp = MagicMock()
    mock_smtp.quit.side_effect = smtplib.SMTPServerDisconnected("gone")

    SMTPClient(smtp_factory=Mock(return_value=mock_smtp)).send(sample_message, env_config_with_auth)

    mock_smtp.send_message.assert_called_once()


class TestNormalizeRecipient:
    def test_strips_and_lowercases_domain(self):
        assert normalize_recipient("  founder@Example.COM ") == "founder@example.com"

    def test_rejects_invalid_address(self):
        with pytest.raises(ValueError, match="Invalid recipient"):
            normalize_recipient("not-an-address")


class TestBuildSenderAddress:
    def test_prefers_configured_sender(self):
        env_config = EnvironmentConfig(
            smtp_host="smtp.example.com",
            smtp_user="mailer@example.com",
            smtp_sender_email="hello@liftout.io",
        )

        assert build_sender_address(env_config) == "Liftout <hello@liftout.io>"

    def test_falls_back_to_smtp_user(self, env_config_with_auth):
        assert build_sender_address(env_config_with_auth) == "Liftout <mailer@example.com>"

    def test_falls_back_to_noreply(self):
        env_config = EnvironmentConfig(smtp_host="smtp.example.com", smtp_sender_name="Liftout Alerts")

        assert build_sender_address(env_config) == "Liftout Alerts <noreply@smtp.example.com>"
