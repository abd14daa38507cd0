"""SMTP client wrapper for email delivery.

A thin wrapper around smtplib with TLS/SSL, authentication and connection
cleanup. The smtplib classes are injectable for tests.
"""

import logging
import smtplib
import ssl
from email.message import EmailMessage
from typing import Callable, Optional

from email_validator import EmailNotValidError, validate_email

from gigmatch.config.environment import EnvironmentConfig

from .models import SMTPDeliveryError

logger = logging.getLogger(__name__)


class SMTPClient:
    """Sends fully built EmailMessage objects over SMTP."""

    def __init__(
        self,
        smtp_factory: Optional[Callable] = None,
        smtp_ssl_factory: Optional[Callable] = None,
        timeout: int = 30,
    ):
        """Initialize SMTP client with optional factory injection.

        Args:
            smtp_factory: Factory for SMTP instances (for mocking)
            smtp_ssl_factory: Factory for SMTP_SSL instances (for mocking)
            timeout: Socket timeout in seconds
        """
        self.smtp_factory = smtp_factory or smtplib.SMTP
        self.smtp_ssl_factory = smtp_ssl_factory or smtplib.SMTP_SSL
        self.timeout = timeout

    def send(
        self,
        message: EmailMessage,
        env_config: EnvironmentConfig,
        use_tls: bool = True,
    ) -> None:
        """Send an email message via SMTP.

        Port 465 uses implicit TLS; any other port uses STARTTLS when
        ``use_tls`` is set.

        Raises:
            SMTPDeliveryError: If message delivery fails
        """
        smtp = None
        try:
            if env_config.smtp_port == 465:
                logger.debug(
                    f"Connecting to {env_config.smtp_host}:{env_config.smtp_port} with implicit TLS"
                )
                context = ssl.create_default_context()
                smtp = self.smtp_ssl_factory(
                    env_config.smtp_host,
                    env_config.smtp_port,
                    context=context,
                    timeout=self.timeout,
                )
            else:
                logger.debug(f"Connecting to {env_config.smtp_host}:{env_config.smtp_port}")
                smtp = self.smtp_factory(
                    env_config.smtp_host, env_config.smtp_port, timeout=self.timeout
                )

                if use_tls:
                    logger.debug("Upgrading connection with STARTTLS")
                    smtp.starttls(context=ssl.create_default_context())

            if env_config.smtp_user and env_config.smtp_pass:
                logger.debug(f"Authenticating as {env_config.smtp_user}")
                smtp.login(env_config.smtp_user, env_config.smtp_pass)

            smtp.send_message(message)
            logger.debug(f"Message sent successfully to {message['To']}")

        except smtplib.SMTPException as e:
            error_msg = f"SMTP error during message delivery: {e}"
            logger.error(error_msg)
            raise SMTPDeliveryError(error_msg) from e
        except OSError as e:
            error_msg = f"Network error during SMTP connection: {e}"
            logger.error(error_msg)
            raise SMTPDeliveryError(error_msg) from e
        finally:
            if smtp is not None:
                try:
                    smtp.quit()
                except (smtplib.SMTPException, OSError) as e:
                    logger.warning(f"Error closing SMTP connection: {e}")


def normalize_address(address: str) -> str:
    """Validate one recipient address and return its normalized form.

    Raises:
        ValueError: If the address is not a valid email address
    """
    try:
        return validate_email(address.strip(), check_deliverability=False).normalized
    except EmailNotValidError as e:
        raise ValueError(f"Invalid recipient address '{address}': {e}") from e


def build_sender_address(env_config: EnvironmentConfig) -> str:
    """Build the 'From' header, e.g. ``opengig <alerts@example.com>``.

    Falls back to noreply@<smtp host> when no sender address is configured.
    """
    sender_email = env_config.sender_address or f"noreply@{env_config.smtp_host}"
    return f"{env_config.smtp_sender_name} <{sender_email}>"
