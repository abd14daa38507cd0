"""Delivery transports used by the dispatcher."""

from email.message import EmailMessage
from typing import Optional, Protocol, runtime_checkable

from gigmatch.config.environment import EnvironmentConfig
from gigmatch.config.models import EmailConfig

from .models import DeliveryFailed
from .smtp_client import SMTPClient, build_sender_address, normalize_address


@runtime_checkable
class DeliveryTransport(Protocol):
    """Hands one rendered message to an outbound channel.

    Returns on success and raises ``DeliveryFailed`` on failure; no delivery
    receipts are reported back.
    """

    def deliver(self, address: str, subject: str, text_body: str, html_body: str) -> None:
        ...


class SMTPTransport:
    """Email delivery over SMTP, one connection per message."""

    def __init__(
        self,
        env_config: EnvironmentConfig,
        email_config: EmailConfig,
        smtp_client: Optional[SMTPClient] = None,
    ):
        self.env_config = env_config
        self.email_config = email_config
        self.smtp_client = smtp_client or SMTPClient()

    def deliver(self, address: str, subject: str, text_body: str, html_body: str) -> None:
        """Build a multipart message and send it.

        Raises:
            DeliveryFailed: If the address is invalid or SMTP fails
        """
        try:
            recipient = normalize_address(address)
        except ValueError as e:
            raise DeliveryFailed(str(e)) from e

        message = EmailMessage()
        message["Subject"] = subject
        message["From"] = build_sender_address(self.env_config)
        message["To"] = recipient
        message.set_content(text_body)
        message.add_alternative(html_body, subtype="html")

        self.smtp_client.send(message, self.env_config, self.email_config.use_tls)
