"""Environment variable loading and validation."""

import os
from typing import Optional

from email_validator import EmailNotValidError, validate_email

from .exceptions import ConfigurationError

DEFAULT_DATABASE_URL = "sqlite:///./data/gigmatch.db"

VALID_LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


class EnvironmentConfig:
    """Environment variable configuration holder."""

    def __init__(
        self,
        database_url: Optional[str] = None,
        anthropic_api_key: Optional[str] = None,
        smtp_host: Optional[str] = None,
        smtp_port: Optional[int] = None,
        smtp_user: Optional[str] = None,
        smtp_pass: Optional[str] = None,
        smtp_sender_name: Optional[str] = None,
        smtp_sender_email: Optional[str] = None,
        log_level: Optional[str] = None,
        environment: Optional[str] = None,
    ):
        self.database_url = database_url or DEFAULT_DATABASE_URL
        self.anthropic_api_key = anthropic_api_key
        self.smtp_host = smtp_host
        self.smtp_port = smtp_port
        self.smtp_user = smtp_user
        self.smtp_pass = smtp_pass
        self.smtp_sender_name = smtp_sender_name or "opengig"
        self.smtp_sender_email = smtp_sender_email
        self.log_level = log_level
        self.environment = environment or "local"

    @property
    def smtp_configured(self) -> bool:
        """True when enough SMTP settings are present to send mail."""
        return bool(self.smtp_host and self.smtp_port and self.sender_address)

    @property
    def sender_address(self) -> Optional[str]:
        """Envelope sender: explicit sender email, else the SMTP user."""
        return self.smtp_sender_email or self.smtp_user


def load_environment_config(require_smtp: bool = False) -> EnvironmentConfig:
    """
    Load and validate environment variables.

    Environment variables:
    - DATABASE_URL: SQLAlchemy URL (default: sqlite:///./data/gigmatch.db)
    - ANTHROPIC_API_KEY: Enables model-backed ranking when set
    - SMTP_HOST / SMTP_PORT: Mail server (required only for dispatch)
    - SMTP_USER / SMTP_PASS: SMTP authentication, both or neither
    - SMTP_SENDER_NAME: Display name for the From header
    - SMTP_SENDER_EMAIL: From address (defaults to SMTP_USER)
    - LOG_LEVEL: Override log level
    - ENVIRONMENT: Label stamped on every log record

    Args:
        require_smtp: Fail when SMTP settings are missing

    Returns:
        EnvironmentConfig object with validated values

    Raises:
        ConfigurationError: If variables are missing or invalid
    """
    errors = []

    database_url = os.getenv("DATABASE_URL")
    anthropic_api_key = os.getenv("ANTHROPIC_API_KEY") or None
    smtp_host = os.getenv("SMTP_HOST")
    smtp_port_str = os.getenv("SMTP_PORT")
    smtp_user = os.getenv("SMTP_USER")
    smtp_pass = os.getenv("SMTP_PASS")
    smtp_sender_name = os.getenv("SMTP_SENDER_NAME")
    smtp_sender_email = os.getenv("SMTP_SENDER_EMAIL")
    log_level = os.getenv("LOG_LEVEL")
    environment = os.getenv("ENVIRONMENT")

    if require_smtp:
        if not smtp_host:
            errors.append("Missing required environment variable: SMTP_HOST")
        if not smtp_port_str:
            errors.append("Missing required environment variable: SMTP_PORT")
        if not (smtp_sender_email or smtp_user):
            errors.append(
                "Missing sender address: set SMTP_SENDER_EMAIL or SMTP_USER"
            )

    smtp_port = None
    if smtp_port_str:
        try:
            smtp_port = int(smtp_port_str)
            if smtp_port < 1 or smtp_port > 65535:
                errors.append(
                    f"Invalid SMTP_PORT: {smtp_port}. Must be between 1 and 65535."
                )
        except ValueError:
            errors.append(
                f"Invalid SMTP_PORT: '{smtp_port_str}'. Must be a valid integer."
            )

    if smtp_sender_email:
        try:
            smtp_sender_email = validate_email(
                smtp_sender_email, check_deliverability=False
            ).normalized
        except EmailNotValidError as e:
            errors.append(f"Invalid SMTP_SENDER_EMAIL '{smtp_sender_email}': {e}")

    if log_level and log_level.upper() not in VALID_LOG_LEVELS:
        errors.append(
            f"Invalid LOG_LEVEL: '{log_level}'. Must be one of: {', '.join(VALID_LOG_LEVELS)}"
        )

    if smtp_user and not smtp_pass:
        errors.append(
            "SMTP_USER is set but SMTP_PASS is not. Both must be set for authentication."
        )
    elif smtp_pass and not smtp_user:
        errors.append(
            "SMTP_PASS is set but SMTP_USER is not. Both must be set for authentication."
        )

    if errors:
        raise ConfigurationError(
            "Environment variable validation failed",
            errors=errors,
            suggestions=[
                "Copy .env.example to .env and fill in your credentials",
                "SMTP settings are only needed for the dispatch and daemon commands",
                "Verify SMTP_PORT is a number between 1 and 65535",
            ],
        )

    return EnvironmentConfig(
        database_url=database_url,
        anthropic_api_key=anthropic_api_key,
        smtp_host=smtp_host,
        smtp_port=smtp_port,
        smtp_user=smtp_user,
        smtp_pass=smtp_pass,
        smtp_sender_name=smtp_sender_name,
        smtp_sender_email=smtp_sender_email,
        log_level=log_level,
        environment=environment,
    )
