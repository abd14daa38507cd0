"""Configuration schema models using Pydantic."""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from .duration import DurationParseError, parse_duration, validate_duration_range


class LogLevel(str, Enum):
    """Logging levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class LogFormat(str, Enum):
    """Log output formats."""

    JSON = "json"
    KEY_VALUE = "key-value"


class LexicalConfig(BaseModel):
    """Tuning values for the keyword/skill overlap scorer."""

    token_weight: float = Field(0.2, gt=0.0, le=1.0, description="Score per matched query token")
    skill_weight: float = Field(0.3, gt=0.0, le=1.0, description="Score per exact skill match")
    min_score: float = Field(
        0.1, ge=0.0, lt=1.0, description="Results must score strictly above this"
    )
    top_k: int = Field(10, ge=1, le=100, description="Maximum results returned")
    min_token_length: int = Field(
        3, ge=1, le=10, description="Query words shorter than this are ignored"
    )


class MatchingConfig(BaseModel):
    """Matching settings."""

    lexical: LexicalConfig = Field(default_factory=LexicalConfig)


class RankingConfig(BaseModel):
    """Model-backed ranking settings.

    Ranking by model only happens when ``enabled`` is true and an API key is
    present in the environment; otherwise the lexical scorer is used.
    """

    enabled: bool = Field(True, description="Use the ranking model when a key is configured")
    api_url: str = Field(
        "https://api.anthropic.com/v1/messages", min_length=1, description="Messages endpoint"
    )
    api_version: str = Field("2023-06-01", min_length=1)
    model: str = Field("claude-3-haiku-20240307", min_length=1)
    max_tokens: int = Field(2000, ge=100, le=8000, description="Token budget for one call")
    timeout_seconds: int = Field(30, ge=5, le=300, description="HTTP timeout for one call")
    min_score: float = Field(0.3, ge=0.0, lt=1.0, description="Results must score strictly above this")
    top_k: int = Field(10, ge=1, le=100)
    description_chars: int = Field(
        500, ge=50, le=5000, description="Description characters sent per candidate"
    )
    user_agent: str = Field("gigmatch/0.3", min_length=1)

    @field_validator("api_url", "user_agent")
    @classmethod
    def strip_whitespace(cls, v: str) -> str:
        stripped = v.strip()
        if not stripped:
            raise ValueError("Field cannot be empty or whitespace-only")
        return stripped


class StoreConfig(BaseModel):
    """Store query settings."""

    candidate_limit: int = Field(
        50, ge=1, le=500, description="Listings fetched per interactive search"
    )


class AlertsConfig(BaseModel):
    """Saved-search sweep settings."""

    sweep_interval: str = Field("15m", description="Interval between sweeps in daemon mode")
    expiring_window_days: int = Field(
        7, ge=1, le=60, description="Warn owners this many days before a listing expires"
    )

    # Computed field
    sweep_interval_seconds: Optional[int] = None

    @field_validator("sweep_interval")
    @classmethod
    def validate_sweep_interval(cls, v: str) -> str:
        try:
            validate_duration_range(parse_duration(v), min_seconds=60, label="Sweep interval")
        except DurationParseError as e:
            raise ValueError(str(e)) from e
        return v

    @model_validator(mode="after")
    def compute_interval_seconds(self):
        self.sweep_interval_seconds = parse_duration(self.sweep_interval)
        return self


class DispatchConfig(BaseModel):
    """Notification delivery and retry settings."""

    batch_limit: int = Field(50, ge=1, le=1000, description="Notifications per drain")
    max_attempts: int = Field(
        5, ge=1, le=50, description="Failed deliveries before a notification is given up"
    )
    retry_initial_delay: int = Field(60, ge=0, le=86400, description="First retry delay (seconds)")
    retry_backoff_multiplier: float = Field(2.0, ge=1.0, le=10.0)
    retry_max_delay: int = Field(21600, ge=0, description="Upper bound on retry delay (seconds)")

    @model_validator(mode="after")
    def validate_delays(self):
        if self.retry_max_delay < self.retry_initial_delay:
            raise ValueError("retry_max_delay must be >= retry_initial_delay")
        return self


class EmailConfig(BaseModel):
    """Email rendering and SMTP session settings."""

    use_tls: bool = Field(True, description="Use TLS/STARTTLS for secure connection")
    subject_prefix: str = Field("[opengig]", description="Prepended to every subject line")
    action_url: Optional[str] = Field(None, description="Link rendered in email bodies")


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: LogLevel = Field(LogLevel.INFO, description="Log level")
    format: LogFormat = Field(LogFormat.KEY_VALUE, description="Log output format")

    model_config = {"use_enum_values": True}


class AppConfig(BaseModel):
    """Root configuration object."""

    matching: MatchingConfig = Field(default_factory=MatchingConfig)
    ranking: RankingConfig = Field(default_factory=RankingConfig)
    store: StoreConfig = Field(default_factory=StoreConfig)
    alerts: AlertsConfig = Field(default_factory=AlertsConfig)
    dispatch: DispatchConfig = Field(default_factory=DispatchConfig)
    email: EmailConfig = Field(default_factory=EmailConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
