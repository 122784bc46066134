"""Application settings and configuration.

This module defines all configuration options for the content-guard engine.
Settings are loaded from environment variables with sensible defaults.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Settings can be overridden via environment variables or .env files.
    """

    # Application metadata
    app_name: str = Field(default="Content Guard", alias="APP_NAME")
    app_version: str = Field(default="0.1.0", alias="APP_VERSION")
    debug: bool = Field(default=False, alias="DEBUG")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # Database configuration for the reference content/user store
    database_url: str = Field(default="sqlite:///./content_guard.db", alias="DATABASE_URL")
    sql_debug: bool = Field(default=False, alias="SQL_DEBUG")

    # Redis backs the idempotency guard when configured
    redis_url: str | None = Field(default=None, alias="REDIS_URL")
    idempotency_ttl_seconds: int = Field(default=86_400, alias="IDEMPOTENCY_TTL_SECONDS")
    redis_socket_timeout_seconds: float = Field(default=1.0, alias="REDIS_SOCKET_TIMEOUT_SECONDS")

    # Bounds on the review queue's report and flagged-content bookkeeping
    queue_max_tracked_content: int = Field(default=10_000, alias="QUEUE_MAX_TRACKED_CONTENT")
    flagged_retention_seconds: int = Field(default=604_800, alias="FLAGGED_RETENTION_SECONDS")

    # External moderation model
    moderation_model_url: str = Field(
        default="http://localhost:8081",
        alias="MODERATION_MODEL_URL",
    )
    moderation_model_api_key: str | None = Field(default=None, alias="MODERATION_MODEL_API_KEY")
    moderation_model_timeout_seconds: float = Field(
        default=10.0,
        alias="MODERATION_MODEL_TIMEOUT_SECONDS",
    )
    moderation_max_concurrency: int = Field(default=5, alias="MODERATION_MAX_CONCURRENCY")

    # Retry policy for network-bound operations
    retry_max_attempts: int = Field(default=3, alias="RETRY_MAX_ATTEMPTS")
    retry_initial_delay_seconds: float = Field(default=0.6, alias="RETRY_INITIAL_DELAY_SECONDS")
    retry_multiplier: float = Field(default=2.0, alias="RETRY_MULTIPLIER")
    retry_jitter_fraction: float = Field(default=0.25, alias="RETRY_JITTER_FRACTION")

    # Initial flagging rules snapshot
    rules_auto_reject_threshold: float = Field(default=0.9, alias="RULES_AUTO_REJECT_THRESHOLD")
    rules_auto_flag_threshold: float = Field(default=0.7, alias="RULES_AUTO_FLAG_THRESHOLD")
    rules_pii_auto_reject: bool = Field(default=True, alias="RULES_PII_AUTO_REJECT")
    rules_harassment_auto_reject: bool = Field(
        default=True,
        alias="RULES_HARASSMENT_AUTO_REJECT",
    )
    rules_hate_speech_auto_reject: bool = Field(
        default=True,
        alias="RULES_HATE_SPEECH_AUTO_REJECT",
    )
    rules_spam_auto_flag: bool = Field(default=True, alias="RULES_SPAM_AUTO_FLAG")
    rules_multiple_reports_threshold: int = Field(
        default=3,
        alias="RULES_MULTIPLE_REPORTS_THRESHOLD",
    )
    rules_new_user_stricter_rules: bool = Field(
        default=True,
        alias="RULES_NEW_USER_STRICTER_RULES",
    )

    # Accounts younger than this are treated as new users by the SQL store
    new_user_max_age_days: int = Field(default=7, alias="NEW_USER_MAX_AGE_DAYS")
    default_user_reputation: int = Field(default=50, alias="DEFAULT_USER_REPUTATION")

    model_config = SettingsConfigDict(
        env_file=".env",
        validate_assignment=True,
        extra="ignore",
    )


settings = Settings()
