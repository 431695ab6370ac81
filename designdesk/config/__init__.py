"""
Configuration Module
====================

Application settings and configuration management using Pydantic.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, field_validator
from functools import lru_cache
from pathlib import Path
from typing import Dict, List, Optional


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Uses Pydantic for validation and type safety.
    """

    # ========== Application ==========
    app_name: str = Field(default="designdesk-core", description="Application name")
    app_version: str = Field(default="1.0.0", description="Application version")
    environment: str = Field(default="development", description="Environment name")
    debug: bool = Field(default=False, description="Enable debug mode")
    log_level: str = Field(default="INFO", description="Root log level")

    # ========== Server ==========
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8000, description="Server port", ge=1, le=65535)

    # ========== Database ==========
    database_url: str = Field(
        default="postgresql+asyncpg://localhost:5432/designdesk",
        description="Database connection URL (async driver)"
    )
    db_pool_size: int = Field(default=5, description="Database connection pool size", ge=1)
    db_max_overflow: int = Field(default=10, description="Max overflow connections", ge=0)

    # ========== SLA Configuration ==========
    sla_config_path: Path = Field(
        default=Path("sla_config.yaml"),
        description="Path to SLA calendar/threshold YAML file"
    )
    sla_default_target_hours: int = Field(
        default=48,
        description="Business hours allotted when a caller does not pass a target",
        ge=1
    )

    # ========== Webhooks ==========
    webhook_secrets: Dict[str, str] = Field(
        default_factory=dict,
        description="Shared HMAC secret per provider, e.g. {\"billing\": \"whsec...\"}"
    )
    webhook_signature_header: str = Field(
        default="X-Signature",
        description="Header carrying the HMAC-SHA256 signature"
    )
    webhook_signature_headers: Dict[str, str] = Field(
        default_factory=dict,
        description="Per-provider signature header override, e.g. {\"billing\": \"Stripe-Signature\"}"
    )
    webhook_timestamp_header: str = Field(
        default="X-Signature-Timestamp",
        description="Optional header carrying the signed unix timestamp"
    )
    webhook_timestamp_tolerance_seconds: int = Field(
        default=300,
        description="Maximum accepted age of a signed timestamp",
        ge=1
    )
    webhook_handler_timeout_seconds: float = Field(
        default=10.0,
        description="Upper bound for a single handler invocation",
        gt=0,
        le=120
    )
    webhook_claim_lease_seconds: int = Field(
        default=120,
        description="How long an in-flight ledger claim blocks duplicate deliveries",
        ge=1
    )
    retry_base_minutes: int = Field(default=5, description="Backoff base in minutes", ge=1)
    retry_max_retries: int = Field(default=5, description="Automatic retry budget", ge=1)
    retry_batch_size: int = Field(
        default=10,
        description="Failures re-driven per retry invocation",
        ge=1,
        le=100
    )

    # ========== Slack Integration ==========
    slack_webhook_url: Optional[str] = Field(
        default=None,
        description="Slack webhook URL for SLA notifications"
    )
    slack_channel: str = Field(
        default="#sla-alerts",
        description="Slack channel for SLA notifications"
    )
    slack_timeout_seconds: float = Field(
        default=5.0,
        description="Timeout for Slack API calls",
        ge=0.1,
        le=30
    )

    # ========== CORS ==========
    cors_origins: List[str] = Field(
        default=["http://localhost:3000"],
        description="Allowed CORS origins"
    )

    # ========== Grafana OTLP Metrics ==========
    grafana_host: Optional[str] = Field(
        default=None,
        description="Grafana OTLP gateway URL (e.g., https://otlp-gateway-prod-us-east-0.grafana.net)"
    )
    grafana_api_key: Optional[str] = Field(
        default=None,
        description="Grafana API key for OTLP authentication"
    )
    grafana_instance_id: Optional[str] = Field(
        default=None,
        description="Grafana instance ID for OTLP authentication"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Ensure environment is one of allowed values."""
        allowed = {"development", "test", "staging", "production"}
        if v not in allowed:
            raise ValueError(f"environment must be one of {allowed}")
        return v


@lru_cache()
def get_settings() -> Settings:
    """Returns cached Settings instance."""
    return Settings()


# ========== Constants ==========

class SLAStatus(str):
    """Persisted SLA lifecycle states."""
    ACTIVE = "active"
    PAUSED = "paused"
    COMPLETED = "completed"


class WarningLevel(str):
    """SLA urgency levels."""
    NONE = "none"
    YELLOW = "yellow"
    RED = "red"


class NotificationType(str):
    """SLA notification kinds."""
    WARNING = "warning"
    VIOLATION = "violation"


class FailureStatus(str):
    """Dead-letter entry states."""
    PENDING = "pending"
    RETRYING = "retrying"
    RESOLVED = "resolved"
    ABANDONED = "abandoned"


class FailureReason(str):
    """Why an event landed in the dead-letter ledger."""
    HANDLER_ERROR = "handler_error"
    TIMEOUT = "timeout"


class ClaimOutcome(str):
    """Result of an idempotency ledger claim."""
    ACQUIRED = "acquired"
    ALREADY_PROCESSED = "already_processed"
    IN_PROGRESS = "in_progress"


# ========== Lists for validation ==========

OPEN_SLA_STATUSES = [SLAStatus.ACTIVE, SLAStatus.PAUSED]
WARNING_LEVELS = [WarningLevel.NONE, WarningLevel.YELLOW, WarningLevel.RED]
RETRYABLE_FAILURE_STATUSES = [FailureStatus.PENDING, FailureStatus.RETRYING]
TERMINAL_FAILURE_STATUSES = [FailureStatus.RESOLVED, FailureStatus.ABANDONED]
