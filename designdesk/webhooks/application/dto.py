"""
Webhook Application DTOs
=========================

Pydantic models for the webhook and retry API surface.
"""

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field

from designdesk.webhooks.application.services import RetryOutcome
from designdesk.webhooks.domain import FailureRecord


FailureStatusStr = Literal["pending", "retrying", "resolved", "abandoned"]


# ========== Request DTOs ==========

class RetryRequest(BaseModel):
    """Retry one failure by ID, or every ready failure."""
    failure_id: Optional[str] = Field(None, description="Failure entry to retry now")
    retry_all: bool = Field(False, description="Retry every failure that is due")


# ========== Response DTOs ==========

class WebhookReceipt(BaseModel):
    """Acknowledgement returned to the provider."""
    received: bool = True
    processed: bool
    message: str
    event_id: Optional[str] = None
    failure_id: Optional[str] = None


class FailureResponse(BaseModel):
    """Dead-letter entry as returned by the retry endpoints."""
    id: str
    provider: str
    external_event_id: str
    event_type: str
    failure_reason: str
    error_message: Optional[str] = None
    retry_count: int
    max_retries: int
    next_retry_at: Optional[datetime] = None
    last_retry_at: Optional[datetime] = None
    status: FailureStatusStr
    resolved_at: Optional[datetime] = None
    resolution_notes: Optional[str] = None
    created_at: Optional[datetime] = None

    @classmethod
    def from_domain(cls, record: FailureRecord) -> "FailureResponse":
        """Create from domain entity."""
        return cls(
            id=record.id,
            provider=record.provider,
            external_event_id=record.external_event_id,
            event_type=record.event_type,
            failure_reason=record.failure_reason,
            error_message=record.error_message,
            retry_count=record.retry_count,
            max_retries=record.max_retries,
            next_retry_at=record.next_retry_at,
            last_retry_at=record.last_retry_at,
            status=record.status,
            resolved_at=record.resolved_at,
            resolution_notes=record.resolution_notes,
            created_at=record.created_at,
        )


class FailureListResponse(BaseModel):
    """Open failures split by retry readiness."""
    total: int
    ready: List[FailureResponse]
    awaiting: List[FailureResponse]
    abandoned: List[FailureResponse]


class RetryOutcomeResponse(BaseModel):
    """Result of re-driving one failure."""
    failure_id: str
    external_event_id: str
    event_type: str
    outcome: Literal["resolved", "rescheduled", "abandoned", "skipped"]
    status: FailureStatusStr
    retry_count: int
    next_retry_at: Optional[datetime] = None
    message: str

    @classmethod
    def from_outcome(cls, outcome: RetryOutcome) -> "RetryOutcomeResponse":
        return cls(
            failure_id=outcome.failure_id,
            external_event_id=outcome.external_event_id,
            event_type=outcome.event_type,
            outcome=outcome.outcome,
            status=outcome.status,
            retry_count=outcome.retry_count,
            next_retry_at=outcome.next_retry_at,
            message=outcome.message,
        )


class RetryRunResponse(BaseModel):
    """Summary of a retry request."""
    attempted: int
    resolved: int
    failed: int
    results: List[RetryOutcomeResponse]


class CleanupResponse(BaseModel):
    """Rows deleted (or that would be deleted) by a cleanup run."""
    dry_run: bool
    event_age_days: int
    failure_age_days: int
    events_deleted: int
    failures_deleted: int
