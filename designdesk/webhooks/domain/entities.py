"""
Webhook Domain Entities
========================

Pure Python domain entities for webhook ingestion and the dead-letter ledger.

Following Domain-Driven Design principles, these entities contain
business logic and are free of infrastructure concerns.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, Optional
from uuid import uuid4

from designdesk.config import (
    FailureStatus,
    FailureReason,
    RETRYABLE_FAILURE_STATUSES,
    TERMINAL_FAILURE_STATUSES,
)
from designdesk.core.exceptions import ValidationException


@dataclass(frozen=True)
class InboundEvent:
    """
    Authenticated, parsed webhook delivery.

    ``payload`` is the provider body stored verbatim for replay.
    """

    provider: str
    external_event_id: str
    event_type: str
    payload: Dict[str, Any]
    received_at: datetime

    @classmethod
    def from_body(cls, provider: str, body: Any, received_at: datetime) -> "InboundEvent":
        """
        Build an event from a decoded JSON body.

        Raises:
            ValidationException: if the body lacks an event id or type
        """
        if not isinstance(body, dict):
            raise ValidationException("Webhook body must be a JSON object")

        event_id = body.get("id")
        event_type = body.get("type")
        if not isinstance(event_id, str) or not event_id:
            raise ValidationException("Webhook body is missing an event 'id'", {"provider": provider})
        if not isinstance(event_type, str) or not event_type:
            raise ValidationException("Webhook body is missing an event 'type'", {"provider": provider})

        return cls(
            provider=provider,
            external_event_id=event_id,
            event_type=event_type,
            payload=body,
            received_at=received_at,
        )


@dataclass(frozen=True)
class HandlerResult:
    """Outcome of one handler invocation."""

    success: bool
    message: str = ""
    error: Optional[str] = None
    reason: Optional[str] = None
    handled: bool = True

    @classmethod
    def ok(cls, message: str = "Processed") -> "HandlerResult":
        return cls(success=True, message=message)

    @classmethod
    def ignored(cls, event_type: str) -> "HandlerResult":
        """Unknown event types are accepted as a successful no-op."""
        return cls(success=True, message=f"No handler for '{event_type}'", handled=False)

    @classmethod
    def failed(
        cls,
        message: str,
        error: Optional[str] = None,
        reason: str = FailureReason.HANDLER_ERROR
    ) -> "HandlerResult":
        return cls(success=False, message=message, error=error or message, reason=reason)


@dataclass(frozen=True)
class RetryPolicy:
    """
    Exponential backoff: ``base_minutes * 2 ** retry_count``.

    With the defaults a failure is retried after 5, 10, 20, 40 and 80
    minutes; the fifth failed retry exhausts the budget.
    """

    base_minutes: int = 5
    max_retries: int = 5

    def delay(self, retry_count: int) -> timedelta:
        return timedelta(minutes=self.base_minutes * (2 ** retry_count))

    def next_retry_at(self, retry_count: int, now: datetime) -> datetime:
        return now + self.delay(retry_count)


@dataclass
class FailureRecord:
    """
    Dead-letter entry for an event whose processing failed.

    States:
    - PENDING: failed, not yet re-driven by the retry scheduler
    - RETRYING: re-driven at least once and failed again
    - RESOLVED: terminal, retried successfully or resolved by an operator
    - ABANDONED: terminal for automatic retries, budget exhausted
    """

    id: str
    provider: str
    external_event_id: str
    event_type: str
    payload: Dict[str, Any]
    failure_reason: str
    error_message: Optional[str] = None
    retry_count: int = 0
    max_retries: int = 5
    next_retry_at: Optional[datetime] = None
    last_retry_at: Optional[datetime] = None
    status: str = FailureStatus.PENDING
    resolved_at: Optional[datetime] = None
    resolution_notes: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def first_failure(
        cls,
        event: InboundEvent,
        result: HandlerResult,
        now: datetime,
        policy: RetryPolicy
    ) -> "FailureRecord":
        """Open a dead-letter entry for an event's first failure."""
        return cls(
            id=str(uuid4()),
            provider=event.provider,
            external_event_id=event.external_event_id,
            event_type=event.event_type,
            payload=event.payload,
            failure_reason=result.reason or FailureReason.HANDLER_ERROR,
            error_message=result.error or result.message,
            retry_count=0,
            max_retries=policy.max_retries,
            next_retry_at=policy.next_retry_at(0, now),
            status=FailureStatus.PENDING,
            created_at=now,
            updated_at=now,
        )

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_FAILURE_STATUSES

    @property
    def is_abandoned(self) -> bool:
        return self.status == FailureStatus.ABANDONED

    def is_ready(self, now: datetime) -> bool:
        """Eligible for automatic retry at ``now``."""
        if self.status not in RETRYABLE_FAILURE_STATUSES:
            return False
        return self.next_retry_at is None or self.next_retry_at <= now

    def bucket(self, now: datetime) -> str:
        """Listing bucket: ready, awaiting, abandoned or resolved."""
        if self.status == FailureStatus.RESOLVED:
            return "resolved"
        if self.is_abandoned:
            return "abandoned"
        return "ready" if self.is_ready(now) else "awaiting"

    def record_failure(
        self,
        result: HandlerResult,
        now: datetime,
        policy: RetryPolicy,
        retried: bool = False
    ) -> bool:
        """
        Apply another failure of the same event.

        Increments ``retry_count`` and schedules the next attempt, or
        abandons the entry once the budget is spent. Terminal entries only
        keep the latest error.

        Args:
            result: Failed handler result
            now: Failure instant
            policy: Backoff policy
            retried: True when the failure came from the retry scheduler

        Returns:
            True if the entry was rescheduled or abandoned by this call
        """
        self.error_message = result.error or result.message
        self.updated_at = now

        if self.is_terminal:
            return False

        self.failure_reason = result.reason or self.failure_reason
        self.retry_count += 1
        if retried:
            self.last_retry_at = now

        if self.retry_count >= self.max_retries:
            self.status = FailureStatus.ABANDONED
            self.next_retry_at = None
        else:
            if retried:
                self.status = FailureStatus.RETRYING
            self.next_retry_at = policy.next_retry_at(self.retry_count, now)
        return True

    def resolve(self, now: datetime, notes: str, retried: bool = False) -> None:
        """Close the entry; terminal."""
        self.status = FailureStatus.RESOLVED
        self.resolved_at = now
        self.resolution_notes = notes
        self.next_retry_at = None
        self.updated_at = now
        if retried:
            self.last_retry_at = now

    def to_dict(self) -> dict:
        """Convert to dictionary for API responses."""
        return {
            "id": self.id,
            "provider": self.provider,
            "external_event_id": self.external_event_id,
            "event_type": self.event_type,
            "failure_reason": self.failure_reason,
            "error_message": self.error_message,
            "retry_count": self.retry_count,
            "max_retries": self.max_retries,
            "next_retry_at": self.next_retry_at.isoformat() if self.next_retry_at else None,
            "last_retry_at": self.last_retry_at.isoformat() if self.last_retry_at else None,
            "status": self.status,
            "resolved_at": self.resolved_at.isoformat() if self.resolved_at else None,
            "resolution_notes": self.resolution_notes,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


@dataclass
class Subscription:
    """Billing subscription mirrored from the billing provider."""

    external_subscription_id: str
    customer_id: Optional[str]
    status: str
    price_id: Optional[str] = None
    plan_amount: int = 0
    plan_interval: str = "month"
    current_period_start: Optional[datetime] = None
    current_period_end: Optional[datetime] = None
    canceled_at: Optional[datetime] = None
    last_event_type: Optional[str] = None
    updated_at: Optional[datetime] = None

    def to_dict(self) -> dict:
        return {
            "external_subscription_id": self.external_subscription_id,
            "customer_id": self.customer_id,
            "status": self.status,
            "price_id": self.price_id,
            "plan_amount": self.plan_amount,
            "plan_interval": self.plan_interval,
            "current_period_start": self.current_period_start.isoformat() if self.current_period_start else None,
            "current_period_end": self.current_period_end.isoformat() if self.current_period_end else None,
            "canceled_at": self.canceled_at.isoformat() if self.canceled_at else None,
            "last_event_type": self.last_event_type,
        }
