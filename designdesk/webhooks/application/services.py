"""
Webhook Application Services
=============================

Application services orchestrate webhook ingestion and dead-letter retries.

Following SOLID principles:
- Single Responsibility: ingestion and retry driving are separate services
- Dependency Inversion: both depend on ledger interfaces, the processor and
  an injected clock, never on concrete storage
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from designdesk.config import ClaimOutcome, FailureStatus
from designdesk.core.clock import Clock, utc_now
from designdesk.core.exceptions import (
    InvalidStateTransitionException,
    ResourceNotFoundException,
)
from designdesk.shared.infrastructure.logging import get_logger
from designdesk.webhooks.application.processor import EventProcessor
from designdesk.webhooks.domain import (
    FailureRecord,
    HandlerResult,
    InboundEvent,
    RetryPolicy,
    Subscription,
)

logger = get_logger(__name__)


# ========== Repository Interfaces (Dependency Inversion) ==========

class IEventLedger(ABC):
    """Idempotency ledger keyed by the provider's event id."""

    @abstractmethod
    async def has_processed(self, external_event_id: str) -> bool:
        """True once the event's handler has succeeded."""

    @abstractmethod
    async def claim(self, event: InboundEvent, now: datetime, lease_seconds: int) -> str:
        """
        Atomically take ownership of an event.

        Returns:
            ClaimOutcome: acquired, already_processed or in_progress
        """

    @abstractmethod
    async def mark_processed(self, external_event_id: str, now: datetime) -> bool:
        """Flip ``processed``; True only for the call that performed it."""

    @abstractmethod
    async def release(self, external_event_id: str, error: Optional[str]) -> None:
        """Drop the lease after a failure so a redelivery can reclaim."""

    @abstractmethod
    async def cleanup(self, older_than: datetime, dry_run: bool = False) -> int:
        """Delete processed rows received before ``older_than``."""


class IFailureLedger(ABC):
    """Dead-letter storage for failed events."""

    @abstractmethod
    async def get(self, failure_id: str) -> Optional[FailureRecord]:
        """Get failure by internal ID."""

    @abstractmethod
    async def get_by_event_id(self, external_event_id: str) -> Optional[FailureRecord]:
        """Get the failure entry for a provider event."""

    @abstractmethod
    async def add(self, record: FailureRecord) -> bool:
        """Insert a new entry; False if one already exists for the event."""

    @abstractmethod
    async def save(self, record: FailureRecord) -> FailureRecord:
        """Persist changes to an existing entry."""

    @abstractmethod
    async def claim(
        self,
        record: FailureRecord,
        now: datetime,
        lease_seconds: int
    ) -> Optional[FailureRecord]:
        """
        Compare-and-swap the entry into ``retrying``.

        Returns:
            The claimed entry, or None if another worker changed it first
        """

    @abstractmethod
    async def list_ready(self, now: datetime, limit: int) -> List[FailureRecord]:
        """Pending/retrying entries due at ``now``, oldest first."""

    @abstractmethod
    async def list_all(self, statuses: Optional[List[str]] = None) -> List[FailureRecord]:
        """List entries, optionally filtered by status."""

    @abstractmethod
    async def cleanup(self, older_than: datetime, dry_run: bool = False) -> int:
        """Delete resolved/abandoned entries last touched before ``older_than``."""


class ISubscriptionRepository(ABC):
    """Billing subscriptions written by the billing handlers."""

    @abstractmethod
    async def get(self, external_subscription_id: str) -> Optional[Subscription]:
        """Get subscription by provider ID."""

    @abstractmethod
    async def upsert(self, subscription: Subscription) -> Subscription:
        """Insert or overwrite by ``external_subscription_id``."""

    @abstractmethod
    async def update_status(
        self,
        external_subscription_id: str,
        status: str,
        event_type: str,
        now: datetime
    ) -> bool:
        """Set status on an existing subscription; False if unknown."""


# ========== Results ==========

@dataclass
class IngestionResult:
    """Outcome of one inbound delivery."""

    success: bool
    processed: bool
    message: str
    outcome: str
    failure: Optional[FailureRecord] = None


@dataclass
class RetryOutcome:
    """Outcome of re-driving one failure entry."""

    failure_id: str
    external_event_id: str
    event_type: str
    outcome: str
    status: str
    retry_count: int
    next_retry_at: Optional[datetime]
    message: str

    @classmethod
    def from_record(cls, record: FailureRecord, outcome: str, message: str) -> "RetryOutcome":
        return cls(
            failure_id=record.id,
            external_event_id=record.external_event_id,
            event_type=record.event_type,
            outcome=outcome,
            status=record.status,
            retry_count=record.retry_count,
            next_retry_at=record.next_retry_at,
            message=message,
        )


# ========== Application Services ==========

class WebhookIngestionService:
    """
    Runs one verified delivery through ledger, processor and failure ledger.

    Ownership is claimed before the handler runs; the ledger row is marked
    processed only after the handler succeeded, and every failure leaves a
    FailureRecord behind.
    """

    def __init__(
        self,
        event_ledger: IEventLedger,
        failure_ledger: IFailureLedger,
        processor: EventProcessor,
        policy: Optional[RetryPolicy] = None,
        clock: Clock = utc_now,
        lease_seconds: int = 120
    ):
        self._events = event_ledger
        self._failures = failure_ledger
        self._processor = processor
        self._policy = policy or RetryPolicy()
        self._clock = clock
        self._lease_seconds = lease_seconds

    async def ingest(self, event: InboundEvent) -> IngestionResult:
        """
        Process a delivery at most once per successful outcome.

        Returns:
            IngestionResult: ``processed`` is False for skipped duplicates
        """
        log_extra = {
            "provider": event.provider,
            "event_id": event.external_event_id,
            "event_type": event.event_type,
        }
        outcome = await self._events.claim(event, self._clock(), self._lease_seconds)

        if outcome == ClaimOutcome.ALREADY_PROCESSED:
            logger.info("Duplicate webhook skipped", extra=log_extra)
            return IngestionResult(True, False, "Event already processed", outcome)
        if outcome == ClaimOutcome.IN_PROGRESS:
            logger.info("Webhook already in progress, skipping", extra=log_extra)
            return IngestionResult(True, False, "Event is being processed", outcome)

        result = await self._processor.process(event.event_type, event.payload)
        now = self._clock()

        if result.success:
            await self._events.mark_processed(event.external_event_id, now)
            await self._resolve_after_redelivery(event, now)
            logger.info("Webhook processed", extra={**log_extra, "handled": result.handled})
            return IngestionResult(True, True, result.message, outcome)

        failure = await self._record_failure(event, result, now)
        await self._events.release(event.external_event_id, result.error)
        return IngestionResult(False, False, result.message, outcome, failure)

    async def _record_failure(
        self,
        event: InboundEvent,
        result: HandlerResult,
        now: datetime
    ) -> FailureRecord:
        record = FailureRecord.first_failure(event, result, now, self._policy)
        if not await self._failures.add(record):
            record = await self._failures.get_by_event_id(event.external_event_id)
            record.record_failure(result, now, self._policy)
            record = await self._failures.save(record)

        logger.error(
            "Webhook processing failed",
            extra={
                "provider": event.provider,
                "event_id": event.external_event_id,
                "event_type": event.event_type,
                "failure_id": record.id,
                "failure_reason": record.failure_reason,
                "error": result.error,
                "retry_count": record.retry_count,
                "status": record.status,
            }
        )
        return record

    async def _resolve_after_redelivery(self, event: InboundEvent, now: datetime) -> None:
        # A provider redelivery can succeed while a dead-letter entry is still open
        record = await self._failures.get_by_event_id(event.external_event_id)
        if record is not None and not record.is_terminal:
            record.resolve(now, "Succeeded on provider redelivery")
            await self._failures.save(record)


class RetryScheduler:
    """
    Re-drives dead-letter entries through the processor.

    There is no internal timer; an external trigger (cron or an operator
    call) invokes ``retry_ready``. Batches run sequentially.
    """

    def __init__(
        self,
        failure_ledger: IFailureLedger,
        event_ledger: IEventLedger,
        processor: EventProcessor,
        policy: Optional[RetryPolicy] = None,
        clock: Clock = utc_now,
        lease_seconds: int = 120,
        batch_size: int = 10
    ):
        self._failures = failure_ledger
        self._events = event_ledger
        self._processor = processor
        self._policy = policy or RetryPolicy()
        self._clock = clock
        self._lease_seconds = lease_seconds
        self._batch_size = batch_size

    async def retry_ready(self, limit: Optional[int] = None) -> List[RetryOutcome]:
        """Retry every due entry, up to ``limit`` (the batch size by default)."""
        batch = min(limit or self._batch_size, self._batch_size)
        ready = await self._failures.list_ready(self._clock(), batch)

        outcomes = []
        for record in ready:
            outcomes.append(await self._retry(record))

        logger.info(
            "Retry batch finished",
            extra={
                "attempted": len(outcomes),
                "resolved": sum(1 for o in outcomes if o.outcome == "resolved"),
                "abandoned": sum(1 for o in outcomes if o.outcome == "abandoned"),
            }
        )
        return outcomes

    async def retry_one(self, failure_id: str) -> RetryOutcome:
        """
        Retry one entry now, regardless of its schedule.

        Abandoned entries may be re-driven manually; resolved ones may not.

        Raises:
            ResourceNotFoundException: unknown failure ID
            InvalidStateTransitionException: entry already resolved
        """
        record = await self._require(failure_id)
        if record.status == FailureStatus.RESOLVED:
            raise InvalidStateTransitionException(
                "retry", record.status,
                [FailureStatus.PENDING, FailureStatus.RETRYING, FailureStatus.ABANDONED],
                {"failure_id": failure_id}
            )
        return await self._retry(record)

    async def resolve(self, failure_id: str, notes: Optional[str] = None) -> FailureRecord:
        """Operator override: mark an entry resolved without re-running it."""
        record = await self._require(failure_id)
        if record.status == FailureStatus.RESOLVED:
            return record

        record.resolve(self._clock(), notes or "Manually resolved")
        record = await self._failures.save(record)
        logger.info(
            "Webhook failure manually resolved",
            extra={"failure_id": failure_id, "event_id": record.external_event_id}
        )
        return record

    async def list_failures(self) -> Dict[str, List[FailureRecord]]:
        """Open entries split into ready, awaiting and abandoned buckets."""
        now = self._clock()
        buckets: Dict[str, List[FailureRecord]] = {"ready": [], "awaiting": [], "abandoned": []}
        records = await self._failures.list_all(
            [FailureStatus.PENDING, FailureStatus.RETRYING, FailureStatus.ABANDONED]
        )
        for record in records:
            buckets[record.bucket(now)].append(record)
        return buckets

    async def cleanup(
        self,
        event_age_days: int = 30,
        failure_age_days: int = 90,
        dry_run: bool = False
    ) -> Dict[str, int]:
        """Delete old processed ledger rows and closed failure entries."""
        now = self._clock()
        events = await self._events.cleanup(now - timedelta(days=event_age_days), dry_run)
        failures = await self._failures.cleanup(now - timedelta(days=failure_age_days), dry_run)

        logger.info(
            "Webhook cleanup finished",
            extra={"dry_run": dry_run, "events": events, "failures": failures}
        )
        return {"events_deleted": events, "failures_deleted": failures}

    async def _require(self, failure_id: str) -> FailureRecord:
        record = await self._failures.get(failure_id)
        if record is None:
            raise ResourceNotFoundException("Webhook failure", failure_id)
        return record

    async def _retry(self, record: FailureRecord) -> RetryOutcome:
        claimed = await self._failures.claim(record, self._clock(), self._lease_seconds)
        if claimed is None:
            return RetryOutcome.from_record(record, "skipped", "Claimed by another worker")

        if await self._events.has_processed(claimed.external_event_id):
            claimed.resolve(self._clock(), "Event already processed", retried=True)
            claimed = await self._failures.save(claimed)
            return RetryOutcome.from_record(claimed, "resolved", "Event already processed")

        result = await self._processor.process(claimed.event_type, claimed.payload)
        now = self._clock()

        if result.success:
            claimed.resolve(now, "Retry succeeded", retried=True)
            await self._events.mark_processed(claimed.external_event_id, now)
            claimed = await self._failures.save(claimed)
            logger.info(
                "Webhook retry succeeded",
                extra={"failure_id": claimed.id, "event_id": claimed.external_event_id}
            )
            return RetryOutcome.from_record(claimed, "resolved", result.message)

        claimed.record_failure(result, now, self._policy, retried=True)
        claimed = await self._failures.save(claimed)
        outcome = "abandoned" if claimed.is_abandoned else "rescheduled"
        logger.warning(
            "Webhook retry failed",
            extra={
                "failure_id": claimed.id,
                "event_id": claimed.external_event_id,
                "retry_count": claimed.retry_count,
                "status": claimed.status,
                "error": result.error,
            }
        )
        return RetryOutcome.from_record(claimed, outcome, result.message)
