"""
SLA Application Services
=========================

Application services orchestrate business logic and coordinate between
domain entities and repositories.

Following SOLID principles:
- Single Responsibility: Each service has one clear purpose
- Dependency Inversion: Depend on abstractions (repositories, notifier, clock),
  not concrete implementations
"""

from abc import ABC, abstractmethod
from typing import List, Optional

from designdesk.config import SLAStatus, NotificationType, OPEN_SLA_STATUSES
from designdesk.core.clock import Clock, utc_now
from designdesk.core.exceptions import (
    InvalidStateTransitionException,
    NotificationException,
    ResourceNotFoundException,
)
from designdesk.shared.infrastructure.logging import get_logger
from designdesk.sla.domain import (
    BusinessCalendar,
    SLAClassifier,
    SLAConfig,
    SLAEvaluation,
    SLAMetrics,
    SLARecord,
)

logger = get_logger(__name__)


# ========== Repository Interfaces (Dependency Inversion) ==========

class ISLARecordRepository(ABC):
    """Interface for SLA record data access."""

    @abstractmethod
    async def get_by_id(self, record_id: str) -> Optional[SLARecord]:
        """Get record by internal ID."""

    @abstractmethod
    async def get_latest_for_subject(self, subject_id: str) -> Optional[SLARecord]:
        """Get the most recently started record for a subject."""

    @abstractmethod
    async def add(self, record: SLARecord) -> SLARecord:
        """Persist a new record."""

    @abstractmethod
    async def save(self, record: SLARecord) -> SLARecord:
        """
        Persist a transition with an optimistic version check.

        Raises:
            ConcurrentModificationException: if the stored version moved on
        """

    @abstractmethod
    async def list(self, statuses: Optional[List[str]] = None) -> List[SLARecord]:
        """List records, optionally filtered by status."""

    @abstractmethod
    async def update_cache(self, record_id: str, evaluation: SLAEvaluation) -> None:
        """Store derived fields for dashboards; never read back as truth."""

    @abstractmethod
    async def mark_notified(self, record_id: str, level: str) -> None:
        """Remember the highest warning level already announced."""


class ISLAConfigProvider(ABC):
    """Interface for SLA configuration access."""

    @abstractmethod
    def get_config(self) -> SLAConfig:
        """Get current SLA configuration."""


class INotifier(ABC):
    """Outbound sink for SLA warnings and violations."""

    @abstractmethod
    async def notify(
        self,
        notification_type: str,
        record: SLARecord,
        evaluation: SLAEvaluation
    ) -> bool:
        """Deliver one notification; True when the sink accepted it."""


# ========== Application Services ==========

class SLATracker:
    """
    Service driving the SLA record lifecycle.

    Coordinates the domain state machine, the business calendar and data
    access. Every timestamp comes from the injected clock.
    """

    def __init__(
        self,
        repository: ISLARecordRepository,
        config_provider: ISLAConfigProvider,
        clock: Clock = utc_now
    ):
        self._repo = repository
        self._config_provider = config_provider
        self._clock = clock

    def _calendar(self, config: SLAConfig) -> BusinessCalendar:
        return BusinessCalendar(config.business_hours)

    async def _require_latest(self, subject_id: str) -> SLARecord:
        record = await self._repo.get_latest_for_subject(subject_id)
        if record is None:
            raise ResourceNotFoundException("SLA record", subject_id)
        return record

    async def get_open_record(self, subject_id: str) -> Optional[SLARecord]:
        """Get the subject's active or paused record, if any."""
        record = await self._repo.get_latest_for_subject(subject_id)
        if record is not None and record.is_open:
            return record
        return None

    async def start(
        self,
        subject_id: str,
        target_hours: Optional[float] = None,
        plan: Optional[str] = None
    ) -> SLARecord:
        """
        Start tracking a subject.

        Args:
            subject_id: Tracked item (e.g. a request ID)
            target_hours: Business hours allotted; plan/default when omitted
            plan: Optional plan tier for targets and thresholds

        Raises:
            InvalidStateTransitionException: if the subject already has an open record
        """
        existing = await self.get_open_record(subject_id)
        if existing is not None:
            raise InvalidStateTransitionException(
                "start", existing.status, [SLAStatus.COMPLETED],
                {"subject_id": subject_id, "record_id": existing.id}
            )

        config = self._config_provider.get_config()
        record = SLARecord.start(
            subject_id=subject_id,
            target_hours=target_hours or config.get_target_hours(plan),
            now=self._clock(),
            plan=plan,
        )
        record = await self._repo.add(record)

        logger.info(
            "SLA started",
            extra={
                "subject_id": subject_id,
                "record_id": record.id,
                "target_hours": record.target_hours,
            }
        )
        return record

    async def pause(self, subject_id: str, reason: Optional[str] = None) -> SLARecord:
        """Pause the subject's clock. Fails unless the record is Active."""
        record = await self._require_latest(subject_id)
        record.pause(self._clock(), reason)
        record = await self._repo.save(record)

        logger.info(
            "SLA paused",
            extra={"subject_id": subject_id, "record_id": record.id, "reason": reason}
        )
        return record

    async def resume(self, subject_id: str) -> SLARecord:
        """Resume the subject's clock. Fails unless the record is Paused."""
        record = await self._require_latest(subject_id)
        config = self._config_provider.get_config()
        paused_hours = record.resume(self._clock(), self._calendar(config))
        record = await self._repo.save(record)

        logger.info(
            "SLA resumed",
            extra={
                "subject_id": subject_id,
                "record_id": record.id,
                "paused_business_hours": paused_hours,
                "pause_duration_hours": record.pause_duration_hours,
            }
        )
        return record

    async def complete(self, subject_id: str) -> SLARecord:
        """Complete the subject's record; frozen from here on."""
        record = await self._require_latest(subject_id)
        config = self._config_provider.get_config()
        record.complete(self._clock(), self._calendar(config))
        record = await self._repo.save(record)

        evaluation = record.evaluate(
            record.completed_at, self._calendar(config), config.get_thresholds(record.plan)
        )
        logger.info(
            "SLA completed",
            extra={
                "subject_id": subject_id,
                "record_id": record.id,
                "business_hours_elapsed": evaluation.business_hours_elapsed,
                "is_violated": evaluation.is_violated,
            }
        )
        return record

    def evaluate_record(self, record: SLARecord) -> SLAEvaluation:
        """Evaluate an already-loaded record at the current instant."""
        config = self._config_provider.get_config()
        return record.evaluate(
            self._clock(), self._calendar(config), config.get_thresholds(record.plan)
        )

    async def evaluate_subject(self, subject_id: str) -> SLAEvaluation:
        """
        SLA query operation for a subject.

        Returns:
            SLAEvaluation with elapsed, remaining, percentage and warning level

        Raises:
            ResourceNotFoundException: if the subject was never tracked
        """
        record = await self._require_latest(subject_id)
        return self.evaluate_record(record)

    async def metrics(self) -> SLAMetrics:
        """Aggregate adherence figures across all records."""
        records = await self._repo.list()

        counts = {SLAStatus.ACTIVE: 0, SLAStatus.PAUSED: 0, SLAStatus.COMPLETED: 0}
        met = violated = at_risk = 0
        turnaround: List[float] = []

        for record in records:
            counts[record.status] = counts.get(record.status, 0) + 1
            evaluation = self.evaluate_record(record)
            if record.is_completed:
                turnaround.append(evaluation.business_hours_elapsed)
                if evaluation.is_violated:
                    violated += 1
                else:
                    met += 1
            elif evaluation.is_at_risk:
                at_risk += 1

        average = round(sum(turnaround) / len(turnaround), 2) if turnaround else 0.0

        return SLAMetrics(
            total_records=len(records),
            active_count=counts[SLAStatus.ACTIVE],
            paused_count=counts[SLAStatus.PAUSED],
            completed_count=counts[SLAStatus.COMPLETED],
            met_count=met,
            violated_count=violated,
            at_risk_count=at_risk,
            average_turnaround_hours=average,
        )


class SLANotificationService:
    """
    Service for announcing SLA threshold crossings.

    Run periodically (cron-triggered) to evaluate all open records and send
    each warning level exactly once.
    """

    def __init__(
        self,
        repository: ISLARecordRepository,
        config_provider: ISLAConfigProvider,
        notifier: INotifier,
        clock: Clock = utc_now
    ):
        self._repo = repository
        self._config_provider = config_provider
        self._notifier = notifier
        self._clock = clock

    async def run(self) -> dict:
        """
        Evaluate every open record and send pending notifications.

        Returns:
            Summary of the pass
        """
        config = self._config_provider.get_config()
        calendar = BusinessCalendar(config.business_hours)
        now = self._clock()

        records = await self._repo.list(OPEN_SLA_STATUSES)
        summary = {"evaluated": 0, "warnings_sent": 0, "violations_sent": 0, "failed": 0}

        for record in records:
            evaluation = record.evaluate(now, calendar, config.get_thresholds(record.plan))
            await self._repo.update_cache(record.id, evaluation)
            summary["evaluated"] += 1

            notification_type = SLAClassifier.should_notify(
                evaluation.warning_level, record.last_notified_level
            )
            if notification_type is None:
                continue

            try:
                sent = await self._notifier.notify(notification_type, record, evaluation)
            except NotificationException as e:
                logger.error(
                    "SLA notification failed",
                    extra={"subject_id": record.subject_id, "error": e.message}
                )
                sent = False

            if not sent:
                summary["failed"] += 1
                continue

            await self._repo.mark_notified(record.id, evaluation.warning_level)
            record.last_notified_level = evaluation.warning_level
            key = "violations_sent" if notification_type == NotificationType.VIOLATION else "warnings_sent"
            summary[key] += 1

        logger.info("SLA notification pass complete", extra=summary)
        return summary
