"""
SLA Domain Entities
====================

Pure Python domain entities for SLA tracking.

Following Domain-Driven Design principles, these entities contain
business logic and are free of infrastructure concerns. Time never comes
from the wall clock here: every operation receives ``now`` from its caller.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional
from uuid import uuid4

from designdesk.config import SLAStatus, WarningLevel
from designdesk.core.exceptions import InvalidStateTransitionException, ValidationException
from designdesk.sla.domain.calendar import BusinessCalendar, time_remaining_display
from designdesk.sla.domain.value_objects import (
    SLAClassifier,
    SLAEvaluation,
    WarningThresholds,
)


@dataclass
class SLARecord:
    """
    SLA record entity: one per tracked unit of work.

    Source of truth is ``started_at``, ``target_hours``, ``paused_at`` and
    ``pause_duration_hours``. Everything ``evaluate`` returns is derived.

    States:
    - ACTIVE: clock running
    - PAUSED: clock frozen at ``paused_at``
    - COMPLETED: terminal, frozen at ``completed_at``
    """

    # Identity
    id: str
    subject_id: str

    # Timing
    started_at: datetime
    target_hours: float
    status: str = SLAStatus.ACTIVE
    paused_at: Optional[datetime] = None
    pause_duration_hours: float = 0.0
    completed_at: Optional[datetime] = None
    pause_reason: Optional[str] = None
    plan: Optional[str] = None

    # Notification bookkeeping
    last_notified_level: str = WarningLevel.NONE

    # Optimistic locking
    version: int = 0

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        """Validate record on initialization."""
        if self.target_hours <= 0:
            raise ValidationException(
                "target_hours must be positive",
                {"target_hours": self.target_hours}
            )
        if (self.paused_at is not None) != (self.status == SLAStatus.PAUSED):
            raise ValidationException(
                "paused_at must be set exactly when the record is paused",
                {"status": self.status, "paused_at": str(self.paused_at)}
            )
        if self.pause_duration_hours < 0:
            raise ValidationException("pause_duration_hours cannot be negative")

    @classmethod
    def start(
        cls,
        subject_id: str,
        target_hours: float,
        now: datetime,
        plan: Optional[str] = None
    ) -> "SLARecord":
        """Open a new Active record whose clock starts at ``now``."""
        return cls(
            id=str(uuid4()),
            subject_id=subject_id,
            started_at=now,
            target_hours=target_hours,
            plan=plan,
            created_at=now,
            updated_at=now,
        )

    @property
    def is_active(self) -> bool:
        return self.status == SLAStatus.ACTIVE

    @property
    def is_paused(self) -> bool:
        return self.status == SLAStatus.PAUSED

    @property
    def is_completed(self) -> bool:
        return self.status == SLAStatus.COMPLETED

    @property
    def is_open(self) -> bool:
        """Check if the record still accrues or may resume accruing time."""
        return not self.is_completed

    def _require(self, operation: str, *allowed: str) -> None:
        if self.status not in allowed:
            raise InvalidStateTransitionException(operation, self.status, list(allowed))

    def pause(self, now: datetime, reason: Optional[str] = None) -> None:
        """Freeze the clock. Only valid while Active."""
        self._require("pause", SLAStatus.ACTIVE)
        self.paused_at = now
        self.pause_reason = reason
        self.status = SLAStatus.PAUSED
        self.updated_at = now

    def resume(self, now: datetime, calendar: BusinessCalendar) -> float:
        """
        Restart the clock. Only valid while Paused.

        Returns:
            Business hours spent in the pause that just ended
        """
        self._require("resume", SLAStatus.PAUSED)
        paused_hours = self._close_pause(now, calendar)
        self.status = SLAStatus.ACTIVE
        self.updated_at = now
        return paused_hours

    def complete(self, now: datetime, calendar: BusinessCalendar) -> None:
        """Stop the clock for good. Valid from Active or Paused."""
        self._require("complete", SLAStatus.ACTIVE, SLAStatus.PAUSED)
        if self.is_paused:
            self._close_pause(now, calendar)
        self.completed_at = now
        self.status = SLAStatus.COMPLETED
        self.updated_at = now

    def _close_pause(self, now: datetime, calendar: BusinessCalendar) -> float:
        # Same hour grid as business_hours_elapsed
        paused_hours = (
            calendar.business_hours(self.started_at, now)
            - calendar.business_hours(self.started_at, self.paused_at)
        )
        self.pause_duration_hours += paused_hours
        self.paused_at = None
        return paused_hours

    def effective_end(self, now: datetime) -> datetime:
        """Instant the clock is read at: frozen while paused or completed."""
        if self.is_paused:
            return self.paused_at
        if self.is_completed:
            return self.completed_at
        return now

    def business_hours_elapsed(self, now: datetime, calendar: BusinessCalendar) -> float:
        gross = calendar.business_hours(self.started_at, self.effective_end(now))
        return max(0.0, gross - self.pause_duration_hours)

    def evaluate(
        self,
        now: datetime,
        calendar: BusinessCalendar,
        thresholds: Optional[WarningThresholds] = None
    ) -> SLAEvaluation:
        """
        Compute elapsed, remaining, percentage and warning level.

        Pure read: the record is not modified.
        """
        end = self.effective_end(now)
        elapsed = self.business_hours_elapsed(now, calendar)
        remaining = max(0.0, self.target_hours - elapsed)
        percentage = max(0.0, min(100.0, elapsed / self.target_hours * 100))

        estimated = None
        if not self.is_completed:
            estimated = calendar.estimated_completion(remaining, end)

        return SLAEvaluation(
            subject_id=self.subject_id,
            status=self.status,
            evaluated_at=now,
            target_hours=self.target_hours,
            business_hours_elapsed=elapsed,
            hours_remaining=remaining,
            percentage_complete=round(percentage, 2),
            warning_level=SLAClassifier.classify(remaining, thresholds),
            is_at_risk=SLAClassifier.is_at_risk(remaining, thresholds),
            is_violated=SLAClassifier.is_violated(remaining),
            total_elapsed_hours=round(calendar.total_elapsed_hours(self.started_at, end), 2),
            pause_duration_hours=self.pause_duration_hours,
            time_remaining_display=time_remaining_display(remaining),
            estimated_completion=estimated,
        )


@dataclass
class SLAMetrics:
    """
    Aggregate SLA adherence figures across records.

    ``met``/``violated`` only count completed records.
    """

    total_records: int = 0
    active_count: int = 0
    paused_count: int = 0
    completed_count: int = 0
    met_count: int = 0
    violated_count: int = 0
    at_risk_count: int = 0
    average_turnaround_hours: float = 0.0

    adherence_percentage: float = field(init=False)

    def __post_init__(self):
        """Calculate adherence from completed records."""
        if self.completed_count > 0:
            self.adherence_percentage = round(self.met_count / self.completed_count * 100, 2)
        else:
            self.adherence_percentage = 100.0

    def to_dict(self) -> dict:
        """Convert to dictionary for API responses."""
        return {
            "total_records": self.total_records,
            "active_count": self.active_count,
            "paused_count": self.paused_count,
            "completed_count": self.completed_count,
            "met_count": self.met_count,
            "violated_count": self.violated_count,
            "at_risk_count": self.at_risk_count,
            "average_turnaround_hours": self.average_turnaround_hours,
            "adherence_percentage": self.adherence_percentage,
        }
