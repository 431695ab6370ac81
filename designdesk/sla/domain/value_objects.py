"""
SLA Value Objects
==================

Immutable value objects for SLA domain.

Value objects are defined by their attributes rather than an identity.
They are immutable and can be freely shared.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Optional

from pydantic import BaseModel, Field, model_validator

from designdesk.config import WarningLevel, NotificationType, WARNING_LEVELS
from designdesk.sla.domain.calendar import BusinessHoursConfig


class WarningThresholds(BaseModel):
    """
    Hours-remaining cut-offs for the warning levels.

    A record is ``red`` once remaining hours drop to ``red`` and ``yellow``
    once they drop to ``yellow``.
    """
    yellow: float = Field(default=12, ge=0, description="Yellow warning at or below this many hours")
    red: float = Field(default=0, ge=0, description="Red alert at or below this many hours")

    model_config = {"frozen": True}

    @model_validator(mode="after")
    def validate_order(self) -> "WarningThresholds":
        if self.yellow < self.red:
            raise ValueError("yellow threshold must be greater than or equal to red threshold")
        return self


DEFAULT_THRESHOLDS = WarningThresholds()


class SLAClassifier:
    """
    Pure functions mapping hours remaining to urgency.

    Stateless utility class - all classification logic in one place.
    """

    @staticmethod
    def classify(
        hours_remaining: float,
        thresholds: Optional[WarningThresholds] = None
    ) -> str:
        """
        Classify hours remaining as ``none``, ``yellow`` or ``red``.

        Args:
            hours_remaining: Business hours left before the deadline (may be negative)
            thresholds: Warning thresholds, defaults to 12h yellow / 0h red

        Returns:
            WarningLevel value
        """
        thresholds = thresholds or DEFAULT_THRESHOLDS
        if hours_remaining <= thresholds.red:
            return WarningLevel.RED
        if hours_remaining <= thresholds.yellow:
            return WarningLevel.YELLOW
        return WarningLevel.NONE

    @staticmethod
    def is_at_risk(
        hours_remaining: float,
        thresholds: Optional[WarningThresholds] = None
    ) -> bool:
        """True when the record is inside the yellow window (or worse)."""
        thresholds = thresholds or DEFAULT_THRESHOLDS
        return hours_remaining <= thresholds.yellow

    @staticmethod
    def is_violated(hours_remaining: float) -> bool:
        """True once the deadline has been reached."""
        return hours_remaining <= 0

    @staticmethod
    def level_rank(level: str) -> int:
        """Order warning levels so ``red`` outranks ``yellow`` outranks ``none``."""
        try:
            return WARNING_LEVELS.index(level)
        except ValueError:
            return 0

    @staticmethod
    def should_notify(
        current_level: str,
        last_notified_level: Optional[str] = None
    ) -> Optional[str]:
        """
        Determine if a notification should be sent.

        A notification fires only when the level climbs above the last level
        already announced, so each threshold crossing is announced once.

        Returns:
            NotificationType if a notification is needed, None otherwise
        """
        previous = last_notified_level or WarningLevel.NONE
        if SLAClassifier.level_rank(current_level) <= SLAClassifier.level_rank(previous):
            return None
        if current_level == WarningLevel.RED:
            return NotificationType.VIOLATION
        if current_level == WarningLevel.YELLOW:
            return NotificationType.WARNING
        return None


class SLAPlan(BaseModel):
    """Per-plan SLA tier."""
    target_hours: float = Field(gt=0, description="Business hours allotted")
    thresholds: WarningThresholds = Field(default_factory=WarningThresholds)


class SLAConfig(BaseModel):
    """
    SLA Configuration loaded from YAML.

    This is a value object - immutable and defined by its attributes.
    """
    business_hours: BusinessHoursConfig = Field(default_factory=BusinessHoursConfig)
    thresholds: WarningThresholds = Field(default_factory=WarningThresholds)
    default_target_hours: float = Field(default=48, gt=0)
    plans: Dict[str, SLAPlan] = Field(
        default_factory=dict,
        description="Plan name -> tier overrides"
    )

    def get_target_hours(self, plan: Optional[str] = None) -> float:
        """Target hours for a plan, falling back to the default."""
        if plan and plan in self.plans:
            return self.plans[plan].target_hours
        return self.default_target_hours

    def get_thresholds(self, plan: Optional[str] = None) -> WarningThresholds:
        """Warning thresholds for a plan, falling back to the global ones."""
        if plan and plan in self.plans:
            return self.plans[plan].thresholds
        return self.thresholds


@dataclass(frozen=True)
class SLAEvaluation:
    """
    Point-in-time reading of an SLA record.

    Computed on demand; never the source of truth.
    """
    subject_id: str
    status: str
    evaluated_at: datetime
    target_hours: float
    business_hours_elapsed: float
    hours_remaining: float
    percentage_complete: float
    warning_level: str
    is_at_risk: bool
    is_violated: bool
    total_elapsed_hours: float
    pause_duration_hours: float
    time_remaining_display: str
    estimated_completion: Optional[datetime] = None

    def to_dict(self) -> dict:
        """Convert to dictionary for API responses."""
        return {
            "subject_id": self.subject_id,
            "status": self.status,
            "evaluated_at": self.evaluated_at.isoformat(),
            "target_hours": self.target_hours,
            "business_hours_elapsed": self.business_hours_elapsed,
            "hours_remaining": self.hours_remaining,
            "percentage_complete": self.percentage_complete,
            "warning_level": self.warning_level,
            "is_at_risk": self.is_at_risk,
            "is_violated": self.is_violated,
            "total_elapsed_hours": self.total_elapsed_hours,
            "pause_duration_hours": self.pause_duration_hours,
            "time_remaining_display": self.time_remaining_display,
            "estimated_completion": (
                self.estimated_completion.isoformat() if self.estimated_completion else None
            ),
        }
