"""
SLA Application DTOs
=====================

Data Transfer Objects for SLA API layer.

These Pydantic models handle serialization/deserialization and validation
for API requests and responses. Following YAGNI - only what's needed.
"""

from pydantic import BaseModel, Field
from typing import Optional, Literal
from datetime import datetime

from designdesk.sla.domain import SLARecord, SLAEvaluation, SLAMetrics


# ========== Type Aliases for Literals ==========
SLAStatusStr = Literal["active", "paused", "completed"]
WarningLevelStr = Literal["none", "yellow", "red"]


# ========== Request DTOs ==========

class SLAStartRequest(BaseModel):
    """Request model for starting an SLA clock."""
    subject_id: str = Field(..., min_length=1, description="Tracked item ID (e.g. request ID)")
    target_hours: Optional[float] = Field(
        None,
        gt=0,
        description="Business hours allotted; plan or default target when omitted"
    )
    plan: Optional[str] = Field(None, description="Plan tier for target and thresholds")


class SLATransitionRequest(BaseModel):
    """Request model for pause/resume/complete."""
    subject_id: str = Field(..., min_length=1, description="Tracked item ID")
    reason: Optional[str] = Field(None, max_length=500, description="Pause reason")


# ========== Response DTOs ==========

class SLARecordResponse(BaseModel):
    """Response model for an SLA record's source-of-truth fields."""
    id: str
    subject_id: str
    status: SLAStatusStr
    started_at: datetime
    target_hours: float
    paused_at: Optional[datetime] = None
    pause_duration_hours: float = 0
    pause_reason: Optional[str] = None
    completed_at: Optional[datetime] = None
    plan: Optional[str] = None
    last_notified_level: WarningLevelStr = "none"

    @classmethod
    def from_domain(cls, record: SLARecord) -> "SLARecordResponse":
        """Create from domain entity."""
        return cls(
            id=record.id,
            subject_id=record.subject_id,
            status=record.status,
            started_at=record.started_at,
            target_hours=record.target_hours,
            paused_at=record.paused_at,
            pause_duration_hours=record.pause_duration_hours,
            pause_reason=record.pause_reason,
            completed_at=record.completed_at,
            plan=record.plan,
            last_notified_level=record.last_notified_level,
        )


class SLAEvaluationResponse(BaseModel):
    """Response model for the SLA evaluation of a subject."""
    subject_id: str
    status: SLAStatusStr
    evaluated_at: datetime
    target_hours: float
    business_hours_elapsed: float = Field(..., description="Business hours consumed")
    hours_remaining: float = Field(..., description="Business hours left (never negative)")
    percentage_complete: float = Field(..., description="Share of target used, 0-100")
    warning_level: WarningLevelStr
    is_at_risk: bool
    is_violated: bool
    total_elapsed_hours: float = Field(..., description="Wall-clock hours since start")
    pause_duration_hours: float
    time_remaining_display: str
    estimated_completion: Optional[datetime] = None

    @classmethod
    def from_domain(cls, evaluation: SLAEvaluation) -> "SLAEvaluationResponse":
        """Create from domain value object."""
        return cls(**evaluation.to_dict())


class SLAMetricsResponse(BaseModel):
    """Aggregate SLA adherence figures."""
    total_records: int
    active_count: int
    paused_count: int
    completed_count: int
    met_count: int
    violated_count: int
    at_risk_count: int
    average_turnaround_hours: float
    adherence_percentage: float = Field(..., description="Completed records that met their SLA, %")

    @classmethod
    def from_domain(cls, metrics: SLAMetrics) -> "SLAMetricsResponse":
        return cls(**metrics.to_dict())


class NotificationRunResponse(BaseModel):
    """Summary of one notification pass."""
    evaluated: int
    warnings_sent: int
    violations_sent: int
    failed: int
