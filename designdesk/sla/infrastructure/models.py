"""
SLA Infrastructure Models
==========================

SQLAlchemy ORM models for SLA module.

These are the database representations of our domain entities.
They belong in the infrastructure layer, not the domain layer.
"""

from datetime import datetime, timezone
from typing import Optional
from uuid import UUID, uuid4

from sqlalchemy import String, Float, Integer, Uuid, Index
from sqlalchemy.orm import Mapped, mapped_column

from designdesk.infrastructure.database import Base, UTCDateTime
from designdesk.config import SLAStatus, WarningLevel


class SLARecordModel(Base):
    """
    Database model for SLARecord entity.

    Maps to the 'sla_records' table. Rows are never deleted; completed
    records stay for audit.
    """
    __tablename__ = "sla_records"

    # Primary key
    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    # Tracked item (e.g. a client request)
    subject_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)

    # Source of truth
    started_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    target_hours: Mapped[float] = mapped_column(Float, nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=SLAStatus.ACTIVE)
    paused_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    pause_duration_hours: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    completed_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    pause_reason: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    plan: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    # Derived cache (refreshed by the notification pass, never read as truth)
    business_hours_elapsed: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    hours_remaining: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    warning_level: Mapped[str] = mapped_column(String(10), nullable=False, default=WarningLevel.NONE)

    # Notification bookkeeping
    last_notified_level: Mapped[str] = mapped_column(String(10), nullable=False, default=WarningLevel.NONE)

    # Optimistic lock
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=lambda: datetime.now(timezone.utc))
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=lambda: datetime.now(timezone.utc))

    __table_args__ = (
        Index("ix_sla_records_subject_started", "subject_id", "started_at"),
    )
