"""
SLA Domain Layer
================

Domain layer for SLA tracking module.

Contains:
- Calendar: Business-hours arithmetic (BusinessCalendar)
- Entities: Core business objects with identity (SLARecord, SLAMetrics)
- Value Objects: Immutable objects defined by attributes (SLAConfig, WarningThresholds)
- Domain Services: Stateless business logic (SLAClassifier)

This layer has no dependencies on infrastructure - pure Python business logic.
"""

from designdesk.sla.domain.calendar import (
    BusinessCalendar,
    BusinessHoursConfig,
    time_remaining_display,
    format_duration,
)
from designdesk.sla.domain.entities import SLARecord, SLAMetrics
from designdesk.sla.domain.value_objects import (
    SLAClassifier,
    SLAConfig,
    SLAPlan,
    SLAEvaluation,
    WarningThresholds,
)

__all__ = [
    # Calendar
    "BusinessCalendar",
    "BusinessHoursConfig",
    "time_remaining_display",
    "format_duration",
    # Entities
    "SLARecord",
    "SLAMetrics",
    # Value Objects & Services
    "SLAClassifier",
    "SLAConfig",
    "SLAPlan",
    "SLAEvaluation",
    "WarningThresholds",
]
