"""
SLA Application Layer
======================

Application layer for SLA tracking module.

Contains:
- Services: Orchestrate business logic and coordinate with repositories
- DTOs: Data transfer objects for API serialization

This layer depends on the domain layer and repository interfaces,
but not on concrete infrastructure implementations.
"""

from designdesk.sla.application.dto import (
    SLAStartRequest,
    SLATransitionRequest,
    SLARecordResponse,
    SLAEvaluationResponse,
    SLAMetricsResponse,
    NotificationRunResponse,
)
from designdesk.sla.application.services import (
    SLATracker,
    SLANotificationService,
    ISLARecordRepository,
    ISLAConfigProvider,
    INotifier,
)

__all__ = [
    # DTOs
    "SLAStartRequest",
    "SLATransitionRequest",
    "SLARecordResponse",
    "SLAEvaluationResponse",
    "SLAMetricsResponse",
    "NotificationRunResponse",
    # Services
    "SLATracker",
    "SLANotificationService",
    # Repository Interfaces
    "ISLARecordRepository",
    "ISLAConfigProvider",
    "INotifier",
]
