"""
SLA Controllers (API Routes)
=============================

FastAPI routes for SLA tracking endpoints.

Controllers are thin - they delegate to application services. Domain and
application exceptions propagate to the exception handler registered in
``designdesk.main`` (invalid transitions become 409, unknown subjects 404).
"""

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from designdesk.core.clock import Clock
from designdesk.infrastructure.database import get_session
from designdesk.shared.api.dependencies import get_clock
from designdesk.shared.infrastructure.grafana import get_grafana_exporter
from designdesk.shared.infrastructure.logging import get_logger
from designdesk.sla.application import (
    SLATracker,
    SLANotificationService,
    ISLAConfigProvider,
    INotifier,
    SLAStartRequest,
    SLATransitionRequest,
    SLARecordResponse,
    SLAEvaluationResponse,
    SLAMetricsResponse,
    NotificationRunResponse,
)
from designdesk.sla.infrastructure import (
    SQLAlchemySLARecordRepository,
    StaticSLAConfigProvider,
    SlackClient,
)

logger = get_logger(__name__)
router = APIRouter(prefix="/sla", tags=["SLA Tracking"])


# ========== Example payloads for Swagger ==========

SLA_EVALUATION_EXAMPLE = {
    "subject_id": "REQ-1042",
    "status": "active",
    "evaluated_at": "2024-01-15T19:00:00Z",
    "target_hours": 48,
    "business_hours_elapsed": 4,
    "hours_remaining": 44,
    "percentage_complete": 8.33,
    "warning_level": "none",
    "is_at_risk": False,
    "is_violated": False,
    "total_elapsed_hours": 4.0,
    "pause_duration_hours": 0,
    "time_remaining_display": "5d 4h remaining",
    "estimated_completion": "2024-01-22T16:00:00-05:00"
}


# ========== Dependencies ==========

def get_sla_config_provider(request: Request) -> ISLAConfigProvider:
    """SLA configuration loaded at startup."""
    provider = getattr(request.app.state, "sla_config_provider", None)
    return provider or StaticSLAConfigProvider()


def get_notifier(request: Request) -> INotifier:
    """Notify sink for SLA warnings; an unconfigured Slack client by default."""
    notifier = getattr(request.app.state, "notifier", None)
    return notifier or SlackClient()


async def get_sla_tracker(
    session: AsyncSession = Depends(get_session),
    config_provider: ISLAConfigProvider = Depends(get_sla_config_provider),
    clock: Clock = Depends(get_clock)
) -> SLATracker:
    """Get SLA tracker instance."""
    return SLATracker(SQLAlchemySLARecordRepository(session), config_provider, clock)


async def get_notification_service(
    session: AsyncSession = Depends(get_session),
    config_provider: ISLAConfigProvider = Depends(get_sla_config_provider),
    notifier: INotifier = Depends(get_notifier),
    clock: Clock = Depends(get_clock)
) -> SLANotificationService:
    """Get SLA notification service instance."""
    return SLANotificationService(
        SQLAlchemySLARecordRepository(session), config_provider, notifier, clock
    )


# ========== Route Handlers ==========

@router.post(
    "/records",
    response_model=SLARecordResponse,
    status_code=201,
    summary="Start an SLA clock",
    description="""
    Start tracking a subject (e.g. a client request entering active work).

    The target defaults to the plan's target, or the configured default
    (48 business hours). Starting a subject that already has an active or
    paused record returns **409**.
    """
)
async def start_sla(
    body: SLAStartRequest,
    tracker: SLATracker = Depends(get_sla_tracker),
    session: AsyncSession = Depends(get_session)
):
    record = await tracker.start(body.subject_id, body.target_hours, body.plan)
    await session.commit()
    return SLARecordResponse.from_domain(record)


@router.post(
    "/pause",
    response_model=SLARecordResponse,
    summary="Pause an SLA clock",
    description="Freeze elapsed time. Only valid while active; otherwise **409**."
)
async def pause_sla(
    body: SLATransitionRequest,
    tracker: SLATracker = Depends(get_sla_tracker),
    session: AsyncSession = Depends(get_session)
):
    record = await tracker.pause(body.subject_id, body.reason)
    await session.commit()
    return SLARecordResponse.from_domain(record)


@router.post(
    "/resume",
    response_model=SLARecordResponse,
    summary="Resume an SLA clock",
    description="Restart a paused clock; business hours spent paused are excluded."
)
async def resume_sla(
    body: SLATransitionRequest,
    tracker: SLATracker = Depends(get_sla_tracker),
    session: AsyncSession = Depends(get_session)
):
    record = await tracker.resume(body.subject_id)
    await session.commit()
    return SLARecordResponse.from_domain(record)


@router.post(
    "/complete",
    response_model=SLARecordResponse,
    summary="Complete an SLA record",
    description="Stop the clock for good. Valid from active or paused."
)
async def complete_sla(
    body: SLATransitionRequest,
    tracker: SLATracker = Depends(get_sla_tracker),
    session: AsyncSession = Depends(get_session)
):
    record = await tracker.complete(body.subject_id)
    await session.commit()
    return SLARecordResponse.from_domain(record)


@router.get(
    "/metrics",
    response_model=SLAMetricsResponse,
    summary="SLA adherence metrics",
    description="Totals per state, met/violated counts, adherence % and average turnaround."
)
async def get_sla_metrics(tracker: SLATracker = Depends(get_sla_tracker)):
    metrics = await tracker.metrics()
    return SLAMetricsResponse.from_domain(metrics)


@router.post(
    "/evaluate",
    response_model=NotificationRunResponse,
    summary="Run the SLA notification pass",
    description="""
    Evaluate every open record and notify each warning level once.

    Intended to be hit by an external scheduler (cron); there is no
    in-process timer.
    """
)
async def run_sla_notifications(
    service: SLANotificationService = Depends(get_notification_service),
    session: AsyncSession = Depends(get_session)
):
    summary = await service.run()
    await session.commit()

    exporter = get_grafana_exporter()
    if exporter and exporter.is_enabled():
        await exporter.export_counters(
            {
                "sla_records_evaluated": summary["evaluated"],
                "sla_warnings_sent": summary["warnings_sent"],
                "sla_violations_sent": summary["violations_sent"],
            },
            operation="sla_evaluate"
        )

    return NotificationRunResponse(**summary)


@router.get(
    "/{subject_id}",
    response_model=SLAEvaluationResponse,
    summary="Get SLA status for a subject",
    description="""
    Pure query: business hours elapsed, hours remaining, percentage complete
    and warning level (`none`, `yellow`, `red`) at the current instant.
    """,
    responses={
        200: {
            "description": "SLA evaluation",
            "content": {"application/json": {"example": SLA_EVALUATION_EXAMPLE}}
        },
        404: {"description": "Subject not tracked"}
    }
)
async def get_sla_status(
    subject_id: str,
    tracker: SLATracker = Depends(get_sla_tracker)
):
    evaluation = await tracker.evaluate_subject(subject_id)
    return SLAEvaluationResponse.from_domain(evaluation)


# Export router for inclusion in main app
sla_router = router
