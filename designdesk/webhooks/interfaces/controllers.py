"""
Webhook Controllers (API Routes)
=================================

FastAPI routes for webhook ingestion and the dead-letter retry surface.

Verification failures are transport errors (401/404/400) and are never
persisted. Processing failures are recorded in the failure ledger and
answered with 500 so the provider's own retry also kicks in.
"""

import json
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from designdesk.config import Settings
from designdesk.core.clock import Clock
from designdesk.core.exceptions import ValidationException
from designdesk.infrastructure.database import get_session
from designdesk.shared.api.dependencies import get_app_settings, get_clock
from designdesk.shared.infrastructure.grafana import get_grafana_exporter
from designdesk.shared.infrastructure.logging import get_logger
from designdesk.sla.application import ISLAConfigProvider, SLATracker
from designdesk.sla.infrastructure import SQLAlchemySLARecordRepository
from designdesk.sla.interfaces.controllers import get_sla_config_provider
from designdesk.webhooks.application import (
    EventProcessor,
    HandlerContext,
    HandlerRegistry,
    RetryScheduler,
    WebhookIngestionService,
    build_default_registry,
    RetryRequest,
    WebhookReceipt,
    FailureResponse,
    FailureListResponse,
    RetryOutcomeResponse,
    RetryRunResponse,
    CleanupResponse,
)
from designdesk.webhooks.domain import InboundEvent, RetryPolicy
from designdesk.webhooks.infrastructure import (
    SQLAlchemyEventLedger,
    SQLAlchemyFailureLedger,
    SQLAlchemySubscriptionRepository,
    SignatureVerifier,
)

logger = get_logger(__name__)
router = APIRouter(prefix="/webhooks", tags=["Webhooks"])


# ========== Dependencies ==========

def get_signature_verifier(
    request: Request,
    settings: Settings = Depends(get_app_settings),
    clock: Clock = Depends(get_clock)
) -> SignatureVerifier:
    """Verifier built at startup, or one from settings."""
    verifier = getattr(request.app.state, "signature_verifier", None)
    return verifier or SignatureVerifier.from_settings(settings, clock)


def get_handler_registry(request: Request) -> HandlerRegistry:
    """Handler registry validated at startup."""
    registry = getattr(request.app.state, "handler_registry", None)
    return registry or build_default_registry()


def get_retry_policy(settings: Settings = Depends(get_app_settings)) -> RetryPolicy:
    return RetryPolicy(base_minutes=settings.retry_base_minutes, max_retries=settings.retry_max_retries)


async def get_event_processor(
    session: AsyncSession = Depends(get_session),
    registry: HandlerRegistry = Depends(get_handler_registry),
    config_provider: ISLAConfigProvider = Depends(get_sla_config_provider),
    settings: Settings = Depends(get_app_settings),
    clock: Clock = Depends(get_clock)
) -> EventProcessor:
    """Processor whose handlers write through this request's session."""
    context = HandlerContext(
        subscriptions=SQLAlchemySubscriptionRepository(session),
        sla_tracker=SLATracker(SQLAlchemySLARecordRepository(session), config_provider, clock),
        clock=clock,
    )
    return EventProcessor(
        registry,
        context,
        timeout_seconds=settings.webhook_handler_timeout_seconds,
        transaction=session.begin_nested,
    )


async def get_ingestion_service(
    session: AsyncSession = Depends(get_session),
    processor: EventProcessor = Depends(get_event_processor),
    policy: RetryPolicy = Depends(get_retry_policy),
    settings: Settings = Depends(get_app_settings),
    clock: Clock = Depends(get_clock)
) -> WebhookIngestionService:
    """Get webhook ingestion service instance."""
    return WebhookIngestionService(
        SQLAlchemyEventLedger(session),
        SQLAlchemyFailureLedger(session),
        processor,
        policy,
        clock,
        lease_seconds=settings.webhook_claim_lease_seconds,
    )


async def get_retry_scheduler(
    session: AsyncSession = Depends(get_session),
    processor: EventProcessor = Depends(get_event_processor),
    policy: RetryPolicy = Depends(get_retry_policy),
    settings: Settings = Depends(get_app_settings),
    clock: Clock = Depends(get_clock)
) -> RetryScheduler:
    """Get retry scheduler instance."""
    return RetryScheduler(
        SQLAlchemyFailureLedger(session),
        SQLAlchemyEventLedger(session),
        processor,
        policy,
        clock,
        lease_seconds=settings.webhook_claim_lease_seconds,
        batch_size=settings.retry_batch_size,
    )


# ========== Retry surface ==========
# Declared before /{provider} so the literal paths win.

@router.get(
    "/retry",
    response_model=FailureListResponse,
    summary="List webhook failures",
    description="Open failures split into `ready`, `awaiting` (scheduled later) and `abandoned`."
)
async def list_failures(scheduler: RetryScheduler = Depends(get_retry_scheduler)):
    buckets = await scheduler.list_failures()
    return FailureListResponse(
        total=sum(len(records) for records in buckets.values()),
        ready=[FailureResponse.from_domain(r) for r in buckets["ready"]],
        awaiting=[FailureResponse.from_domain(r) for r in buckets["awaiting"]],
        abandoned=[FailureResponse.from_domain(r) for r in buckets["abandoned"]],
    )


@router.post(
    "/retry",
    response_model=RetryRunResponse,
    summary="Retry webhook failures",
    description="""
    Re-run failed events through their handlers.

    - `{"failure_id": "..."}` retries one entry now (abandoned entries included)
    - `{"retry_all": true}` retries every entry that is due, one bounded batch

    Intended to be hit by an external scheduler (cron) as well as operators.
    """
)
async def retry_failures(
    body: RetryRequest,
    scheduler: RetryScheduler = Depends(get_retry_scheduler),
    session: AsyncSession = Depends(get_session)
):
    if body.failure_id:
        outcomes = [await scheduler.retry_one(body.failure_id)]
    elif body.retry_all:
        outcomes = await scheduler.retry_ready()
    else:
        raise ValidationException("Provide either failure_id or retry_all=true")
    await session.commit()

    resolved = sum(1 for o in outcomes if o.outcome == "resolved")
    failed = sum(1 for o in outcomes if o.outcome in ("rescheduled", "abandoned"))

    exporter = get_grafana_exporter()
    if exporter and exporter.is_enabled() and outcomes:
        await exporter.export_counters(
            {"webhook_retries_total": len(outcomes), "webhook_retries_resolved": resolved},
            operation="webhook_retry"
        )

    return RetryRunResponse(
        attempted=len(outcomes),
        resolved=resolved,
        failed=failed,
        results=[RetryOutcomeResponse.from_outcome(o) for o in outcomes],
    )


@router.delete(
    "/retry",
    response_model=FailureResponse,
    summary="Resolve a webhook failure",
    description="Operator override: mark the entry resolved without re-running it."
)
async def resolve_failure(
    id: str = Query(..., description="Failure entry ID"),
    notes: Optional[str] = Query(None, max_length=1000, description="Resolution notes"),
    scheduler: RetryScheduler = Depends(get_retry_scheduler),
    session: AsyncSession = Depends(get_session)
):
    record = await scheduler.resolve(id, notes)
    await session.commit()
    return FailureResponse.from_domain(record)


@router.post(
    "/cleanup",
    response_model=CleanupResponse,
    summary="Delete old webhook records",
    description="Removes processed ledger rows and resolved/abandoned failures past their age."
)
async def cleanup(
    dry_run: bool = Query(False, description="Only count what would be deleted"),
    event_age: int = Query(30, ge=1, description="Processed event age in days"),
    failure_age: int = Query(90, ge=1, description="Closed failure age in days"),
    scheduler: RetryScheduler = Depends(get_retry_scheduler),
    session: AsyncSession = Depends(get_session)
):
    counts = await scheduler.cleanup(event_age, failure_age, dry_run)
    if not dry_run:
        await session.commit()
    return CleanupResponse(
        dry_run=dry_run,
        event_age_days=event_age,
        failure_age_days=failure_age,
        **counts,
    )


# ========== Ingestion ==========

@router.post(
    "/{provider}",
    response_model=WebhookReceipt,
    summary="Receive a webhook",
    description="""
    Verify, de-duplicate and process one provider delivery.

    - Unknown provider: **404**; bad or missing signature: **401**
    - Malformed body (not JSON, no `id`/`type`): **400**, nothing stored
    - Duplicate delivery: **200** with `processed: false`
    - Handler failure: recorded for retry, **500**
    """,
    responses={
        401: {"description": "Signature verification failed"},
        404: {"description": "Unknown provider"},
        500: {"description": "Processing failed; queued for retry"},
    }
)
async def receive_webhook(
    provider: str,
    request: Request,
    verifier: SignatureVerifier = Depends(get_signature_verifier),
    service: WebhookIngestionService = Depends(get_ingestion_service),
    session: AsyncSession = Depends(get_session),
    clock: Clock = Depends(get_clock)
):
    body = await request.body()
    verifier.verify(provider, body, request.headers)

    try:
        data = json.loads(body)
    except (ValueError, UnicodeDecodeError):
        raise ValidationException("Webhook body is not valid JSON", {"provider": provider})

    event = InboundEvent.from_body(provider, data, clock())
    started = clock()
    result = await service.ingest(event)
    # Claim, processed flag and failure entry are committed together
    await session.commit()

    exporter = get_grafana_exporter()
    if exporter and exporter.is_enabled():
        latency_ms = int((clock() - started).total_seconds() * 1000)
        if not result.success:
            outcome = "failed"
        else:
            outcome = "processed" if result.processed else "skipped"
        await exporter.export_webhook_outcome(provider, event.event_type, outcome, latency_ms)

    receipt = WebhookReceipt(
        processed=result.processed,
        message=result.message,
        event_id=event.external_event_id,
        failure_id=result.failure.id if result.failure else None,
    )
    if not result.success:
        return JSONResponse(status_code=500, content=receipt.model_dump())
    return receipt


# Export router for inclusion in main app
webhooks_router = router
