from __future__ import annotations

import pytest

from designdesk.config import SLAStatus
from designdesk.core.exceptions import ResourceNotFoundException, ValidationException
from designdesk.sla.application import SLATracker
from designdesk.sla.infrastructure import StaticSLAConfigProvider
from designdesk.webhooks.application import EventProcessor, HandlerContext, build_default_registry
from designdesk.webhooks.application.handlers import (
    handle_payment_failed,
    handle_request_completed,
    handle_request_paused,
    handle_request_started,
    handle_subscription_changed,
    handle_subscription_deleted,
)
from designdesk.tests.helpers import (
    InMemorySLARecordRepository,
    InMemorySubscriptionRepository,
    MutableClock,
    ny,
    subscription_event,
    tracker_event,
)


@pytest.fixture
def clock() -> MutableClock:
    return MutableClock(ny(2024, 1, 15, 10))


@pytest.fixture
def sla_records() -> InMemorySLARecordRepository:
    return InMemorySLARecordRepository()


@pytest.fixture
def context(clock, sla_records) -> HandlerContext:
    tracker = SLATracker(sla_records, StaticSLAConfigProvider(), clock)
    return HandlerContext(InMemorySubscriptionRepository(), tracker, clock)


async def test_subscription_created_is_upserted(context) -> None:
    result = await handle_subscription_changed(subscription_event("evt_1"), context)
    assert result.success

    subscription = context.subscriptions.subscriptions["sub_123"]
    assert subscription.customer_id == "cus_42"
    assert subscription.plan_amount == 499500
    assert subscription.price_id == "price_core"
    assert subscription.current_period_start is not None
    assert subscription.last_event_type == "customer.subscription.created"


async def test_subscription_handler_is_idempotent(context) -> None:
    payload = subscription_event("evt_1")
    await handle_subscription_changed(payload, context)
    first = context.subscriptions.subscriptions["sub_123"].to_dict()
    await handle_subscription_changed(payload, context)
    assert context.subscriptions.subscriptions["sub_123"].to_dict() == first
    assert len(context.subscriptions.subscriptions) == 1


async def test_subscription_deleted_marks_canceled(context, clock) -> None:
    await handle_subscription_changed(subscription_event("evt_1"), context)
    await handle_subscription_deleted(
        subscription_event("evt_2", event_type="customer.subscription.deleted"), context
    )
    subscription = context.subscriptions.subscriptions["sub_123"]
    assert subscription.status == "canceled"
    assert subscription.canceled_at == clock()


async def test_payment_failed_marks_past_due(context) -> None:
    await handle_subscription_changed(subscription_event("evt_1"), context)
    invoice = {"id": "evt_2", "type": "invoice.payment_failed", "data": {"object": {"subscription": "sub_123"}}}
    result = await handle_payment_failed(invoice, context)
    assert result.success
    assert context.subscriptions.subscriptions["sub_123"].status == "past_due"


async def test_payment_for_unknown_subscription_is_not_a_failure(context) -> None:
    invoice = {"id": "evt_2", "type": "invoice.payment_failed", "data": {"object": {"subscription": "sub_missing"}}}
    result = await handle_payment_failed(invoice, context)
    assert result.success
    assert context.subscriptions.writes == 0


async def test_missing_data_is_a_validation_error(context) -> None:
    with pytest.raises(ValidationException):
        await handle_subscription_changed({"id": "evt_1", "type": "customer.subscription.created"}, context)


async def test_request_started_twice_keeps_one_record(context, sla_records) -> None:
    payload = tracker_event("evt_1", "request.started", "REQ-1", target_hours=24)
    await handle_request_started(payload, context)
    await handle_request_started(payload, context)

    assert len(sla_records.records) == 1
    record = next(iter(sla_records.records.values()))
    assert record.target_hours == 24


async def test_pause_before_start_raises(context) -> None:
    with pytest.raises(ResourceNotFoundException):
        await handle_request_paused(tracker_event("evt_1", "request.paused", "REQ-1"), context)


async def test_pause_twice_is_a_noop(context, clock) -> None:
    await handle_request_started(tracker_event("evt_1", "request.started", "REQ-1"), context)
    clock.advance(hours=1)
    payload = tracker_event("evt_2", "request.paused", "REQ-1", reason="waiting on client")
    await handle_request_paused(payload, context)
    result = await handle_request_paused(payload, context)

    assert result.success
    record = await context.sla_tracker.get_open_record("REQ-1")
    assert record.status == SLAStatus.PAUSED
    assert record.pause_reason == "waiting on client"


async def test_completed_twice_is_a_noop(context, clock) -> None:
    await handle_request_started(tracker_event("evt_1", "request.started", "REQ-1"), context)
    clock.advance(hours=2)
    payload = tracker_event("evt_2", "request.completed", "REQ-1")
    await handle_request_completed(payload, context)
    result = await handle_request_completed(payload, context)
    assert "already completed" in result.message


async def test_processor_dispatches_through_default_registry(context) -> None:
    processor = EventProcessor(build_default_registry(), context)
    result = await processor.process(
        "request.paused", tracker_event("evt_1", "request.paused", "REQ-404")
    )
    assert not result.success
    assert "REQ-404" in result.error
