from __future__ import annotations

from datetime import timedelta

from designdesk.config import ClaimOutcome
from designdesk.webhooks.domain import (
    FailureRecord,
    HandlerResult,
    InboundEvent,
    RetryPolicy,
    Subscription,
)
from designdesk.webhooks.infrastructure import (
    SQLAlchemyEventLedger,
    SQLAlchemyFailureLedger,
    SQLAlchemySubscriptionRepository,
)
from designdesk.tests.helpers import ny

NOW = ny(2024, 1, 15, 10)


def _event(event_id: str = "evt_1") -> InboundEvent:
    return InboundEvent.from_body("billing", {"id": event_id, "type": "invoice.paid"}, NOW)


async def test_claim_is_exclusive_until_lease_expires(session) -> None:
    ledger = SQLAlchemyEventLedger(session)
    event = _event()

    assert await ledger.claim(event, NOW, 120) == ClaimOutcome.ACQUIRED
    assert await ledger.claim(event, NOW + timedelta(seconds=30), 120) == ClaimOutcome.IN_PROGRESS
    assert await ledger.claim(event, NOW + timedelta(seconds=121), 120) == ClaimOutcome.ACQUIRED


async def test_processed_event_is_never_reclaimed(session) -> None:
    ledger = SQLAlchemyEventLedger(session)
    event = _event()
    await ledger.claim(event, NOW, 120)

    assert await ledger.mark_processed("evt_1", NOW)
    assert not await ledger.mark_processed("evt_1", NOW)
    assert await ledger.has_processed("evt_1")
    assert await ledger.claim(event, NOW + timedelta(days=1), 120) == ClaimOutcome.ALREADY_PROCESSED


async def test_released_event_can_be_reclaimed_immediately(session) -> None:
    ledger = SQLAlchemyEventLedger(session)
    event = _event()
    await ledger.claim(event, NOW, 120)
    await ledger.release("evt_1", "boom")

    assert not await ledger.has_processed("evt_1")
    assert await ledger.claim(event, NOW, 120) == ClaimOutcome.ACQUIRED


async def test_failure_ledger_is_unique_per_event(session) -> None:
    ledger = SQLAlchemyFailureLedger(session)
    policy = RetryPolicy()
    first = FailureRecord.first_failure(_event(), HandlerResult.failed("x"), NOW, policy)
    second = FailureRecord.first_failure(_event(), HandlerResult.failed("y"), NOW, policy)

    assert await ledger.add(first)
    assert not await ledger.add(second)

    stored = await ledger.get_by_event_id("evt_1")
    assert stored.id == first.id
    assert stored.next_retry_at == NOW + timedelta(minutes=5)


async def test_list_ready_respects_schedule_and_status(session) -> None:
    ledger = SQLAlchemyFailureLedger(session)
    policy = RetryPolicy()
    due = FailureRecord.first_failure(_event("evt_due"), HandlerResult.failed("x"), NOW - timedelta(hours=1), policy)
    later = FailureRecord.first_failure(_event("evt_later"), HandlerResult.failed("x"), NOW, policy)
    gone = FailureRecord.first_failure(_event("evt_gone"), HandlerResult.failed("x"), NOW - timedelta(hours=1), policy)
    gone.status = "abandoned"
    for record in (due, later, gone):
        await ledger.add(record)

    ready = await ledger.list_ready(NOW, 10)
    assert [r.external_event_id for r in ready] == ["evt_due"]


async def test_subscription_upsert_overwrites_by_external_id(session) -> None:
    repo = SQLAlchemySubscriptionRepository(session)
    await repo.upsert(Subscription("sub_1", "cus_1", "active", plan_amount=100, updated_at=NOW))
    await repo.upsert(Subscription("sub_1", "cus_1", "past_due", plan_amount=200, updated_at=NOW))

    stored = await repo.get("sub_1")
    assert stored.status == "past_due"
    assert stored.plan_amount == 200
    assert await repo.update_status("sub_1", "active", "invoice.payment_succeeded", NOW)
    assert not await repo.update_status("sub_missing", "active", "invoice.payment_succeeded", NOW)
