from __future__ import annotations

from datetime import timedelta
from uuid import uuid4

import pytest
from sqlalchemy import select, update

from designdesk.config import FailureStatus
from designdesk.webhooks.infrastructure import (
    SQLAlchemyFailureLedger,
    WebhookEventModel,
    WebhookFailureModel,
)
from designdesk.tests.helpers import TRACKER_SECRET, signed_request, tracker_event


async def _deliver(client, body: dict):
    raw, headers = signed_request(body, TRACKER_SECRET)
    return await client.post("/webhooks/tracker", content=raw, headers=headers)


@pytest.fixture
async def failure_id(client) -> str:
    # request.paused before request.started fails until the start arrives
    response = await _deliver(client, tracker_event("evt_p1", "request.paused", "REQ-9"))
    assert response.status_code == 500
    return response.json()["failure_id"]


async def test_backoff_until_abandoned_then_manual_retry(client, clock, failure_id) -> None:
    counts = []
    for minutes in (5, 10, 20, 40, 80):
        clock.advance(minutes=minutes - 1)
        early = (await client.post("/webhooks/retry", json={"retry_all": True})).json()
        assert early["attempted"] == 0

        clock.advance(minutes=1)
        run = (await client.post("/webhooks/retry", json={"retry_all": True})).json()
        assert run["attempted"] == 1
        assert run["failed"] == 1
        counts.append(run["results"][0]["retry_count"])

    assert counts == [1, 2, 3, 4, 5]
    assert run["results"][0]["outcome"] == "abandoned"
    assert run["results"][0]["status"] == FailureStatus.ABANDONED
    assert run["results"][0]["next_retry_at"] is None

    clock.advance(days=1)
    run = (await client.post("/webhooks/retry", json={"retry_all": True})).json()
    assert run["attempted"] == 0

    listing = (await client.get("/webhooks/retry")).json()
    assert [f["id"] for f in listing["abandoned"]] == [failure_id]
    assert listing["ready"] == [] and listing["awaiting"] == []

    started = await _deliver(client, tracker_event("evt_s1", "request.started", "REQ-9"))
    assert started.status_code == 200

    run = (await client.post("/webhooks/retry", json={"failure_id": failure_id})).json()
    assert run["resolved"] == 1
    assert run["results"][0]["status"] == FailureStatus.RESOLVED

    status = (await client.get("/sla/REQ-9")).json()
    assert status["status"] == "paused"

    redelivery = await _deliver(client, tracker_event("evt_p1", "request.paused", "REQ-9"))
    assert redelivery.status_code == 200
    assert redelivery.json()["processed"] is False


async def test_intermediate_retry_is_listed_as_retrying(client, clock, failure_id) -> None:
    clock.advance(minutes=5)
    await client.post("/webhooks/retry", json={"retry_all": True})

    listing = (await client.get("/webhooks/retry")).json()
    assert listing["total"] == 1
    entry = listing["awaiting"][0]
    assert entry["status"] == FailureStatus.RETRYING
    assert entry["retry_count"] == 1
    assert entry["last_retry_at"] is not None


async def test_retry_resolves_once_dependency_arrives(client, clock, failure_id) -> None:
    await _deliver(client, tracker_event("evt_s1", "request.started", "REQ-9"))
    clock.advance(minutes=5)

    run = (await client.post("/webhooks/retry", json={"retry_all": True})).json()
    assert run["attempted"] == 1
    assert run["resolved"] == 1
    assert (await client.get("/webhooks/retry")).json()["total"] == 0


async def test_retry_of_already_processed_event_resolves_without_rerun(client, session, failure_id) -> None:
    await session.execute(
        update(WebhookEventModel)
        .where(WebhookEventModel.external_event_id == "evt_p1")
        .values(processed=True)
    )
    await session.commit()

    run = (await client.post("/webhooks/retry", json={"failure_id": failure_id})).json()
    assert run["results"][0]["outcome"] == "resolved"
    assert run["results"][0]["message"] == "Event already processed"


async def test_manual_resolve(client, failure_id) -> None:
    response = await client.delete("/webhooks/retry", params={"id": failure_id, "notes": "handled by hand"})
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == FailureStatus.RESOLVED
    assert body["resolution_notes"] == "handled by hand"

    again = await client.delete("/webhooks/retry", params={"id": failure_id})
    assert again.status_code == 200
    assert again.json()["resolution_notes"] == "handled by hand"

    retry = await client.post("/webhooks/retry", json={"failure_id": failure_id})
    assert retry.status_code == 409


async def test_retry_requires_target(client) -> None:
    response = await client.post("/webhooks/retry", json={})
    assert response.status_code == 400


async def test_unknown_failure_is_not_found(client) -> None:
    assert (await client.post("/webhooks/retry", json={"failure_id": str(uuid4())})).status_code == 404
    assert (await client.post("/webhooks/retry", json={"failure_id": "not-a-uuid"})).status_code == 404
    assert (await client.delete("/webhooks/retry", params={"id": str(uuid4())})).status_code == 404


async def test_cleanup_dry_run_counts_without_deleting(client, clock, session) -> None:
    await _deliver(client, tracker_event("evt_s1", "request.started", "REQ-1"))
    response = await _deliver(client, tracker_event("evt_p1", "request.paused", "REQ-9"))
    await client.delete("/webhooks/retry", params={"id": response.json()["failure_id"]})

    clock.advance(days=91)
    dry = (await client.post("/webhooks/cleanup", params={"dry_run": True})).json()
    assert dry == {
        "dry_run": True,
        "event_age_days": 30,
        "failure_age_days": 90,
        "events_deleted": 1,
        "failures_deleted": 1,
    }
    real = (await client.post("/webhooks/cleanup")).json()
    assert real["events_deleted"] == 1
    assert real["failures_deleted"] == 1

    remaining = (await session.execute(select(WebhookEventModel.external_event_id))).scalars().all()
    assert remaining == ["evt_p1"]


async def test_cleanup_keeps_recent_and_open_entries(client, clock, failure_id) -> None:
    await _deliver(client, tracker_event("evt_s1", "request.started", "REQ-1"))
    clock.advance(days=10)

    result = (await client.post("/webhooks/cleanup", params={"event_age": 30, "failure_age": 1})).json()
    assert result["events_deleted"] == 0
    assert result["failures_deleted"] == 0
    assert (await client.get("/webhooks/retry")).json()["total"] == 1


async def test_concurrent_claim_loses_compare_and_swap(session, failure_id, clock) -> None:
    ledger = SQLAlchemyFailureLedger(session)
    record = await ledger.get(failure_id)
    stale = await ledger.get(failure_id)

    assert await ledger.claim(record, clock() + timedelta(minutes=5), 120) is not None
    assert await ledger.claim(stale, clock() + timedelta(minutes=5), 120) is None

    status = (await session.execute(select(WebhookFailureModel.status))).scalar_one()
    assert status == FailureStatus.RETRYING


async def test_batch_replays_events_for_same_subject_in_order(client, clock) -> None:
    await _deliver(client, tracker_event("evt_p1", "request.paused", "REQ-7"))
    clock.advance(minutes=1)
    await _deliver(client, tracker_event("evt_r1", "request.resumed", "REQ-7"))
    await _deliver(client, tracker_event("evt_s1", "request.started", "REQ-7"))

    clock.advance(minutes=10)
    run = (await client.post("/webhooks/retry", json={"retry_all": True})).json()
    assert [r["external_event_id"] for r in run["results"]] == ["evt_p1", "evt_r1"]
    assert run["resolved"] == 2

    status = (await client.get("/sla/REQ-7")).json()
    assert status["status"] == "active"
