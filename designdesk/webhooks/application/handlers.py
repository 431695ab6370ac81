"""
Webhook Event Handlers
=======================

Typed async handlers for billing and request-tracker events.

Delivery is at-least-once, so every handler is an upsert keyed by the
subject it touches: running it twice leaves the same state as running it
once.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from designdesk.core.clock import Clock, utc_now
from designdesk.core.exceptions import ResourceNotFoundException, ValidationException
from designdesk.shared.infrastructure.logging import get_logger
from designdesk.sla.application import SLATracker
from designdesk.webhooks.application.processor import HandlerRegistry
from designdesk.webhooks.application.services import ISubscriptionRepository
from designdesk.webhooks.domain import HandlerResult, Subscription

logger = get_logger(__name__)


@dataclass
class HandlerContext:
    """Collaborators shared by all handlers for one request."""

    subscriptions: ISubscriptionRepository
    sla_tracker: SLATracker
    clock: Clock = utc_now


def _event_object(payload: Dict[str, Any]) -> Dict[str, Any]:
    """The event's subject: ``data.object`` for billing, ``data`` otherwise."""
    data = payload.get("data")
    if not isinstance(data, dict):
        raise ValidationException("Event payload has no 'data' object", {"event_id": payload.get("id")})
    obj = data.get("object", data)
    if not isinstance(obj, dict):
        raise ValidationException("Event 'data.object' must be an object", {"event_id": payload.get("id")})
    return obj


def _require(obj: Dict[str, Any], key: str) -> str:
    value = obj.get(key)
    if not value:
        raise ValidationException(f"Event object is missing '{key}'")
    return str(value)


def _from_unix(value: Optional[int]) -> Optional[datetime]:
    if value is None:
        return None
    return datetime.fromtimestamp(int(value), tz=timezone.utc)


# ========== Billing ==========

def _subscription_from_object(obj: Dict[str, Any], event_type: str, now: datetime) -> Subscription:
    items = (obj.get("items") or {}).get("data") or [{}]
    price = items[0].get("price") or {}
    return Subscription(
        external_subscription_id=_require(obj, "id"),
        customer_id=obj.get("customer"),
        status=obj.get("status") or "active",
        price_id=price.get("id"),
        plan_amount=price.get("unit_amount") or 0,
        plan_interval=(price.get("recurring") or {}).get("interval") or "month",
        current_period_start=_from_unix(obj.get("current_period_start")),
        current_period_end=_from_unix(obj.get("current_period_end")),
        last_event_type=event_type,
        updated_at=now,
    )


async def handle_subscription_changed(payload: Dict[str, Any], context: HandlerContext) -> HandlerResult:
    """customer.subscription.created / customer.subscription.updated"""
    subscription = _subscription_from_object(_event_object(payload), payload["type"], context.clock())
    await context.subscriptions.upsert(subscription)
    return HandlerResult.ok(f"Subscription {subscription.external_subscription_id} {subscription.status}")


async def handle_subscription_deleted(payload: Dict[str, Any], context: HandlerContext) -> HandlerResult:
    now = context.clock()
    subscription = _subscription_from_object(_event_object(payload), payload["type"], now)
    subscription.status = "canceled"
    subscription.canceled_at = now
    await context.subscriptions.upsert(subscription)
    return HandlerResult.ok(f"Subscription {subscription.external_subscription_id} canceled")


async def _set_subscription_status(payload: Dict[str, Any], context: HandlerContext, status: str) -> HandlerResult:
    invoice = _event_object(payload)
    subscription_id = invoice.get("subscription")
    if not subscription_id:
        return HandlerResult.ok("Invoice has no subscription")

    updated = await context.subscriptions.update_status(
        subscription_id, status, payload["type"], context.clock()
    )
    if not updated:
        logger.warning(
            "Invoice for unknown subscription",
            extra={"subscription_id": subscription_id, "event_type": payload["type"]}
        )
        return HandlerResult.ok(f"Subscription {subscription_id} not tracked")
    return HandlerResult.ok(f"Subscription {subscription_id} {status}")


async def handle_payment_succeeded(payload: Dict[str, Any], context: HandlerContext) -> HandlerResult:
    return await _set_subscription_status(payload, context, "active")


async def handle_payment_failed(payload: Dict[str, Any], context: HandlerContext) -> HandlerResult:
    return await _set_subscription_status(payload, context, "past_due")


# ========== Request tracker (SLA clock) ==========

async def handle_request_started(payload: Dict[str, Any], context: HandlerContext) -> HandlerResult:
    obj = _event_object(payload)
    subject_id = _require(obj, "subject_id")

    if await context.sla_tracker.get_open_record(subject_id) is not None:
        return HandlerResult.ok(f"SLA already running for {subject_id}")

    target_hours = obj.get("target_hours")
    await context.sla_tracker.start(
        subject_id,
        float(target_hours) if target_hours is not None else None,
        obj.get("plan"),
    )
    return HandlerResult.ok(f"SLA started for {subject_id}")


async def _open_record_or_fail(context: HandlerContext, subject_id: str):
    record = await context.sla_tracker.get_open_record(subject_id)
    if record is None:
        # The start event may not have arrived yet; let the retry scheduler re-drive
        raise ResourceNotFoundException("Open SLA record", subject_id)
    return record


async def handle_request_paused(payload: Dict[str, Any], context: HandlerContext) -> HandlerResult:
    obj = _event_object(payload)
    subject_id = _require(obj, "subject_id")
    record = await _open_record_or_fail(context, subject_id)

    if record.is_paused:
        return HandlerResult.ok(f"SLA already paused for {subject_id}")
    await context.sla_tracker.pause(subject_id, obj.get("reason"))
    return HandlerResult.ok(f"SLA paused for {subject_id}")


async def handle_request_resumed(payload: Dict[str, Any], context: HandlerContext) -> HandlerResult:
    subject_id = _require(_event_object(payload), "subject_id")
    record = await _open_record_or_fail(context, subject_id)

    if record.is_active:
        return HandlerResult.ok(f"SLA already running for {subject_id}")
    await context.sla_tracker.resume(subject_id)
    return HandlerResult.ok(f"SLA resumed for {subject_id}")


async def handle_request_completed(payload: Dict[str, Any], context: HandlerContext) -> HandlerResult:
    subject_id = _require(_event_object(payload), "subject_id")

    if await context.sla_tracker.get_open_record(subject_id) is None:
        # Raises ResourceNotFoundException when the subject was never started
        await context.sla_tracker.evaluate_subject(subject_id)
        return HandlerResult.ok(f"SLA already completed for {subject_id}")

    await context.sla_tracker.complete(subject_id)
    return HandlerResult.ok(f"SLA completed for {subject_id}")


def build_default_registry() -> HandlerRegistry:
    """Registry with every built-in handler; fails fast on a bad registration."""
    registry = HandlerRegistry()
    registry.register("customer.subscription.created", handle_subscription_changed)
    registry.register("customer.subscription.updated", handle_subscription_changed)
    registry.register("customer.subscription.deleted", handle_subscription_deleted)
    registry.register("invoice.payment_succeeded", handle_payment_succeeded)
    registry.register("invoice.payment_failed", handle_payment_failed)
    registry.register("request.started", handle_request_started)
    registry.register("request.paused", handle_request_paused)
    registry.register("request.resumed", handle_request_resumed)
    registry.register("request.completed", handle_request_completed)
    return registry
