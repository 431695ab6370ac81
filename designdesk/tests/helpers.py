from __future__ import annotations

import copy
import json
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple
from zoneinfo import ZoneInfo

from designdesk.core.exceptions import ConcurrentModificationException, NotificationException
from designdesk.sla.application import INotifier, ISLARecordRepository
from designdesk.sla.domain import SLAEvaluation, SLARecord
from designdesk.webhooks.application import ISubscriptionRepository
from designdesk.webhooks.domain import Subscription
from designdesk.webhooks.infrastructure import compute_signature

NEW_YORK = ZoneInfo("America/New_York")

BILLING_SECRET = "whsec_billing_test"
TRACKER_SECRET = "trk_tracker_test"


def ny(year: int, month: int, day: int, hour: int = 0, minute: int = 0) -> datetime:
    # 2024-01-15 is a Monday; most tests anchor on that week.
    return datetime(year, month, day, hour, minute, tzinfo=NEW_YORK)


class MutableClock:
    """Test clock that only moves when told to."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def set(self, now: datetime) -> None:
        self.now = now

    def advance(self, **delta: float) -> datetime:
        self.now = self.now + timedelta(**delta)
        return self.now


class FakeNotifier(INotifier):
    """Records notifications instead of posting them."""

    def __init__(self, accept: bool = True, error: Optional[str] = None):
        self.accept = accept
        self.error = error
        self.sent: List[Tuple[str, str, str]] = []

    async def notify(self, notification_type: str, record: SLARecord, evaluation: SLAEvaluation) -> bool:
        if self.error:
            raise NotificationException(self.error)
        if self.accept:
            self.sent.append((notification_type, record.subject_id, evaluation.warning_level))
        return self.accept


def signed_request(
    body: Dict[str, Any],
    secret: str,
    header: str = "X-Signature",
) -> Tuple[bytes, Dict[str, str]]:
    raw = json.dumps(body).encode()
    signature = compute_signature(secret, raw)
    return raw, {header: f"sha256={signature}", "Content-Type": "application/json"}


def subscription_event(event_id: str, subscription_id: str = "sub_123", event_type: str = "customer.subscription.created", status: str = "active") -> Dict[str, Any]:
    return {
        "id": event_id,
        "type": event_type,
        "data": {
            "object": {
                "id": subscription_id,
                "customer": "cus_42",
                "status": status,
                "items": {"data": [{"price": {"id": "price_core", "unit_amount": 499500, "recurring": {"interval": "month"}}}]},
                "current_period_start": 1705330800,
                "current_period_end": 1708009200,
            }
        },
    }


def tracker_event(event_id: str, event_type: str, subject_id: str, **extra: Any) -> Dict[str, Any]:
    return {"id": event_id, "type": event_type, "data": {"subject_id": subject_id, **extra}}


class InMemorySLARecordRepository(ISLARecordRepository):
    """Dict-backed repository with the same version check as the SQL one."""

    def __init__(self) -> None:
        self.records: Dict[str, SLARecord] = {}
        self.cache: Dict[str, SLAEvaluation] = {}

    async def get_by_id(self, record_id: str) -> Optional[SLARecord]:
        record = self.records.get(record_id)
        return copy.deepcopy(record) if record else None

    async def get_latest_for_subject(self, subject_id: str) -> Optional[SLARecord]:
        matches = [r for r in self.records.values() if r.subject_id == subject_id]
        if not matches:
            return None
        return copy.deepcopy(max(matches, key=lambda r: r.started_at))

    async def add(self, record: SLARecord) -> SLARecord:
        self.records[record.id] = copy.deepcopy(record)
        return record

    async def save(self, record: SLARecord) -> SLARecord:
        if self.records[record.id].version != record.version:
            raise ConcurrentModificationException("SLA record", record.id)
        record.version += 1
        self.records[record.id] = copy.deepcopy(record)
        return record

    async def list(self, statuses: Optional[List[str]] = None) -> List[SLARecord]:
        return [
            copy.deepcopy(r) for r in self.records.values()
            if statuses is None or r.status in statuses
        ]

    async def update_cache(self, record_id: str, evaluation: SLAEvaluation) -> None:
        self.cache[record_id] = evaluation

    async def mark_notified(self, record_id: str, level: str) -> None:
        self.records[record_id].last_notified_level = level


class InMemorySubscriptionRepository(ISubscriptionRepository):
    def __init__(self) -> None:
        self.subscriptions: Dict[str, Subscription] = {}
        self.writes = 0

    async def get(self, external_subscription_id: str) -> Optional[Subscription]:
        return self.subscriptions.get(external_subscription_id)

    async def upsert(self, subscription: Subscription) -> Subscription:
        self.writes += 1
        self.subscriptions[subscription.external_subscription_id] = copy.deepcopy(subscription)
        return subscription

    async def update_status(self, external_subscription_id: str, status: str, event_type: str, now: datetime) -> bool:
        subscription = self.subscriptions.get(external_subscription_id)
        if subscription is None:
            return False
        self.writes += 1
        subscription.status = status
        subscription.last_event_type = event_type
        subscription.updated_at = now
        return True
