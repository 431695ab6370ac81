"""
Webhook Infrastructure Repositories
====================================

Concrete implementations of the webhook ledgers using SQLAlchemy.

All coordination between concurrent deliveries happens here, in the
database: conditional inserts on unique keys and compare-and-swap updates.
"""

from datetime import datetime, timedelta
from typing import List, Optional
from uuid import UUID, uuid4

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from designdesk.config import (
    ClaimOutcome,
    FailureStatus,
    RETRYABLE_FAILURE_STATUSES,
    TERMINAL_FAILURE_STATUSES,
)
from designdesk.core.exceptions import RepositoryException
from designdesk.infrastructure.database import dialect_insert
from designdesk.shared.infrastructure.logging import get_logger
from designdesk.webhooks.application.services import (
    IEventLedger,
    IFailureLedger,
    ISubscriptionRepository,
)
from designdesk.webhooks.domain import FailureRecord, InboundEvent, Subscription
from designdesk.webhooks.infrastructure.models import (
    SubscriptionModel,
    WebhookEventModel,
    WebhookFailureModel,
)

logger = get_logger(__name__)


def _to_uuid(value: str) -> Optional[UUID]:
    try:
        return UUID(value)
    except (ValueError, TypeError):
        return None


class SQLAlchemyEventLedger(IEventLedger):
    """
    Idempotency ledger on the 'webhook_events' table.

    ``claim`` first tries ``INSERT ... ON CONFLICT DO NOTHING``; if the row
    already exists and is unprocessed, it takes the lease with a conditional
    update that only succeeds when nobody holds a live lease.
    """

    def __init__(self, session: AsyncSession):
        self._session = session

    async def has_processed(self, external_event_id: str) -> bool:
        stmt = select(WebhookEventModel.processed).where(
            WebhookEventModel.external_event_id == external_event_id
        )
        result = await self._session.execute(stmt)
        return bool(result.scalar_one_or_none())

    async def claim(self, event: InboundEvent, now: datetime, lease_seconds: int) -> str:
        insert = dialect_insert(self._session)
        stmt = (
            insert(WebhookEventModel)
            .values(
                id=uuid4(),
                provider=event.provider,
                external_event_id=event.external_event_id,
                event_type=event.event_type,
                received_at=event.received_at,
                processed=False,
                claimed_at=now,
                payload=event.payload,
            )
            .on_conflict_do_nothing(index_elements=["external_event_id"])
            .returning(WebhookEventModel.id)
        )
        result = await self._session.execute(stmt)
        if result.scalar_one_or_none() is not None:
            return ClaimOutcome.ACQUIRED

        stale_before = now - timedelta(seconds=lease_seconds)
        stmt = (
            update(WebhookEventModel)
            .where(
                WebhookEventModel.external_event_id == event.external_event_id,
                WebhookEventModel.processed.is_(False),
                or_(
                    WebhookEventModel.claimed_at.is_(None),
                    WebhookEventModel.claimed_at < stale_before,
                ),
            )
            .values(claimed_at=now)
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        if result.rowcount == 1:
            return ClaimOutcome.ACQUIRED

        if await self.has_processed(event.external_event_id):
            return ClaimOutcome.ALREADY_PROCESSED
        return ClaimOutcome.IN_PROGRESS

    async def mark_processed(self, external_event_id: str, now: datetime) -> bool:
        stmt = (
            update(WebhookEventModel)
            .where(
                WebhookEventModel.external_event_id == external_event_id,
                WebhookEventModel.processed.is_(False),
            )
            .values(processed=True, processed_at=now, claimed_at=None, error_message=None)
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        return result.rowcount == 1

    async def release(self, external_event_id: str, error: Optional[str]) -> None:
        stmt = (
            update(WebhookEventModel)
            .where(
                WebhookEventModel.external_event_id == external_event_id,
                WebhookEventModel.processed.is_(False),
            )
            .values(claimed_at=None, error_message=error)
            .execution_options(synchronize_session=False)
        )
        await self._session.execute(stmt)

    async def cleanup(self, older_than: datetime, dry_run: bool = False) -> int:
        conditions = (
            WebhookEventModel.processed.is_(True),
            WebhookEventModel.received_at < older_than,
        )
        if dry_run:
            result = await self._session.execute(
                select(func.count()).select_from(WebhookEventModel).where(*conditions)
            )
            return result.scalar_one()

        result = await self._session.execute(
            delete(WebhookEventModel).where(*conditions).execution_options(synchronize_session=False)
        )
        return result.rowcount


def _failure_to_domain(model: WebhookFailureModel) -> FailureRecord:
    return FailureRecord(
        id=str(model.id),
        provider=model.provider,
        external_event_id=model.external_event_id,
        event_type=model.event_type,
        payload=model.payload,
        failure_reason=model.failure_reason,
        error_message=model.error_message,
        retry_count=model.retry_count,
        max_retries=model.max_retries,
        next_retry_at=model.next_retry_at,
        last_retry_at=model.last_retry_at,
        status=model.status,
        resolved_at=model.resolved_at,
        resolution_notes=model.resolution_notes,
        created_at=model.created_at,
        updated_at=model.updated_at,
    )


class SQLAlchemyFailureLedger(IFailureLedger):
    """
    Dead-letter ledger on the 'webhook_failures' table.

    Updates are bulk statements; reads refresh the identity map.
    """

    def __init__(self, session: AsyncSession):
        self._session = session

    async def get(self, failure_id: str) -> Optional[FailureRecord]:
        failure_uuid = _to_uuid(failure_id)
        if failure_uuid is None:
            return None

        result = await self._session.execute(
            select(WebhookFailureModel).where(WebhookFailureModel.id == failure_uuid)
            .execution_options(populate_existing=True)
        )
        model = result.scalar_one_or_none()
        return _failure_to_domain(model) if model else None

    async def get_by_event_id(self, external_event_id: str) -> Optional[FailureRecord]:
        result = await self._session.execute(
            select(WebhookFailureModel).where(
                WebhookFailureModel.external_event_id == external_event_id
            )
            .execution_options(populate_existing=True)
        )
        model = result.scalar_one_or_none()
        return _failure_to_domain(model) if model else None

    async def add(self, record: FailureRecord) -> bool:
        insert = dialect_insert(self._session)
        stmt = (
            insert(WebhookFailureModel)
            .values(
                id=UUID(record.id),
                provider=record.provider,
                external_event_id=record.external_event_id,
                event_type=record.event_type,
                payload=record.payload,
                failure_reason=record.failure_reason,
                error_message=record.error_message,
                retry_count=record.retry_count,
                max_retries=record.max_retries,
                next_retry_at=record.next_retry_at,
                status=record.status,
                created_at=record.created_at,
                updated_at=record.updated_at,
            )
            .on_conflict_do_nothing(index_elements=["external_event_id"])
            .returning(WebhookFailureModel.id)
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none() is not None

    async def save(self, record: FailureRecord) -> FailureRecord:
        failure_uuid = _to_uuid(record.id)
        if failure_uuid is None:
            raise RepositoryException(f"Invalid webhook failure ID: {record.id}")

        stmt = (
            update(WebhookFailureModel)
            .where(WebhookFailureModel.id == failure_uuid)
            .values(
                failure_reason=record.failure_reason,
                error_message=record.error_message,
                retry_count=record.retry_count,
                next_retry_at=record.next_retry_at,
                last_retry_at=record.last_retry_at,
                status=record.status,
                resolved_at=record.resolved_at,
                resolution_notes=record.resolution_notes,
                updated_at=record.updated_at,
            )
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        if result.rowcount != 1:
            raise RepositoryException(f"Webhook failure not found: {record.id}")
        return record

    async def claim(
        self,
        record: FailureRecord,
        now: datetime,
        lease_seconds: int
    ) -> Optional[FailureRecord]:
        # While claimed, next_retry_at doubles as the lease expiry
        lease_until = now + timedelta(seconds=lease_seconds)
        stmt = (
            update(WebhookFailureModel)
            .where(
                WebhookFailureModel.id == UUID(record.id),
                WebhookFailureModel.status == record.status,
                WebhookFailureModel.updated_at == record.updated_at,
            )
            .values(status=FailureStatus.RETRYING, next_retry_at=lease_until, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        if result.rowcount != 1:
            logger.info("Failure already claimed", extra={"failure_id": record.id})
            return None

        record.status = FailureStatus.RETRYING
        record.next_retry_at = lease_until
        record.updated_at = now
        return record

    async def list_ready(self, now: datetime, limit: int) -> List[FailureRecord]:
        stmt = (
            select(WebhookFailureModel)
            .where(
                WebhookFailureModel.status.in_(RETRYABLE_FAILURE_STATUSES),
                or_(
                    WebhookFailureModel.next_retry_at.is_(None),
                    WebhookFailureModel.next_retry_at <= now,
                ),
            )
            .order_by(WebhookFailureModel.created_at)
            .limit(limit)
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(stmt)
        return [_failure_to_domain(m) for m in result.scalars().all()]

    async def list_all(self, statuses: Optional[List[str]] = None) -> List[FailureRecord]:
        stmt = (
            select(WebhookFailureModel)
            .order_by(WebhookFailureModel.created_at)
            .execution_options(populate_existing=True)
        )
        if statuses:
            stmt = stmt.where(WebhookFailureModel.status.in_(statuses))
        result = await self._session.execute(stmt)
        return [_failure_to_domain(m) for m in result.scalars().all()]

    async def cleanup(self, older_than: datetime, dry_run: bool = False) -> int:
        conditions = (
            WebhookFailureModel.status.in_(TERMINAL_FAILURE_STATUSES),
            WebhookFailureModel.updated_at < older_than,
        )
        if dry_run:
            result = await self._session.execute(
                select(func.count()).select_from(WebhookFailureModel).where(*conditions)
            )
            return result.scalar_one()

        result = await self._session.execute(
            delete(WebhookFailureModel).where(*conditions).execution_options(synchronize_session=False)
        )
        return result.rowcount


def _subscription_to_domain(model: SubscriptionModel) -> Subscription:
    return Subscription(
        external_subscription_id=model.external_subscription_id,
        customer_id=model.customer_id,
        status=model.status,
        price_id=model.price_id,
        plan_amount=model.plan_amount,
        plan_interval=model.plan_interval,
        current_period_start=model.current_period_start,
        current_period_end=model.current_period_end,
        canceled_at=model.canceled_at,
        last_event_type=model.last_event_type,
        updated_at=model.updated_at,
    )


class SQLAlchemySubscriptionRepository(ISubscriptionRepository):
    """Subscriptions upserted by ``external_subscription_id``."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def get(self, external_subscription_id: str) -> Optional[Subscription]:
        result = await self._session.execute(
            select(SubscriptionModel).where(
                SubscriptionModel.external_subscription_id == external_subscription_id
            )
            .execution_options(populate_existing=True)
        )
        model = result.scalar_one_or_none()
        return _subscription_to_domain(model) if model else None

    async def upsert(self, subscription: Subscription) -> Subscription:
        values = {
            "customer_id": subscription.customer_id,
            "status": subscription.status,
            "price_id": subscription.price_id,
            "plan_amount": subscription.plan_amount,
            "plan_interval": subscription.plan_interval,
            "current_period_start": subscription.current_period_start,
            "current_period_end": subscription.current_period_end,
            "canceled_at": subscription.canceled_at,
            "last_event_type": subscription.last_event_type,
            "updated_at": subscription.updated_at,
        }
        insert = dialect_insert(self._session)
        stmt = (
            insert(SubscriptionModel)
            .values(
                id=uuid4(),
                external_subscription_id=subscription.external_subscription_id,
                created_at=subscription.updated_at,
                **values,
            )
            .on_conflict_do_update(index_elements=["external_subscription_id"], set_=values)
        )
        await self._session.execute(stmt)
        return subscription

    async def update_status(
        self,
        external_subscription_id: str,
        status: str,
        event_type: str,
        now: datetime
    ) -> bool:
        stmt = (
            update(SubscriptionModel)
            .where(SubscriptionModel.external_subscription_id == external_subscription_id)
            .values(status=status, last_event_type=event_type, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        return result.rowcount == 1
