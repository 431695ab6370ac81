"""
SLA Infrastructure Repositories
=================================

Concrete implementations of repository interfaces using SQLAlchemy.

This layer contains the data access logic - how we store and retrieve
entities from the database.
"""

from pathlib import Path
from typing import List, Optional, Union
from uuid import UUID

import yaml
from pydantic import ValidationError
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from designdesk.core.exceptions import (
    ConcurrentModificationException,
    ConfigurationException,
    RepositoryException,
)
from designdesk.shared.infrastructure.logging import get_logger
from designdesk.sla.application.services import ISLARecordRepository, ISLAConfigProvider
from designdesk.sla.domain import SLARecord, SLAConfig, SLAEvaluation
from designdesk.sla.infrastructure.models import SLARecordModel

logger = get_logger(__name__)


def _to_uuid(record_id: str) -> Optional[UUID]:
    try:
        return UUID(record_id)
    except (ValueError, TypeError):
        return None


def _to_domain(model: SLARecordModel) -> SLARecord:
    return SLARecord(
        id=str(model.id),
        subject_id=model.subject_id,
        started_at=model.started_at,
        target_hours=model.target_hours,
        status=model.status,
        paused_at=model.paused_at,
        pause_duration_hours=model.pause_duration_hours,
        completed_at=model.completed_at,
        pause_reason=model.pause_reason,
        plan=model.plan,
        last_notified_level=model.last_notified_level,
        version=model.version,
        created_at=model.created_at,
        updated_at=model.updated_at,
    )


class SQLAlchemySLARecordRepository(ISLARecordRepository):
    """
    SQLAlchemy implementation of SLA record repository.

    Transitions are written with ``UPDATE ... WHERE id = ? AND version = ?``
    so two callers racing on the same record cannot both win.
    Writes bypass the identity map, so reads use ``populate_existing``.
    """

    def __init__(self, session: AsyncSession):
        self._session = session

    async def get_by_id(self, record_id: str) -> Optional[SLARecord]:
        """Get record by internal ID."""
        record_uuid = _to_uuid(record_id)
        if record_uuid is None:
            return None

        stmt = (
            select(SLARecordModel)
            .where(SLARecordModel.id == record_uuid)
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(stmt)
        model = result.scalar_one_or_none()
        return _to_domain(model) if model else None

    async def get_latest_for_subject(self, subject_id: str) -> Optional[SLARecord]:
        """Get the most recently started record for a subject."""
        stmt = (
            select(SLARecordModel)
            .where(SLARecordModel.subject_id == subject_id)
            .order_by(SLARecordModel.started_at.desc(), SLARecordModel.created_at.desc())
            .limit(1)
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(stmt)
        model = result.scalar_one_or_none()
        return _to_domain(model) if model else None

    async def add(self, record: SLARecord) -> SLARecord:
        """Persist a new record."""
        model = SLARecordModel(
            id=UUID(record.id),
            subject_id=record.subject_id,
            started_at=record.started_at,
            target_hours=record.target_hours,
            status=record.status,
            paused_at=record.paused_at,
            pause_duration_hours=record.pause_duration_hours,
            completed_at=record.completed_at,
            pause_reason=record.pause_reason,
            plan=record.plan,
            last_notified_level=record.last_notified_level,
            version=record.version,
            created_at=record.created_at or record.started_at,
            updated_at=record.updated_at or record.started_at,
        )

        self._session.add(model)
        await self._session.flush()

        return record

    async def save(self, record: SLARecord) -> SLARecord:
        """Persist a transition guarded by the record's version."""
        record_uuid = _to_uuid(record.id)
        if record_uuid is None:
            raise RepositoryException(f"Invalid SLA record ID: {record.id}")

        stmt = (
            update(SLARecordModel)
            .where(
                SLARecordModel.id == record_uuid,
                SLARecordModel.version == record.version,
            )
            .values(
                status=record.status,
                paused_at=record.paused_at,
                pause_duration_hours=record.pause_duration_hours,
                completed_at=record.completed_at,
                pause_reason=record.pause_reason,
                version=record.version + 1,
                updated_at=record.updated_at,
            )
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)

        if result.rowcount != 1:
            raise ConcurrentModificationException("SLA record", record.id)

        record.version += 1
        return record

    async def list(self, statuses: Optional[List[str]] = None) -> List[SLARecord]:
        """List records, optionally filtered by status."""
        stmt = select(SLARecordModel).execution_options(populate_existing=True)
        if statuses:
            stmt = stmt.where(SLARecordModel.status.in_(statuses))
        stmt = stmt.order_by(SLARecordModel.started_at.asc())

        result = await self._session.execute(stmt)
        return [_to_domain(model) for model in result.scalars().all()]

    async def update_cache(self, record_id: str, evaluation: SLAEvaluation) -> None:
        """Store derived fields; does not touch the version."""
        stmt = (
            update(SLARecordModel)
            .where(SLARecordModel.id == UUID(record_id))
            .values(
                business_hours_elapsed=evaluation.business_hours_elapsed,
                hours_remaining=evaluation.hours_remaining,
                warning_level=evaluation.warning_level,
            )
            .execution_options(synchronize_session=False)
        )
        await self._session.execute(stmt)

    async def mark_notified(self, record_id: str, level: str) -> None:
        """Remember the highest warning level already announced."""
        stmt = (
            update(SLARecordModel)
            .where(SLARecordModel.id == UUID(record_id))
            .values(last_notified_level=level)
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        if result.rowcount != 1:
            raise RepositoryException(f"SLA record {record_id} not found")


class YAMLSLAConfigProvider(ISLAConfigProvider):
    """
    SLA configuration provider that loads from YAML.

    A missing file yields the defaults (Mon-Fri 9-17 America/New_York,
    48h target, 12h yellow / 0h red). ``default_target_hours`` fills in the
    target when the file does not set one.
    """

    def __init__(
        self,
        config_path: Union[str, Path],
        default_target_hours: Optional[float] = None
    ):
        self._config_path = Path(config_path)
        self._default_target_hours = default_target_hours
        self._config: Optional[SLAConfig] = None
        self._load_config()

    def _load_config(self) -> None:
        """Load configuration from YAML file."""
        if not self._config_path.exists():
            logger.warning(f"SLA config file not found: {self._config_path}, using defaults")
            data = {}
        else:
            with open(self._config_path, "r") as f:
                data = yaml.safe_load(f) or {}

        if self._default_target_hours is not None:
            data.setdefault("default_target_hours", self._default_target_hours)

        try:
            self._config = SLAConfig(**data)
        except ValidationError as e:
            raise ConfigurationException(
                f"Invalid SLA configuration in {self._config_path}",
                {"errors": e.errors(include_url=False, include_context=False)}
            ) from e

        logger.info(
            "SLA configuration loaded",
            extra={"path": str(self._config_path), "plans": list(self._config.plans)}
        )

    def get_config(self) -> SLAConfig:
        """Get current SLA configuration."""
        return self._config


class StaticSLAConfigProvider(ISLAConfigProvider):
    """Config provider wrapping an in-memory ``SLAConfig``."""

    def __init__(self, config: Optional[SLAConfig] = None):
        self._config = config or SLAConfig()

    def get_config(self) -> SLAConfig:
        return self._config
