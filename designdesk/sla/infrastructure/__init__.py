"""
SLA Infrastructure Layer
=========================

Infrastructure implementations for SLA tracking:
- Models: SQLAlchemy ORM models
- Repositories: Data access layer and YAML config provider
- External: External service integrations (Slack notifier)
"""

from designdesk.sla.infrastructure.models import SLARecordModel
from designdesk.sla.infrastructure.repositories import (
    SQLAlchemySLARecordRepository,
    YAMLSLAConfigProvider,
    StaticSLAConfigProvider,
)
from designdesk.sla.infrastructure.external import SlackClient, CircuitBreaker

__all__ = [
    "SLARecordModel",
    "SQLAlchemySLARecordRepository",
    "YAMLSLAConfigProvider",
    "StaticSLAConfigProvider",
    "SlackClient",
    "CircuitBreaker",
]
