"""
Webhook Domain Layer
=====================

Pure business logic for webhook ingestion, no infrastructure dependencies.
"""

from designdesk.webhooks.domain.entities import (
    InboundEvent,
    HandlerResult,
    RetryPolicy,
    FailureRecord,
    Subscription,
)

__all__ = [
    "InboundEvent",
    "HandlerResult",
    "RetryPolicy",
    "FailureRecord",
    "Subscription",
]
