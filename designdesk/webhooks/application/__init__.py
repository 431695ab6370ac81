"""
Webhook Application Layer
==========================

Contains:
- Processor: handler registry and timeout-bounded dispatch
- Handlers: billing and request-tracker event handlers
- Services: ingestion and dead-letter retry orchestration
- DTOs: data transfer objects for API serialization
"""

from designdesk.webhooks.application.processor import HandlerRegistry, EventProcessor
from designdesk.webhooks.application.services import (
    WebhookIngestionService,
    RetryScheduler,
    IngestionResult,
    RetryOutcome,
    IEventLedger,
    IFailureLedger,
    ISubscriptionRepository,
)
from designdesk.webhooks.application.handlers import HandlerContext, build_default_registry
from designdesk.webhooks.application.dto import (
    RetryRequest,
    WebhookReceipt,
    FailureResponse,
    FailureListResponse,
    RetryOutcomeResponse,
    RetryRunResponse,
    CleanupResponse,
)

__all__ = [
    # Processing
    "HandlerRegistry",
    "EventProcessor",
    "HandlerContext",
    "build_default_registry",
    # Services
    "WebhookIngestionService",
    "RetryScheduler",
    "IngestionResult",
    "RetryOutcome",
    # Repository Interfaces
    "IEventLedger",
    "IFailureLedger",
    "ISubscriptionRepository",
    # DTOs
    "RetryRequest",
    "WebhookReceipt",
    "FailureResponse",
    "FailureListResponse",
    "RetryOutcomeResponse",
    "RetryRunResponse",
    "CleanupResponse",
]
