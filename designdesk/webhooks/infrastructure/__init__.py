"""
Webhook Infrastructure Layer
=============================

Infrastructure implementations for webhook ingestion:
- Models: SQLAlchemy ORM models
- Repositories: idempotency ledger, failure ledger, subscriptions
- Signatures: HMAC verification of raw deliveries
"""

from designdesk.webhooks.infrastructure.models import (
    WebhookEventModel,
    WebhookFailureModel,
    SubscriptionModel,
)
from designdesk.webhooks.infrastructure.repositories import (
    SQLAlchemyEventLedger,
    SQLAlchemyFailureLedger,
    SQLAlchemySubscriptionRepository,
)
from designdesk.webhooks.infrastructure.signatures import SignatureVerifier, compute_signature

__all__ = [
    "WebhookEventModel",
    "WebhookFailureModel",
    "SubscriptionModel",
    "SQLAlchemyEventLedger",
    "SQLAlchemyFailureLedger",
    "SQLAlchemySubscriptionRepository",
    "SignatureVerifier",
    "compute_signature",
]
