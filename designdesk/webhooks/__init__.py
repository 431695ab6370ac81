"""
Webhook Ingestion Module
========================

Bounded Context for reliable processing of externally delivered events.

Responsibilities:
- Authenticate deliveries per provider (HMAC signatures, replay window)
- Process each provider event at most once per success (idempotency ledger)
- Dispatch events to registered handlers with a timeout
- Record failures and re-drive them with exponential backoff
"""

__version__ = "1.0.0"
