"""
Webhook Interfaces Layer
========================

Interface adapters (controllers) for webhook ingestion.

Contains:
- Controllers: FastAPI route handlers for deliveries and the retry surface
"""

from designdesk.webhooks.interfaces.controllers import webhooks_router

__all__ = ["webhooks_router"]
