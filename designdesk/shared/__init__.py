"""
Shared Kernel Module
====================

This module contains shared infrastructure used across all bounded contexts
(SLA Tracking and Webhook Ingestion).

Architecture Pattern: Modular Monolith
- Each module (sla, webhooks) is a bounded context
- Shared kernel contains only generic infrastructure

DO NOT add business logic from SLA or Webhooks to shared kernel.
"""

__version__ = "1.0.0"
