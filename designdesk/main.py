"""
DesignDesk Core - Main Application
===================================

SLA tracking and reliable webhook ingestion for a design-request service.

Modules:
- SLA Tracking: Business-hours clocks, warnings and adherence metrics
- Webhooks: Verified, idempotent event ingestion with a retry ledger

Clean Architecture Layers:
- Interfaces: FastAPI controllers
- Application: Services and DTOs
- Domain: Entities and value objects
- Infrastructure: Database, Slack, signature verification
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

# Configuration and Core
from designdesk.config import Settings, get_settings
from designdesk.core import ApplicationException
from designdesk.core.clock import Clock, utc_now

# Infrastructure
from designdesk.infrastructure.database import Database

# SLA Module
from designdesk.sla.application import INotifier, ISLAConfigProvider
from designdesk.sla.infrastructure import SlackClient, YAMLSLAConfigProvider
from designdesk.sla.interfaces import sla_router

# Webhooks Module
from designdesk.webhooks.application import build_default_registry
from designdesk.webhooks.infrastructure import SignatureVerifier
from designdesk.webhooks.interfaces import webhooks_router

# Shared
from designdesk.shared.api.middleware import (
    CorrelationIDMiddleware,
    MetricsMiddleware,
    LoggingMiddleware,
    application_exception_handler,
    global_exception_handler,
)
from designdesk.shared.infrastructure.logging import setup_logging, get_logger
from designdesk.shared.infrastructure.grafana import init_grafana_exporter

logger = get_logger(__name__)


API_DESCRIPTION = """
## DesignDesk Core

Business-hours SLA tracking and reliable webhook ingestion.

---

### SLA Tracking Module

- `POST /sla/records` - Start an SLA clock for a subject
- `POST /sla/pause`, `POST /sla/resume`, `POST /sla/complete` - Lifecycle transitions
- `GET /sla/{subject_id}` - Business hours elapsed, remaining, warning level
- `GET /sla/metrics` - Adherence metrics
- `POST /sla/evaluate` - Notification pass (cron-triggered)

Business hours default to Mon-Fri 09:00-17:00 America/New_York. Warnings:
yellow at 12 business hours remaining, red at 0.

---

### Webhooks Module

- `POST /webhooks/{provider}` - HMAC-verified delivery, processed once
- `GET /webhooks/retry` - Failures by bucket (ready / awaiting / abandoned)
- `POST /webhooks/retry` - Retry one failure or every ready failure (cron-triggered)
- `DELETE /webhooks/retry?id=` - Resolve a failure manually
- `POST /webhooks/cleanup` - Delete old processed events and closed failures

Failed events are retried after 5, 10, 20, 40 and 80 minutes, then abandoned.
"""


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """
    Application lifespan manager.

    STARTUP:
    1. Setup structured logging
    2. Create database tables (development and test only)
    3. Initialize Grafana exporter

    SHUTDOWN:
    1. Close Slack client
    2. Dispose database connections
    """
    settings: Settings = app.state.settings

    # === STARTUP ===
    setup_logging(settings.log_level, settings.environment)
    logger.info("Starting DesignDesk Core", extra={
        "version": settings.app_version,
        "environment": settings.environment,
        "webhook_providers": app.state.signature_verifier.providers,
        "event_types": app.state.handler_registry.event_types(),
    })

    # Use migrations outside development/test
    if settings.environment in ("development", "test"):
        logger.info("Creating database tables")
        await app.state.database.create_tables()

    if not init_grafana_exporter(settings).is_enabled():
        logger.info("Grafana OTLP exporter not configured - metrics will not be exported")

    logger.info("DesignDesk Core started successfully")

    yield  # Application runs here

    # === SHUTDOWN ===
    logger.info("Shutting down DesignDesk Core")

    notifier = app.state.notifier
    if isinstance(notifier, SlackClient):
        await notifier.close()

    await app.state.database.close()

    logger.info("DesignDesk Core shutdown complete")


def create_app(
    settings: Optional[Settings] = None,
    database: Optional[Database] = None,
    clock: Optional[Clock] = None,
    notifier: Optional[INotifier] = None,
    sla_config_provider: Optional[ISLAConfigProvider] = None,
) -> FastAPI:
    """
    Build the FastAPI application.

    Collaborators are created here and stored on ``app.state`` so request
    dependencies can resolve them; tests pass their own. The handler
    registry is built eagerly so a bad registration fails at startup.
    """
    settings = settings or get_settings()
    clock = clock or utc_now

    app = FastAPI(
        title="DesignDesk Core API",
        description=API_DESCRIPTION,
        version=settings.app_version,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan
    )

    app.state.settings = settings
    app.state.clock = clock
    app.state.database = database or Database.from_settings(settings)
    app.state.sla_config_provider = sla_config_provider or YAMLSLAConfigProvider(
        settings.sla_config_path, settings.sla_default_target_hours
    )
    app.state.notifier = notifier or SlackClient.from_settings(settings)
    app.state.handler_registry = build_default_registry()
    app.state.signature_verifier = SignatureVerifier.from_settings(settings, clock)

    # === CORS Middleware ===
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # === Custom Middleware (from shared) ===
    app.add_middleware(MetricsMiddleware)
    app.add_middleware(LoggingMiddleware)
    app.add_middleware(CorrelationIDMiddleware)
    app.add_exception_handler(ApplicationException, application_exception_handler)
    app.add_exception_handler(Exception, global_exception_handler)

    # === Include Module Routers ===
    app.include_router(sla_router)
    app.include_router(webhooks_router)

    # === Health Check Endpoint ===

    @app.get("/health", tags=["Health"], responses={
        200: {
            "description": "Service is healthy",
            "content": {
                "application/json": {
                    "example": {
                        "status": "healthy",
                        "version": "1.0.0",
                        "environment": "development",
                        "checks": {
                            "sla_config": "loaded",
                            "notifier": "configured",
                            "webhook_providers": ["billing", "tracker"],
                            "event_handlers": 9
                        }
                    }
                }
            }
        }
    })
    async def health_check(request: Request):
        """
        Health check endpoint for load balancers and orchestrators.

        Reports configuration state only; it does not touch the database.
        """
        state = request.app.state
        notifier = state.notifier
        configured = getattr(notifier, "is_configured", True)
        return {
            "status": "healthy",
            "version": settings.app_version,
            "environment": settings.environment,
            "checks": {
                "sla_config": "loaded" if state.sla_config_provider.get_config() else "missing",
                "notifier": "configured" if configured else "not_configured",
                "webhook_providers": state.signature_verifier.providers,
                "event_handlers": len(state.handler_registry),
            }
        }

    @app.get("/", tags=["Root"])
    async def root():
        """Root endpoint with API information."""
        return {
            "service": "DesignDesk Core",
            "version": settings.app_version,
            "architecture": "Clean Architecture / Modular Monolith",
            "docs": "/docs",
            "health": "/health",
            "modules": {
                "sla": {
                    "prefix": "/sla",
                    "endpoints": [
                        "POST /sla/records - Start an SLA clock",
                        "POST /sla/pause - Pause a clock",
                        "POST /sla/resume - Resume a clock",
                        "POST /sla/complete - Complete a record",
                        "GET /sla/{subject_id} - Get SLA status",
                        "GET /sla/metrics - Get adherence metrics",
                        "POST /sla/evaluate - Run the notification pass"
                    ]
                },
                "webhooks": {
                    "prefix": "/webhooks",
                    "endpoints": [
                        "POST /webhooks/{provider} - Receive a delivery",
                        "GET /webhooks/retry - List failures",
                        "POST /webhooks/retry - Retry failures",
                        "DELETE /webhooks/retry - Resolve a failure",
                        "POST /webhooks/cleanup - Delete old records"
                    ]
                }
            }
        }

    return app


app = create_app()


# === Development Entry Point ===

if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "designdesk.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.environment == "development",
        log_level="info"
    )
