"""
Grafana OTLP Metrics Exporter
==============================

Pushes reliability counters to Grafana Cloud via OTLP.

Metrics exported:
- webhook_events_total: Inbound deliveries by provider and outcome
- webhook_handler_latency_ms: Handler execution time
- webhook_retries_total: Dead-letter re-drives by outcome
- sla_records_evaluated / sla_warnings_sent / sla_violations_sent:
  Notification pass results
"""

import base64
import time
from typing import Optional, Dict, Any, Union

import httpx

from designdesk.config import Settings, get_settings
from designdesk.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)

Number = Union[int, float]


class GrafanaOTLPExporter:
    """
    Export metrics to Grafana Cloud via OTLP HTTP endpoint.

    Uses OpenTelemetry Protocol (OTLP) format for metrics. Every metric is
    sent as a gauge data point for better Grafana compatibility.
    """

    def __init__(
        self,
        host: Optional[str] = None,
        api_key: Optional[str] = None,
        instance_id: Optional[str] = None,
        settings: Optional[Settings] = None
    ):
        """
        Initialize Grafana OTLP exporter.

        Args:
            host: Grafana OTLP gateway URL (e.g., https://otlp-gateway-prod-us-east-0.grafana.net)
            api_key: Grafana API key
            instance_id: Instance ID for authentication
            settings: Source of missing credentials and of the service labels
        """
        settings = settings or get_settings()
        self._host = host or settings.grafana_host
        self._api_key = api_key or settings.grafana_api_key
        self._instance_id = instance_id or settings.grafana_instance_id
        self._service = {
            "service.name": settings.app_name,
            "service.version": settings.app_version,
            "deployment.environment": settings.environment,
        }
        self._enabled = bool(self._host and self._api_key and self._instance_id)

        if self._enabled:
            auth_pair = f"{self._instance_id}:{self._api_key}"
            self._auth_encoded = base64.b64encode(auth_pair.encode()).decode()
            # Don't double-append the path if host already includes it
            if "/otlp/v1/metrics" not in self._host:
                self._url = f"{self._host}/otlp/v1/metrics"
            else:
                self._url = self._host
            logger.info(
                "Grafana OTLP exporter initialized",
                extra={"host": self._host, "instance_id": self._instance_id}
            )
        else:
            logger.debug(
                "Grafana OTLP exporter not configured - metrics will not be exported",
                extra={
                    "host_configured": bool(self._host),
                    "api_key_configured": bool(self._api_key),
                    "instance_id_configured": bool(self._instance_id)
                }
            )

    def is_enabled(self) -> bool:
        """Check if exporter is properly configured."""
        return self._enabled

    def _build_payload(
        self,
        values: Dict[str, Number],
        attributes: Dict[str, Any]
    ) -> Dict[str, Any]:
        timestamp_ns = int(time.time() * 1_000_000_000)
        metric_attributes = [
            {"key": key, "value": {"stringValue": str(value)}}
            for key, value in attributes.items()
        ]

        metrics = []
        for name, value in values.items():
            point = {"timeUnixNano": timestamp_ns, "attributes": metric_attributes}
            if isinstance(value, float):
                point["asDouble"] = value
            else:
                point["asInt"] = int(value)
            metrics.append({
                "name": name,
                "unit": "ms" if name.endswith("_ms") else "1",
                "gauge": {"dataPoints": [point]}
            })

        return {
            "resourceMetrics": [
                {
                    "resource": {
                        "attributes": [
                            {"key": key, "value": {"stringValue": value}}
                            for key, value in self._service.items()
                        ]
                    },
                    "scopeMetrics": [{"metrics": metrics}]
                }
            ]
        }

    async def export_counters(
        self,
        values: Dict[str, Number],
        operation: str,
        attributes: Optional[Dict[str, Any]] = None
    ) -> bool:
        """
        Export a batch of named values to Grafana.

        Args:
            values: Metric name -> value
            operation: Operation that produced the values (webhook_ingest, webhook_retry, ...)
            attributes: Additional attributes to attach to every data point

        Returns:
            True if export succeeded, False otherwise
        """
        if not self._enabled:
            logger.debug("Grafana exporter not enabled - skipping metrics export")
            return False

        payload = self._build_payload(
            values,
            {"operation": operation, "service": self._service["service.name"], **(attributes or {})}
        )
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Basic {self._auth_encoded}",
            "X-Grafana-Org-Id": str(self._instance_id)
        }

        try:
            async with httpx.AsyncClient(timeout=10.0) as client:
                response = await client.post(self._url, headers=headers, json=payload)

            if response.status_code in (200, 202):
                logger.debug(
                    "Metrics exported to Grafana",
                    extra={"operation": operation, "metrics": list(values)}
                )
                return True

            logger.warning(
                "Failed to export metrics to Grafana",
                extra={
                    "status_code": response.status_code,
                    "response": response.text[:500],
                    "url": self._url
                }
            )
            return False

        except httpx.HTTPError as e:
            logger.error(
                "Error exporting metrics to Grafana",
                extra={"error": str(e)}
            )
            return False

    async def export_webhook_outcome(
        self,
        provider: str,
        event_type: str,
        outcome: str,
        latency_ms: int
    ) -> bool:
        """Export one inbound delivery's outcome and handler latency."""
        return await self.export_counters(
            {"webhook_events_total": 1, "webhook_handler_latency_ms": latency_ms},
            operation="webhook_ingest",
            attributes={"provider": provider, "event_type": event_type, "outcome": outcome}
        )


# Global exporter instance
_grafana_exporter: Optional[GrafanaOTLPExporter] = None


def get_grafana_exporter() -> Optional[GrafanaOTLPExporter]:
    """Get or create global Grafana exporter instance."""
    global _grafana_exporter
    if _grafana_exporter is None:
        _grafana_exporter = GrafanaOTLPExporter()
    return _grafana_exporter


def init_grafana_exporter(settings: Settings) -> GrafanaOTLPExporter:
    """Initialize the global exporter from application settings."""
    global _grafana_exporter
    _grafana_exporter = GrafanaOTLPExporter(settings=settings)
    return _grafana_exporter
