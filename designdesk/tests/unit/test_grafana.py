from __future__ import annotations

from designdesk.shared.infrastructure import grafana
from designdesk.shared.infrastructure.grafana import (
    GrafanaOTLPExporter,
    get_grafana_exporter,
    init_grafana_exporter,
)


def _resource_labels(payload: dict) -> dict:
    attributes = payload["resourceMetrics"][0]["resource"]["attributes"]
    return {a["key"]: a["value"]["stringValue"] for a in attributes}


def test_payload_labels_come_from_injected_settings(settings) -> None:
    settings.app_name = "designdesk-staging"
    settings.app_version = "2.3.4"
    exporter = GrafanaOTLPExporter("https://otlp.example", "key", "42", settings=settings)

    payload = exporter._build_payload({"webhook_events_total": 1, "latency_ms": 1.5}, {"operation": "x"})

    assert _resource_labels(payload) == {
        "service.name": "designdesk-staging",
        "service.version": "2.3.4",
        "deployment.environment": "test",
    }
    points = [m["gauge"]["dataPoints"][0] for m in payload["resourceMetrics"][0]["scopeMetrics"][0]["metrics"]]
    assert points[0]["asInt"] == 1
    assert points[1]["asDouble"] == 1.5


def test_init_replaces_global_exporter(settings, monkeypatch) -> None:
    monkeypatch.setattr(grafana, "_grafana_exporter", None)
    settings.grafana_host = "https://otlp.example/otlp/v1/metrics"
    settings.grafana_api_key = "key"
    settings.grafana_instance_id = "42"

    exporter = init_grafana_exporter(settings)

    assert exporter.is_enabled()
    assert get_grafana_exporter() is exporter
    assert exporter._url == "https://otlp.example/otlp/v1/metrics"


async def test_unconfigured_exporter_skips_export(settings) -> None:
    exporter = GrafanaOTLPExporter(settings=settings)

    assert not exporter.is_enabled()
    assert await exporter.export_counters({"sla_records_evaluated": 3}, "sla_notify") is False
