from __future__ import annotations

from typing import Any

from opentelemetry import metrics

from ci_server.observability.metrics import count

_meter = metrics.get_meter("ci_server")

_COUNTER_DESCRIPTIONS = {
    "webhook_received": "Webhook deliveries handed to the orchestrator",
    "webhook_rejected": "Deliveries refused for a bad or missing signature",
    "webhook_ignored": "Deliveries that were not usable push events",
    "builds_completed": "Build records written to the ledger",
    "status_post_failed": "Commit status posts GitHub did not accept",
}


def _counter(name: str, description: str):
    try:
        return _meter.create_counter(f"ci_server_{name}_total", description=description)
    except Exception:
        return None


_COUNTERS = {name: _counter(name, desc) for name, desc in _COUNTER_DESCRIPTIONS.items()}


def inc(counter_name: str, value: int = 1, attributes: dict[str, Any] | None = None) -> None:
    """
    Count an event on the Prometheus registry served at /metrics and on the
    OpenTelemetry meter (exported over OTLP when a meter provider is set up).
    """
    attrs = attributes or {}
    count(counter_name, value, attrs)

    counter = _COUNTERS.get(counter_name)
    if counter is None:
        return
    try:
        counter.add(value, attrs)
    except Exception:
        return
