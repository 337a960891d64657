from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from prometheus_client import CONTENT_TYPE_LATEST, CollectorRegistry, Counter
from prometheus_client.exposition import generate_latest


@dataclass(frozen=True)
class PrometheusMetrics:
    registry: CollectorRegistry
    webhook_received: Counter
    webhook_rejected: Counter
    webhook_ignored: Counter
    builds_completed: Counter
    status_post_failed: Counter


_REGISTRY = CollectorRegistry(auto_describe=True)

METRICS = PrometheusMetrics(
    registry=_REGISTRY,
    webhook_received=Counter(
        "ci_server_webhook_received",
        "Webhook deliveries handed to the orchestrator",
        registry=_REGISTRY,
    ),
    webhook_rejected=Counter(
        "ci_server_webhook_rejected",
        "Deliveries refused for a bad or missing signature",
        registry=_REGISTRY,
    ),
    webhook_ignored=Counter(
        "ci_server_webhook_ignored",
        "Deliveries that were not usable push events",
        registry=_REGISTRY,
    ),
    builds_completed=Counter(
        "ci_server_builds_completed",
        "Build records written to the ledger by status",
        labelnames=("status",),
        registry=_REGISTRY,
    ),
    status_post_failed=Counter(
        "ci_server_status_post_failed",
        "Commit status posts GitHub did not accept by state",
        labelnames=("state",),
        registry=_REGISTRY,
    ),
)


_LABELNAMES: dict[str, tuple[str, ...]] = {
    "builds_completed": ("status",),
    "status_post_failed": ("state",),
}


def count(name: str, value: int = 1, attributes: dict[str, Any] | None = None) -> None:
    counter = getattr(METRICS, name, None)
    if not isinstance(counter, Counter):
        return
    labelnames = _LABELNAMES.get(name)
    if labelnames:
        attrs = attributes or {}
        counter.labels(**{k: str(attrs.get(k, "")) for k in labelnames}).inc(value)
    else:
        counter.inc(value)


def render_prometheus() -> tuple[bytes, str]:
    return generate_latest(METRICS.registry), CONTENT_TYPE_LATEST
