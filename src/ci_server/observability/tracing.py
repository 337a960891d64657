from __future__ import annotations

import os
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from opentelemetry import metrics, trace
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import MetricReader, PeriodicExportingMetricReader
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.trace import Span, Status, StatusCode

from ci_server.core.logging import build_id_ctx

_INITIALIZED = False


def init_tracing(*, service_name: str) -> None:
    """
    Install the tracer and meter providers once.

    Spans and the ci_server_* counters are exported over OTLP/HTTP when
    OTEL_EXPORTER_OTLP_ENDPOINT is set; /metrics serves the counters either way.
    """
    global _INITIALIZED
    if _INITIALIZED:
        return

    resource = Resource.create({"service.name": service_name})
    provider = TracerProvider(resource=resource)
    readers: list[MetricReader] = []

    endpoint = os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT", "").strip().rstrip("/")
    if endpoint:
        try:
            from opentelemetry.exporter.otlp.proto.http.metric_exporter import (
                OTLPMetricExporter,
            )
            from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
        except ImportError:
            pass
        else:
            provider.add_span_processor(
                BatchSpanProcessor(OTLPSpanExporter(endpoint=f"{endpoint}/v1/traces"))
            )
            readers.append(
                PeriodicExportingMetricReader(
                    OTLPMetricExporter(endpoint=f"{endpoint}/v1/metrics")
                )
            )

    trace.set_tracer_provider(provider)
    metrics.set_meter_provider(MeterProvider(resource=resource, metric_readers=readers))
    _INITIALIZED = True


def get_trace_ids() -> tuple[str | None, str | None]:
    span = trace.get_current_span()
    if span is None:
        return None, None
    ctx = span.get_span_context()
    if not ctx or not ctx.is_valid:
        return None, None
    return f"{ctx.trace_id:032x}", f"{ctx.span_id:016x}"


@contextmanager
def start_span(
    name: str,
    *,
    attributes: dict[str, Any] | None = None,
) -> Iterator[Span]:
    """
    Open a span for one pipeline step.

    The current build id is attached as ``ci.build_id``; a failed
    ``CommandResult`` can be flagged by the caller through ``mark_failed``.
    """
    tracer = trace.get_tracer("ci_server")
    with tracer.start_as_current_span(f"ci.{name}") as span:
        build_id = build_id_ctx.get()
        if build_id:
            span.set_attribute("ci.build_id", build_id)
        if attributes:
            for k, v in attributes.items():
                if v is None:
                    continue
                span.set_attribute(f"ci.{k}", v)
        yield span


def mark_failed(span: Span, description: str) -> None:
    span.set_status(Status(StatusCode.ERROR, description))
