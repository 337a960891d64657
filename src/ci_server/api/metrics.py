from __future__ import annotations

from fastapi import APIRouter, Response

from ci_server.observability.metrics import render_prometheus

router = APIRouter(tags=["metrics"])


@router.get("/metrics")
async def metrics() -> Response:
    """Webhook, build and status-post counters in Prometheus text format."""
    payload, content_type = render_prometheus()
    return Response(content=payload, media_type=content_type)
