"""Health check endpoint for monitoring and load balancer probes."""
from typing import Literal

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from ci_server.api.dependencies import get_orchestrator
from ci_server.pipeline.orchestrator import BuildOrchestrator

router = APIRouter(tags=["health"])


class HealthStatus(BaseModel):
    """Health check response."""

    status: Literal["healthy"]
    version: str
    signature_checking: bool
    status_reporting: bool


@router.get("/health", response_model=HealthStatus)
async def health_check(
    orchestrator: BuildOrchestrator = Depends(get_orchestrator),
) -> HealthStatus:
    """
    Liveness probe.

    Also tells whether webhook signatures are checked and whether commit
    statuses are posted back to GitHub.
    """
    from ci_server import __version__

    return HealthStatus(
        status="healthy",
        version=__version__,
        signature_checking=bool(orchestrator.config.webhook_secret),
        status_reporting=orchestrator.status_client is not None,
    )
