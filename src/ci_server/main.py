"""FastAPI application entry point.

Wires the build ledger, repository manager and orchestrator together and
exposes the webhook and build history routes.

Run with: uvicorn ci_server.main:app --port 8007
"""
import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator

from fastapi import FastAPI

from ci_server import __version__
from ci_server.api.builds import router as builds_router
from ci_server.api.health import router as health_router
from ci_server.api.metrics import router as metrics_router
from ci_server.api.webhooks.github import router as github_router
from ci_server.config import Settings, get_settings
from ci_server.core.logging import setup_logging
from ci_server.observability.tracing import init_tracing
from ci_server.pipeline.orchestrator import BuildOrchestrator, OrchestratorConfig
from ci_server.sandbox.repo_manager import RepoManager
from ci_server.services.build_ledger import BuildLedger

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan manager for startup/shutdown events."""
    setup_logging()
    init_tracing(service_name="ci-server")
    settings = get_settings()
    logger.info(
        "CI server starting",
        extra={
            "version": __version__,
            "environment": settings.environment,
            "signature_checking": bool(settings.github_webhook_secret),
            "status_reporting": bool(settings.github_token),
        },
    )

    yield

    logger.info("CI server shutting down")
    status_client = app.state.orchestrator.status_client
    if status_client is not None:
        status_client.close()


def build_orchestrator(settings: Settings) -> BuildOrchestrator:
    """Assemble the orchestrator and its collaborators from settings."""
    return BuildOrchestrator(
        config=OrchestratorConfig.from_settings(settings),
        ledger=BuildLedger(Path(settings.ledger_dir)),
        repo_manager=RepoManager(
            workspace_root=Path(settings.workspace_root),
            wrapper_name=settings.build_wrapper,
            windows_wrapper_name=settings.build_wrapper_windows,
        ),
    )


def create_app(orchestrator: BuildOrchestrator | None = None) -> FastAPI:
    """
    Application factory for creating the FastAPI app.

    Args:
        orchestrator: Pre-built orchestrator (assembled from settings if omitted)

    Returns:
        Configured FastAPI application
    """
    settings = get_settings()
    if settings.is_production and not settings.github_webhook_secret:
        logger.warning("Webhook secret not configured in production; signatures are not checked")

    app = FastAPI(
        title="CI Server",
        description="Webhook-driven build and test server",
        version=__version__,
        docs_url="/docs" if not settings.is_production else None,
        redoc_url=None,
        openapi_url="/openapi.json" if not settings.is_production else None,
        lifespan=lifespan,
    )

    orchestrator = orchestrator or build_orchestrator(settings)
    app.state.orchestrator = orchestrator
    app.state.ledger = orchestrator.ledger

    app.include_router(health_router)
    app.include_router(metrics_router)
    app.include_router(github_router)
    app.include_router(builds_router)

    @app.get("/")
    async def root() -> dict:
        """Root endpoint with server info."""
        return {
            "name": "CI Server",
            "message": "CI server running",
            "version": __version__,
            "builds": "/builds",
        }

    return app


app = create_app()
