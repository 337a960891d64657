"""FastAPI dependencies exposing the application's shared components."""

from fastapi import Request

from ci_server.pipeline.orchestrator import BuildOrchestrator
from ci_server.services.build_ledger import BuildLedger


def get_orchestrator(request: Request) -> BuildOrchestrator:
    return request.app.state.orchestrator


def get_ledger(request: Request) -> BuildLedger:
    return request.app.state.ledger
