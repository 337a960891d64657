"""Test configuration and fixtures."""

import json
from collections.abc import Callable, Generator, Sequence
from pathlib import Path
from typing import Any

import pytest
from ci_server.config import get_settings
from ci_server.main import create_app
from ci_server.pipeline.orchestrator import BuildOrchestrator, OrchestratorConfig
from ci_server.services.build_ledger import BuildLedger
from fastapi.testclient import TestClient
from fakes import BUILD_DATE, FakeRepoManager, FakeStatusClient


@pytest.fixture
def push_payload() -> dict[str, Any]:
    """Minimal GitHub push payload."""
    return {
        "repository": {
            "clone_url": "https://x/y.git",
            "full_name": "a/b",
            "statuses_url": "https://api/x/statuses/{sha}",
        },
        "ref": "refs/heads/main",
        "after": "deadbeef",
    }


@pytest.fixture
def push_body(push_payload: dict[str, Any]) -> bytes:
    return json.dumps(push_payload).encode()


@pytest.fixture
def ledger(tmp_path: Path) -> BuildLedger:
    return BuildLedger(tmp_path / "repositories")


@pytest.fixture
def repo_manager(tmp_path: Path) -> FakeRepoManager:
    return FakeRepoManager(tmp_path / "workspaces")


@pytest.fixture
def status_client() -> FakeStatusClient:
    return FakeStatusClient()


@pytest.fixture
def make_orchestrator(
    ledger: BuildLedger,
    repo_manager: FakeRepoManager,
    status_client: FakeStatusClient,
) -> Callable[..., BuildOrchestrator]:
    """Build an orchestrator around the fake collaborators."""

    def _make(
        webhook_secret: str = "",
        status: FakeStatusClient | None = None,
        ids: Sequence[str] = ("build-1", "build-2", "build-3"),
    ) -> BuildOrchestrator:
        id_iter = iter(ids)
        return BuildOrchestrator(
            config=OrchestratorConfig(webhook_secret=webhook_secret, github_token="token"),
            ledger=ledger,
            repo_manager=repo_manager,
            status_client=status or status_client,
            clock=lambda: BUILD_DATE,
            id_factory=lambda: next(id_iter),
        )

    return _make


@pytest.fixture
def client(
    monkeypatch: pytest.MonkeyPatch,
    make_orchestrator: Callable[..., BuildOrchestrator],
) -> Generator[TestClient, None, None]:
    """Create test client for API tests (no webhook secret)."""
    monkeypatch.setenv("GITHUB_WEBHOOK_SECRET", "")
    monkeypatch.setenv("LOG_FORMAT", "text")
    get_settings.cache_clear()
    app = create_app(orchestrator=make_orchestrator())
    with TestClient(app) as c:
        yield c
    get_settings.cache_clear()
