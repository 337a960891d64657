"""Test doubles for the pipeline's collaborators."""

from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from ci_server.sandbox.repo_manager import RepoManager
from ci_server.schemas.builds import CommandResult, CommitState

BUILD_DATE = datetime(2026, 2, 12, 0, 0, tzinfo=timezone.utc)


class FakeRepoManager(RepoManager):
    """RepoManager that records calls instead of running git and gradle."""

    def __init__(self, workspace_root: Path):
        super().__init__(workspace_root=workspace_root)
        self.calls: list[tuple[str, Any]] = []
        self.sync_result = CommandResult(success=True, output="synced\n", command="git clone")
        self.build_result = CommandResult(
            success=True, output="BUILD SUCCESSFUL\n", command="gradlew build"
        )
        self.test_result = CommandResult(
            success=True, output="tests passed\n", command="gradlew test"
        )
        self.build_error: Exception | None = None

    def sync_repository(
        self,
        should_clone: bool,
        source_url: str,
        local_path: Path,
        branch: str,
    ) -> CommandResult:
        self.calls.append(("sync", (should_clone, source_url, local_path, branch)))
        return self.sync_result

    def build(self, local_path: Path) -> CommandResult:
        self.calls.append(("build", local_path))
        if self.build_error is not None:
            raise self.build_error
        return self.build_result

    def test(self, local_path: Path) -> CommandResult:
        self.calls.append(("test", local_path))
        return self.test_result

    @property
    def call_names(self) -> list[str]:
        return [name for name, _ in self.calls]


class FakeStatusClient:
    """Status client that records posts."""

    def __init__(self, accept: bool = True, error: Exception | None = None):
        self.accept = accept
        self.error = error
        self.posts: list[tuple[str, CommitState, str, str]] = []
        self.closed = False

    def post_status(
        self,
        target_url: str,
        state: CommitState,
        description: str,
        context: str,
    ) -> bool:
        self.posts.append((target_url, state, description, context))
        if self.error is not None:
            raise self.error
        return self.accept

    def close(self) -> None:
        self.closed = True
