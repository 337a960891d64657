"""Repository manager for syncing working copies and running builds.

Handles git clone/fetch/checkout and drives the repository's build wrapper.
"""

import base64
import hashlib
import logging
import os
import threading
from collections.abc import Callable, Iterator, Sequence
from contextlib import contextmanager
from pathlib import Path

from ci_server.sandbox.command_runner import run_command
from ci_server.schemas.builds import CommandResult

logger = logging.getLogger(__name__)

CommandRunner = Callable[[Sequence[str]], CommandResult]


class RepoManager:
    """
    Manages local working copies and build/test invocations.

    Operations:
    - Map a repository to its content-addressed working directory
    - Clone or fetch, then check out the pushed branch
    - Build and test through the repository's own build wrapper
    """

    def __init__(
        self,
        workspace_root: Path,
        runner: CommandRunner = run_command,
        wrapper_name: str = "gradlew",
        windows_wrapper_name: str = "gradlew.bat",
        is_windows: bool | None = None,
    ):
        """
        Initialize repository manager.

        Args:
            workspace_root: Directory holding one working copy per repository
            runner: Command executor (run_command unless overridden in tests)
            wrapper_name: Build wrapper script on POSIX hosts
            windows_wrapper_name: Build wrapper script on Windows hosts
            is_windows: Platform override; detected from os.name when omitted
        """
        self.workspace_root = Path(workspace_root)
        self.runner = runner
        self.wrapper_name = wrapper_name
        self.windows_wrapper_name = windows_wrapper_name
        self.is_windows = os.name == "nt" if is_windows is None else is_windows

        self._locks: dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def workspace_path(self, repository_full_name: str) -> Path:
        """Filesystem-safe working directory derived from the repository name."""
        digest = hashlib.sha256(repository_full_name.encode("utf-8")).digest()
        dir_name = base64.urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")
        return self.workspace_root / dir_name

    @contextmanager
    def workspace_lock(self, local_path: Path) -> Iterator[None]:
        """Hold the per-path lock so concurrent pushes don't share a checkout."""
        key = str(Path(local_path).absolute())
        with self._locks_guard:
            lock = self._locks.setdefault(key, threading.Lock())
        with lock:
            yield

    def sync_repository(
        self,
        should_clone: bool,
        source_url: str,
        local_path: Path,
        branch: str,
    ) -> CommandResult:
        """
        Clone or fetch a repository, then check out the target branch.

        The checkout always runs, even after a failed clone/fetch, so a
        partially synced copy still ends up on a known branch. The returned
        success flag reflects the clone/fetch step only.

        Args:
            should_clone: Clone into local_path instead of fetching
            source_url: Repository clone URL
            local_path: Working copy directory
            branch: Branch to check out (tracking origin/<branch>)

        Returns:
            Combined result with both transcripts
        """
        path = str(local_path)
        if should_clone:
            self.workspace_root.mkdir(parents=True, exist_ok=True)
            sync = self.runner(["git", "clone", source_url, path])
        else:
            sync = self.runner(["git", "-C", path, "fetch"])

        checkout = self.runner(["git", "-C", path, "checkout", "-B", branch, f"origin/{branch}"])
        if not checkout.success:
            logger.warning("Branch checkout failed", extra={"branch": branch, "path": path})

        return CommandResult(
            success=sync.success,
            output=sync.transcript + checkout.transcript,
        )

    def build(self, local_path: Path) -> CommandResult:
        """Compile/assemble the project without running its tests."""
        wrapper = self._wrapper_file(local_path)
        if not wrapper.is_file():
            return self._missing_wrapper(wrapper)
        return self.runner(
            [str(wrapper.absolute()), "build", "-x", "test", "--project-dir", str(local_path)]
        )

    def test(self, local_path: Path) -> CommandResult:
        """Run the project's test suite."""
        wrapper = self._wrapper_file(local_path)
        if not wrapper.is_file():
            return self._missing_wrapper(wrapper)
        return self.runner([str(wrapper.absolute()), "test", "--project-dir", str(local_path)])

    def _wrapper_file(self, local_path: Path) -> Path:
        name = self.windows_wrapper_name if self.is_windows else self.wrapper_name
        return Path(local_path) / name

    def _missing_wrapper(self, wrapper: Path) -> CommandResult:
        logger.warning("Build wrapper missing", extra={"wrapper": str(wrapper)})
        return CommandResult.failed(f"Build wrapper not found: {wrapper}")
