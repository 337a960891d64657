"""Build pipeline orchestrator.

Drives one webhook delivery through verification, parsing, repository sync,
build, test, commit status reporting and persistence:

    RECEIVED -> VERIFYING -> PARSED -> SYNCING -> BUILDING -> TESTING
             -> REPORTING -> PERSISTED

with REJECTED (bad signature) and IGNORED (not a push event) as early exits.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING

from ci_server.core.logging import bound_build_id
from ci_server.core.security import is_valid_payload
from ci_server.observability.tracing import mark_failed, start_span
from ci_server.ops.metrics import inc
from ci_server.sandbox.repo_manager import RepoManager
from ci_server.schemas.builds import BuildRecord, CommandResult, CommitState
from ci_server.schemas.github import Ignored, PushEvent, parse_push_event
from ci_server.services.build_ledger import BuildLedger
from ci_server.services.github_status import GitHubStatusClient, resolve_status_target

if TYPE_CHECKING:
    from ci_server.config import Settings

logger = logging.getLogger(__name__)

PUSH_EVENT = "push"
SYNC_FAILED_BUILD_MESSAGE = "Build skipped: repository sync failed"
SYNC_FAILED_TEST_MESSAGE = "Tests skipped: repository sync failed"


class PipelineState(str, Enum):
    """States a webhook delivery moves through."""

    RECEIVED = "received"
    VERIFYING = "verifying"
    PARSED = "parsed"
    SYNCING = "syncing"
    BUILDING = "building"
    TESTING = "testing"
    REPORTING = "reporting"
    PERSISTED = "persisted"
    REJECTED = "rejected"
    IGNORED = "ignored"


@dataclass(frozen=True)
class OrchestratorConfig:
    """Deployment settings the orchestrator depends on.

    An empty secret disables signature checking; an empty token disables
    commit status posting.
    """

    webhook_secret: str = ""
    github_token: str = ""
    status_timeout_seconds: float = 30.0

    @classmethod
    def from_settings(cls, settings: Settings) -> OrchestratorConfig:
        return cls(
            webhook_secret=settings.github_webhook_secret,
            github_token=settings.github_token,
            status_timeout_seconds=settings.status_timeout_seconds,
        )


@dataclass(frozen=True)
class WebhookOutcome:
    """Terminal state of one delivery, plus the record when one was persisted."""

    state: PipelineState
    message: str
    record: BuildRecord | None = None


class BuildLog:
    """Accumulates step transcripts under section headers."""

    def __init__(self) -> None:
        self._sections: list[str] = []

    def add(self, title: str, result: CommandResult) -> None:
        self._sections.append(f"=== {title} ===\n{result.transcript}")

    def add_error(self, error: BaseException) -> None:
        self._sections.append(f"=== Error ===\n{type(error).__name__}: {error}\n")

    def render(self) -> str:
        return "".join(self._sections)


class BuildOrchestrator:
    """
    Runs the CI pipeline for push webhooks.

    Steps run strictly one after another on the calling thread. Build and
    test are only attempted after a successful sync. Exactly one build
    record is persisted for every delivery that parses as a push event,
    whatever happens along the way.
    """

    def __init__(
        self,
        config: OrchestratorConfig,
        ledger: BuildLedger,
        repo_manager: RepoManager,
        status_client: GitHubStatusClient | None = None,
        clock: Callable[[], datetime] | None = None,
        id_factory: Callable[[], str] | None = None,
    ):
        """
        Initialize orchestrator.

        Args:
            config: Webhook secret and GitHub credential
            ledger: Build history store
            repo_manager: Working copy sync and build driver
            status_client: Commit status client (built from config.github_token
                when omitted and a token is configured)
            clock: Source of build timestamps (UTC now by default)
            id_factory: Source of build IDs (uuid4 hex by default)
        """
        self.config = config
        self.ledger = ledger
        self.repo_manager = repo_manager
        if status_client is None and config.github_token:
            status_client = GitHubStatusClient(
                token=config.github_token,
                timeout_seconds=config.status_timeout_seconds,
            )
        self.status_client = status_client
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._id_factory = id_factory or (lambda: uuid.uuid4().hex)

    def handle_delivery(
        self,
        body: bytes,
        signature: str | None,
        event_type: str | None = None,
    ) -> WebhookOutcome:
        """
        Handle one push webhook delivery.

        The signature is checked before anything else, so an unsigned
        delivery is rejected whatever event it claims to be.

        Args:
            body: Raw request body
            signature: X-Hub-Signature-256 header value, if sent
            event_type: X-GitHub-Event header value; only "push" (or no
                header) goes on to parsing

        Returns:
            WebhookOutcome in state REJECTED, IGNORED or PERSISTED

        Raises:
            LedgerCorruptionError: If the build could not be persisted
            OSError: If the ledger could not be read or written
        """
        inc("webhook_received")

        if self.config.webhook_secret:
            logger.debug(
                "Verifying webhook signature",
                extra={"state": PipelineState.VERIFYING.value},
            )
            if not is_valid_payload(body, self.config.webhook_secret, signature):
                logger.warning("Webhook signature verification failed")
                inc("webhook_rejected")
                return WebhookOutcome(PipelineState.REJECTED, "Signature verification failed")
        else:
            logger.debug("Webhook signature verification skipped (no secret configured)")

        if event_type is not None and event_type != PUSH_EVENT:
            logger.info("Ignoring non-push event", extra={"event_type": event_type})
            inc("webhook_ignored")
            return WebhookOutcome(
                PipelineState.IGNORED, f"Event type '{event_type}' is not processed"
            )

        outcome = parse_push_event(body)
        if isinstance(outcome, Ignored):
            logger.info("Ignoring webhook payload", extra={"reason": outcome.reason})
            inc("webhook_ignored")
            return WebhookOutcome(PipelineState.IGNORED, outcome.reason)

        record = self.run_pipeline(outcome.event)
        return WebhookOutcome(
            PipelineState.PERSISTED,
            _final_description(record.build_success, record.tests_success),
            record=record,
        )

    def run_pipeline(self, event: PushEvent) -> BuildRecord:
        """
        Sync, build, test, report and persist one push event.

        Faults raised by any step before persistence are logged, written to
        the build log and turn the run into a failure; they never escape.
        """
        build_id = self._id_factory()
        with bound_build_id(build_id):
            return self._run_pipeline(build_id, event)

    def _run_pipeline(self, build_id: str, event: PushEvent) -> BuildRecord:
        build_date = self._clock()
        repository = event.repository_full_name

        logger.info(
            "Build started",
            extra={
                "state": PipelineState.PARSED.value,
                "repository": repository,
                "branch": event.branch_name,
                "commit": event.commit_sha,
            },
        )

        status_target = resolve_status_target(event.status_target_template, event.commit_sha)
        can_post_status = self.status_client is not None and status_target is not None
        if can_post_status:
            self._post_status(status_target, CommitState.PENDING, "Build started", repository)
        else:
            logger.info("GitHub token or statuses URL missing; skipping status updates")

        log = BuildLog()
        build_success = False
        tests_success = False
        try:
            local_path = self.repo_manager.workspace_path(repository)
            with self.repo_manager.workspace_lock(local_path):
                with start_span("sync", attributes={"repository": repository}) as span:
                    logger.debug("Syncing", extra={"state": PipelineState.SYNCING.value})
                    sync = self.repo_manager.sync_repository(
                        should_clone=not local_path.exists(),
                        source_url=event.repository_source_url,
                        local_path=local_path,
                        branch=event.branch_name,
                    )
                    if not sync.success:
                        mark_failed(span, "sync failed")
                log.add("Sync", sync)

                with start_span("build", attributes={"repository": repository}) as span:
                    logger.debug("Building", extra={"state": PipelineState.BUILDING.value})
                    if sync.success:
                        build = self.repo_manager.build(local_path)
                    else:
                        build = CommandResult.failed(SYNC_FAILED_BUILD_MESSAGE)
                    if not build.success:
                        mark_failed(span, "build failed")
                log.add("Build", build)
                build_success = sync.success and build.success

                with start_span("test", attributes={"repository": repository}) as span:
                    logger.debug("Testing", extra={"state": PipelineState.TESTING.value})
                    if sync.success:
                        test = self.repo_manager.test(local_path)
                    else:
                        test = CommandResult.failed(SYNC_FAILED_TEST_MESSAGE)
                    if not test.success:
                        mark_failed(span, "tests failed")
                log.add("Test", test)
                tests_success = test.success
        except Exception as e:
            logger.exception("Build pipeline step failed", extra={"repository": repository})
            log.add_error(e)

        if build_success:
            logger.info("Build succeeded", extra={"tests_success": tests_success})
        else:
            logger.info("Build failed")

        if can_post_status:
            logger.debug("Reporting", extra={"state": PipelineState.REPORTING.value})
            state = (
                CommitState.SUCCESS if build_success and tests_success else CommitState.FAILURE
            )
            self._post_status(
                status_target,
                state,
                _final_description(build_success, tests_success),
                repository,
            )

        record = BuildRecord(
            id=build_id,
            repository=repository,
            commit=event.commit_sha,
            branch=event.branch_name,
            build_date=build_date,
            build_success=build_success,
            tests_success=tests_success,
            logs=log.render(),
        )
        self.ledger.append(repository, record)
        inc("builds_completed", attributes={"status": record.status.value})
        logger.info(
            "Build persisted",
            extra={"state": PipelineState.PERSISTED.value, "status": record.status.value},
        )
        return record

    def _post_status(
        self,
        target: str | None,
        state: CommitState,
        description: str,
        context: str,
    ) -> None:
        if self.status_client is None or target is None:
            return
        try:
            self.status_client.post_status(target, state, description, context)
        except Exception:
            logger.exception("Unexpected error posting commit status", extra={"state": state.value})


def _final_description(build_success: bool, tests_success: bool) -> str:
    if not build_success:
        return "Build failed!"
    if not tests_success:
        return "Tests failed!"
    return "Build succeeded and tests passed!"
