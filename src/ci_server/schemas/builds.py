"""Schemas for command results, build records and API responses."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, computed_field
from pydantic.alias_generators import to_camel

BUILD_URL_PREFIX = "/builds/"


class BuildStatus(str, Enum):
    """Overall outcome of a pipeline run."""

    SUCCESS = "success"
    FAILURE = "failure"


class CommitState(str, Enum):
    """Commit status states posted to GitHub."""

    PENDING = "pending"
    SUCCESS = "success"
    FAILURE = "failure"


class CommandResult(BaseModel):
    """Result of an external command execution."""

    model_config = ConfigDict(frozen=True)

    success: bool
    output: str = Field("", description="Combined stdout/stderr in invocation order")
    command: str = Field("", description="Literal command line that produced the output")

    @property
    def transcript(self) -> str:
        """Output prefixed with the command line that produced it."""
        if not self.command:
            return self.output
        return f"$ {self.command}\n{self.output}"

    @classmethod
    def failed(cls, message: str, command: str = "") -> "CommandResult":
        """Failed result for a step that never spawned a process."""
        if not message.endswith("\n"):
            message += "\n"
        return cls(success=False, output=message, command=command)


class BuildRecord(BaseModel):
    """One persisted pipeline run.

    Stored with camelCase keys (buildDate, buildSuccess, testsSuccess).
    """

    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )

    id: str
    repository: str
    commit: str | None = None
    branch: str
    build_date: datetime
    build_success: bool
    tests_success: bool
    logs: str = ""

    @computed_field  # type: ignore[prop-decorator]
    @property
    def status(self) -> BuildStatus:
        if self.build_success and self.tests_success:
            return BuildStatus.SUCCESS
        return BuildStatus.FAILURE

    @property
    def url(self) -> str:
        return f"{BUILD_URL_PREFIX}{self.id}"

    def to_summary(self) -> "BuildSummary":
        return BuildSummary(
            id=self.id,
            repository=self.repository,
            commit=self.commit,
            build_date=self.build_date,
            status=self.status,
            url=self.url,
        )


class BuildSummary(BaseModel):
    """Projection of a BuildRecord used by the history listing."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str
    repository: str
    commit: str | None = None
    build_date: datetime
    status: BuildStatus
    url: str


class WebhookResponse(BaseModel):
    """Response body for the webhook endpoint."""

    status: str
    message: str
    build_id: str | None = None
    url: str | None = None
