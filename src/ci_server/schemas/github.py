"""Pydantic schemas for GitHub push webhook payloads.

Reference: https://docs.github.com/en/webhooks/webhook-events-and-payloads#push

Only the handful of fields the build pipeline needs are modelled; everything
else in the payload is ignored.
"""
from dataclasses import dataclass
from pathlib import PurePosixPath
from typing import Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

BRANCH_REF_PREFIX = "refs/heads/"
DEFAULT_BRANCH = "main"


def repository_path_parts(full_name: str) -> tuple[str, ...]:
    """
    Split an owner/repo name into the folder segments it is stored under.

    Raises:
        ValueError: If the name is empty, absolute or climbs out with ".."
    """
    parts = PurePosixPath(full_name).parts
    if not parts or full_name.startswith("/") or ".." in parts:
        raise ValueError(f"Invalid repository name: {full_name!r}")
    return parts


class GitHubPushRepository(BaseModel):
    """Repository information from a push webhook."""

    clone_url: str = Field(..., min_length=1)
    full_name: str = Field(..., min_length=1)
    statuses_url: str | None = None
    default_branch: str | None = None

    @field_validator("full_name")
    @classmethod
    def full_name_is_relative_path(cls, value: str) -> str:
        repository_path_parts(value)
        return value


class GitHubPushPayload(BaseModel):
    """Top-level push webhook payload."""

    repository: GitHubPushRepository
    ref: str = ""
    after: str | None = None


class PushEvent(BaseModel):
    """Push notification reduced to what the pipeline consumes."""

    model_config = ConfigDict(frozen=True)

    repository_source_url: str
    repository_full_name: str
    branch_name: str
    commit_sha: str | None = None
    status_target_template: str | None = None

    @classmethod
    def from_payload(cls, payload: GitHubPushPayload) -> "PushEvent":
        repo = payload.repository
        branch = branch_from_ref(payload.ref) or repo.default_branch or DEFAULT_BRANCH
        return cls(
            repository_source_url=repo.clone_url,
            repository_full_name=repo.full_name,
            branch_name=branch,
            commit_sha=payload.after or None,
            status_target_template=repo.statuses_url or None,
        )


@dataclass(frozen=True)
class Parsed:
    """Body parsed into a usable push event."""

    event: PushEvent


@dataclass(frozen=True)
class Ignored:
    """Body that is not a usable push event."""

    reason: str


ParseOutcome = Union[Parsed, Ignored]


def branch_from_ref(ref: str) -> str:
    """Strip the refs/heads/ namespace from a git ref."""
    if ref.startswith(BRANCH_REF_PREFIX):
        return ref[len(BRANCH_REF_PREFIX):]
    return ref


def parse_push_event(body: bytes | str) -> ParseOutcome:
    """
    Parse a raw webhook body into a push event.

    Args:
        body: Raw request body

    Returns:
        Parsed with the event, or Ignored with a reason when the body is not
        JSON or lacks repository.clone_url / repository.full_name
    """
    try:
        payload = GitHubPushPayload.model_validate_json(body)
    except ValidationError as e:
        errors = e.errors(include_url=False)
        if errors and errors[0]["type"] == "json_invalid":
            return Ignored(reason="Payload is not valid JSON")
        fields = sorted({".".join(str(p) for p in err["loc"]) for err in errors})
        return Ignored(reason=f"Payload is not a push event (invalid: {', '.join(fields)})")

    return Parsed(event=PushEvent.from_payload(payload))
