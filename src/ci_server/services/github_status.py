"""GitHub commit status client.

Uses the GitHub REST API to attach pending/success/failure states to the
commit that triggered a build.

Reference: https://docs.github.com/en/rest/commits/statuses
"""

import logging
import threading
from typing import Any

import httpx

from ci_server.ops.metrics import inc
from ci_server.schemas.builds import CommitState

logger = logging.getLogger(__name__)

SHA_PLACEHOLDER = "{sha}"


class GitHubAPIError(Exception):
    """Raised when GitHub rejects a status update."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


def resolve_status_target(template: str | None, commit_sha: str | None) -> str | None:
    """
    Resolve a statuses_url template for a specific commit.

    Args:
        template: repository.statuses_url from the webhook payload
        commit_sha: Commit the push ended on

    Returns:
        The URL with {sha} substituted, the template itself if it has no
        placeholder, or None if there is no template or it needs a missing SHA
    """
    if not template:
        return None
    if SHA_PLACEHOLDER in template:
        if not commit_sha:
            return None
        return template.replace(SHA_PLACEHOLDER, commit_sha)
    return template


class GitHubStatusClient:
    """
    Posts commit statuses to GitHub.

    Reporting is best effort: failures are logged and reported through the
    return value, never raised to the caller.
    """

    def __init__(
        self,
        token: str,
        timeout_seconds: float = 30.0,
        transport: httpx.BaseTransport | None = None,
    ):
        """
        Initialize status client.

        Args:
            token: GitHub token sent as a bearer credential
            timeout_seconds: Per-request timeout
            transport: Optional httpx transport (used by tests)
        """
        self.token = token
        self.timeout_seconds = timeout_seconds
        self._transport = transport
        self._client: httpx.Client | None = None
        self._client_lock = threading.Lock()

    @property
    def enabled(self) -> bool:
        return bool(self.token)

    def _get_client(self) -> httpx.Client:
        # Webhook threads may make their first post at the same time
        with self._client_lock:
            if self._client is None:
                self._client = httpx.Client(
                    headers=self._build_headers(),
                    timeout=httpx.Timeout(self.timeout_seconds, connect=10.0),
                    transport=self._transport,
                )
            return self._client

    def close(self) -> None:
        with self._client_lock:
            if self._client is not None:
                self._client.close()
                self._client = None

    def _build_headers(self) -> dict[str, str]:
        return {
            "Accept": "application/vnd.github+json",
            "Authorization": f"Bearer {self.token}",
            "X-GitHub-Api-Version": "2022-11-28",
        }

    def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        response = self._get_client().request(method, url, **kwargs)
        if not response.is_success:
            raise GitHubAPIError(
                f"GitHub status update failed with HTTP {response.status_code}",
                status_code=response.status_code,
            )
        return response

    def post_status(
        self,
        target_url: str,
        state: CommitState,
        description: str,
        context: str,
    ) -> bool:
        """
        Post one commit status.

        Args:
            target_url: Resolved statuses URL for the commit
            state: pending, success or failure
            description: Short human-readable message
            context: Status context label shown by GitHub

        Returns:
            True if GitHub accepted the status
        """
        body = {
            "state": CommitState(state).value,
            "description": description,
            "context": context,
        }
        try:
            self._request("POST", target_url, json=body)
        except (GitHubAPIError, httpx.HTTPError, httpx.InvalidURL) as e:
            logger.warning(
                "Failed to post commit status",
                extra={"url": target_url, "state": body["state"], "error": str(e)},
            )
            inc("status_post_failed", attributes={"state": body["state"]})
            return False

        logger.info("Posted commit status", extra={"url": target_url, "state": body["state"]})
        return True
