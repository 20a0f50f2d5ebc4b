"""Commit status reporting.

Statuses are keyed on a commit by their context string. GitHub keeps
only the latest status per (commit, context), so re-posting a context
overwrites it: reporting is idempotent and "latest write wins".

Writes are best effort. By the time statuses are posted the webhook may
already have been answered, so a failed write is logged and dropped
rather than allowed to stop the monitoring loop.
"""

import logging
from typing import Optional

from src.ci_command.github.client import GitHubAPIError, GitHubClient
from src.ci_command.github.models import CommitState, CommitStatus
from src.ci_command.metrics import CommandMetrics

logger = logging.getLogger(__name__)

# Context used when the whole run is reported as one status line
RUN_CONTEXT = "CI Pipeline"

# GitHub rejects longer commit status descriptions
MAX_DESCRIPTION_LENGTH = 140


def job_context(workflow_name: Optional[str], job_name: str) -> str:
    """Build the status context for a job: "<workflow> / <job>"."""
    if workflow_name:
        return f"{workflow_name} / {job_name}"
    return job_name


def truncate_description(description: str) -> str:
    if len(description) <= MAX_DESCRIPTION_LENGTH:
        return description
    return description[: MAX_DESCRIPTION_LENGTH - 3] + "..."


class StatusReporter:
    """Writes commit statuses for a pull request's head commit."""

    def __init__(
        self,
        github_client: GitHubClient,
        metrics: Optional[CommandMetrics] = None,
    ):
        self.github_client = github_client
        self.metrics = metrics

    async def report(
        self,
        owner: str,
        repo: str,
        sha: str,
        state: CommitState,
        description: str,
        context: str,
        target_url: Optional[str] = None,
    ) -> bool:
        """Create or replace the status for `context` on `sha`.

        Returns:
            True if GitHub accepted the status, False if the write
            failed (the failure is logged).
        """
        try:
            await self.github_client.create_commit_status(
                owner,
                repo,
                sha,
                state=state,
                context=context,
                description=truncate_description(description),
                target_url=target_url,
            )
        except Exception as e:
            log = logger.error if isinstance(e, GitHubAPIError) else logger.exception
            log(
                "Error updating commit status",
                extra={
                    "context": context,
                    "sha": sha,
                    "state": state.value,
                    "status_code": getattr(e, "status_code", None),
                    "error": str(e),
                },
            )
            self._record(state, accepted=False)
            return False

        logger.info(
            'Updated status for "%s" to "%s"',
            context,
            state.value,
            extra={"sha": sha},
        )
        self._record(state, accepted=True)
        return True

    def _record(self, state: CommitState, accepted: bool) -> None:
        if self.metrics is not None:
            self.metrics.record_commit_status(state.value, accepted)

    async def publish(self, owner: str, repo: str, status: CommitStatus) -> bool:
        """Report a prepared CommitStatus."""
        return await self.report(
            owner,
            repo,
            status.sha,
            status.state,
            status.description,
            status.context,
            status.target_url,
        )
