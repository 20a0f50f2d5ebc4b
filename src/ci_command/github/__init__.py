"""GitHub API access for the CI command bridge.

This module provides a wrapper around the GitHub REST API for:
- Resolving pull request heads
- Dispatching workflows and reading their runs and jobs
- Writing commit statuses

Includes rate limiting and retry logic for API resilience.
"""

from src.ci_command.github.client import (
    GitHubAPIError,
    GitHubClient,
    RateLimitError,
)
from src.ci_command.github.models import (
    CommitState,
    CommitStatus,
    PullRequestRef,
    RunStatus,
    WorkflowJob,
    WorkflowRun,
)
from src.ci_command.github.resolver import PullRequestResolver

__all__ = [
    "CommitState",
    "CommitStatus",
    "GitHubAPIError",
    "GitHubClient",
    "PullRequestRef",
    "PullRequestResolver",
    "RateLimitError",
    "RunStatus",
    "WorkflowJob",
    "WorkflowRun",
]
