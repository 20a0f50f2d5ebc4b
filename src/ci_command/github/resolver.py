"""Pull request lookup for issue comment events.

GitHub delivers pull request comments as `issue_comment` events that
carry only the issue number. The resolver turns that number into the
head branch (where the workflow is dispatched) and head commit (where
statuses are reported).
"""

import logging
from typing import Optional

from pydantic import ValidationError

from src.ci_command.github.client import GitHubAPIError, GitHubClient
from src.ci_command.github.models import PullRequestRef

logger = logging.getLogger(__name__)


class PullRequestResolver:
    """Resolves an issue number to its pull request head.

    Every failure is reported to the caller as None; the underlying
    cause is only logged, never returned.
    """

    def __init__(self, github_client: GitHubClient):
        self.github_client = github_client

    async def resolve(
        self,
        owner: str,
        repo: str,
        issue_number: int,
    ) -> Optional[PullRequestRef]:
        """Look up the head ref and sha of a pull request.

        Args:
            owner: Repository owner.
            repo: Repository name.
            issue_number: Issue number the comment was made on.

        Returns:
            The pull request head, or None if the issue is not a pull
            request or the lookup failed.
        """
        try:
            pr = await self.github_client.get_pull_request(owner, repo, issue_number)
        except GitHubAPIError as e:
            if e.is_not_found:
                logger.info(
                    "Issue is not a pull request",
                    extra={"owner": owner, "repo": repo, "issue_number": issue_number},
                )
            else:
                logger.error(
                    "Error fetching pull request details",
                    extra={
                        "owner": owner,
                        "repo": repo,
                        "issue_number": issue_number,
                        "status_code": e.status_code,
                        "error": e.message,
                    },
                )
            return None
        except ValidationError as e:
            logger.error(
                "Pull request response is missing head ref or sha",
                extra={"issue_number": issue_number, "error": str(e)},
            )
            return None

        logger.info(
            "Resolved pull request",
            extra={
                "issue_number": issue_number,
                "head_ref": pr.head_ref,
                "head_sha": pr.head_sha,
            },
        )
        return pr
