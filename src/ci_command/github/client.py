"""GitHub API client for pull request, Actions and commit status calls.

This module provides an async wrapper around the GitHub REST API for:
- Looking up a pull request's head branch and commit
- Dispatching workflows and listing their runs and jobs
- Creating commit statuses

A single client is created at startup and shared by every webhook
invocation. It holds only fixed credentials and a connection pool, so
sharing it needs no locking.

Transient failures (408, 429, 5xx, timeouts and connection errors) are
retried with exponential backoff and full jitter. Rate limiting is
honored through the X-RateLimit-* and Retry-After headers.
"""

import asyncio
import logging
import random
import time
from typing import Any, Dict, List, Optional

import httpx

from src.ci_command.github.models import (
    CommitState,
    PullRequestRef,
    WorkflowJob,
    WorkflowRun,
)


logger = logging.getLogger(__name__)


class GitHubAPIError(Exception):
    """Raised when a GitHub API request fails.

    Attributes:
        message: Human-readable error description.
        status_code: HTTP status code from the response, if any.
        response_body: Response body from GitHub API.
        request_url: The URL that was requested.
    """

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        response_body: Optional[str] = None,
        request_url: Optional[str] = None,
    ):
        self.message = message
        self.status_code = status_code
        self.response_body = response_body
        self.request_url = request_url
        super().__init__(message)

    @property
    def is_not_found(self) -> bool:
        return self.status_code == 404


class RateLimitError(GitHubAPIError):
    """Raised when GitHub API rate limit is exceeded.

    Attributes:
        reset_at: Unix timestamp when the rate limit resets.
        retry_after: Seconds to wait before retrying.
    """

    def __init__(
        self,
        message: str,
        reset_at: Optional[int] = None,
        retry_after: Optional[int] = None,
        **kwargs: Any,
    ):
        super().__init__(message, **kwargs)
        self.reset_at = reset_at
        self.retry_after = retry_after


class GitHubClient:
    """Async GitHub API client with rate limiting and retry logic.

    Attributes:
        token: GitHub API token (PAT or GitHub App installation token).
        base_url: Base URL for GitHub API (default: https://api.github.com).
        max_retries: Maximum number of retry attempts for transient failures.
        base_delay: Base delay in seconds for exponential backoff.
        max_delay: Maximum delay in seconds between retries. A rate limit
            that resets later than this is raised instead of waited out.
        timeout: Request timeout in seconds.

    Example:
        >>> async with GitHubClient(token="ghp_xxx") as client:
        ...     pr = await client.get_pull_request("owner", "repo", 42)
    """

    RETRYABLE_STATUS_CODES = {408, 429, 500, 502, 503, 504}

    def __init__(
        self,
        token: str,
        base_url: str = "https://api.github.com",
        max_retries: int = 3,
        base_delay: float = 1.0,
        max_delay: float = 60.0,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize the GitHub client.

        Args:
            token: GitHub API token for authentication.
            base_url: Base URL for GitHub API. Use this to support
                      GitHub Enterprise Server endpoints.
            max_retries: Maximum number of retry attempts.
            base_delay: Base delay in seconds for exponential backoff.
            max_delay: Maximum delay in seconds between retries.
            timeout: Request timeout in seconds.
            transport: Optional httpx transport, used by tests.
        """
        self.token = token
        self.base_url = base_url.rstrip("/")
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def client(self) -> httpx.AsyncClient:
        """The underlying httpx client, created on first use."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers={
                    "Authorization": f"Bearer {self.token}",
                    "Accept": "application/vnd.github+json",
                    "X-GitHub-Api-Version": "2022-11-28",
                    "User-Agent": "ci-slash-command/1.0",
                },
                timeout=self.timeout,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client and release resources."""
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
        self._client = None

    async def __aenter__(self) -> "GitHubClient":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    # -------------------------------------------------------------------------
    # Request machinery
    # -------------------------------------------------------------------------

    def _backoff_delay(self, attempt: int) -> float:
        """Full-jitter exponential backoff for the given 0-indexed attempt."""
        return random.uniform(0, min(self.base_delay * (2 ** attempt), self.max_delay))

    @staticmethod
    def _int_header(headers: httpx.Headers, name: str) -> Optional[int]:
        value = headers.get(name)
        if value is None:
            return None
        try:
            return int(value)
        except ValueError:
            return None

    def _rate_limit_error(self, response: httpx.Response) -> Optional[RateLimitError]:
        """Build a RateLimitError if the response signals rate limiting.

        GitHub answers a primary rate limit with 403 and
        X-RateLimit-Remaining: 0, and a secondary limit with 403/429 and
        a Retry-After header.
        """
        headers = response.headers
        remaining = self._int_header(headers, "x-ratelimit-remaining")
        retry_after = self._int_header(headers, "retry-after")

        limited = response.status_code == 429 or (
            response.status_code == 403 and (remaining == 0 or retry_after is not None)
        )
        if not limited:
            return None

        reset_at = self._int_header(headers, "x-ratelimit-reset")
        if retry_after is None and reset_at is not None:
            retry_after = max(0, reset_at - int(time.time()))

        return RateLimitError(
            message="GitHub API rate limit exceeded",
            status_code=response.status_code,
            response_body=response.text,
            request_url=str(response.url),
            reset_at=reset_at,
            retry_after=retry_after,
        )

    async def _request(
        self,
        method: str,
        path: str,
        json_data: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> httpx.Response:
        """Make an HTTP request, retrying transient failures.

        Args:
            method: HTTP method.
            path: API path relative to the base URL.
            json_data: Optional JSON body.
            params: Optional query parameters.

        Returns:
            The successful HTTP response.

        Raises:
            RateLimitError: If the rate limit outlasts the retry budget.
            GitHubAPIError: For non-retryable errors, or once retries
                are exhausted.
        """
        last_error: Optional[str] = None

        for attempt in range(self.max_retries + 1):
            retries_left = attempt < self.max_retries
            try:
                response = await self.client.request(
                    method=method,
                    url=path,
                    json=json_data,
                    params=params,
                )
            except httpx.RequestError as e:
                # Timeouts are a subclass of RequestError
                last_error = f"{type(e).__name__}: {e}"
                if not retries_left:
                    break
                delay = self._backoff_delay(attempt)
                logger.warning(
                    "GitHub request failed, retrying",
                    extra={
                        "error": last_error,
                        "attempt": attempt + 1,
                        "delay": delay,
                        "path": path,
                    },
                )
                await asyncio.sleep(delay)
                continue

            rate_limited = self._rate_limit_error(response)
            if rate_limited is not None:
                wait = rate_limited.retry_after
                logger.warning(
                    "GitHub API rate limit exceeded",
                    extra={
                        "reset_at": rate_limited.reset_at,
                        "retry_after": wait,
                        "path": path,
                    },
                )
                if retries_left and wait is not None and wait <= self.max_delay:
                    await asyncio.sleep(wait)
                    continue
                raise rate_limited

            if response.status_code in self.RETRYABLE_STATUS_CODES and retries_left:
                delay = self._backoff_delay(attempt)
                logger.warning(
                    "Retryable error from GitHub API",
                    extra={
                        "status_code": response.status_code,
                        "attempt": attempt + 1,
                        "delay": delay,
                        "path": path,
                    },
                )
                await asyncio.sleep(delay)
                continue

            if response.status_code >= 400:
                body = response.text
                log = logger.debug if response.status_code == 404 else logger.error
                log(
                    "GitHub API error",
                    extra={
                        "status_code": response.status_code,
                        "method": method,
                        "path": path,
                        "response_body": body[:500],
                    },
                )
                raise GitHubAPIError(
                    message=f"GitHub API error: {response.status_code}",
                    status_code=response.status_code,
                    response_body=body,
                    request_url=str(response.url),
                )

            return response

        logger.error(
            "GitHub API request failed after all retries",
            extra={"method": method, "path": path, "last_error": last_error},
        )
        raise GitHubAPIError(
            message=f"Request failed after {self.max_retries} retries: {last_error}",
            request_url=f"{self.base_url}{path}",
        )

    # -------------------------------------------------------------------------
    # Pull requests
    # -------------------------------------------------------------------------

    async def get_pull_request(
        self,
        owner: str,
        repo: str,
        pull_number: int,
    ) -> PullRequestRef:
        """Get the head branch and commit of a pull request.

        Raises:
            GitHubAPIError: If the request fails (404 when the number is
                not a pull request).
        """
        response = await self._request(
            method="GET",
            path=f"/repos/{owner}/{repo}/pulls/{pull_number}",
        )
        return PullRequestRef.from_github_response(response.json())

    # -------------------------------------------------------------------------
    # Actions
    # -------------------------------------------------------------------------

    async def create_workflow_dispatch(
        self,
        owner: str,
        repo: str,
        workflow_id: str,
        ref: str,
        inputs: Optional[Dict[str, str]] = None,
    ) -> None:
        """Trigger a workflow_dispatch event.

        GitHub answers 204 No Content; the resulting run's ID is not
        returned and has to be discovered by listing runs.

        Args:
            owner: Repository owner.
            repo: Repository name.
            workflow_id: Workflow file name (e.g. "ci.yml") or numeric ID.
            ref: Branch or tag to run the workflow on.
            inputs: Workflow inputs.
        """
        logger.info(
            "Dispatching workflow",
            extra={
                "owner": owner,
                "repo": repo,
                "workflow_id": workflow_id,
                "ref": ref,
            },
        )
        await self._request(
            method="POST",
            path=f"/repos/{owner}/{repo}/actions/workflows/{workflow_id}/dispatches",
            json_data={"ref": ref, "inputs": inputs or {}},
        )

    async def list_workflow_runs(
        self,
        owner: str,
        repo: str,
        workflow_id: str,
        branch: Optional[str] = None,
        status: Optional[str] = None,
        per_page: int = 30,
    ) -> List[WorkflowRun]:
        """List runs of a workflow, newest first.

        Args:
            owner: Repository owner.
            repo: Repository name.
            workflow_id: Workflow file name or numeric ID.
            branch: Only runs on this branch.
            status: Only runs with this status (e.g. "in_progress").
            per_page: Page size.

        Returns:
            The runs on the first page.
        """
        params: Dict[str, Any] = {"per_page": per_page}
        if branch is not None:
            params["branch"] = branch
        if status is not None:
            params["status"] = status

        response = await self._request(
            method="GET",
            path=f"/repos/{owner}/{repo}/actions/workflows/{workflow_id}/runs",
            params=params,
        )
        return [
            WorkflowRun.from_github_response(run)
            for run in response.json().get("workflow_runs", [])
        ]

    async def get_workflow_run(
        self,
        owner: str,
        repo: str,
        run_id: int,
    ) -> WorkflowRun:
        """Get a single workflow run."""
        response = await self._request(
            method="GET",
            path=f"/repos/{owner}/{repo}/actions/runs/{run_id}",
        )
        return WorkflowRun.from_github_response(response.json())

    async def list_jobs_for_workflow_run(
        self,
        owner: str,
        repo: str,
        run_id: int,
        per_page: int = 100,
    ) -> List[WorkflowJob]:
        """List the jobs of the latest attempt of a workflow run."""
        response = await self._request(
            method="GET",
            path=f"/repos/{owner}/{repo}/actions/runs/{run_id}/jobs",
            params={"per_page": per_page},
        )
        return [
            WorkflowJob.from_github_response(job)
            for job in response.json().get("jobs", [])
        ]

    # -------------------------------------------------------------------------
    # Commit statuses
    # -------------------------------------------------------------------------

    async def create_commit_status(
        self,
        owner: str,
        repo: str,
        sha: str,
        state: CommitState,
        context: str,
        description: Optional[str] = None,
        target_url: Optional[str] = None,
    ) -> None:
        """Create a commit status.

        GitHub keeps the latest status per context, so posting the same
        context again replaces the earlier entry. The response body is
        not read.
        """
        payload: Dict[str, Any] = {"state": state.value, "context": context}
        if description is not None:
            payload["description"] = description
        if target_url is not None:
            payload["target_url"] = target_url

        await self._request(
            method="POST",
            path=f"/repos/{owner}/{repo}/statuses/{sha}",
            json_data=payload,
        )

    async def health_check(self) -> bool:
        """Check that the API is reachable and the token is accepted.

        Returns:
            True if healthy, False otherwise.
        """
        try:
            response = await self.client.get("/rate_limit")
            return response.status_code == 200
        except httpx.HTTPError as e:
            logger.warning(
                "GitHub API health check failed",
                extra={"error": str(e)},
            )
            return False
