"""Workflow run monitoring.

The monitor polls a discovered workflow run until it completes and
turns what it sees into commit statuses. Two granularities are
supported:

- job: poll the run's job listing and emit one status line per job
  ("<workflow> / <job>") whenever that job's state changes
- run: poll the run itself and emit a single "CI Pipeline" status line,
  once as pending and once with the final outcome

Within one watch, a context that has reached a terminal state is never
moved back to pending.
"""

import asyncio
import logging
import time
from contextlib import aclosing
from typing import AsyncIterator, Dict, List, Optional, Tuple

from src.ci_command.ci.polling import Clock, PollPolicy, PollTimeout, Sleep, poll
from src.ci_command.ci.reporter import RUN_CONTEXT, job_context
from src.ci_command.config import StatusGranularity
from src.ci_command.errors import MonitorTimeout
from src.ci_command.github.client import GitHubAPIError, GitHubClient
from src.ci_command.github.models import (
    CommitState,
    CommitStatus,
    RunStatus,
    WorkflowJob,
)

logger = logging.getLogger(__name__)

IN_PROGRESS_DESCRIPTION = "In progress"
COMPLETED_DESCRIPTION = "Completed without a conclusion"

# Job statuses that get a status line; queued and waiting jobs do not
_REPORTED_JOB_STATUSES = {RunStatus.IN_PROGRESS.value, RunStatus.COMPLETED.value}


def map_conclusion(status: Optional[str], conclusion: Optional[str]) -> CommitState:
    """Map a GitHub Actions status/conclusion pair to a commit state.

    success maps to SUCCESS. Every other conclusion (failure,
    cancelled, timed_out, skipped, neutral, action_required, stale,
    startup_failure, ...) maps to FAILURE. No conclusion means the work
    is still running (PENDING), unless GitHub already calls it
    completed, which is treated as FAILURE.
    """
    if conclusion is None:
        if status == RunStatus.COMPLETED.value:
            return CommitState.FAILURE
        return CommitState.PENDING
    if conclusion == "success":
        return CommitState.SUCCESS
    return CommitState.FAILURE


def describe(conclusion: Optional[str], status: Optional[str] = None) -> str:
    if conclusion:
        return conclusion
    if status == RunStatus.COMPLETED.value:
        return COMPLETED_DESCRIPTION
    return IN_PROGRESS_DESCRIPTION


class RunMonitor:
    """Polls a workflow run and yields commit status transitions.

    Attributes:
        github_client: GitHub API client.
        policy: Polling bounds for monitoring.
        granularity: Per-job or per-run status lines.
    """

    def __init__(
        self,
        github_client: GitHubClient,
        policy: PollPolicy,
        granularity: StatusGranularity = StatusGranularity.JOB,
        sleep: Sleep = asyncio.sleep,
        clock: Clock = time.monotonic,
    ):
        self.github_client = github_client
        self.policy = policy
        self.granularity = granularity
        self._sleep = sleep
        self._clock = clock

    async def watch(
        self,
        owner: str,
        repo: str,
        run_id: int,
        sha: str,
    ) -> AsyncIterator[Tuple[Optional[WorkflowJob], CommitStatus]]:
        """Follow a run to completion, yielding each status change.

        Yields:
            (job, status) pairs. `job` is None in run granularity.

        Raises:
            MonitorTimeout: If the run does not complete within the
                policy's bounds, or status queries keep failing.
        """
        if self.granularity == StatusGranularity.RUN:
            transitions = self._watch_run(owner, repo, run_id, sha)
        else:
            transitions = self._watch_jobs(owner, repo, run_id, sha)

        try:
            async with aclosing(transitions) as stream:
                async for item in stream:
                    yield item
        except PollTimeout as e:
            logger.error(
                "Stopped monitoring workflow run",
                extra={
                    "run_id": run_id,
                    "reason": e.reason,
                    "attempts": e.attempts,
                    "elapsed": e.elapsed,
                },
            )
            if e.reason == "failures":
                message = f"Status of run {run_id} could not be read: {e.last_error}"
            else:
                message = f"Run {run_id} did not complete within {e.elapsed:.0f}s"
            raise MonitorTimeout(run_id, message) from e

    async def _workflow_name(self, owner: str, repo: str, run_id: int) -> Optional[str]:
        try:
            run = await self.github_client.get_workflow_run(owner, repo, run_id)
        except GitHubAPIError as e:
            logger.warning(
                "Could not read workflow name; using job names as contexts",
                extra={"run_id": run_id, "error": e.message},
            )
            return None
        return run.name

    async def _watch_jobs(
        self,
        owner: str,
        repo: str,
        run_id: int,
        sha: str,
    ) -> AsyncIterator[Tuple[Optional[WorkflowJob], CommitStatus]]:
        workflow_name = await self._workflow_name(owner, repo, run_id)
        emitted: Dict[str, CommitStatus] = {}

        async def list_jobs() -> List[WorkflowJob]:
            return await self.github_client.list_jobs_for_workflow_run(owner, repo, run_id)

        async with aclosing(
            poll(
                list_jobs,
                self.policy,
                sleep=self._sleep,
                clock=self._clock,
                description=f"jobs of run {run_id}",
            )
        ) as listings:
            async for jobs in listings:
                for job in jobs:
                    if job.status not in _REPORTED_JOB_STATUSES:
                        continue
                    status = CommitStatus(
                        sha=sha,
                        state=map_conclusion(job.status, job.conclusion),
                        description=describe(job.conclusion, job.status),
                        context=job_context(workflow_name, job.name),
                        target_url=job.details_url,
                    )
                    if self._should_emit(emitted.get(status.context), status):
                        emitted[status.context] = status
                        yield job, status

                if jobs and all(job.is_completed for job in jobs):
                    logger.info(
                        "All jobs completed",
                        extra={"run_id": run_id, "jobs": len(jobs)},
                    )
                    return

    async def _watch_run(
        self,
        owner: str,
        repo: str,
        run_id: int,
        sha: str,
    ) -> AsyncIterator[Tuple[Optional[WorkflowJob], CommitStatus]]:
        last: Optional[CommitStatus] = None

        async def get_run():
            return await self.github_client.get_workflow_run(owner, repo, run_id)

        async with aclosing(
            poll(
                get_run,
                self.policy,
                sleep=self._sleep,
                clock=self._clock,
                description=f"run {run_id}",
            )
        ) as snapshots:
            async for run in snapshots:
                status = CommitStatus(
                    sha=sha,
                    state=map_conclusion(run.status, run.conclusion),
                    description=describe(run.conclusion, run.status),
                    context=RUN_CONTEXT,
                    target_url=run.html_url,
                )
                if self._should_emit(last, status):
                    last = status
                    yield None, status

                if run.is_completed:
                    logger.info(
                        "Workflow run completed",
                        extra={"run_id": run_id, "conclusion": run.conclusion},
                    )
                    return

    @staticmethod
    def _should_emit(previous: Optional[CommitStatus], current: CommitStatus) -> bool:
        if previous is None:
            return True
        if previous.state.is_terminal and not current.state.is_terminal:
            return False
        return (previous.state, previous.description) != (
            current.state,
            current.description,
        )
