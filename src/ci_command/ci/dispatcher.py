"""Workflow dispatch and run discovery.

GitHub's workflow_dispatch endpoint answers 204 without telling the
caller which run it started. The dispatcher therefore works in two
steps: `trigger` sends the dispatch, and `discover_run` lists the
workflow's in-progress runs on the dispatched branch until one shows up
and adopts the first one listed.

Known limitation: two dispatches of the same workflow on the same branch
at nearly the same time (two quick `/ci` comments, or two service
instances) cannot be told apart by this listing. Each discovery adopts
whichever run GitHub lists first, so both invocations may follow the
same run. A warning is logged whenever more than one candidate is seen.
"""

import asyncio
import logging
import time
from typing import Dict, List, Optional

from src.ci_command.ci.polling import Clock, PollPolicy, PollTimeout, Sleep, poll_until
from src.ci_command.errors import DispatchError, DispatchTimeout
from src.ci_command.github.client import GitHubAPIError, GitHubClient
from src.ci_command.github.models import RunStatus, WorkflowRun

logger = logging.getLogger(__name__)


class WorkflowDispatcher:
    """Starts workflow runs and resolves their run IDs.

    Attributes:
        github_client: GitHub API client.
        policy: Polling bounds for run discovery.
    """

    def __init__(
        self,
        github_client: GitHubClient,
        policy: PollPolicy,
        sleep: Sleep = asyncio.sleep,
        clock: Clock = time.monotonic,
    ):
        self.github_client = github_client
        self.policy = policy
        self._sleep = sleep
        self._clock = clock

    async def trigger(
        self,
        owner: str,
        repo: str,
        workflow_id: str,
        ref: str,
        inputs: Optional[Dict[str, str]] = None,
    ) -> None:
        """Send the workflow_dispatch request.

        Raises:
            DispatchError: If GitHub rejects the dispatch (unknown
                workflow, missing permissions, workflow without a
                workflow_dispatch trigger, ...).
        """
        try:
            await self.github_client.create_workflow_dispatch(
                owner, repo, workflow_id, ref, inputs
            )
        except GitHubAPIError as e:
            logger.error(
                "Error triggering workflow",
                extra={
                    "workflow_id": workflow_id,
                    "ref": ref,
                    "status_code": e.status_code,
                    "error": e.message,
                },
            )
            raise DispatchError(
                f"Failed to dispatch {workflow_id} on {ref}: {e.message}",
                workflow_id=workflow_id,
                ref=ref,
            ) from e

    async def discover_run(
        self,
        owner: str,
        repo: str,
        workflow_id: str,
        ref: str,
    ) -> WorkflowRun:
        """Wait for the dispatched run to appear and return it.

        Raises:
            DispatchTimeout: If no in-progress run appears in time.
            DispatchError: If the run listing keeps failing.
        """

        async def list_candidates() -> List[WorkflowRun]:
            return await self.github_client.list_workflow_runs(
                owner,
                repo,
                workflow_id,
                branch=ref,
                status=RunStatus.IN_PROGRESS.value,
            )

        def has_candidate(runs: List[WorkflowRun]) -> bool:
            if not runs:
                logger.info(
                    "Waiting for workflow to start",
                    extra={"workflow_id": workflow_id, "ref": ref},
                )
            return bool(runs)

        try:
            runs = await poll_until(
                list_candidates,
                has_candidate,
                self.policy,
                sleep=self._sleep,
                clock=self._clock,
                description=f"discover {workflow_id}@{ref}",
            )
        except PollTimeout as e:
            if e.reason == "failures":
                raise DispatchError(
                    f"Could not list runs of {workflow_id} on {ref}: {e.last_error}",
                    workflow_id=workflow_id,
                    ref=ref,
                ) from e
            raise DispatchTimeout(workflow_id, ref, e.elapsed) from e

        if len(runs) > 1:
            logger.warning(
                "Multiple in-progress runs found; adopting the first listed",
                extra={
                    "workflow_id": workflow_id,
                    "ref": ref,
                    "run_ids": [run.run_id for run in runs],
                },
            )

        run = runs[0]
        logger.info(
            "Discovered workflow run",
            extra={"workflow_id": workflow_id, "ref": ref, "run_id": run.run_id},
        )
        return run

    async def dispatch(
        self,
        owner: str,
        repo: str,
        workflow_id: str,
        ref: str,
        inputs: Optional[Dict[str, str]] = None,
    ) -> WorkflowRun:
        """Trigger a workflow and return the run it started."""
        await self.trigger(owner, repo, workflow_id, ref, inputs)
        return await self.discover_run(owner, repo, workflow_id, ref)
