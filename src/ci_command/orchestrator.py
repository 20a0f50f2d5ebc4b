"""CI command orchestrator connecting all stages of an invocation.

Drives a parsed comment event through the bridge:
command parsing → pull request lookup → workflow dispatch
→ run discovery → monitoring → commit status reporting.

The work is split in two phases:

- `handle_comment` runs while the webhook request is open. It rejects
  anything that needs no work and sends the workflow dispatch, so every
  outcome the caller has to hear about is known before it answers.
- `follow_through` discovers the run and mirrors its progress. It can
  take far longer than GitHub waits for a webhook response, so by
  default it is handed back to the caller to run as a background task
  after the response is sent. The hosting environment must keep the
  process alive until that task finishes.

With `wait_for_completion` both phases run inline before answering.

Source:
- src/ci_command/commands/parser.py (CommandParser)
- src/ci_command/github/resolver.py (PullRequestResolver)
- src/ci_command/ci/dispatcher.py (WorkflowDispatcher)
- src/ci_command/ci/monitor.py (RunMonitor)
- src/ci_command/ci/reporter.py (StatusReporter)
- src/ci_command/state/tracker.py (InvocationTracker)
"""

import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, Optional

from src.ci_command.ci.dispatcher import WorkflowDispatcher
from src.ci_command.ci.monitor import RunMonitor
from src.ci_command.ci.reporter import RUN_CONTEXT, StatusReporter
from src.ci_command.commands.models import Command
from src.ci_command.commands.parser import CommandParser
from src.ci_command.errors import CICommandError, DispatchError, UnknownModuleError
from src.ci_command.github.client import GitHubAPIError
from src.ci_command.github.models import CommitState, PullRequestRef, WorkflowRun
from src.ci_command.github.resolver import PullRequestResolver
from src.ci_command.state.models import InvocationStage
from src.ci_command.state.tracker import InvocationTracker
from src.ci_command.webhook.models import IssueCommentEvent, RejectionReason

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CommandRequest:
    """Everything the background phase needs about an accepted command."""

    owner: str
    repo: str
    issue_number: int
    command: Command
    pull_request: PullRequestRef


@dataclass
class InvocationResult:
    """Outcome of the synchronous phase of an invocation.

    Attributes:
        stage: Stage the invocation reached before answering.
        message: Human-readable response text.
        reason: Set when the delivery was rejected.
        request: Set when a workflow was dispatched.
        follow_up: Background work to run after answering, if any.
    """

    stage: InvocationStage
    message: str
    reason: Optional[RejectionReason] = None
    request: Optional[CommandRequest] = None
    follow_up: Optional[Callable[[], Awaitable[bool]]] = None


class CICommandOrchestrator:
    """Orchestrates `/ci` commands from comment to commit status.

    Attributes:
        parser: Slash command parser.
        resolver: Pull request head lookup.
        dispatcher: Workflow dispatch and run discovery.
        monitor: Run/job polling.
        reporter: Commit status writer.
        workflow_inputs: Inputs sent with every dispatch.
        wait_for_completion: Run the background phase inline.
    """

    def __init__(
        self,
        parser: CommandParser,
        resolver: PullRequestResolver,
        dispatcher: WorkflowDispatcher,
        monitor: RunMonitor,
        reporter: StatusReporter,
        workflow_inputs: Optional[Dict[str, str]] = None,
        wait_for_completion: bool = False,
    ):
        self.parser = parser
        self.resolver = resolver
        self.dispatcher = dispatcher
        self.monitor = monitor
        self.reporter = reporter
        self.workflow_inputs = dict(workflow_inputs or {})
        self.wait_for_completion = wait_for_completion

    async def handle_comment(
        self,
        event: IssueCommentEvent,
        tracker: InvocationTracker,
    ) -> InvocationResult:
        """Run the synchronous phase for a verified comment event.

        Args:
            event: The parsed comment event.
            tracker: The invocation's tracker, in the VERIFIED stage.

        Returns:
            The result to answer the webhook with. When a workflow was
            dispatched and `wait_for_completion` is off, `follow_up`
            holds the background phase.
        """
        try:
            command = self.parser.parse(event.comment_body)
        except UnknownModuleError as e:
            logger.info(
                "Invalid module",
                extra={"ci_module": e.module, "issue_id": event.issue_id},
            )
            return self._reject(tracker, RejectionReason.INVALID_MODULE)

        if command is None:
            logger.info("No CI command found", extra={"issue_id": event.issue_id})
            return self._reject(tracker, RejectionReason.NO_COMMAND)

        tracker.transition(
            InvocationStage.PARSED,
            {"ci_module": command.module, "workflow_id": command.workflow_id},
        )

        pull_request = await self.resolver.resolve(
            event.owner, event.repository, event.issue_number
        )
        if pull_request is None:
            return self._reject(tracker, RejectionReason.PULL_REQUEST_NOT_FOUND)

        tracker.transition(
            InvocationStage.PR_RESOLVED,
            {"head_ref": pull_request.head_ref, "head_sha": pull_request.head_sha},
        )

        request = CommandRequest(
            owner=event.owner,
            repo=event.repository,
            issue_number=event.issue_number,
            command=command,
            pull_request=pull_request,
        )

        logger.info(
            "Triggering workflow for %s on branch %s",
            command.workflow_id,
            pull_request.head_ref,
            extra={"issue_id": event.issue_id},
        )
        try:
            await self.dispatcher.trigger(
                request.owner,
                request.repo,
                command.workflow_id,
                pull_request.head_ref,
                self.workflow_inputs,
            )
        except DispatchError as e:
            tracker.fail(str(e))
            return InvocationResult(
                stage=tracker.stage,
                message="Error triggering workflow",
                request=request,
            )

        tracker.transition(InvocationStage.DISPATCHED)
        message = f"CI triggered for {command.module} on branch {pull_request.head_ref}"

        async def follow_up() -> bool:
            return await self.follow_through(request, tracker)

        if not self.wait_for_completion:
            return InvocationResult(
                stage=tracker.stage,
                message=message,
                request=request,
                follow_up=follow_up,
            )

        if not await follow_up():
            return InvocationResult(
                stage=tracker.stage,
                message="Error triggering workflow",
                request=request,
            )
        return InvocationResult(stage=tracker.stage, message=message, request=request)

    async def follow_through(
        self,
        request: CommandRequest,
        tracker: InvocationTracker,
    ) -> bool:
        """Discover the dispatched run and mirror it into commit statuses.

        No exception escapes: failures are logged, recorded on the
        tracker and reported as a failure status on the head commit.

        Returns:
            True if the run was followed to completion.
        """
        workflow_id = request.command.workflow_id
        head = request.pull_request
        run: Optional[WorkflowRun] = None

        try:
            run = await self.dispatcher.discover_run(
                request.owner, request.repo, workflow_id, head.head_ref
            )
            tracker.transition(InvocationStage.RUN_DISCOVERED, {"run_id": run.run_id})
            tracker.transition(InvocationStage.POLLING)

            async for _job, status in self.monitor.watch(
                request.owner, request.repo, run.run_id, head.head_sha
            ):
                await self.reporter.publish(request.owner, request.repo, status)

        except Exception as e:
            # Unexpected errors get a traceback
            if isinstance(e, (CICommandError, GitHubAPIError)):
                log = logger.error
            else:
                log = logger.exception
            log(
                "Error following workflow for %s on branch %s",
                request.command.module,
                head.head_ref,
                extra={
                    "workflow_id": workflow_id,
                    "run_id": run.run_id if run else None,
                    "error": str(e),
                },
            )
            tracker.fail(str(e))
            await self.reporter.report(
                request.owner,
                request.repo,
                head.head_sha,
                CommitState.FAILURE,
                self._failure_description(e),
                RUN_CONTEXT,
                run.html_url if run else None,
            )
            return False

        tracker.transition(InvocationStage.COMPLETED)
        return True

    @staticmethod
    def _failure_description(error: Exception) -> str:
        if isinstance(error, DispatchError):
            return "Workflow run could not be found"
        return "Workflow run could not be monitored to completion"

    @staticmethod
    def _reject(tracker: InvocationTracker, reason: RejectionReason) -> InvocationResult:
        tracker.reject(reason.value)
        return InvocationResult(stage=tracker.stage, message=reason.message, reason=reason)
