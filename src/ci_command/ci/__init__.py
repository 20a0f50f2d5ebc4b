"""GitHub Actions orchestration: dispatch, discovery, monitoring, reporting.

- dispatcher: trigger a workflow and find the run it started
- monitor: poll the run or its jobs until completion
- reporter: mirror states onto the pull request head as commit statuses
- polling: the bounded retry-with-delay loop shared by the above
"""

from src.ci_command.ci.dispatcher import WorkflowDispatcher
from src.ci_command.ci.monitor import RunMonitor, map_conclusion
from src.ci_command.ci.polling import PollPolicy, PollTimeout, poll, poll_until
from src.ci_command.ci.reporter import RUN_CONTEXT, StatusReporter, job_context

__all__ = [
    "PollPolicy",
    "PollTimeout",
    "RUN_CONTEXT",
    "RunMonitor",
    "StatusReporter",
    "WorkflowDispatcher",
    "job_context",
    "map_conclusion",
    "poll",
    "poll_until",
]
