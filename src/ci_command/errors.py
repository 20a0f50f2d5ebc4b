"""Exception hierarchy for the CI command bridge.

GitHub transport failures are raised by the API client as
GitHubAPIError (see github/client.py). The exceptions here describe
failures of the bridge's own operations and wrap the transport error
as their cause where one exists. PollTimeout (ci/polling.py) also
derives from CICommandError; it is raised by the polling loops and
translated by their callers.
"""

from typing import Optional


class CICommandError(Exception):
    """Base class for all CI command bridge errors."""


class UnknownModuleError(CICommandError):
    """Raised when a `/ci` command names a module that is not configured.

    The comment *was* a CI command, which distinguishes this from a
    comment that simply does not match the command syntax.

    Attributes:
        module: The module token taken from the comment.
    """

    def __init__(self, module: str):
        self.module = module
        super().__init__(f"Unknown CI module: {module}")


class DispatchError(CICommandError):
    """Raised when a workflow could not be started or its run not found.

    Attributes:
        workflow_id: The workflow file name or numeric ID.
        ref: The branch the workflow was dispatched on.
    """

    def __init__(
        self,
        message: str,
        workflow_id: Optional[str] = None,
        ref: Optional[str] = None,
    ):
        self.workflow_id = workflow_id
        self.ref = ref
        super().__init__(message)


class DispatchTimeout(DispatchError):
    """Raised when a dispatched run does not show up in time.

    Attributes:
        waited_seconds: How long discovery polled before giving up.
    """

    def __init__(
        self,
        workflow_id: str,
        ref: str,
        waited_seconds: float,
    ):
        self.waited_seconds = waited_seconds
        super().__init__(
            f"No in-progress run of {workflow_id} on {ref} "
            f"appeared within {waited_seconds:.0f}s",
            workflow_id=workflow_id,
            ref=ref,
        )


class MonitorTimeout(CICommandError):
    """Raised when a workflow run cannot be followed to completion.

    Covers both the overall monitoring deadline and too many
    consecutive failed status queries.

    Attributes:
        run_id: The workflow run being monitored.
    """

    def __init__(self, run_id: int, message: str):
        self.run_id = run_id
        super().__init__(message)
