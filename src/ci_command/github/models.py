"""GitHub API response models for the CI command bridge.

These models hold the fields the bridge reads from the pull request,
workflow run and workflow job endpoints, plus the commit status it
writes. Each response model exposes a `from_github_response`
constructor that picks the needed fields out of the raw JSON.
"""

from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


class RunStatus(str, Enum):
    """Workflow run and job statuses reported by GitHub Actions."""

    QUEUED = "queued"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    WAITING = "waiting"
    REQUESTED = "requested"
    PENDING = "pending"


class CommitState(str, Enum):
    """Commit status states written by the bridge.

    GitHub also accepts "error"; the bridge reports every unsuccessful
    conclusion as FAILURE.
    """

    PENDING = "pending"
    SUCCESS = "success"
    FAILURE = "failure"

    @property
    def is_terminal(self) -> bool:
        return self is not CommitState.PENDING


class PullRequestRef(BaseModel):
    """Head branch and commit of a pull request.

    Attributes:
        head_ref: Branch name the workflow is dispatched on.
        head_sha: Commit that receives the commit statuses.
    """

    model_config = ConfigDict(frozen=True)

    head_ref: str = Field(..., min_length=1)
    head_sha: str = Field(..., min_length=1)

    @classmethod
    def from_github_response(cls, data: Dict[str, Any]) -> "PullRequestRef":
        head = data.get("head") or {}
        return cls(head_ref=head.get("ref", ""), head_sha=head.get("sha", ""))


class WorkflowRun(BaseModel):
    """One execution of a workflow.

    `conclusion` is only meaningful once the run has completed; a
    conclusion sent for a run that has not completed is dropped. GitHub
    can report a completed run without a conclusion, which the monitor
    treats as a failure.

    Attributes:
        run_id: Identifier assigned by GitHub after dispatch.
        workflow_id: Numeric ID of the workflow definition.
        name: Workflow display name, used in commit status contexts.
        head_branch: Branch the run executes on.
        status: Lifecycle status.
        conclusion: Outcome once completed.
        html_url: Link to the run in the GitHub UI.
    """

    model_config = ConfigDict(frozen=True)

    run_id: int = Field(..., gt=0)
    workflow_id: Optional[int] = None
    name: Optional[str] = None
    head_branch: Optional[str] = None
    status: str
    conclusion: Optional[str] = None
    html_url: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def _conclusion_only_when_completed(cls, data: Any) -> Any:
        if isinstance(data, dict) and data.get("status") != RunStatus.COMPLETED.value:
            data = {**data, "conclusion": None}
        return data

    @property
    def is_completed(self) -> bool:
        return self.status == RunStatus.COMPLETED.value

    @classmethod
    def from_github_response(cls, data: Dict[str, Any]) -> "WorkflowRun":
        return cls(
            run_id=data.get("id"),
            workflow_id=data.get("workflow_id"),
            name=data.get("name"),
            head_branch=data.get("head_branch"),
            status=data.get("status"),
            conclusion=data.get("conclusion"),
            html_url=data.get("html_url"),
        )


class WorkflowJob(BaseModel):
    """One job within a workflow run.

    Attributes:
        job_id: Job identifier.
        run_id: The run this job belongs to.
        name: Job name as shown in the workflow UI.
        status: Lifecycle status.
        conclusion: Outcome once completed, None while running.
        details_url: Link to the job log.
    """

    model_config = ConfigDict(frozen=True)

    job_id: int
    run_id: int
    name: str
    status: str
    conclusion: Optional[str] = None
    details_url: Optional[str] = None

    @property
    def is_completed(self) -> bool:
        return self.status == RunStatus.COMPLETED.value

    @classmethod
    def from_github_response(cls, data: Dict[str, Any]) -> "WorkflowJob":
        return cls(
            job_id=data.get("id"),
            run_id=data.get("run_id"),
            name=data.get("name"),
            status=data.get("status"),
            conclusion=data.get("conclusion"),
            details_url=data.get("html_url"),
        )


class CommitStatus(BaseModel):
    """A commit status entry, keyed on the commit by its context.

    Attributes:
        sha: Commit the status is attached to.
        state: pending, success or failure.
        description: Short human-readable text.
        context: Label identifying the status line; posting again with
            the same context replaces the previous entry.
        target_url: Link shown next to the status.
    """

    model_config = ConfigDict(frozen=True)

    sha: str = Field(..., min_length=1)
    state: CommitState
    description: str = ""
    context: str = Field(..., min_length=1)
    target_url: Optional[str] = None
