"""GitHub webhook event models for the CI command bridge.

This module defines the parsed form of an `issue_comment` delivery and
the reasons a delivery can be turned away without doing any work.

The models use Pydantic for validation, consistent with the bridge's
configuration approach in config.py.
"""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

ISSUE_COMMENT_EVENT = "issue_comment"


class CommentAction(str, Enum):
    """GitHub issue_comment event actions.

    Only CREATED triggers CI; edits and deletions are acknowledged and
    ignored.
    """

    CREATED = "created"
    EDITED = "edited"
    DELETED = "deleted"


class RejectionReason(str, Enum):
    """Why a verified delivery did not lead to a workflow dispatch.

    Attributes:
        UNSUPPORTED_EVENT: The event type is not issue_comment.
        NO_ACTION_NEEDED: The comment was not newly created.
        MALFORMED_PAYLOAD: The body is not the expected JSON shape.
        NOT_A_PULL_REQUEST: The comment is on a plain issue.
        NO_COMMAND: The comment is not a `/ci` command.
        INVALID_MODULE: The command names an unconfigured module.
        PULL_REQUEST_NOT_FOUND: The pull request could not be looked up.
    """

    UNSUPPORTED_EVENT = "unsupported_event"
    NO_ACTION_NEEDED = "no_action_needed"
    MALFORMED_PAYLOAD = "malformed_payload"
    NOT_A_PULL_REQUEST = "not_a_pull_request"
    NO_COMMAND = "no_command"
    INVALID_MODULE = "invalid_module"
    PULL_REQUEST_NOT_FOUND = "pull_request_not_found"

    @property
    def message(self) -> str:
        return _REJECTION_MESSAGES[self]


_REJECTION_MESSAGES = {
    RejectionReason.UNSUPPORTED_EVENT: "Event not related to issue comments",
    RejectionReason.NO_ACTION_NEEDED: "No action needed",
    RejectionReason.MALFORMED_PAYLOAD: "Malformed payload",
    RejectionReason.NOT_A_PULL_REQUEST: "Comment is not on a pull request",
    RejectionReason.NO_COMMAND: "No CI command found",
    RejectionReason.INVALID_MODULE: "Invalid module",
    RejectionReason.PULL_REQUEST_NOT_FOUND: "Pull request not found or error occurred",
}


class IssueCommentEvent(BaseModel):
    """Parsed GitHub issue_comment webhook event.

    Attributes:
        action: The comment action (created, edited, deleted).
        issue_number: The issue or pull request number.
        is_pull_request: Whether the issue is a pull request.
        comment_body: The comment text.
        repository: The repository name (without owner prefix).
        owner: The repository owner (user or organization).
        delivery_id: The X-GitHub-Delivery header, for log correlation.
    """

    model_config = ConfigDict(frozen=True)

    action: CommentAction
    issue_number: int = Field(..., gt=0)
    is_pull_request: bool = False
    comment_body: str = ""
    repository: str = Field(..., min_length=1)
    owner: str = Field(..., min_length=1)
    delivery_id: str = ""

    @property
    def issue_id(self) -> str:
        """Canonical identifier "{owner}/{repository}#{issue_number}"."""
        return f"{self.owner}/{self.repository}#{self.issue_number}"

    @property
    def full_repository(self) -> str:
        return f"{self.owner}/{self.repository}"
