"""GitHub webhook handler for the CI command bridge.

This module provides the WebhookHandler class for turning a verified
GitHub delivery into an IssueCommentEvent. Signature verification
happens before the handler is called (see signature.py); the handler
only decides whether the delivery is a new comment on a pull request.

GitHub Webhook Payload Structure (issue_comment event):
{
  "action": "created",
  "issue": {
    "number": 42,
    "pull_request": {"url": "..."}
  },
  "comment": {"body": "/ci backend"},
  "repository": {
    "name": "repo-name",
    "owner": {"login": "owner-name"}
  }
}

`issue.pull_request` is only present when the issue is a pull request.
"""

import logging
from typing import Any, Optional, Union

from .models import (
    ISSUE_COMMENT_EVENT,
    CommentAction,
    IssueCommentEvent,
    RejectionReason,
)

logger = logging.getLogger(__name__)


class WebhookHandler:
    """Handler for parsing GitHub issue_comment deliveries.

    Attributes:
        require_pull_request: Reject comments made on plain issues.
    """

    def __init__(self, require_pull_request: bool = True) -> None:
        self.require_pull_request = require_pull_request

    def parse_comment_event(
        self,
        event_type: Optional[str],
        payload: Any,
        delivery_id: str = "",
    ) -> Union[IssueCommentEvent, RejectionReason]:
        """Parse an issue_comment delivery.

        Args:
            event_type: Value of the X-GitHub-Event header.
            payload: The decoded JSON body.
            delivery_id: Value of the X-GitHub-Delivery header.

        Returns:
            IssueCommentEvent for a newly created comment on a pull
            request, otherwise the reason the delivery needs no work.
        """
        if event_type != ISSUE_COMMENT_EVENT:
            logger.info(
                "Event not related to issue comments",
                extra={"event_type": event_type, "delivery_id": delivery_id},
            )
            return RejectionReason.UNSUPPORTED_EVENT

        if not isinstance(payload, dict):
            logger.warning("Invalid payload: expected dict, got %s", type(payload))
            return RejectionReason.MALFORMED_PAYLOAD

        action = self._parse_action(payload.get("action"))
        issue_data = payload.get("issue")
        comment_data = payload.get("comment")

        if (
            action is not CommentAction.CREATED
            or not isinstance(issue_data, dict)
            or not isinstance(comment_data, dict)
        ):
            logger.info(
                "No action needed",
                extra={"action": payload.get("action"), "delivery_id": delivery_id},
            )
            return RejectionReason.NO_ACTION_NEEDED

        issue_number = issue_data.get("number")
        if isinstance(issue_number, bool) or not isinstance(issue_number, int) or issue_number <= 0:
            logger.warning("Invalid issue number: %s", issue_number)
            return RejectionReason.MALFORMED_PAYLOAD

        owner, repository = self._extract_repository(payload.get("repository"))
        if owner is None or repository is None:
            return RejectionReason.MALFORMED_PAYLOAD

        body = comment_data.get("body")
        if not isinstance(body, str):
            body = ""

        is_pull_request = isinstance(issue_data.get("pull_request"), dict)
        if self.require_pull_request and not is_pull_request:
            logger.info(
                "Comment is not on a pull request",
                extra={
                    "issue_number": issue_number,
                    "repository": f"{owner}/{repository}",
                },
            )
            return RejectionReason.NOT_A_PULL_REQUEST

        event = IssueCommentEvent(
            action=action,
            issue_number=issue_number,
            is_pull_request=is_pull_request,
            comment_body=body,
            repository=repository,
            owner=owner,
            delivery_id=delivery_id,
        )
        logger.debug("Parsed comment event: %s", event.issue_id)
        return event

    def _parse_action(self, action: Any) -> Optional[CommentAction]:
        if not isinstance(action, str):
            return None
        try:
            return CommentAction(action)
        except ValueError:
            return None

    def _extract_repository(self, repo_data: Any):
        """Return (owner login, repository name), or (None, None)."""
        if not isinstance(repo_data, dict):
            logger.warning("Missing or invalid 'repository' field in payload")
            return None, None

        name = repo_data.get("name")
        owner_data = repo_data.get("owner")
        login = owner_data.get("login") if isinstance(owner_data, dict) else None

        if not isinstance(name, str) or not name.strip():
            logger.warning("Invalid or empty repository name: %s", name)
            return None, None
        if not isinstance(login, str) or not login.strip():
            logger.warning("Invalid or empty repository owner login: %s", login)
            return None, None
        return login.strip(), name.strip()
