"""GitHub webhook handling for the CI command bridge.

This module authenticates and parses GitHub webhook deliveries,
specifically:
- issue_comment.created - A new comment on a pull request

Every other delivery is acknowledged without further work.
"""

from .handler import WebhookHandler
from .models import CommentAction, IssueCommentEvent, RejectionReason
from .signature import compute_signature, verify_signature

__all__ = [
    "CommentAction",
    "IssueCommentEvent",
    "RejectionReason",
    "WebhookHandler",
    "compute_signature",
    "verify_signature",
]
