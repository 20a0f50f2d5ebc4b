"""Unit tests for issue_comment payload parsing."""

import copy

import pytest

from src.ci_command.webhook import (
    CommentAction,
    IssueCommentEvent,
    RejectionReason,
    WebhookHandler,
)

PAYLOAD = {
    "action": "created",
    "issue": {
        "number": 42,
        "pull_request": {"url": "https://api.github.com/repos/acme/widgets/pulls/42"},
    },
    "comment": {"body": "/ci backend"},
    "repository": {"name": "widgets", "owner": {"login": "acme"}},
}


def _payload(**overrides):
    payload = copy.deepcopy(PAYLOAD)
    payload.update(overrides)
    return payload


@pytest.fixture
def handler() -> WebhookHandler:
    return WebhookHandler()


def test_parses_pull_request_comment(handler: WebhookHandler) -> None:
    event = handler.parse_comment_event("issue_comment", _payload(), delivery_id="d-1")

    assert isinstance(event, IssueCommentEvent)
    assert event.action == CommentAction.CREATED
    assert event.issue_number == 42
    assert event.is_pull_request
    assert event.comment_body == "/ci backend"
    assert event.owner == "acme"
    assert event.repository == "widgets"
    assert event.delivery_id == "d-1"
    assert event.issue_id == "acme/widgets#42"


@pytest.mark.parametrize("event_type", ["pull_request", "push", "issues", None])
def test_other_event_types_are_unsupported(handler: WebhookHandler, event_type) -> None:
    assert (
        handler.parse_comment_event(event_type, _payload())
        == RejectionReason.UNSUPPORTED_EVENT
    )


@pytest.mark.parametrize("action", ["edited", "deleted", "pinned", None])
def test_non_created_actions_need_no_action(handler: WebhookHandler, action) -> None:
    assert (
        handler.parse_comment_event("issue_comment", _payload(action=action))
        == RejectionReason.NO_ACTION_NEEDED
    )


@pytest.mark.parametrize("missing", ["issue", "comment"])
def test_missing_issue_or_comment_needs_no_action(handler: WebhookHandler, missing) -> None:
    payload = _payload()
    del payload[missing]

    assert handler.parse_comment_event("issue_comment", payload) == RejectionReason.NO_ACTION_NEEDED


def test_plain_issue_comment_is_rejected(handler: WebhookHandler) -> None:
    payload = _payload()
    del payload["issue"]["pull_request"]

    assert (
        handler.parse_comment_event("issue_comment", payload)
        == RejectionReason.NOT_A_PULL_REQUEST
    )


def test_plain_issue_comment_allowed_when_not_required() -> None:
    payload = _payload()
    del payload["issue"]["pull_request"]

    event = WebhookHandler(require_pull_request=False).parse_comment_event(
        "issue_comment", payload
    )

    assert isinstance(event, IssueCommentEvent)
    assert not event.is_pull_request


@pytest.mark.parametrize(
    "payload",
    [
        ["not", "a", "dict"],
        _payload(repository=None),
        _payload(repository={"name": "widgets"}),
        _payload(repository={"name": "", "owner": {"login": "acme"}}),
        _payload(issue={"number": "42", "pull_request": {}}),
        _payload(issue={"number": 0, "pull_request": {}}),
        _payload(issue={"number": True, "pull_request": {}}),
    ],
)
def test_malformed_payloads(handler: WebhookHandler, payload) -> None:
    assert handler.parse_comment_event("issue_comment", payload) == RejectionReason.MALFORMED_PAYLOAD


def test_null_comment_body_becomes_empty(handler: WebhookHandler) -> None:
    event = handler.parse_comment_event("issue_comment", _payload(comment={"body": None}))

    assert isinstance(event, IssueCommentEvent)
    assert event.comment_body == ""


def test_rejection_messages_are_human_readable() -> None:
    for reason in RejectionReason:
        assert reason.message
    assert RejectionReason.UNSUPPORTED_EVENT.message == "Event not related to issue comments"
    assert RejectionReason.INVALID_MODULE.message == "Invalid module"
