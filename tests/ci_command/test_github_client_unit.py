"""Unit tests for GitHubClient against a mocked transport."""

import asyncio
import json
from typing import Callable, List

import httpx
import pytest

from src.ci_command.github.client import GitHubAPIError, GitHubClient, RateLimitError
from src.ci_command.github.models import CommitState


def run_async(coro):
    return asyncio.run(coro)


def _client(handler: Callable[[httpx.Request], httpx.Response], **kwargs) -> GitHubClient:
    kwargs.setdefault("base_delay", 0.0)
    return GitHubClient(
        token="ghp_test",
        base_url="https://api.github.test",
        transport=httpx.MockTransport(handler),
        **kwargs,
    )


def _call(client: GitHubClient, coro_factory):
    async def go():
        async with client:
            return await coro_factory(client)

    return run_async(go())


class Recorder:
    """Transport handler replaying canned responses and recording requests."""

    def __init__(self, *responses: httpx.Response):
        self.responses: List[httpx.Response] = list(responses)
        self.requests: List[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.responses.pop(0)


def test_sends_auth_and_api_version_headers() -> None:
    recorder = Recorder(
        httpx.Response(200, json={"head": {"ref": "feature-x", "sha": "abc123"}})
    )

    _call(_client(recorder), lambda c: c.get_pull_request("acme", "widgets", 42))

    request = recorder.requests[0]
    assert request.headers["authorization"] == "Bearer ghp_test"
    assert request.headers["accept"] == "application/vnd.github+json"
    assert request.headers["x-github-api-version"] == "2022-11-28"


def test_get_pull_request() -> None:
    recorder = Recorder(
        httpx.Response(200, json={"number": 42, "head": {"ref": "feature-x", "sha": "abc123"}})
    )

    pr = _call(_client(recorder), lambda c: c.get_pull_request("acme", "widgets", 42))

    assert (pr.head_ref, pr.head_sha) == ("feature-x", "abc123")
    assert recorder.requests[0].url.path == "/repos/acme/widgets/pulls/42"


def test_create_workflow_dispatch() -> None:
    recorder = Recorder(httpx.Response(204))

    _call(
        _client(recorder),
        lambda c: c.create_workflow_dispatch("acme", "widgets", "ci-backend.yml", "feature-x"),
    )

    request = recorder.requests[0]
    assert request.method == "POST"
    assert request.url.path == "/repos/acme/widgets/actions/workflows/ci-backend.yml/dispatches"
    assert json.loads(request.content) == {"ref": "feature-x", "inputs": {}}


def test_list_workflow_runs_filters_and_parses() -> None:
    recorder = Recorder(
        httpx.Response(
            200,
            json={
                "total_count": 1,
                "workflow_runs": [
                    {
                        "id": 1001,
                        "workflow_id": 7,
                        "name": "CI",
                        "head_branch": "feature-x",
                        "status": "in_progress",
                        "conclusion": None,
                        "html_url": "https://github.com/acme/widgets/actions/runs/1001",
                    }
                ],
            },
        )
    )

    runs = _call(
        _client(recorder),
        lambda c: c.list_workflow_runs(
            "acme", "widgets", "ci.yml", branch="feature-x", status="in_progress"
        ),
    )

    assert [run.run_id for run in runs] == [1001]
    params = recorder.requests[0].url.params
    assert params["branch"] == "feature-x"
    assert params["status"] == "in_progress"


def test_list_jobs_for_workflow_run() -> None:
    recorder = Recorder(
        httpx.Response(
            200,
            json={
                "jobs": [
                    {
                        "id": 5,
                        "run_id": 1001,
                        "name": "build",
                        "status": "completed",
                        "conclusion": "success",
                        "html_url": "https://github.com/acme/widgets/actions/runs/1001/job/5",
                    }
                ]
            },
        )
    )

    jobs = _call(_client(recorder), lambda c: c.list_jobs_for_workflow_run("acme", "widgets", 1001))

    assert jobs[0].name == "build"
    assert jobs[0].details_url.endswith("/job/5")
    assert recorder.requests[0].url.path == "/repos/acme/widgets/actions/runs/1001/jobs"


def test_create_commit_status_payload() -> None:
    recorder = Recorder(httpx.Response(201, json={"state": "success"}))

    _call(
        _client(recorder),
        lambda c: c.create_commit_status(
            "acme", "widgets", "abc123", CommitState.SUCCESS, "CI / build", "success"
        ),
    )

    request = recorder.requests[0]
    assert request.url.path == "/repos/acme/widgets/statuses/abc123"
    assert json.loads(request.content) == {
        "state": "success",
        "context": "CI / build",
        "description": "success",
    }


def test_create_commit_status_ignores_response_body() -> None:
    recorder = Recorder(httpx.Response(201, content=b"not json"))

    result = _call(
        _client(recorder),
        lambda c: c.create_commit_status(
            "acme", "widgets", "abc123", CommitState.PENDING, "CI Pipeline"
        ),
    )

    assert result is None
    assert len(recorder.requests) == 1


def test_server_errors_are_retried() -> None:
    recorder = Recorder(
        httpx.Response(502),
        httpx.Response(503),
        httpx.Response(200, json={"head": {"ref": "main", "sha": "def456"}}),
    )

    pr = _call(_client(recorder), lambda c: c.get_pull_request("acme", "widgets", 1))

    assert pr.head_sha == "def456"
    assert len(recorder.requests) == 3


def test_retries_are_bounded() -> None:
    recorder = Recorder(*[httpx.Response(500) for _ in range(3)])

    with pytest.raises(GitHubAPIError) as exc_info:
        _call(
            _client(recorder, max_retries=2),
            lambda c: c.get_pull_request("acme", "widgets", 1),
        )

    assert exc_info.value.status_code == 500
    assert len(recorder.requests) == 3


def test_not_found_is_not_retried() -> None:
    recorder = Recorder(httpx.Response(404, json={"message": "Not Found"}))

    with pytest.raises(GitHubAPIError) as exc_info:
        _call(_client(recorder), lambda c: c.get_pull_request("acme", "widgets", 7))

    assert exc_info.value.is_not_found
    assert len(recorder.requests) == 1


def test_short_rate_limit_is_waited_out() -> None:
    recorder = Recorder(
        httpx.Response(403, headers={"x-ratelimit-remaining": "0", "retry-after": "0"}),
        httpx.Response(201, json={}),
    )

    _call(
        _client(recorder),
        lambda c: c.create_commit_status("acme", "widgets", "abc123", CommitState.PENDING, "CI"),
    )

    assert len(recorder.requests) == 2


def test_long_rate_limit_is_raised() -> None:
    recorder = Recorder(httpx.Response(429, headers={"retry-after": "3600"}))

    with pytest.raises(RateLimitError) as exc_info:
        _call(
            _client(recorder, max_delay=60.0),
            lambda c: c.create_commit_status("acme", "widgets", "abc123", CommitState.PENDING, "CI"),
        )

    assert exc_info.value.retry_after == 3600


def test_connection_errors_are_retried() -> None:
    attempts = []

    def handler(request: httpx.Request) -> httpx.Response:
        attempts.append(request)
        if len(attempts) == 1:
            raise httpx.ConnectError("connection refused", request=request)
        return httpx.Response(204)

    _call(
        _client(handler),
        lambda c: c.create_workflow_dispatch("acme", "widgets", "ci.yml", "main"),
    )

    assert len(attempts) == 2


@pytest.mark.parametrize("status_code,expected", [(200, True), (401, False)])
def test_health_check(status_code: int, expected: bool) -> None:
    recorder = Recorder(httpx.Response(status_code, json={}))

    assert _call(_client(recorder), lambda c: c.health_check()) is expected
