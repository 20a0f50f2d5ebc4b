"""Unit tests for WorkflowDispatcher."""

import asyncio
import logging
from unittest.mock import AsyncMock

import pytest

from src.ci_command.ci.dispatcher import WorkflowDispatcher
from src.ci_command.ci.polling import PollPolicy
from src.ci_command.errors import DispatchError, DispatchTimeout
from src.ci_command.github.client import GitHubAPIError, GitHubClient
from tests.ci_command.fakes import FakeClock, make_run


def run_async(coro):
    return asyncio.run(coro)


@pytest.fixture
def github_client() -> AsyncMock:
    return AsyncMock(spec=GitHubClient)


def _dispatcher(github_client, timeout: float = 60, failures: int = 3) -> WorkflowDispatcher:
    clock = FakeClock()
    return WorkflowDispatcher(
        github_client,
        PollPolicy(interval=10, timeout=timeout, max_consecutive_failures=failures),
        sleep=clock.sleep,
        clock=clock,
    )


class TestTrigger:
    def test_sends_dispatch_on_head_branch(self, github_client: AsyncMock) -> None:
        run_async(
            _dispatcher(github_client).trigger(
                "acme", "widgets", "ci-backend.yml", "feature-x", {"debug": "true"}
            )
        )

        github_client.create_workflow_dispatch.assert_awaited_once_with(
            "acme", "widgets", "ci-backend.yml", "feature-x", {"debug": "true"}
        )

    def test_rejected_dispatch_raises(self, github_client: AsyncMock) -> None:
        github_client.create_workflow_dispatch.side_effect = GitHubAPIError(
            "GitHub API error: 422", status_code=422
        )

        with pytest.raises(DispatchError) as exc_info:
            run_async(
                _dispatcher(github_client).trigger("acme", "widgets", "ci.yml", "main")
            )

        assert exc_info.value.workflow_id == "ci.yml"
        assert exc_info.value.ref == "main"
        assert not isinstance(exc_info.value, DispatchTimeout)


class TestDiscoverRun:
    def test_waits_for_run_to_appear(self, github_client: AsyncMock) -> None:
        run = make_run(run_id=555)
        github_client.list_workflow_runs.side_effect = [[], [], [run]]

        found = run_async(
            _dispatcher(github_client).discover_run("acme", "widgets", "ci.yml", "feature-x")
        )

        assert found.run_id == 555
        assert github_client.list_workflow_runs.await_count == 3
        github_client.list_workflow_runs.assert_awaited_with(
            "acme", "widgets", "ci.yml", branch="feature-x", status="in_progress"
        )

    def test_adopts_first_listed_and_warns(self, github_client: AsyncMock, caplog) -> None:
        github_client.list_workflow_runs.return_value = [make_run(run_id=2), make_run(run_id=1)]

        with caplog.at_level(logging.WARNING):
            found = run_async(
                _dispatcher(github_client).discover_run("acme", "widgets", "ci.yml", "feature-x")
            )

        assert found.run_id == 2
        assert "Multiple in-progress runs" in caplog.text

    def test_no_run_before_deadline(self, github_client: AsyncMock) -> None:
        github_client.list_workflow_runs.return_value = []

        with pytest.raises(DispatchTimeout) as exc_info:
            run_async(
                _dispatcher(github_client, timeout=30).discover_run(
                    "acme", "widgets", "ci.yml", "feature-x"
                )
            )

        assert exc_info.value.waited_seconds == 30
        assert github_client.list_workflow_runs.await_count == 4

    def test_listing_keeps_failing(self, github_client: AsyncMock) -> None:
        github_client.list_workflow_runs.side_effect = GitHubAPIError(
            "GitHub API error: 500", status_code=500
        )

        with pytest.raises(DispatchError) as exc_info:
            run_async(
                _dispatcher(github_client, failures=2).discover_run(
                    "acme", "widgets", "ci.yml", "feature-x"
                )
            )

        assert not isinstance(exc_info.value, DispatchTimeout)
        assert github_client.list_workflow_runs.await_count == 2


def test_dispatch_triggers_then_discovers(github_client: AsyncMock) -> None:
    github_client.list_workflow_runs.return_value = [make_run(run_id=9)]

    run = run_async(
        _dispatcher(github_client).dispatch("acme", "widgets", "ci.yml", "feature-x")
    )

    assert run.run_id == 9
    github_client.create_workflow_dispatch.assert_awaited_once()
