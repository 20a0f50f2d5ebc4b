"""Unit tests for RunMonitor."""

import asyncio
from typing import List, Optional, Tuple
from unittest.mock import AsyncMock

import pytest

from src.ci_command.ci.monitor import (
    COMPLETED_DESCRIPTION,
    IN_PROGRESS_DESCRIPTION,
    RunMonitor,
)
from src.ci_command.ci.polling import PollPolicy
from src.ci_command.config import StatusGranularity
from src.ci_command.errors import MonitorTimeout
from src.ci_command.github.client import GitHubAPIError, GitHubClient
from src.ci_command.github.models import (
    CommitState,
    CommitStatus,
    WorkflowJob,
    WorkflowRun,
)
from tests.ci_command.fakes import FakeClock, make_job, make_run

SHA = "abc123"


def run_async(coro):
    return asyncio.run(coro)


def _monitor(
    github_client,
    granularity: StatusGranularity = StatusGranularity.JOB,
    timeout: float = 600,
    failures: int = 3,
) -> RunMonitor:
    clock = FakeClock()
    return RunMonitor(
        github_client,
        PollPolicy(interval=10, timeout=timeout, max_consecutive_failures=failures),
        granularity=granularity,
        sleep=clock.sleep,
        clock=clock,
    )


def _collect(monitor: RunMonitor) -> List[Tuple[Optional[WorkflowJob], CommitStatus]]:
    async def go():
        return [item async for item in monitor.watch("acme", "widgets", 1001, SHA)]

    return run_async(go())


@pytest.fixture
def github_client() -> AsyncMock:
    client = AsyncMock(spec=GitHubClient)
    client.get_workflow_run.return_value = make_run(name="CI")
    return client


class TestJobGranularity:
    def test_reports_each_job_transition_once(self, github_client: AsyncMock) -> None:
        github_client.list_jobs_for_workflow_run.side_effect = [
            [make_job("build", job_id=1), make_job("test", status="queued", job_id=2)],
            [make_job("build", job_id=1), make_job("test", status="queued", job_id=2)],
            [
                make_job("build", "completed", "success", job_id=1),
                make_job("test", job_id=2),
            ],
            [
                make_job("build", "completed", "success", job_id=1),
                make_job("test", "completed", "failure", job_id=2),
            ],
        ]

        statuses = [status for _job, status in _collect(_monitor(github_client))]

        assert [(s.context, s.state, s.description) for s in statuses] == [
            ("CI / build", CommitState.PENDING, IN_PROGRESS_DESCRIPTION),
            ("CI / build", CommitState.SUCCESS, "success"),
            ("CI / test", CommitState.PENDING, IN_PROGRESS_DESCRIPTION),
            ("CI / test", CommitState.FAILURE, "failure"),
        ]
        assert all(s.sha == SHA for s in statuses)
        assert statuses[0].target_url.endswith("/job/1")

    def test_queued_jobs_are_not_reported(self, github_client: AsyncMock) -> None:
        github_client.list_jobs_for_workflow_run.side_effect = [
            [make_job("deploy", status="queued")],
            [make_job("deploy", "completed", "skipped")],
        ]

        statuses = [status for _job, status in _collect(_monitor(github_client))]

        assert [(s.state, s.description) for s in statuses] == [
            (CommitState.FAILURE, "skipped")
        ]

    def test_empty_job_list_keeps_polling(self, github_client: AsyncMock) -> None:
        github_client.list_jobs_for_workflow_run.side_effect = [
            [],
            [make_job("build", "completed", "success")],
        ]

        statuses = _collect(_monitor(github_client))

        assert len(statuses) == 1
        assert github_client.list_jobs_for_workflow_run.await_count == 2

    def test_terminal_state_is_not_regressed(self, github_client: AsyncMock) -> None:
        github_client.list_jobs_for_workflow_run.side_effect = [
            [make_job("build", "completed", "success", job_id=1), make_job("lint", job_id=2)],
            # A re-run of the job shows it in progress again
            [make_job("build", job_id=1), make_job("lint", job_id=2)],
            [
                make_job("build", "completed", "success", job_id=1),
                make_job("lint", "completed", "success", job_id=2),
            ],
        ]

        build = [
            status
            for _job, status in _collect(_monitor(github_client))
            if status.context == "CI / build"
        ]

        assert [s.state for s in build] == [CommitState.SUCCESS]

    def test_workflow_name_unavailable_uses_job_name(self, github_client: AsyncMock) -> None:
        github_client.get_workflow_run.side_effect = GitHubAPIError("boom", status_code=500)
        github_client.list_jobs_for_workflow_run.return_value = [
            make_job("build", "completed", "success")
        ]

        statuses = _collect(_monitor(github_client))

        assert statuses[0][1].context == "build"

    def test_stalled_run_times_out(self, github_client: AsyncMock) -> None:
        github_client.list_jobs_for_workflow_run.return_value = [make_job("build")]

        with pytest.raises(MonitorTimeout) as exc_info:
            _collect(_monitor(github_client, timeout=60))

        assert exc_info.value.run_id == 1001

    def test_repeated_query_failures_time_out(self, github_client: AsyncMock) -> None:
        github_client.list_jobs_for_workflow_run.side_effect = GitHubAPIError(
            "boom", status_code=502
        )

        with pytest.raises(MonitorTimeout, match="could not be read"):
            _collect(_monitor(github_client, failures=2))


class TestRunGranularity:
    def test_reports_pending_then_outcome(self, github_client: AsyncMock) -> None:
        github_client.get_workflow_run.side_effect = [
            make_run(status="queued"),
            make_run(status="in_progress"),
            make_run(status="in_progress"),
            make_run(status="completed", conclusion="success"),
        ]

        items = _collect(_monitor(github_client, StatusGranularity.RUN))

        assert [job for job, _status in items] == [None, None]
        assert [(s.context, s.state) for _job, s in items] == [
            ("CI Pipeline", CommitState.PENDING),
            ("CI Pipeline", CommitState.SUCCESS),
        ]
        assert items[1][1].target_url == "https://github.com/acme/widgets/actions/runs/1001"

    @pytest.mark.parametrize("conclusion", ["failure", "cancelled", "timed_out"])
    def test_unsuccessful_conclusions_fail(self, github_client: AsyncMock, conclusion: str) -> None:
        github_client.get_workflow_run.return_value = make_run(
            status="completed", conclusion=conclusion
        )

        items = _collect(_monitor(github_client, StatusGranularity.RUN))

        assert [(s.state, s.description) for _job, s in items] == [
            (CommitState.FAILURE, conclusion)
        ]

    def test_completed_without_conclusion_fails(self, github_client: AsyncMock) -> None:
        github_client.get_workflow_run.side_effect = [
            make_run(status="in_progress"),
            WorkflowRun.from_github_response(
                {"id": 1001, "status": "completed", "conclusion": None}
            ),
        ]

        items = _collect(_monitor(github_client, StatusGranularity.RUN))

        assert [(s.state, s.description) for _job, s in items] == [
            (CommitState.PENDING, IN_PROGRESS_DESCRIPTION),
            (CommitState.FAILURE, COMPLETED_DESCRIPTION),
        ]
