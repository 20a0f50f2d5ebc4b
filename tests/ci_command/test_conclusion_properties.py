"""Property-based tests for mapping GitHub conclusions to commit states."""

from hypothesis import given, settings, strategies as st

from src.ci_command.ci.monitor import IN_PROGRESS_DESCRIPTION, describe, map_conclusion
from src.ci_command.github.models import CommitState, RunStatus

conclusions = st.sampled_from(
    [
        "success",
        "failure",
        "cancelled",
        "timed_out",
        "skipped",
        "neutral",
        "action_required",
        "stale",
        "startup_failure",
    ]
) | st.text(min_size=1, max_size=20)

statuses = st.sampled_from([s.value for s in RunStatus])


@settings(max_examples=100)
@given(status=statuses, conclusion=conclusions)
def test_only_success_maps_to_success(status: str, conclusion: str) -> None:
    state = map_conclusion(status, conclusion)

    if conclusion == "success":
        assert state == CommitState.SUCCESS
    else:
        assert state == CommitState.FAILURE


@settings(max_examples=100)
@given(status=statuses.filter(lambda s: s != RunStatus.COMPLETED.value))
def test_running_without_conclusion_is_pending(status: str) -> None:
    assert map_conclusion(status, None) == CommitState.PENDING
    assert describe(None) == IN_PROGRESS_DESCRIPTION


def test_completed_without_conclusion_is_failure() -> None:
    assert map_conclusion("completed", None) == CommitState.FAILURE


@settings(max_examples=100)
@given(conclusion=conclusions)
def test_description_is_the_conclusion(conclusion: str) -> None:
    assert describe(conclusion) == conclusion
