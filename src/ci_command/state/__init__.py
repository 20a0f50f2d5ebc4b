"""Invocation state tracking.

Each webhook invocation progresses through:
- received → verified → parsed → pr_resolved
- → dispatched → run_discovered → polling → completed

and may end early as rejected or failed. State is kept in memory for
the lifetime of the invocation only.
"""

from src.ci_command.state.models import (
    InvocationStage,
    StageTransition,
    VALID_TRANSITIONS,
    is_terminal_stage,
    is_valid_transition,
)
from src.ci_command.state.tracker import InvalidTransitionError, InvocationTracker

__all__ = [
    "InvalidTransitionError",
    "InvocationStage",
    "InvocationTracker",
    "StageTransition",
    "VALID_TRANSITIONS",
    "is_terminal_stage",
    "is_valid_transition",
]
