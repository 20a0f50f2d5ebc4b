"""Invocation state machine models.

This module defines the stages a single webhook invocation moves
through, from receipt of the delivery to its final outcome:

- InvocationStage: Enum of all stages
- StageTransition: Record of a transition with timestamp and details
- VALID_TRANSITIONS: Map defining allowed transitions

Invocation state lives only in memory for the duration of one delivery;
nothing is persisted.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List

from pydantic import BaseModel, Field


class InvocationStage(str, Enum):
    """Stages of one webhook invocation.

    Stage Flow:
        received → verified → parsed → pr_resolved → dispatched
        → run_discovered → polling → completed

    Any non-terminal stage can move to rejected (the delivery needs no
    work) or failed (the work could not be done).

    Attributes:
        RECEIVED: Delivery received, signature not yet checked.
        VERIFIED: Signature checked.
        PARSED: A valid `/ci` command was found.
        PR_RESOLVED: Pull request head ref and sha are known.
        DISPATCHED: The workflow dispatch was accepted by GitHub.
        RUN_DISCOVERED: The dispatched run's ID is known.
        POLLING: Run status is being mirrored into commit statuses.
        COMPLETED: The run finished and its outcome was reported.
        REJECTED: The delivery was turned away.
        FAILED: Dispatch, discovery or monitoring failed.
    """

    RECEIVED = "received"
    VERIFIED = "verified"
    PARSED = "parsed"
    PR_RESOLVED = "pr_resolved"
    DISPATCHED = "dispatched"
    RUN_DISCOVERED = "run_discovered"
    POLLING = "polling"
    COMPLETED = "completed"
    REJECTED = "rejected"
    FAILED = "failed"


class StageTransition(BaseModel):
    """Record of a stage transition.

    Attributes:
        from_stage: The stage before the transition.
        to_stage: The stage after the transition.
        timestamp: When the transition occurred (UTC).
        details: Optional metadata (rejection reason, run ID, error).
    """

    from_stage: InvocationStage
    to_stage: InvocationStage
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    details: Dict[str, Any] = Field(default_factory=dict)


_ABORT = [InvocationStage.REJECTED, InvocationStage.FAILED]

# Valid state transitions map
#
# - Every non-terminal stage can be rejected or fail
# - COMPLETED, REJECTED and FAILED have no outgoing transitions
VALID_TRANSITIONS: Dict[InvocationStage, List[InvocationStage]] = {
    InvocationStage.RECEIVED: [InvocationStage.VERIFIED, *_ABORT],
    InvocationStage.VERIFIED: [InvocationStage.PARSED, *_ABORT],
    InvocationStage.PARSED: [InvocationStage.PR_RESOLVED, *_ABORT],
    InvocationStage.PR_RESOLVED: [InvocationStage.DISPATCHED, *_ABORT],
    InvocationStage.DISPATCHED: [InvocationStage.RUN_DISCOVERED, *_ABORT],
    InvocationStage.RUN_DISCOVERED: [InvocationStage.POLLING, *_ABORT],
    InvocationStage.POLLING: [InvocationStage.COMPLETED, *_ABORT],
    InvocationStage.COMPLETED: [],
    InvocationStage.REJECTED: [],
    InvocationStage.FAILED: [],
}


def is_valid_transition(from_stage: InvocationStage, to_stage: InvocationStage) -> bool:
    """Check if a stage transition is allowed.

    Example:
        >>> is_valid_transition(InvocationStage.RECEIVED, InvocationStage.VERIFIED)
        True
        >>> is_valid_transition(InvocationStage.COMPLETED, InvocationStage.POLLING)
        False
    """
    return to_stage in VALID_TRANSITIONS.get(from_stage, [])


def is_terminal_stage(stage: InvocationStage) -> bool:
    """Check if a stage has no outgoing transitions."""
    return len(VALID_TRANSITIONS.get(stage, [])) == 0
