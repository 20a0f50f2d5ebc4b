"""In-memory state machine for a single webhook invocation.

Each delivery gets its own InvocationTracker. The tracker validates
stage transitions against VALID_TRANSITIONS, timestamps them, and logs
them with the delivery ID so one invocation can be followed through the
logs, including the part that runs after the webhook was answered.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from src.ci_command.metrics import CommandMetrics
from src.ci_command.state.models import (
    InvocationStage,
    StageTransition,
    is_terminal_stage,
    is_valid_transition,
)

logger = logging.getLogger(__name__)


class InvalidTransitionError(Exception):
    """Raised when an invalid stage transition is attempted.

    Attributes:
        from_stage: The current stage.
        to_stage: The attempted target stage.
    """

    def __init__(self, from_stage: InvocationStage, to_stage: InvocationStage):
        self.from_stage = from_stage
        self.to_stage = to_stage
        super().__init__(
            f"Invalid transition from {from_stage.value} to {to_stage.value}"
        )


class InvocationTracker:
    """Tracks one invocation's progress through its stages.

    Attributes:
        delivery_id: The X-GitHub-Delivery header of the delivery.
        stage: The current stage.
        history: Ordered list of transitions.
        error: Error message if the invocation failed.
        metrics: Optional metrics recorder, told about the outcome once
            a terminal stage is reached.
    """

    def __init__(
        self,
        delivery_id: str = "",
        metrics: Optional[CommandMetrics] = None,
    ):
        self.delivery_id = delivery_id
        self.metrics = metrics
        self.stage = InvocationStage.RECEIVED
        self.history: List[StageTransition] = []
        self.error: Optional[str] = None
        self.started_at = datetime.now(timezone.utc)

    @property
    def is_finished(self) -> bool:
        return is_terminal_stage(self.stage)

    def transition(
        self,
        to_stage: InvocationStage,
        details: Optional[Dict[str, Any]] = None,
    ) -> StageTransition:
        """Move to `to_stage`.

        Raises:
            InvalidTransitionError: If the transition is not allowed.
        """
        if not is_valid_transition(self.stage, to_stage):
            raise InvalidTransitionError(self.stage, to_stage)

        record = StageTransition(
            from_stage=self.stage,
            to_stage=to_stage,
            details=details or {},
        )
        self.history.append(record)
        self.stage = to_stage

        logger.info(
            "Invocation %s -> %s",
            record.from_stage.value,
            to_stage.value,
            extra={"delivery_id": self.delivery_id, **record.details},
        )

        if self.metrics is not None and self.is_finished:
            elapsed = (record.timestamp - self.started_at).total_seconds()
            self.metrics.record_outcome(
                to_stage.value,
                elapsed,
                reason=record.details.get("reason"),
            )
        return record

    def reject(self, reason: str) -> StageTransition:
        return self.transition(InvocationStage.REJECTED, {"reason": reason})

    def fail(self, error: str) -> StageTransition:
        self.error = error
        return self.transition(InvocationStage.FAILED, {"error": error})
