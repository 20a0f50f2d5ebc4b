"""Prometheus metrics for the CI command bridge.

Metrics Defined:
- ci_command_invocations_total: Counter of finished invocations by outcome
- ci_command_rejections_total: Counter of rejected deliveries by reason
- ci_command_invocation_duration_seconds: Histogram of time from receipt
  to outcome, including the background phase
- ci_command_commit_statuses_total: Counter of commit status writes

Metrics are exposed at the `/metrics` endpoint in Prometheus text format.
"""

from typing import Optional

from prometheus_client import (
    REGISTRY,
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
)

# From a rejected delivery (milliseconds) to a long workflow run (hours)
DEFAULT_DURATION_BUCKETS = (
    0.1,
    0.5,
    1.0,
    5.0,
    30.0,
    60.0,
    300.0,
    600.0,
    1800.0,
    3600.0,
    7200.0,
)


class CommandMetrics:
    """Container for all bridge Prometheus metrics.

    Metrics:
        invocations_total: Finished invocations.
            Labels: outcome (completed/rejected/failed)

        rejections_total: Rejected deliveries.
            Labels: reason

        invocation_duration_seconds: Time from receipt to outcome.
            Labels: outcome

        commit_statuses_total: Commit status writes.
            Labels: state, result (accepted/failed)

    Attributes:
        registry: The Prometheus registry for these metrics.
    """

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        """Initialize bridge metrics.

        Args:
            registry: Optional Prometheus registry. If None, uses the
                      default REGISTRY. Pass a custom registry for testing.
        """
        self.registry = registry or REGISTRY

        self.invocations_total = Counter(
            "ci_command_invocations_total",
            "Total number of webhook invocations by final outcome",
            labelnames=["outcome"],
            registry=self.registry,
        )

        self.rejections_total = Counter(
            "ci_command_rejections_total",
            "Total number of rejected webhook deliveries",
            labelnames=["reason"],
            registry=self.registry,
        )

        self.invocation_duration_seconds = Histogram(
            "ci_command_invocation_duration_seconds",
            "Time from webhook receipt to final outcome in seconds",
            labelnames=["outcome"],
            buckets=DEFAULT_DURATION_BUCKETS,
            registry=self.registry,
        )

        self.commit_statuses_total = Counter(
            "ci_command_commit_statuses_total",
            "Total number of commit status writes",
            labelnames=["state", "result"],
            registry=self.registry,
        )

    def record_outcome(
        self,
        outcome: str,
        duration_seconds: float,
        reason: Optional[str] = None,
    ) -> None:
        """Record a finished invocation.

        Args:
            outcome: The terminal stage reached.
            duration_seconds: Time since the delivery was received.
            reason: Rejection reason, for rejected invocations.
        """
        self.invocations_total.labels(outcome=outcome).inc()
        self.invocation_duration_seconds.labels(outcome=outcome).observe(
            duration_seconds
        )
        if reason is not None:
            self.rejections_total.labels(reason=reason).inc()

    def record_commit_status(self, state: str, accepted: bool) -> None:
        result = "accepted" if accepted else "failed"
        self.commit_statuses_total.labels(state=state, result=result).inc()


# Global metrics instance for the default registry
_default_metrics: Optional[CommandMetrics] = None


def get_metrics(registry: Optional[CollectorRegistry] = None) -> CommandMetrics:
    """Get or create the bridge metrics instance.

    Args:
        registry: Optional Prometheus registry. If None, returns the
                  global metrics instance for the default registry.
    """
    global _default_metrics

    if registry is not None:
        return CommandMetrics(registry=registry)

    if _default_metrics is None:
        _default_metrics = CommandMetrics()

    return _default_metrics


def generate_metrics_output(registry: Optional[CollectorRegistry] = None) -> bytes:
    """Generate Prometheus text output for the /metrics endpoint."""
    return generate_latest(registry or REGISTRY)
