"""FastAPI application entry point for the CI command bridge.

This module provides the FastAPI application that receives GitHub
webhooks, authenticates them, and hands `/ci` commands to the
orchestrator.

Process-wide state is limited to the frozen settings and the shared
GitHub client. Both are created in the lifespan and kept on `app.state`
together with the orchestrator built from them.

Background work: when a workflow is dispatched the webhook is answered
with 202 right away, and run discovery and monitoring continue as a
FastAPI background task in the same process. The hosting environment
must keep the process running (and given CPU) until those tasks finish.
"""

import json
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import BackgroundTasks, FastAPI, Request
from fastapi.responses import JSONResponse, PlainTextResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST

from .ci.dispatcher import WorkflowDispatcher
from .ci.monitor import RunMonitor
from .ci.polling import PollPolicy
from .ci.reporter import StatusReporter
from .commands.parser import CommandParser
from .config import CommandSettings, get_settings
from .github.client import GitHubClient
from .github.resolver import PullRequestResolver
from .metrics import CommandMetrics, generate_metrics_output, get_metrics
from .orchestrator import CICommandOrchestrator
from .state.models import InvocationStage
from .state.tracker import InvocationTracker
from .webhook.handler import WebhookHandler
from .webhook.models import RejectionReason
from .webhook.signature import verify_signature

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

WEBHOOK_PATHS = ("/", "/webhooks/github")

# No-op deliveries are acknowledged; bad input for a real command is 400
REJECTION_STATUS_CODES = {
    RejectionReason.UNSUPPORTED_EVENT: 200,
    RejectionReason.NO_ACTION_NEEDED: 200,
    RejectionReason.NO_COMMAND: 200,
    RejectionReason.MALFORMED_PAYLOAD: 400,
    RejectionReason.NOT_A_PULL_REQUEST: 400,
    RejectionReason.INVALID_MODULE: 400,
    RejectionReason.PULL_REQUEST_NOT_FOUND: 400,
}


def _redact_secret(value: Optional[str], visible_chars: int = 4) -> str:
    """Redact a secret value, showing only the first few characters."""
    if not value:
        return "<not set>"
    if len(value) <= visible_chars:
        return "*" * len(value)
    return value[:visible_chars] + "*" * (len(value) - visible_chars)


def _log_configuration(settings: CommandSettings) -> None:
    """Log configuration values with secrets redacted."""
    logger.info("CI command bridge configuration:")
    logger.info(f"  GitHub Base URL: {settings.github_base_url}")
    logger.info(f"  GitHub Token: {_redact_secret(settings.github_token)}")
    logger.info(
        f"  GitHub Webhook Secret: {_redact_secret(settings.github_webhook_secret)}"
    )
    logger.info(f"  Module Workflows: {settings.module_ci_workflows}")
    logger.info(f"  Poll Interval: {settings.poll_interval}s")
    logger.info(f"  Discovery Timeout: {settings.discovery_timeout_seconds}s")
    logger.info(f"  Monitor Timeout: {settings.monitor_timeout_seconds}s")
    logger.info(f"  Status Granularity: {settings.status_granularity.value}")
    logger.info(f"  Wait For Completion: {settings.wait_for_completion}")
    logger.info(f"  Require Pull Request: {settings.require_pull_request}")

    if settings.github_webhook_secret is None:
        logger.error(
            "No webhook secret configured: every delivery will be rejected with 401"
        )


def build_orchestrator(
    settings: CommandSettings,
    github_client: GitHubClient,
    metrics: Optional[CommandMetrics] = None,
) -> CICommandOrchestrator:
    """Wire all components into a CICommandOrchestrator.

    Args:
        settings: Validated settings.
        github_client: Authenticated GitHub API client.
        metrics: Optional metrics recorder for commit status writes.

    Returns:
        Fully wired CICommandOrchestrator.
    """
    discovery_policy = PollPolicy(
        interval=settings.poll_interval,
        timeout=settings.discovery_timeout_seconds,
        max_consecutive_failures=settings.max_consecutive_poll_failures,
    )
    monitor_policy = PollPolicy(
        interval=settings.poll_interval,
        timeout=settings.monitor_timeout_seconds,
        max_consecutive_failures=settings.max_consecutive_poll_failures,
    )

    return CICommandOrchestrator(
        parser=CommandParser(settings.module_ci_workflows),
        resolver=PullRequestResolver(github_client),
        dispatcher=WorkflowDispatcher(github_client, discovery_policy),
        monitor=RunMonitor(
            github_client,
            monitor_policy,
            granularity=settings.status_granularity,
        ),
        reporter=StatusReporter(github_client, metrics),
        workflow_inputs=settings.workflow_inputs,
        wait_for_completion=settings.wait_for_completion,
    )


def create_app(
    settings: Optional[CommandSettings] = None,
    github_client: Optional[GitHubClient] = None,
    metrics: Optional[CommandMetrics] = None,
) -> FastAPI:
    """Create the FastAPI application.

    Args:
        settings: Settings to use; read from the environment at startup
            when omitted.
        github_client: Client to use; created from the settings at
            startup when omitted. An injected client is not closed on
            shutdown.
        metrics: Metrics recorder; the default-registry instance when
            omitted.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("CI command bridge starting up...")

        cfg = settings or get_settings()
        logging.getLogger().setLevel(cfg.log_level.upper())
        _log_configuration(cfg)

        client = github_client or GitHubClient(
            token=cfg.github_token,
            base_url=cfg.github_base_url,
        )

        app.state.settings = cfg
        app.state.github_client = client
        app.state.metrics = metrics or get_metrics()
        app.state.webhook_handler = WebhookHandler(
            require_pull_request=cfg.require_pull_request,
        )
        app.state.orchestrator = build_orchestrator(cfg, client, app.state.metrics)

        logger.info("CI command bridge started successfully")

        yield

        logger.info("CI command bridge shutting down...")
        if github_client is None:
            await client.close()
        logger.info("CI command bridge shutdown complete")

    app = FastAPI(
        title="CI Slash Command Bridge",
        description="Runs GitHub Actions workflows from /ci pull request comments",
        version="1.0.0",
        lifespan=lifespan,
    )

    @app.get("/health")
    async def health():
        """Liveness probe endpoint."""
        return {"status": "healthy"}

    @app.get("/ready")
    async def ready(request: Request):
        """Readiness probe endpoint.

        Checks that the GitHub API is reachable with the configured
        token.
        """
        github_ok = await request.app.state.github_client.health_check()
        body = {
            "status": "ready" if github_ok else "not_ready",
            "dependencies": {"github": "healthy" if github_ok else "unhealthy"},
        }
        return JSONResponse(body, status_code=200 if github_ok else 503)

    @app.get("/metrics")
    async def metrics_endpoint(request: Request):
        """Prometheus metrics endpoint."""
        output = generate_metrics_output(request.app.state.metrics.registry)
        return Response(content=output, media_type=CONTENT_TYPE_LATEST)

    for path in WEBHOOK_PATHS:
        app.add_api_route(path, github_webhook, methods=["POST"])
        app.add_api_route(
            path,
            method_not_allowed,
            methods=["GET", "PUT", "PATCH", "DELETE"],
            include_in_schema=False,
        )

    return app


async def method_not_allowed(request: Request) -> PlainTextResponse:
    logger.info(
        f"{request.method} is not allowed. Only POST requests are accepted."
    )
    return PlainTextResponse("Method Not Allowed", status_code=405)


async def github_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
) -> PlainTextResponse:
    """GitHub webhook receiver endpoint.

    Verifies the X-Hub-Signature-256 header against the raw body before
    anything else is read, then hands issue_comment deliveries to the
    orchestrator.
    """
    state = request.app.state
    delivery_id = request.headers.get("x-github-delivery", "")
    tracker = InvocationTracker(delivery_id, metrics=state.metrics)

    signature = request.headers.get("x-hub-signature-256")
    if not signature:
        logger.info("No signature found in request.", extra={"delivery_id": delivery_id})
        tracker.reject("missing_signature")
        return PlainTextResponse("No signature found in request", status_code=401)

    raw_body = await request.body()
    if not verify_signature(raw_body, signature, state.settings.github_webhook_secret):
        logger.info("Invalid signature.", extra={"delivery_id": delivery_id})
        tracker.reject("invalid_signature")
        return PlainTextResponse("Invalid signature", status_code=401)

    tracker.transition(InvocationStage.VERIFIED)

    try:
        payload = json.loads(raw_body)
    except (json.JSONDecodeError, UnicodeDecodeError):
        return _rejection_response(tracker, RejectionReason.MALFORMED_PAYLOAD)

    parsed = state.webhook_handler.parse_comment_event(
        request.headers.get("x-github-event"),
        payload,
        delivery_id=delivery_id,
    )
    if isinstance(parsed, RejectionReason):
        return _rejection_response(tracker, parsed)

    result = await state.orchestrator.handle_comment(parsed, tracker)

    if result.reason is not None:
        return PlainTextResponse(
            result.message,
            status_code=REJECTION_STATUS_CODES[result.reason],
        )
    if result.stage == InvocationStage.FAILED:
        return PlainTextResponse(result.message, status_code=500)
    if result.follow_up is not None:
        background_tasks.add_task(result.follow_up)
        return PlainTextResponse(result.message, status_code=202)
    return PlainTextResponse(result.message, status_code=200)


def _rejection_response(
    tracker: InvocationTracker,
    reason: RejectionReason,
) -> PlainTextResponse:
    tracker.reject(reason.value)
    return PlainTextResponse(reason.message, status_code=REJECTION_STATUS_CODES[reason])


app = create_app()


if __name__ == "__main__":
    import uvicorn

    # For local development, load settings to get host/port
    dev_settings = get_settings()
    uvicorn.run(
        "src.ci_command.main:app",
        host=dev_settings.host,
        port=dev_settings.port,
        reload=True,
    )
