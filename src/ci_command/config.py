"""CI command bridge configuration using pydantic-settings.

This module defines the CommandSettings class that reads configuration
from environment variables with the CI_COMMAND_ prefix. The variable
names used by the Cloud Functions deployment (GITHUB_TOKEN,
GITHUB_WEBHOOK_SECRET, GITHUB_API_INTERVAL, MODULE_CI_WORKFLOWS) are
accepted as aliases so existing deployments keep working.

Settings are frozen: they are loaded once at startup and passed to each
component explicitly.
"""

import base64
import binascii
import json
import re
from enum import Enum
from typing import Annotated, Any, Dict, Optional

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

# Module name used when a `/ci` comment names no module
ALL_MODULES = "all"

DEFAULT_ALL_WORKFLOW = "ci.yml"

DEFAULT_MODULE_WORKFLOWS: Dict[str, str] = {
    ALL_MODULES: DEFAULT_ALL_WORKFLOW,
    "backend": "ci-backend.yml",
    "frontend": "ci-frontend.yml",
}

_MODULE_NAME_PATTERN = re.compile(r"\w+", re.ASCII)


class StatusGranularity(str, Enum):
    """How finely workflow progress is mirrored into commit statuses.

    Attributes:
        JOB: One commit status per job ("<workflow> / <job>").
        RUN: A single commit status for the whole run ("CI Pipeline").
    """

    JOB = "job"
    RUN = "run"


def parse_module_workflows(raw: Any) -> Dict[str, str]:
    """Decode a module to workflow mapping from its configured form.

    Accepts a mapping, a JSON object string, or a base64-encoded JSON
    object string (the form the deploy script writes).

    Args:
        raw: The configured value.

    Returns:
        The decoded mapping, not yet validated.

    Raises:
        ValueError: If the value cannot be decoded into a JSON object.
    """
    if isinstance(raw, dict):
        return raw
    if not isinstance(raw, str):
        raise ValueError("module_ci_workflows must be a mapping or a string")

    text = raw.strip()
    if not text.startswith("{"):
        try:
            text = base64.b64decode(text, validate=False).decode("utf-8").strip()
        except (binascii.Error, UnicodeDecodeError) as e:
            raise ValueError(f"module_ci_workflows is not valid base64: {e}") from e

    try:
        decoded = json.loads(text)
    except json.JSONDecodeError as e:
        raise ValueError(f"module_ci_workflows is not valid JSON: {e}") from e

    if not isinstance(decoded, dict):
        raise ValueError("module_ci_workflows must decode to a JSON object")
    return decoded


class CommandSettings(BaseSettings):
    """CI command bridge configuration from environment variables.

    All environment variables are prefixed with CI_COMMAND_
    (e.g., CI_COMMAND_GITHUB_TOKEN). Fields that existed in the Cloud Functions
    deployment also accept their unprefixed names.

    Required fields:
    - github_token: Token used for dispatches, run queries and statuses

    The webhook secret is optional so a misconfigured deployment still
    starts and answers; without it every delivery is rejected as
    unauthenticated.
    """

    model_config = SettingsConfigDict(
        env_prefix="CI_COMMAND_",
        case_sensitive=False,
        frozen=True,
        populate_by_name=True,
    )

    # -------------------------------------------------------------------------
    # GitHub Configuration
    # -------------------------------------------------------------------------
    github_token: str = Field(
        validation_alias=AliasChoices(
            "github_token", "CI_COMMAND_GITHUB_TOKEN", "GITHUB_TOKEN"
        ),
    )

    github_webhook_secret: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices(
            "github_webhook_secret",
            "CI_COMMAND_GITHUB_WEBHOOK_SECRET",
            "GITHUB_WEBHOOK_SECRET",
        ),
    )

    # Base URL for GitHub API (supports GitHub Enterprise)
    github_base_url: str = "https://api.github.com"

    # -------------------------------------------------------------------------
    # Workflow Configuration
    # -------------------------------------------------------------------------
    module_ci_workflows: Annotated[Dict[str, str], NoDecode] = Field(
        default_factory=lambda: dict(DEFAULT_MODULE_WORKFLOWS),
        validation_alias=AliasChoices(
            "module_ci_workflows",
            "CI_COMMAND_MODULE_CI_WORKFLOWS",
            "MODULE_CI_WORKFLOWS",
        ),
    )

    # Extra inputs sent with every workflow dispatch
    workflow_inputs: Dict[str, str] = Field(default_factory=dict)

    # -------------------------------------------------------------------------
    # Polling Configuration
    # -------------------------------------------------------------------------
    poll_interval_seconds: float = 10.0

    # Cloud Functions millisecond knob; takes precedence when set
    github_api_interval_ms: Optional[int] = Field(
        default=None,
        validation_alias=AliasChoices(
            "github_api_interval_ms",
            "CI_COMMAND_GITHUB_API_INTERVAL_MS",
            "GITHUB_API_INTERVAL",
        ),
    )

    discovery_timeout_seconds: float = 300.0

    monitor_timeout_seconds: float = 7200.0

    max_consecutive_poll_failures: int = 5

    status_granularity: StatusGranularity = StatusGranularity.JOB

    # -------------------------------------------------------------------------
    # Webhook Behavior
    # -------------------------------------------------------------------------
    # Run discovery and monitoring before answering the webhook
    wait_for_completion: bool = False

    # Reject comments made on plain issues
    require_pull_request: bool = True

    # -------------------------------------------------------------------------
    # Server Configuration
    # -------------------------------------------------------------------------
    host: str = "0.0.0.0"

    port: int = 8080

    log_level: str = "INFO"

    # -------------------------------------------------------------------------
    # Validators
    # -------------------------------------------------------------------------
    @field_validator("github_token")
    @classmethod
    def validate_github_token(cls, v: str) -> str:
        """Validate that GitHub token is not empty."""
        if not v or not v.strip():
            raise ValueError("github_token cannot be empty")
        return v

    @field_validator("github_webhook_secret")
    @classmethod
    def normalize_webhook_secret(cls, v: Optional[str]) -> Optional[str]:
        """Treat an empty webhook secret as unset."""
        if v is None or not v.strip():
            return None
        return v

    @field_validator("github_base_url")
    @classmethod
    def validate_base_url(cls, v: str) -> str:
        """Validate that the API base URL is an HTTP(S) URL."""
        if not v.startswith(("http://", "https://")):
            raise ValueError("github_base_url must start with http:// or https://")
        return v.rstrip("/")

    @field_validator("module_ci_workflows", mode="before")
    @classmethod
    def decode_module_workflows(cls, v: Any) -> Dict[str, str]:
        """Decode the mapping from JSON or base64-encoded JSON."""
        return parse_module_workflows(v)

    @field_validator("module_ci_workflows")
    @classmethod
    def validate_module_workflows(cls, v: Dict[str, str]) -> Dict[str, str]:
        """Validate module names and workflow identifiers.

        Module names must be single ASCII word tokens, since only those
        can appear in a `/ci <module>` comment. The `all` entry is
        added with its default workflow when missing.
        """
        workflows: Dict[str, str] = {}
        for module, workflow_id in v.items():
            if not _MODULE_NAME_PATTERN.fullmatch(module):
                raise ValueError(f"invalid module name: {module!r}")
            if not isinstance(workflow_id, str) or not workflow_id.strip():
                raise ValueError(f"workflow for module {module!r} cannot be empty")
            workflows[module] = workflow_id.strip()

        workflows.setdefault(ALL_MODULES, DEFAULT_ALL_WORKFLOW)
        return workflows

    @field_validator("poll_interval_seconds", "discovery_timeout_seconds", "monitor_timeout_seconds")
    @classmethod
    def validate_positive_seconds(cls, v: float) -> float:
        """Validate that intervals and timeouts are positive."""
        if v <= 0:
            raise ValueError("intervals and timeouts must be positive")
        return v

    @field_validator("github_api_interval_ms")
    @classmethod
    def validate_interval_ms(cls, v: Optional[int]) -> Optional[int]:
        """Validate that the millisecond interval is positive."""
        if v is not None and v <= 0:
            raise ValueError("github_api_interval_ms must be positive")
        return v

    @field_validator("max_consecutive_poll_failures")
    @classmethod
    def validate_max_failures(cls, v: int) -> int:
        """Validate that at least one poll failure is tolerated."""
        if v < 1:
            raise ValueError("max_consecutive_poll_failures must be at least 1")
        return v

    @field_validator("port")
    @classmethod
    def validate_port(cls, v: int) -> int:
        """Validate that port is in valid range."""
        if not 1 <= v <= 65535:
            raise ValueError("port must be between 1 and 65535")
        return v

    @property
    def poll_interval(self) -> float:
        """Effective delay between poll iterations, in seconds."""
        if self.github_api_interval_ms is not None:
            return self.github_api_interval_ms / 1000.0
        return self.poll_interval_seconds


def get_settings() -> CommandSettings:
    """Create and return CommandSettings instance.

    Returns:
        CommandSettings: Configured settings instance.

    Raises:
        pydantic.ValidationError: If required fields are missing or invalid.
    """
    return CommandSettings()
