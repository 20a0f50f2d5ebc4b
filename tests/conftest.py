"""Pytest configuration for all tests."""

import os

import pytest

# Settings read the environment; keep real deployment variables out of tests
_CONFIG_ENV_VARS = (
    "GITHUB_TOKEN",
    "GITHUB_WEBHOOK_SECRET",
    "GITHUB_API_INTERVAL",
    "MODULE_CI_WORKFLOWS",
)


@pytest.fixture(autouse=True)
def isolated_config_env(monkeypatch):
    """Remove CI command configuration variables from the environment."""
    for name in list(os.environ):
        if name.upper().startswith("CI_COMMAND_") or name.upper() in _CONFIG_ENV_VARS:
            monkeypatch.delenv(name, raising=False)
