"""Slash command models."""

from pydantic import BaseModel, ConfigDict, Field


class Command(BaseModel):
    """A resolved `/ci` command.

    Attributes:
        module: The module named in the comment, or "all".
        workflow_id: The workflow file name or ID to dispatch.
    """

    model_config = ConfigDict(frozen=True)

    module: str = Field(..., min_length=1)
    workflow_id: str = Field(..., min_length=1)
