"""`/ci [module]` slash command parsing.

A comment is a CI command only if the whole comment is the command:
`/ci` on its own, or `/ci` followed by whitespace and one word. Anything
before or after, or a second word, means the comment is ordinary text.
"""

import logging
import re
from typing import Mapping, Optional

from src.ci_command.commands.models import Command
from src.ci_command.config import ALL_MODULES
from src.ci_command.errors import UnknownModuleError

logger = logging.getLogger(__name__)

CI_COMMAND_PATTERN = re.compile(r"/ci(?:\s+(\w+))?", re.ASCII)


class CommandParser:
    """Parses `/ci` comments and resolves modules to workflows.

    Attributes:
        module_workflows: Module name to workflow identifier. Must
            contain an entry for "all".
    """

    def __init__(self, module_workflows: Mapping[str, str]):
        if ALL_MODULES not in module_workflows:
            raise ValueError(f"module_workflows must define '{ALL_MODULES}'")
        self.module_workflows = dict(module_workflows)

    def match_module(self, comment_body: str) -> Optional[str]:
        """Return the module token of a `/ci` comment.

        Returns:
            The module name ("all" when none is given), or None if the
            comment is not a CI command.
        """
        match = CI_COMMAND_PATTERN.fullmatch(comment_body)
        if match is None:
            return None
        return match.group(1) or ALL_MODULES

    def parse(self, comment_body: str) -> Optional[Command]:
        """Parse a comment into a Command.

        Args:
            comment_body: The full comment text.

        Returns:
            The resolved Command, or None if the comment is not a CI
            command.

        Raises:
            UnknownModuleError: If the command names a module that has
                no configured workflow.
        """
        module = self.match_module(comment_body)
        if module is None:
            return None

        workflow_id = self.module_workflows.get(module)
        if workflow_id is None:
            logger.info("Invalid module requested", extra={"ci_module": module})
            raise UnknownModuleError(module)

        return Command(module=module, workflow_id=workflow_id)
