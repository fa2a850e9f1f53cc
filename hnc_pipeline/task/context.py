"""The context passed to every task action."""

from collections.abc import Mapping
from dataclasses import dataclass, field, replace
import logging
from typing import Any

from hnc_pipeline.command import Command, CommandRunner, run
from hnc_pipeline.config import ConfigurationSnapshot
from hnc_pipeline.exceptions import CommandException
from hnc_pipeline.toolchain import ToolLocator

__all__ = ["TaskContext"]

_LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class TaskContext:
    """Everything a task action may use.

    Actions receive the configuration snapshot and task-local settings through
    the context and never read ambient global state.
    """

    config: ConfigurationSnapshot
    """Immutable configuration for the invocation."""

    tools: ToolLocator
    """Locator used to find the executables a task needs."""

    runner: CommandRunner = run
    """Runs external commands."""

    task_name: str | None = None
    """Name of the task currently being executed."""

    settings: Mapping[str, Any] = field(default_factory=dict)
    """Settings local to the task currently being executed."""

    def for_task(self, task_name: str, settings: Mapping[str, Any]) -> "TaskContext":
        """Return a copy of the context scoped to a single task."""
        return replace(self, task_name=task_name, settings=settings)

    async def run(
        self,
        tool: str,
        *args: str,
        exc: type[CommandException] = CommandException,
        env: dict[str, str] | None = None,
        capture: bool = True,
    ) -> str:
        """Run a tool from the project directory and return its stdout.

        Raises ToolUnavailable if the tool can't be located.
        """
        path = await self.tools.path(tool)
        return await self.runner(
            Command(
                [path, *args],
                cwd=self.config.project_dir,
                exc=exc,
                env=env,
                capture=capture,
            )
        )
