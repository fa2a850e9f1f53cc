"""Exceptions related to hnc-pipeline."""

__all__ = [
    "PipelineException",
    "InputException",
    "ConfigError",
    "CommandException",
    "KustomizeException",
    "TaskGraphError",
    "CycleError",
    "UnknownTaskError",
    "ToolUnavailable",
    "TaskExecutionError",
    "BestEffortFailure",
]


class PipelineException(Exception):
    """Generic base exception used for this library."""


class InputException(PipelineException):
    """Raised when the input files or values are not formatted as expected."""


class ConfigError(InputException):
    """Raised when a configuration value is invalid or contradictory."""


class CommandException(PipelineException):
    """Raised when there is a failure running a subcommand."""


class KustomizeException(CommandException):
    """Raised when there is a failure running a kustomize command."""


class TaskGraphError(PipelineException):
    """Raised when the task graph is not well formed."""


class CycleError(TaskGraphError):
    """Raised when registering a task would create a dependency cycle."""

    def __init__(self, cycle: list[str]) -> None:
        super().__init__(f"Dependency cycle detected: {' -> '.join(cycle)}")
        self.cycle = cycle


class UnknownTaskError(TaskGraphError):
    """Raised when a task is requested or referenced but was never registered."""

    def __init__(self, task_name: str, referenced_by: str | None = None) -> None:
        message = f"Unknown task '{task_name}'"
        if referenced_by:
            message += f" (dependency of '{referenced_by}')"
        super().__init__(message)
        self.task_name = task_name
        self.referenced_by = referenced_by


class ToolUnavailable(PipelineException):
    """Raised when a required external tool can't be found or installed."""

    def __init__(self, tool_name: str, message: str | None = None) -> None:
        super().__init__(
            f"Tool '{tool_name}' is unavailable: {message or 'not found on PATH'}"
        )
        self.tool_name = tool_name


class TaskExecutionError(PipelineException):
    """Raised when the underlying operation of a task has failed."""

    def __init__(self, task_name: str, cause: Exception) -> None:
        super().__init__(f"Task '{task_name}' failed: {cause}")
        self.task_name = task_name
        self.cause = cause


class BestEffortFailure(PipelineException):
    """A failure of a best-effort task.

    This is recorded on the run result and logged, but never raised out of
    a run.
    """

    def __init__(self, task_name: str, cause: Exception) -> None:
        super().__init__(f"Best-effort task '{task_name}' failed: {cause}")
        self.task_name = task_name
        self.cause = cause
