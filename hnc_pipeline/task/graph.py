"""A graph of named tasks executed in dependency order.

Tasks are registered with the names of the tasks they depend on. Requesting a
task runs its transitive dependencies first, leaves first, and each task runs
at most once for the lifetime of the graph:

```python
graph = TaskGraph(context)
graph.register(Task("generate", action=generate))
graph.register(Task("build", dependencies=("generate",), action=build))
await graph.run("build")
await graph.run("build")  # Cache hit, nothing is executed again
```
"""

from collections.abc import Awaitable, Callable, Mapping, Sequence
from dataclasses import dataclass, field
import logging
from typing import Any

from hnc_pipeline.context import trace_context
from hnc_pipeline.exceptions import (
    BestEffortFailure,
    CycleError,
    TaskExecutionError,
    TaskGraphError,
    UnknownTaskError,
)

from .context import TaskContext

__all__ = [
    "Action",
    "RunResult",
    "Task",
    "TaskGraph",
]

_LOGGER = logging.getLogger(__name__)


Action = Callable[[TaskContext], Awaitable[None]]


@dataclass(frozen=True)
class Task:
    """A named unit of work."""

    name: str
    """Unique name of the task."""

    dependencies: Sequence[str] = ()
    """Names of tasks that must complete first, in declaration order."""

    action: Action | None = None
    """Operation performed by the task, or None for an aggregate task."""

    best_effort: bool = False
    """When set, a failure is logged and the run continues."""

    description: str = ""
    """Human readable summary of the task."""

    settings: Mapping[str, Any] = field(default_factory=dict)
    """Configuration values local to this task."""

    def __post_init__(self) -> None:
        object.__setattr__(self, "dependencies", tuple(self.dependencies))


@dataclass
class RunResult:
    """The outcome of a successful run of a task."""

    task_name: str
    """The requested task."""

    executed: list[str] = field(default_factory=list)
    """Tasks executed by this run, in order."""

    cached: list[str] = field(default_factory=list)
    """Tasks that were already complete and not executed again."""

    failures: list[BestEffortFailure] = field(default_factory=list)
    """Failures of best-effort tasks that did not stop the run."""


class TaskGraph:
    """A directed acyclic graph of tasks with memoized execution."""

    def __init__(self, context: TaskContext) -> None:
        """Initialize TaskGraph."""
        self._context = context
        self._tasks: dict[str, Task] = {}
        self._completed: set[str] = set()

    @property
    def context(self) -> TaskContext:
        """The context passed to task actions."""
        return self._context

    def tasks(self) -> list[Task]:
        """Return all registered tasks in registration order."""
        return list(self._tasks.values())

    def get(self, name: str) -> Task:
        """Return the task with the specified name."""
        if (task := self._tasks.get(name)) is None:
            raise UnknownTaskError(name)
        return task

    def is_complete(self, name: str) -> bool:
        """Return true if the task has completed in this invocation."""
        return name in self._completed

    def register(self, task: Task) -> None:
        """Add a task to the graph.

        Dependencies may refer to tasks that are registered later. Raises
        CycleError, leaving the graph unchanged, if the task would introduce a
        dependency cycle.
        """
        if task.name in self._tasks:
            raise TaskGraphError(f"Task '{task.name}' is already registered")
        if cycle := self._find_cycle(task):
            raise CycleError(cycle)
        self._tasks[task.name] = task

    def _find_cycle(self, new_task: Task) -> list[str] | None:
        """Return a dependency cycle through the new task, if any.

        The existing graph is acyclic so any new cycle must pass through the
        new task, which makes it the only starting point to search.
        """
        tasks = {**self._tasks, new_task.name: new_task}
        visited: set[str] = set()
        stack: list[str] = []
        on_stack: set[str] = set()

        def visit(name: str) -> list[str] | None:
            if name in on_stack:
                return stack[stack.index(name) :] + [name]
            if name in visited or (task := tasks.get(name)) is None:
                return None
            stack.append(name)
            on_stack.add(name)
            for dep in task.dependencies:
                if cycle := visit(dep):
                    return cycle
            stack.pop()
            on_stack.discard(name)
            visited.add(name)
            return None

        return visit(new_task.name)

    def plan(self, name: str) -> list[str]:
        """Return the transitive dependencies of a task in execution order.

        Dependencies are ordered depth first in the order they were declared,
        and the requested task is last.
        """
        order: list[str] = []
        seen: set[str] = set()

        def visit(task_name: str, referenced_by: str | None) -> None:
            if task_name in seen:
                return
            if (task := self._tasks.get(task_name)) is None:
                raise UnknownTaskError(task_name, referenced_by)
            seen.add(task_name)
            for dep in task.dependencies:
                visit(dep, task_name)
            order.append(task_name)

        visit(name, None)
        return order

    async def run(self, name: str) -> RunResult:
        """Run a task and all of its dependencies that have not yet completed.

        Raises TaskExecutionError on the first failure of a task that is not
        best-effort. Tasks after the failed task are not started.
        """
        order = self.plan(name)
        result = RunResult(task_name=name)
        for task_name in order:
            if task_name in self._completed:
                _LOGGER.debug("Task %s already complete", task_name)
                result.cached.append(task_name)
                continue
            await self._execute(self._tasks[task_name], result)
            self._completed.add(task_name)
            result.executed.append(task_name)
        return result

    async def _execute(self, task: Task, result: RunResult) -> None:
        if task.action is None:
            _LOGGER.debug("Task %s has no action", task.name)
            return
        _LOGGER.info("Running task %s", task.name)
        context = self._context.for_task(task.name, task.settings)
        with trace_context(task.name):
            try:
                await task.action(context)
            except Exception as err:  # pylint: disable=broad-except
                if not task.best_effort:
                    raise TaskExecutionError(task.name, err) from err
                failure = BestEffortFailure(task.name, err)
                _LOGGER.warning("%s", failure)
                result.failures.append(failure)
