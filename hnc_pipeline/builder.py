"""Library for assembling the complete task graph for an invocation.

The graph contains the build stages and the release stages, with the tools
and commands shared by every task:

```python
from hnc_pipeline import builder
from hnc_pipeline.config import ConfigResolver

config = ConfigResolver(os.environ).resolve({"environment": "local-cluster"})
graph = builder.task_graph(config)
result = await graph.run("deploy")
```
"""

from collections.abc import Callable
import logging
import shutil

from .artifact import ArtifactRegistry
from .command import CommandRunner, run
from .config import ConfigurationSnapshot
from .pipeline import ArtifactPipeline
from .release import ReleaseOrchestrator
from .task import TaskContext, TaskGraph
from .toolchain import ToolLocator

__all__ = [
    "task_graph",
]

_LOGGER = logging.getLogger(__name__)


def task_graph(
    config: ConfigurationSnapshot,
    runner: CommandRunner = run,
    which: Callable[[str], str | None] = shutil.which,
    tools: ToolLocator | None = None,
    artifacts: ArtifactRegistry | None = None,
) -> TaskGraph:
    """Return a graph with all pipeline and release tasks registered.

    Raises TaskGraphError if an artifact consumer does not depend on the task
    producing the artifact. The artifacts declared by the build stages are
    added to `artifacts` when it is provided.
    """
    if tools is None:
        tools = ToolLocator(config.tools_dir, runner=runner, which=which)
    graph = TaskGraph(TaskContext(config=config, tools=tools, runner=runner))
    pipeline = ArtifactPipeline(config, artifacts)
    pipeline.register(graph)
    ReleaseOrchestrator(config).register(graph)
    pipeline.artifacts.validate(graph)
    _LOGGER.debug(
        "Registered %d tasks for environment %s",
        len(graph.tasks()),
        config.environment.value,
    )
    return graph
