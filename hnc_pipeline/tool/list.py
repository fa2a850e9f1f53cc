"""Hnc-pipeline list action."""

from argparse import ArgumentParser, _SubParsersAction as SubParsersAction
import os
from typing import Any, cast

from hnc_pipeline import builder
from hnc_pipeline.artifact import ArtifactRegistry

from . import selector
from .format import PrintFormatter, YamlListFormatter


class ListAction:
    """List the available tasks."""

    @classmethod
    def register(
        cls, subparsers: SubParsersAction  # type: ignore[type-arg]
    ) -> ArgumentParser:
        """Register the subparser commands."""
        args = cast(
            ArgumentParser,
            subparsers.add_parser(
                "list",
                aliases=["ls"],
                help="List the available tasks",
                description="Print the name, policy and description of each task",
            ),
        )
        args.add_argument(
            "--output",
            "-o",
            choices=["yaml"],
            default=None,
            help="Output format of the command",
        )
        selector.add_config_flags(args)
        args.set_defaults(cls=cls)
        return args

    async def run(  # type: ignore[no-untyped-def]
        self,
        output: str | None,
        **kwargs,  # pylint: disable=unused-argument
    ) -> None:
        """Async Action implementation."""
        config = selector.build_config(os.environ, [], **kwargs)
        artifacts = ArtifactRegistry()
        graph = builder.task_graph(config, artifacts=artifacts)
        results: list[dict[str, Any]] = []
        for task in graph.tasks():
            results.append(
                {
                    "name": task.name,
                    "best_effort": task.best_effort,
                    "dependencies": list(task.dependencies),
                    "artifacts": [
                        artifact.name for artifact in artifacts.produced_by(task.name)
                    ],
                    "description": task.description,
                }
            )
        if output == "yaml":
            YamlListFormatter().print(results)
            return
        PrintFormatter(["name", "best_effort", "description"]).print(results)
