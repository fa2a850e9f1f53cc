"""Hnc-pipeline run action."""

from argparse import ArgumentParser, _SubParsersAction as SubParsersAction
import logging
import os
from typing import cast

from hnc_pipeline import builder
from hnc_pipeline.exceptions import BestEffortFailure, InputException

from . import selector

_LOGGER = logging.getLogger(__name__)


class RunAction:
    """Run one or more tasks and their dependencies."""

    @classmethod
    def register(
        cls, subparsers: SubParsersAction  # type: ignore[type-arg]
    ) -> ArgumentParser:
        """Register the subparser commands."""
        args = cast(
            ArgumentParser,
            subparsers.add_parser(
                "run",
                help="Run tasks and their dependencies",
                description=(
                    "Run the named tasks in order. Words of the form key=value "
                    "override configuration values e.g. environment=local-cluster"
                ),
            ),
        )
        args.add_argument(
            "words",
            metavar="TASK",
            nargs="+",
            help="Task names and key=value configuration overrides",
        )
        selector.add_config_flags(args)
        args.set_defaults(cls=cls)
        return args

    async def run(  # type: ignore[no-untyped-def]
        self,
        words: list[str],
        **kwargs,  # pylint: disable=unused-argument
    ) -> None:
        """Async Action implementation."""
        task_names, overrides = selector.split_words(words)
        if not task_names:
            raise InputException("No task names were specified")
        config = selector.build_config(os.environ, overrides, **kwargs)
        graph = builder.task_graph(config)
        # Validate every name before running anything
        for name in task_names:
            graph.plan(name)

        failures: list[BestEffortFailure] = []
        for name in task_names:
            result = await graph.run(name)
            _LOGGER.info(
                "Task %s complete (%d executed, %d cached)",
                name,
                len(result.executed),
                len(result.cached),
            )
            failures.extend(result.failures)
        for failure in failures:
            _LOGGER.warning("Ignored failure: %s", failure)
