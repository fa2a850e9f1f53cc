"""Hnc-pipeline config action."""

from argparse import ArgumentParser, _SubParsersAction as SubParsersAction
import os
from typing import cast

from . import selector


class ConfigAction:
    """Print the resolved configuration."""

    @classmethod
    def register(
        cls, subparsers: SubParsersAction  # type: ignore[type-arg]
    ) -> ArgumentParser:
        """Register the subparser commands."""
        args = cast(
            ArgumentParser,
            subparsers.add_parser(
                "config",
                help="Print the resolved configuration",
                description=(
                    "Print the configuration resolved from key=value overrides "
                    "and environment variables"
                ),
            ),
        )
        args.add_argument(
            "overrides",
            metavar="KEY=VALUE",
            nargs="*",
            help="Configuration overrides e.g. environment=local-cluster",
        )
        selector.add_config_flags(args)
        args.set_defaults(cls=cls)
        return args

    async def run(  # type: ignore[no-untyped-def]
        self,
        overrides: list[str],
        **kwargs,  # pylint: disable=unused-argument
    ) -> None:
        """Async Action implementation."""
        config = selector.build_config(os.environ, overrides, **kwargs)
        print(config.yaml(), end="")
