"""Library for the common flags that select the pipeline configuration."""

from argparse import ArgumentParser, BooleanOptionalAction
from collections.abc import Iterable, Mapping
import logging
import pathlib

from hnc_pipeline.config import (
    ConfigResolver,
    ConfigurationSnapshot,
    parse_overrides,
)

_LOGGER = logging.getLogger(__name__)

PROJECT_DIR_KEY = "projectDir"


def add_config_flags(args: ArgumentParser) -> None:
    """Add flags used to resolve the configuration snapshot."""
    args.add_argument(
        "--project-dir",
        help="Root of the controller source checkout",
        type=pathlib.Path,
        default=None,
    )
    args.add_argument(
        "--strict",
        type=bool,
        default=False,
        action=BooleanOptionalAction,
        help="Reject configuration values that can't be interpreted instead "
        "of falling back to defaults",
    )


def split_words(words: Iterable[str]) -> tuple[list[str], list[str]]:
    """Separate positional words into task names and `key=value` overrides."""
    tasks: list[str] = []
    overrides: list[str] = []
    for word in words:
        if "=" in word:
            overrides.append(word)
        else:
            tasks.append(word)
    return tasks, overrides


def build_config(  # type: ignore[no-untyped-def]
    environ: Mapping[str, str],
    overrides: Iterable[str],
    project_dir: pathlib.Path | None,
    strict: bool,
    **kwargs,  # pylint: disable=unused-argument
) -> ConfigurationSnapshot:
    """Resolve the configuration snapshot from the flags."""
    values = parse_overrides(overrides)
    if project_dir is not None:
        values[PROJECT_DIR_KEY] = str(project_dir.resolve())
    config = ConfigResolver(environ).resolve(values, strict=strict)
    _LOGGER.debug("Resolved configuration: %s", config.to_dict())
    return config
