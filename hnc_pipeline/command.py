"""Library for issuing commands using asyncio and returning the result."""

import asyncio
import logging
import os
import shlex
import subprocess
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from pathlib import Path

from .exceptions import CommandException

_LOGGER = logging.getLogger(__name__)

__all__ = [
    "Command",
    "CommandRunner",
    "run",
]


def format_path(path: Path) -> str:
    """Format path for debugging."""
    if path.is_absolute():
        cwd = Path.cwd()
        if path.is_relative_to(cwd):
            rel_path = str(path.relative_to(cwd))
            return f"{rel_path} (abs)"
    return str(path)


@dataclass
class Command:
    """An instance of a command to run."""

    cmd: list[str]
    """Array of command line arguments."""

    cwd: Path | None = None
    """Current working directory."""

    exc: type[CommandException] = CommandException
    """Exception to throw in case of an error."""

    retcodes: list[int] | None = None
    """Non-zero error codes that are allowed to indicate success."""

    env: dict[str, str] | None = None
    """Environment variables added to the subprocess environment."""

    capture: bool = True
    """Capture stdout/stderr, otherwise the output goes to the terminal."""

    @property
    def string(self) -> str:
        """Render the command as a single string."""
        return " ".join([shlex.quote(arg) for arg in self.cmd])

    def __str__(self) -> str:
        """Render as a debug string."""
        cwd: str = ""
        if self.cwd:
            cwd = f"({format_path(self.cwd)}) "
        return f"{cwd}{self.string}"

    async def run(self) -> bytes:
        """Run the command, returning stdout."""
        _LOGGER.debug("Running command: %s", self)
        env = {
            **os.environ,
            **(self.env if self.env else {}),
        }
        pipe = subprocess.PIPE if self.capture else None
        try:
            proc = await asyncio.create_subprocess_exec(
                *self.cmd,
                stdout=pipe,
                stderr=pipe,
                cwd=self.cwd,
                env=env,
            )
        except OSError as err:
            raise self.exc(f"Command '{self}' could not be started: {err}") from err
        out, err = await proc.communicate()
        if proc.returncode:
            if self.retcodes and proc.returncode in self.retcodes:
                return out or b""
            errors = [f"Command '{self}' failed with return code {proc.returncode}"]
            if out:
                errors.append(out.decode("utf-8", errors="replace"))
            if err:
                errors.append(err.decode("utf-8", errors="replace"))
            _LOGGER.debug("\n".join(errors))
            raise self.exc("\n".join(errors))
        return out or b""


CommandRunner = Callable[[Command], Awaitable[str]]
"""Executes a command and returns stdout, raising CommandException on failure."""


async def run(cmd: Command) -> str:
    """Run the specified command and return stdout."""
    out = await cmd.run()
    return out.decode("utf-8", errors="replace")
