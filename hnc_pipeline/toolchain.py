"""Library for locating and provisioning the external tools used by tasks.

Tools are looked up lazily the first time a task needs them and the result is
cached for the remainder of the invocation:

```python
from hnc_pipeline.toolchain import ToolLocator

locator = ToolLocator(tools_dir=Path(".tools"))
ref = await locator.locate("controller-gen")
print(ref.path)
```

A tool that is not on the `PATH` may be installed with `go install` at a
pinned version into the managed tools directory. Concurrent lookups of the
same tool share a single search and installation.
"""

import asyncio
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
import logging
from pathlib import Path
import shutil

from aiofiles.os import makedirs
from aiofiles.ospath import isfile

from .command import Command, CommandRunner, run
from .exceptions import CommandException, ToolUnavailable

__all__ = [
    "ToolLocator",
    "ToolReference",
    "ToolSpec",
    "ToolState",
    "DEFAULT_TOOLS",
]

_LOGGER = logging.getLogger(__name__)

GO_BIN = "go"


class ToolState(str, Enum):
    """Resolution state of a tool."""

    NOT_SEARCHED = "not-searched"
    FOUND_ON_PATH = "found-on-path"
    INSTALLED = "installed"
    UNAVAILABLE = "unavailable"


@dataclass(frozen=True)
class ToolSpec:
    """A tool that may be needed by a task."""

    name: str
    """Name of the executable."""

    package: str | None = None
    """Go package used for managed installation, or None if PATH only."""

    version: str | None = None
    """Pinned version used for managed installation."""

    @property
    def installable(self) -> bool:
        """Return true if the tool can be installed into the tools directory."""
        return self.package is not None and self.version is not None

    @property
    def install_target(self) -> str:
        """Return the `go install` argument for the tool."""
        return f"{self.package}@{self.version}"


@dataclass(frozen=True)
class ToolReference:
    """The outcome of looking up a tool."""

    name: str
    state: ToolState = ToolState.NOT_SEARCHED
    path: Path | None = None
    error: str | None = None

    @property
    def available(self) -> bool:
        """Return true if the tool has a usable path."""
        return self.path is not None and self.state in (
            ToolState.FOUND_ON_PATH,
            ToolState.INSTALLED,
        )


DEFAULT_TOOLS = [
    ToolSpec(
        "controller-gen",
        package="sigs.k8s.io/controller-tools/cmd/controller-gen",
        version="v0.2.1",
    ),
    ToolSpec(
        "kustomize",
        package="sigs.k8s.io/kustomize/kustomize/v5",
        version="v5.4.3",
    ),
    ToolSpec(GO_BIN),
    ToolSpec("docker"),
    ToolSpec("kind"),
    ToolSpec("kubectl"),
    ToolSpec("gcloud"),
]


class ToolLocator:
    """Finds tools on the PATH or installs them into a local tools directory."""

    def __init__(
        self,
        tools_dir: Path,
        specs: list[ToolSpec] | None = None,
        runner: CommandRunner = run,
        which: Callable[[str], str | None] = shutil.which,
    ) -> None:
        """Initialize ToolLocator."""
        # Absolute so installed tools resolve from the project directory
        self._tools_dir = tools_dir.absolute()
        self._specs = {spec.name: spec for spec in (specs or DEFAULT_TOOLS)}
        self._runner = runner
        self._which = which
        self._lookups: dict[str, asyncio.Task[ToolReference]] = {}

    @property
    def tools_dir(self) -> Path:
        """Directory used for managed installations."""
        return self._tools_dir

    def spec(self, name: str) -> ToolSpec:
        """Return the spec for a tool, defaulting to a PATH only tool."""
        return self._specs.get(name) or ToolSpec(name)

    def reference(self, name: str) -> ToolReference:
        """Return the current reference for a tool without searching."""
        if (task := self._lookups.get(name)) is None or not task.done():
            return ToolReference(name)
        return task.result()

    async def locate(self, name: str) -> ToolReference:
        """Return the reference for a tool, searching or installing as needed.

        Raises ToolUnavailable if the tool can't be found or installed.
        """
        if (task := self._lookups.get(name)) is None:
            task = asyncio.create_task(self._resolve(self.spec(name)), name=name)
            self._lookups[name] = task
        ref = await task
        if not ref.available:
            raise ToolUnavailable(name, ref.error)
        return ref

    async def path(self, name: str) -> str:
        """Return the path of the tool as a string for use in a command."""
        ref = await self.locate(name)
        return str(ref.path)

    async def _resolve(self, spec: ToolSpec) -> ToolReference:
        if found := self._which(spec.name):
            _LOGGER.debug("Found %s on PATH: %s", spec.name, found)
            return ToolReference(spec.name, ToolState.FOUND_ON_PATH, Path(found))

        managed_path = self._tools_dir / spec.name
        if spec.installable and await isfile(managed_path):
            _LOGGER.debug("Found %s in %s", spec.name, self._tools_dir)
            return ToolReference(spec.name, ToolState.INSTALLED, managed_path)

        if not spec.installable:
            return ToolReference(
                spec.name, ToolState.UNAVAILABLE, error="not found on PATH"
            )
        return await self._install(spec, managed_path)

    async def _install(self, spec: ToolSpec, managed_path: Path) -> ToolReference:
        _LOGGER.info("Installing %s into %s", spec.install_target, self._tools_dir)
        if not (go := self._which(GO_BIN)):
            return ToolReference(
                spec.name,
                ToolState.UNAVAILABLE,
                error=f"not found on PATH and '{GO_BIN}' is required to install it",
            )
        await makedirs(self._tools_dir, exist_ok=True)
        cmd = Command(
            [go, "install", spec.install_target],
            env={"GOBIN": str(self._tools_dir)},
        )
        try:
            await self._runner(cmd)
        except CommandException as err:
            _LOGGER.debug("Install of %s failed: %s", spec.name, err)
            return ToolReference(
                spec.name,
                ToolState.UNAVAILABLE,
                error=f"installation of {spec.install_target} failed: {err}",
            )
        if not await isfile(managed_path):
            return ToolReference(
                spec.name,
                ToolState.UNAVAILABLE,
                error=f"installation did not produce {managed_path}",
            )
        return ToolReference(spec.name, ToolState.INSTALLED, managed_path)
