"""Fixtures for running tasks without invoking any external tools."""

from collections.abc import Callable
import logging
from pathlib import Path
import re

import pytest

from hnc_pipeline import builder
from hnc_pipeline.command import Command
from hnc_pipeline.config import ConfigResolver, ConfigurationSnapshot
from hnc_pipeline.task import TaskGraph

_LOGGER = logging.getLogger(__name__)

KREW_TEMPLATE = """\
apiVersion: krew.googlecontainertools.github.com/v1alpha2
kind: Plugin
metadata:
  name: hierarchical-namespaces
spec:
  version: "TAG"
  homepage: https://github.com/kubernetes-sigs/multi-tenancy
  shortDescription: Manage hierarchies and hierarchical namespaces
  platforms:
  - selector:
      matchLabels:
        os: linux
        arch: amd64
    uri: https://example.com/releases/TAG/kubectl-hierarchical_namespaces.tar.gz
    sha256: "SHA256"
    bin: bin/kubectl/kubectl-hierarchical_namespaces
  - selector:
      matchLabels:
        os: darwin
        arch: amd64
    uri: https://example.com/releases/TAG/kubectl-hierarchical_namespaces.tar.gz
    sha256: "SHA256"
    bin: bin/kubectl/kubectl-hierarchical_namespaces
"""

MANIFEST_BUNDLE = """\
apiVersion: v1
kind: Namespace
metadata:
  name: hnc-system
---
apiVersion: apps/v1
kind: Deployment
metadata:
  name: hnc-controller-manager
  namespace: hnc-system
"""

GO_LIST_OUTPUT = """\
sigs.k8s.io/multi-tenancy/incubator/hnc/pkg/config
sigs.k8s.io/multi-tenancy/incubator/hnc/pkg/controllers
sigs.k8s.io/multi-tenancy/incubator/hnc/pkg/forest
"""

PATH_TOOLS = {"go", "controller-gen", "kustomize", "docker", "kind", "kubectl"}

MAJOR_VERSION_RE = re.compile(r"^v\d+$")


class FakeRunner:
    """A command runner that records commands and simulates their outputs.

    Commands are recorded with the tool name instead of the resolved path so
    tests can compare them directly.
    """

    def __init__(self) -> None:
        """Initialize FakeRunner."""
        self.commands: list[list[str]] = []
        self.failures: dict[str, str] = {}
        self.outputs: dict[str, str] = {"go list": GO_LIST_OUTPUT}

    def fail(self, pattern: str, message: str = "error") -> None:
        """Fail any command containing the pattern with the message."""
        self.failures[pattern] = message

    def lines(self) -> list[str]:
        """Return each recorded command as a single string."""
        return [" ".join(cmd) for cmd in self.commands]

    def index(self, pattern: str) -> int:
        """Return the index of the first command containing the pattern."""
        for i, line in enumerate(self.lines()):
            if pattern in line:
                return i
        raise AssertionError(f"No command matching '{pattern}' in {self.lines()}")

    def count(self, pattern: str) -> int:
        """Return the number of commands containing the pattern."""
        return sum(1 for line in self.lines() if pattern in line)

    async def __call__(self, cmd: Command) -> str:
        args = [Path(cmd.cmd[0]).name, *cmd.cmd[1:]]
        self.commands.append(args)
        line = " ".join(args)
        for pattern, message in self.failures.items():
            if pattern in line:
                raise cmd.exc(
                    f"Command '{line}' failed with return code 1\n{message}"
                )
        self._side_effects(cmd, args)
        for pattern, out in self.outputs.items():
            if pattern in line:
                return out
        return ""

    def _side_effects(self, cmd: Command, args: list[str]) -> None:
        if args[:2] == ["go", "build"]:
            output = Path(args[args.index("-o") + 1])
            output.parent.mkdir(parents=True, exist_ok=True)
            output.write_text(f"binary built from {args[-1]}")
        elif args[:2] == ["kustomize", "build"]:
            Path(args[args.index("-o") + 1]).write_text(MANIFEST_BUNDLE)
        elif args[:2] == ["go", "install"] and cmd.env:
            segments = args[2].split("@")[0].split("/")
            if MAJOR_VERSION_RE.match(segments[-1]):
                segments.pop()
            binary = Path(cmd.env["GOBIN"]) / segments[-1]
            binary.write_text("installed")


class FakeWhich:
    """Finds the configured tools in a fake bin directory."""

    def __init__(self, tools: set[str]) -> None:
        """Initialize FakeWhich."""
        self.tools = set(tools)
        self.calls: list[str] = []

    def __call__(self, name: str) -> str | None:
        self.calls.append(name)
        if name in self.tools:
            return f"/usr/local/bin/{name}"
        return None


@pytest.fixture(name="runner")
def runner_fixture() -> FakeRunner:
    """Fixture for a fake command runner."""
    return FakeRunner()


@pytest.fixture(name="which")
def which_fixture() -> FakeWhich:
    """Fixture for finding tools on a fake PATH."""
    return FakeWhich(PATH_TOOLS)


@pytest.fixture(name="project_dir")
def project_dir_fixture(tmp_path: Path) -> Path:
    """Fixture for a controller source checkout."""
    project_dir = tmp_path / "hnc"
    (project_dir / "hack").mkdir(parents=True)
    (project_dir / "hack" / "krew-hierarchical-namespaces.yaml").write_text(
        KREW_TEMPLATE
    )
    (project_dir / "config" / "default").mkdir(parents=True)
    return project_dir


@pytest.fixture(name="environ")
def environ_fixture(tmp_path: Path) -> dict[str, str]:
    """Fixture for the environment variables seen by the resolver."""
    return {"HOME": str(tmp_path / "home")}


@pytest.fixture(name="make_config")
def make_config_fixture(
    project_dir: Path, environ: dict[str, str]
) -> Callable[..., ConfigurationSnapshot]:
    """Fixture for resolving a configuration for the project."""

    def make_config(**overrides: str) -> ConfigurationSnapshot:
        return ConfigResolver(environ).resolve(
            {"projectDir": str(project_dir), **overrides}
        )

    return make_config


@pytest.fixture(name="make_graph")
def make_graph_fixture(
    make_config: Callable[..., ConfigurationSnapshot],
    runner: FakeRunner,
    which: FakeWhich,
) -> Callable[..., TaskGraph]:
    """Fixture for building the complete task graph with fake tools."""

    def make_graph(**overrides: str) -> TaskGraph:
        return builder.task_graph(make_config(**overrides), runner=runner, which=which)

    return make_graph
