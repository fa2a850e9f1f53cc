"""Tests for the toolchain library."""

import asyncio
from pathlib import Path

import pytest

from conftest import FakeRunner, FakeWhich
from hnc_pipeline.exceptions import ToolUnavailable
from hnc_pipeline.toolchain import ToolLocator, ToolSpec, ToolState


@pytest.fixture(name="tools_dir")
def tools_dir_fixture(tmp_path: Path) -> Path:
    """Fixture for the managed tools directory."""
    return tmp_path / ".tools"


async def test_found_on_path(tools_dir: Path, runner: FakeRunner) -> None:
    """Test a tool found on the PATH is not installed."""
    locator = ToolLocator(tools_dir, runner=runner, which=FakeWhich({"kubectl"}))
    ref = await locator.locate("kubectl")
    assert ref.state == ToolState.FOUND_ON_PATH
    assert ref.path == Path("/usr/local/bin/kubectl")
    assert runner.commands == []


async def test_reference_not_searched(tools_dir: Path) -> None:
    """Test the reference of a tool before it is located."""
    locator = ToolLocator(tools_dir, which=FakeWhich(set()))
    ref = locator.reference("controller-gen")
    assert ref.state == ToolState.NOT_SEARCHED
    assert ref.path is None
    assert not ref.available


async def test_install(tools_dir: Path, runner: FakeRunner) -> None:
    """Test a tool missing from the PATH is installed at the pinned version."""
    locator = ToolLocator(tools_dir, runner=runner, which=FakeWhich({"go"}))
    ref = await locator.locate("controller-gen")
    assert ref.state == ToolState.INSTALLED
    assert ref.path == tools_dir / "controller-gen"
    assert runner.lines() == [
        "go install sigs.k8s.io/controller-tools/cmd/controller-gen@v0.2.1"
    ]
    assert locator.reference("controller-gen") == ref


async def test_already_installed(tools_dir: Path, runner: FakeRunner) -> None:
    """Test a tool previously installed into the tools directory is reused."""
    tools_dir.mkdir()
    (tools_dir / "kustomize").write_text("installed")
    locator = ToolLocator(tools_dir, runner=runner, which=FakeWhich({"go"}))
    ref = await locator.locate("kustomize")
    assert ref.state == ToolState.INSTALLED
    assert runner.commands == []


async def test_install_failure(tools_dir: Path, runner: FakeRunner) -> None:
    """Test a failed installation makes the tool unavailable."""
    runner.fail("go install", "network unreachable")
    locator = ToolLocator(tools_dir, runner=runner, which=FakeWhich({"go"}))
    with pytest.raises(ToolUnavailable, match="controller-gen") as exc_info:
        await locator.locate("controller-gen")
    assert exc_info.value.tool_name == "controller-gen"
    assert locator.reference("controller-gen").state == ToolState.UNAVAILABLE

    # The result is cached and installation is not attempted again
    with pytest.raises(ToolUnavailable):
        await locator.locate("controller-gen")
    assert runner.count("go install") == 1


async def test_install_without_go(tools_dir: Path, runner: FakeRunner) -> None:
    """Test installation is not possible without go."""
    locator = ToolLocator(tools_dir, runner=runner, which=FakeWhich(set()))
    with pytest.raises(ToolUnavailable, match="'go' is required"):
        await locator.locate("kustomize")
    assert runner.commands == []


async def test_path_only_tool(tools_dir: Path, runner: FakeRunner) -> None:
    """Test a tool that can't be installed and is missing from the PATH."""
    locator = ToolLocator(tools_dir, runner=runner, which=FakeWhich({"go"}))
    with pytest.raises(ToolUnavailable, match="not found on PATH"):
        await locator.locate("kind")
    assert locator.reference("kind").state == ToolState.UNAVAILABLE
    assert runner.commands == []


async def test_unknown_tool_path_only(tools_dir: Path) -> None:
    """Test an unknown tool is only searched for on the PATH."""
    locator = ToolLocator(tools_dir, which=FakeWhich({"helm"}))
    assert locator.spec("helm") == ToolSpec("helm")
    assert await locator.path("helm") == "/usr/local/bin/helm"


async def test_concurrent_lookups(tools_dir: Path, runner: FakeRunner) -> None:
    """Test concurrent lookups of the same tool share one installation."""
    which = FakeWhich({"go"})
    locator = ToolLocator(tools_dir, runner=runner, which=which)
    refs = await asyncio.gather(*[locator.locate("kustomize") for _ in range(5)])
    assert all(ref.path == tools_dir / "kustomize" for ref in refs)
    assert runner.lines() == ["go install sigs.k8s.io/kustomize/kustomize/v5@v5.4.3"]
    assert which.calls.count("kustomize") == 1


async def test_relative_tools_dir(
    tmp_path: Path, runner: FakeRunner, monkeypatch: pytest.MonkeyPatch
) -> None:
    """Test a relative tools directory is resolved from the current directory."""
    monkeypatch.chdir(tmp_path)
    locator = ToolLocator(Path(".tools"), runner=runner, which=FakeWhich({"go"}))
    assert locator.tools_dir.is_absolute()
    assert locator.tools_dir.resolve() == (tmp_path / ".tools").resolve()
    ref = await locator.locate("controller-gen")
    assert ref.path
    assert ref.path.is_absolute()
    assert ref.path.parent == locator.tools_dir
    assert ref.path.exists()
