"""Tests for kustomize library."""

from pathlib import Path

import pytest
import yaml

from conftest import MANIFEST_BUNDLE, FakeRunner, FakeWhich
from hnc_pipeline import kustomize
from hnc_pipeline.config import ConfigurationSnapshot
from hnc_pipeline.exceptions import KustomizeException
from hnc_pipeline.task import TaskContext
from hnc_pipeline.toolchain import ToolLocator


@pytest.fixture(name="context")
def context_fixture(
    tmp_path: Path, runner: FakeRunner, which: FakeWhich
) -> TaskContext:
    """Fixture for the context of a task running kustomize."""
    tools = ToolLocator(tmp_path / ".tools", runner=runner, which=which)
    return TaskContext(
        config=ConfigurationSnapshot(project_dir=tmp_path), tools=tools, runner=runner
    )


def test_kustomization() -> None:
    """Test the kustomization sets the controller image."""
    doc = kustomize.kustomization(
        ["../config/default"], {"controller": "gcr.io/example/hnc-manager:v0.5.0"}
    )
    assert doc == {
        "apiVersion": "kustomize.config.k8s.io/v1beta1",
        "kind": "Kustomization",
        "resources": ["../config/default"],
        "images": [
            {
                "name": "controller",
                "newName": "gcr.io/example/hnc-manager",
                "newTag": "v0.5.0",
            }
        ],
    }


def test_kustomization_no_images() -> None:
    """Test a kustomization without image overrides."""
    doc = kustomize.kustomization(["../config/default"], {})
    assert "images" not in doc


async def test_write_kustomization(tmp_path: Path) -> None:
    """Test writing the kustomization file."""
    path = await kustomize.write_kustomization(
        tmp_path, ["../config/default"], {"controller": "controller:local-cluster-tag"}
    )
    assert path == tmp_path / "kustomization.yaml"
    doc = yaml.safe_load(path.read_text())
    assert doc["images"] == [
        {"name": "controller", "newName": "controller", "newTag": "local-cluster-tag"}
    ]


async def test_build(tmp_path: Path, context: TaskContext, runner: FakeRunner) -> None:
    """Test building the manifest bundle."""
    manifests = tmp_path / "manifests"
    manifests.mkdir()
    output = manifests / "hnc-manager.yaml"
    await kustomize.build(context, manifests, output)
    assert runner.lines() == [f"kustomize build {manifests} -o {output}"]
    objects = await kustomize.objects(output)
    assert [obj["kind"] for obj in objects] == ["Namespace", "Deployment"]


async def test_build_missing_path(tmp_path: Path, context: TaskContext) -> None:
    """Test building a kustomization that does not exist."""
    with pytest.raises(KustomizeException, match="not a directory"):
        await kustomize.build(context, tmp_path / "missing", tmp_path / "out.yaml")


async def test_build_failure(
    tmp_path: Path, context: TaskContext, runner: FakeRunner
) -> None:
    """Test a failed kustomize build raises a kustomize error."""
    runner.fail("kustomize build", "accumulating resources")
    with pytest.raises(KustomizeException, match="accumulating resources"):
        await kustomize.build(context, tmp_path, tmp_path / "out.yaml")


async def test_objects_skips_empty_documents(tmp_path: Path) -> None:
    """Test empty documents in the bundle are ignored."""
    bundle = tmp_path / "bundle.yaml"
    bundle.write_text("---\n" + MANIFEST_BUNDLE + "---\n")
    objects = await kustomize.objects(bundle)
    assert len(objects) == 2


async def test_objects_invalid(tmp_path: Path) -> None:
    """Test a bundle that can't be parsed."""
    bundle = tmp_path / "bundle.yaml"
    bundle.write_text("kind: [Namespace\n")
    with pytest.raises(KustomizeException, match="Unable to parse"):
        await kustomize.objects(bundle)
