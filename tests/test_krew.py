"""Tests for the krew packaging library."""

import hashlib
from pathlib import Path
import tarfile

import pytest
import yaml

from conftest import KREW_TEMPLATE
from hnc_pipeline import krew
from hnc_pipeline.exceptions import InputException


def test_create_archive(tmp_path: Path) -> None:
    """Test archiving the plugin directory."""
    source = tmp_path / "bin" / "kubectl"
    source.mkdir(parents=True)
    (source / "kubectl-hierarchical_namespaces").write_text("binary")
    archive = krew.create_archive(
        source, tmp_path / "out" / "plugin.tar.gz", "bin/kubectl"
    )
    with tarfile.open(archive) as tar:
        assert "bin/kubectl/kubectl-hierarchical_namespaces" in tar.getnames()


def test_create_archive_missing_source(tmp_path: Path) -> None:
    """Test archiving a directory that does not exist."""
    with pytest.raises(InputException, match="does not exist"):
        krew.create_archive(tmp_path / "missing", tmp_path / "a.tar.gz", "bin")


def test_sha256sum(tmp_path: Path) -> None:
    """Test the checksum of a file."""
    path = tmp_path / "archive.tar.gz"
    path.write_bytes(b"hnc" * 100000)
    assert krew.sha256sum(path) == hashlib.sha256(b"hnc" * 100000).hexdigest()


def test_render_manifest() -> None:
    """Test the version and checksum are set on every platform."""
    doc = yaml.safe_load(krew.render_manifest(KREW_TEMPLATE, "v1.2.3", "abc123"))
    assert doc["spec"]["version"] == "v1.2.3"
    assert [p["sha256"] for p in doc["spec"]["platforms"]] == ["abc123", "abc123"]
    assert doc["metadata"]["name"] == "hierarchical-namespaces"


@pytest.mark.parametrize(
    ("template", "match"),
    [
        ("- a\n- b\n", "must be a mapping"),
        ("apiVersion: v1\nkind: Plugin\n", "unexpected apiVersion"),
        (
            "apiVersion: krew.googlecontainertools.github.com/v1alpha2\nkind: Pod\n",
            "is not a Plugin",
        ),
        (
            "apiVersion: krew.googlecontainertools.github.com/v1alpha2\n"
            "kind: Plugin\nspec:\n  platforms: []\n",
            "missing spec.platforms",
        ),
        ("kind: [Plugin\n", "Unable to parse"),
    ],
)
def test_render_invalid_manifest(template: str, match: str) -> None:
    """Test templates that are not krew plugin manifests."""
    with pytest.raises(InputException, match=match):
        krew.render_manifest(template, "v1.2.3", "abc123")


async def test_write_manifest(tmp_path: Path) -> None:
    """Test writing the manifest from a template file."""
    template = tmp_path / "template.yaml"
    template.write_text(KREW_TEMPLATE)
    output = await krew.write_manifest(
        template, tmp_path / "manifest.yaml", "v0.5.0", "def456"
    )
    doc = yaml.safe_load(output.read_text())
    assert doc["spec"]["version"] == "v0.5.0"


async def test_write_manifest_missing_template(tmp_path: Path) -> None:
    """Test writing the manifest without a template."""
    with pytest.raises(InputException, match="template not found"):
        await krew.write_manifest(
            tmp_path / "missing.yaml", tmp_path / "out.yaml", "v0.5.0", "def456"
        )
