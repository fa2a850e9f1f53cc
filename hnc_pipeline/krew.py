"""Packaging of the kubectl plugin for the krew plugin manager.

The plugin binaries are archived and the checksum of the archive, along with
the release version, is substituted into the krew plugin manifest template.
The resulting manifest is consumed by `kubectl krew install`.
"""

import hashlib
import logging
from pathlib import Path
import tarfile
from typing import Any

import aiofiles
import yaml

from .exceptions import InputException

_LOGGER = logging.getLogger(__name__)

__all__ = [
    "create_archive",
    "render_manifest",
    "sha256sum",
    "write_manifest",
]

KREW_API_VERSION = "krew.googlecontainertools.github.com"
PLUGIN_KIND = "Plugin"
_CHUNK_SIZE = 64 * 1024


def create_archive(source: Path, archive_path: Path, arcname: str) -> Path:
    """Create a gzip compressed tar archive of a directory."""
    if not source.is_dir():
        raise InputException(f"Plugin directory does not exist: {source}")
    archive_path.parent.mkdir(parents=True, exist_ok=True)
    with tarfile.open(archive_path, "w:gz") as archive:
        archive.add(source, arcname=arcname)
    _LOGGER.debug("Created archive %s", archive_path)
    return archive_path


def sha256sum(path: Path) -> str:
    """Return the hex encoded SHA-256 digest of a file."""
    digest = hashlib.sha256()
    with path.open("rb") as fd:
        while chunk := fd.read(_CHUNK_SIZE):
            digest.update(chunk)
    return digest.hexdigest()


def render_manifest(template: str, version: str, checksum: str) -> str:
    """Return the plugin manifest with the version and checksum filled in.

    Every platform entry receives the same checksum since a single archive
    holds the binaries for all platforms.
    """
    try:
        doc: Any = yaml.safe_load(template)
    except yaml.YAMLError as err:
        raise InputException(f"Unable to parse krew manifest template: {err}") from err
    if not isinstance(doc, dict):
        raise InputException("Krew manifest template must be a mapping")
    if not str(doc.get("apiVersion", "")).startswith(KREW_API_VERSION):
        raise InputException(
            f"Krew manifest template has unexpected apiVersion: {doc.get('apiVersion')}"
        )
    if doc.get("kind") != PLUGIN_KIND:
        raise InputException(f"Krew manifest template is not a {PLUGIN_KIND}")
    if not isinstance(spec := doc.get("spec"), dict):
        raise InputException("Krew manifest template is missing spec")
    platforms = spec.get("platforms")
    if not isinstance(platforms, list) or not platforms:
        raise InputException("Krew manifest template is missing spec.platforms")

    spec["version"] = version
    for platform in platforms:
        if not isinstance(platform, dict):
            raise InputException(f"Invalid krew platform entry: {platform}")
        platform["sha256"] = checksum
    return yaml.dump(doc, sort_keys=False)


async def write_manifest(
    template_path: Path, output_path: Path, version: str, checksum: str
) -> Path:
    """Render the manifest template to the output path."""
    try:
        async with aiofiles.open(template_path) as template_file:
            template = await template_file.read()
    except FileNotFoundError as err:
        raise InputException(
            f"Krew manifest template not found: {template_path}"
        ) from err
    content = render_manifest(template, version, checksum)
    async with aiofiles.open(output_path, mode="w") as output_file:
        await output_file.write(content)
    _LOGGER.info("Wrote krew manifest %s (version %s)", output_path, version)
    return output_path
