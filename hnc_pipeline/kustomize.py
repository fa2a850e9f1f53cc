"""Library for synthesizing the controller manifest bundle with kustomize.

The bundle is built from a generated kustomization that points at the checked
in `config/default` overlay and sets the controller image:

```python
from hnc_pipeline import kustomize

await kustomize.write_kustomization(
    Path("manifests"), ["../config/default"], {"controller": "controller:latest"}
)
await kustomize.build(context, Path("manifests"), Path("manifests/hnc-manager.yaml"))
objects = await kustomize.objects(Path("manifests/hnc-manager.yaml"))
```
"""

import logging
from pathlib import Path
from typing import Any

import aiofiles
from aiofiles.ospath import isdir
import yaml

from .exceptions import KustomizeException
from .image import ImageReference
from .task import TaskContext

_LOGGER = logging.getLogger(__name__)

__all__ = [
    "build",
    "kustomization",
    "objects",
    "write_kustomization",
]

KUSTOMIZE_BIN = "kustomize"
KUSTOMIZATION_FILE = "kustomization.yaml"
KUSTOMIZE_API_VERSION = "kustomize.config.k8s.io/v1beta1"
KUSTOMIZE_KIND = "Kustomization"


def kustomization(resources: list[str], images: dict[str, str]) -> dict[str, Any]:
    """Return the contents of a kustomization with image overrides.

    The images map the image name used in the resources to the replacement
    reference, equivalent to `kustomize edit set image name=reference`.
    """
    doc: dict[str, Any] = {
        "apiVersion": KUSTOMIZE_API_VERSION,
        "kind": KUSTOMIZE_KIND,
        "resources": list(resources),
    }
    if images:
        doc["images"] = []
        for name, image in images.items():
            ref = ImageReference.parse(image)
            entry: dict[str, str] = {"name": name, "newName": ref.name}
            if ref.tag:
                entry["newTag"] = ref.tag
            if ref.digest:
                entry["digest"] = ref.digest
            doc["images"].append(entry)
    return doc


async def write_kustomization(
    path: Path, resources: list[str], images: dict[str, str]
) -> Path:
    """Write a kustomization file into the specified directory."""
    kustomization_path = path / KUSTOMIZATION_FILE
    content = yaml.dump(kustomization(resources, images), sort_keys=False)
    async with aiofiles.open(kustomization_path, mode="w") as kustomization_file:
        await kustomization_file.write(content)
    return kustomization_path


async def build(context: TaskContext, path: Path, output: Path) -> None:
    """Run `kustomize build` writing the aggregated manifests to the output file."""
    if not await isdir(path):
        raise KustomizeException(f"Kustomization path is not a directory: {path}")
    await context.run(
        KUSTOMIZE_BIN, "build", str(path), "-o", str(output), exc=KustomizeException
    )


async def objects(path: Path) -> list[dict[str, Any]]:
    """Read the objects in a built manifest bundle."""
    async with aiofiles.open(path) as bundle_file:
        content = await bundle_file.read()
    try:
        return [doc for doc in yaml.safe_load_all(content) if doc is not None]
    except yaml.YAMLError as err:
        raise KustomizeException(
            f"Unable to parse manifest bundle {path}: {err}"
        ) from err
