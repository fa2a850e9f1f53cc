"""Helper functions for working with container images.

The controller image is either loaded directly into a local cluster or pushed
to a remote registry. The publisher is chosen once from the configuration:

```python
publisher = new_publisher(config)
await publisher.publish(context, config.image)
```
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
import logging

from .config import ConfigurationSnapshot
from .exceptions import InputException
from .task import TaskContext

__all__ = [
    "ImageReference",
    "ImagePublisher",
    "LocalLoader",
    "RegistryPusher",
    "new_publisher",
]

_LOGGER = logging.getLogger(__name__)

DOCKER_BIN = "docker"
KIND_BIN = "kind"


@dataclass(frozen=True)
class ImageReference:
    """A parsed container image reference."""

    name: str
    """Repository including any registry host e.g. `gcr.io/project/controller`."""

    tag: str | None = None
    """The image tag."""

    digest: str | None = None
    """The image digest e.g. `sha256:...`."""

    @classmethod
    def parse(cls, image: str) -> "ImageReference":
        """Parse an image reference of the form `registry/name:tag@digest`."""
        if not image or any(c.isspace() for c in image):
            raise InputException(f"Invalid image reference '{image}'")
        name, _, digest = image.partition("@")
        tag: str | None = None
        # A ':' before the last '/' is a registry port, not a tag
        if (idx := name.rfind(":")) > name.rfind("/"):
            name, tag = name[:idx], name[idx + 1 :]
        if not name or tag == "" or (digest == "" and "@" in image):
            raise InputException(f"Invalid image reference '{image}'")
        return cls(name=name, tag=tag, digest=digest or None)

    def __str__(self) -> str:
        """Render the image reference."""
        out = self.name
        if self.tag:
            out += f":{self.tag}"
        if self.digest:
            out += f"@{self.digest}"
        return out


class ImagePublisher(ABC):
    """Makes a locally built image available to the target cluster."""

    @abstractmethod
    async def publish(self, context: TaskContext, image: str) -> None:
        """Publish the image."""


class LocalLoader(ImagePublisher):
    """Loads the image directly into the local kind cluster."""

    async def publish(self, context: TaskContext, image: str) -> None:
        """Publish the image without a registry round trip."""
        _LOGGER.info("Loading image %s into the local cluster", image)
        await context.run(KIND_BIN, "load", "docker-image", image)

    def __str__(self) -> str:
        return "kind load"


class RegistryPusher(ImagePublisher):
    """Pushes the image to a remote registry."""

    async def publish(self, context: TaskContext, image: str) -> None:
        """Publish the image to the registry in the image reference."""
        _LOGGER.info("Pushing image %s", image)
        await context.run(DOCKER_BIN, "push", image)

    def __str__(self) -> str:
        return "docker push"


def new_publisher(config: ConfigurationSnapshot) -> ImagePublisher:
    """Return the publisher for the configured environment."""
    if config.is_local_cluster:
        return LocalLoader()
    return RegistryPusher()
