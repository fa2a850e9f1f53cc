"""Artifacts produced and consumed by tasks.

Every artifact has exactly one producing task. A task that consumes an
artifact must depend, directly or transitively, on the producer so the
artifact always exists by the time the consumer runs.
"""

from dataclasses import dataclass, field
from enum import Enum
import logging
from pathlib import Path

from .exceptions import InputException, TaskGraphError
from .task import TaskGraph

__all__ = [
    "Artifact",
    "ArtifactKind",
    "ArtifactRegistry",
]

_LOGGER = logging.getLogger(__name__)


class ArtifactKind(str, Enum):
    """Type of build output."""

    BINARY = "binary"
    IMAGE = "image"
    MANIFEST_BUNDLE = "manifest-bundle"
    ARCHIVE = "archive"
    INSTALLER_MANIFEST = "installer-manifest"


@dataclass(frozen=True)
class Artifact:
    """A named build output."""

    name: str
    """Unique name of the artifact."""

    kind: ArtifactKind
    """The type of output."""

    producer: str
    """Name of the task that produces the artifact."""

    consumers: frozenset[str] = field(default_factory=frozenset)
    """Names of tasks that consume the artifact."""

    location: Path | str | None = None
    """Path of the output, or the image reference for an image."""


class ArtifactRegistry:
    """Holds the artifacts declared by the pipeline."""

    def __init__(self) -> None:
        """Initialize ArtifactRegistry."""
        self._artifacts: dict[str, Artifact] = {}

    def declare(self, artifact: Artifact) -> Artifact:
        """Declare a new artifact."""
        if (existing := self._artifacts.get(artifact.name)) is not None:
            raise InputException(
                f"Artifact '{artifact.name}' is already produced by "
                f"task '{existing.producer}'"
            )
        self._artifacts[artifact.name] = artifact
        return artifact

    def get(self, name: str) -> Artifact:
        """Return the artifact with the specified name."""
        if (artifact := self._artifacts.get(name)) is None:
            raise InputException(f"Unknown artifact '{name}'")
        return artifact

    def artifacts(self) -> list[Artifact]:
        """Return all artifacts in declaration order."""
        return list(self._artifacts.values())

    def produced_by(self, task_name: str) -> list[Artifact]:
        """Return the artifacts produced by the specified task."""
        return [a for a in self._artifacts.values() if a.producer == task_name]

    def validate(self, graph: TaskGraph) -> None:
        """Check producers exist and every consumer depends on its producer."""
        for artifact in self._artifacts.values():
            graph.get(artifact.producer)
            for consumer in sorted(artifact.consumers):
                if artifact.producer not in graph.plan(consumer):
                    raise TaskGraphError(
                        f"Task '{consumer}' consumes artifact '{artifact.name}' "
                        f"but does not depend on its producer '{artifact.producer}'"
                    )
        _LOGGER.debug("Validated %d artifacts", len(self._artifacts))
