"""Deployment of the controller into a Kubernetes cluster.

A deployment installs the prerequisites, publishes the image, synthesizes the
manifests and applies them. Only the controller Deployment is deleted before
the manifests are applied: deleting the CRDs would wipe away all existing
hierarchy configuration, and without deleting the Deployment a new image is
not pulled unless the tag changes.

The local cluster lifecycle (`reset-local-cluster`) is a separate developer
convenience and is never a dependency of `deploy`.
"""

import logging

from .exceptions import CommandException
from .config import ConfigurationSnapshot
from .image import ImagePublisher, new_publisher
from .pipeline import ProjectLayout
from .task import Task, TaskContext, TaskGraph

_LOGGER = logging.getLogger(__name__)

__all__ = ["ReleaseOrchestrator"]

KUBECTL_BIN = "kubectl"
KIND_BIN = "kind"
GCLOUD_BIN = "gcloud"

CONTROLLER_NAMESPACE = "hnc-system"
CONTROLLER_DEPLOYMENT = "hnc-controller-manager"
CONTROLLER_CONTAINER = "manager"

CERT_MANAGER_NAMESPACE = "cert-manager"
# See https://cert-manager.io/docs/installation/kubernetes/ for why the YAML is
# not validated.
CERT_MANAGER_URL = (
    "https://github.com/jetstack/cert-manager/releases/download/v0.11.0/"
    "cert-manager.yaml"
)

NOT_FOUND_MARKERS = ("NotFound", "not found")
ALREADY_EXISTS_MARKERS = ("AlreadyExists", "already exists")


def _has_marker(err: Exception, markers: tuple[str, ...]) -> bool:
    message = str(err)
    return any(marker in message for marker in markers)


async def cluster_info(context: TaskContext) -> None:
    """Verify the configured cluster is reachable."""
    await context.run(KUBECTL_BIN, "cluster-info")


async def create_prerequisite_namespace(context: TaskContext) -> None:
    """Create the cert-manager namespace, which may already exist."""
    try:
        await context.run(KUBECTL_BIN, "create", "namespace", CERT_MANAGER_NAMESPACE)
    except CommandException as err:
        if not _has_marker(err, ALREADY_EXISTS_MARKERS):
            raise
        _LOGGER.info("Namespace %s already exists", CERT_MANAGER_NAMESPACE)


async def install_prerequisites(context: TaskContext) -> None:
    """Install cert-manager into the cluster."""
    await context.run(KUBECTL_BIN, "apply", "--validate=false", "-f", CERT_MANAGER_URL)


async def delete_deployment(context: TaskContext) -> None:
    """Delete the controller Deployment so the new image is pulled.

    Only the Deployment is deleted, never the CRDs or any other object that
    holds hierarchy configuration. A Deployment that does not exist is not a
    failure.
    """
    try:
        await context.run(
            KUBECTL_BIN,
            "-n",
            CONTROLLER_NAMESPACE,
            "delete",
            "deployment",
            CONTROLLER_DEPLOYMENT,
        )
    except CommandException as err:
        if not _has_marker(err, NOT_FOUND_MARKERS):
            raise
        _LOGGER.info(
            "Deployment %s/%s not found, nothing to delete",
            CONTROLLER_NAMESPACE,
            CONTROLLER_DEPLOYMENT,
        )


async def apply_manifests(context: TaskContext) -> None:
    """Apply the synthesized manifest bundle."""
    layout = ProjectLayout.from_config(context.config)
    await context.run(KUBECTL_BIN, "apply", "-f", str(layout.manifest_bundle))


async def watch_deployment(context: TaskContext) -> None:
    """Follow the controller logs."""
    await context.run(
        KUBECTL_BIN,
        "logs",
        "-n",
        CONTROLLER_NAMESPACE,
        "--follow",
        f"deployment/{CONTROLLER_DEPLOYMENT}",
        CONTROLLER_CONTAINER,
        capture=False,
    )


async def delete_local_cluster(context: TaskContext) -> None:
    """Delete the local kind cluster if one exists."""
    await context.run(KIND_BIN, "delete", "cluster")


async def create_local_cluster(context: TaskContext) -> None:
    """Create a new local kind cluster."""
    await context.run(KIND_BIN, "create", "cluster")


async def reset_local_cluster(context: TaskContext) -> None:
    """Report how to point kubectl at the new cluster."""
    _LOGGER.info("If this didn't work, ensure kubectl is pointed at the kind cluster")


async def submit_release(context: TaskContext) -> None:
    """Build the container image with Cloud Build."""
    await context.run(
        GCLOUD_BIN,
        "builds",
        "submit",
        "--config",
        "cloudbuild.yaml",
        ".",
        capture=False,
    )


class ReleaseOrchestrator:
    """Registers the deployment and local cluster tasks."""

    def __init__(
        self, config: ConfigurationSnapshot, publisher: ImagePublisher | None = None
    ) -> None:
        """Initialize ReleaseOrchestrator, selecting the image publisher."""
        self._publisher = publisher or new_publisher(config)
        _LOGGER.debug("Using image publisher: %s", self._publisher)

    @property
    def publisher(self) -> ImagePublisher:
        """The publisher used by the publish task."""
        return self._publisher

    async def publish(self, context: TaskContext) -> None:
        """Make the built image available to the cluster."""
        await self._publisher.publish(context, context.config.image)

    def tasks(self) -> list[Task]:
        """Return the release tasks in declaration order."""
        return [
            Task(
                "cluster-info",
                action=cluster_info,
                description="Verify the cluster is reachable",
            ),
            Task(
                "create-prerequisite-namespace",
                action=create_prerequisite_namespace,
                best_effort=True,
                description="Create the cert-manager namespace",
            ),
            Task(
                "install-prerequisites",
                ("cluster-info", "create-prerequisite-namespace"),
                action=install_prerequisites,
                description="Install cert-manager",
            ),
            Task(
                "publish",
                ("containerize",),
                action=self.publish,
                description=f"Publish the controller image ({self._publisher})",
            ),
            Task(
                "delete-deployment",
                ("generate-manifests",),
                action=delete_deployment,
                best_effort=True,
                description="Delete the controller Deployment (CRDs are kept)",
            ),
            Task(
                "deploy",
                (
                    "install-prerequisites",
                    "publish",
                    "install-plugin",
                    "generate-manifests",
                    "delete-deployment",
                ),
                action=apply_manifests,
                description="Deploy the controller to the configured cluster",
            ),
            Task(
                "deploy-watch",
                action=watch_deployment,
                description="Follow the controller logs",
            ),
            Task(
                "delete-local-cluster",
                action=delete_local_cluster,
                best_effort=True,
                description="Delete the local kind cluster",
            ),
            Task(
                "reboot-local-cluster",
                ("delete-local-cluster",),
                action=create_local_cluster,
                description="Create a local kind cluster, destroying the old one",
            ),
            Task(
                "reset-local-cluster",
                ("reboot-local-cluster", "install-prerequisites"),
                action=reset_local_cluster,
                description="Recreate the local cluster and install prerequisites",
            ),
            Task(
                "release",
                ("generate-manifests",),
                action=submit_release,
                description="Build the image with Cloud Build and the manifests",
            ),
        ]

    def register(self, graph: TaskGraph) -> None:
        """Register the release tasks."""
        for task in self.tasks():
            graph.register(task)
