"""The build stages that turn the controller source into deployable artifacts.

The stages are registered as tasks in a `TaskGraph`:

    generate -> fmt/vet -> generate-manifests -> build -> test
                        \\-> containerize
    build -> archive-plugin -> package-plugin

`generate-manifests` only depends on `generate` so manifests can be produced
without compiling anything. Tests run in two partitions: everything except the
object controllers, and the controllers alone with the object controller
implementation selected by a task-local setting.
"""

from dataclasses import dataclass
import logging
from pathlib import Path
import shutil

from aiofiles.os import makedirs

from . import krew, kustomize
from .artifact import Artifact, ArtifactKind, ArtifactRegistry
from .config import ConfigurationSnapshot
from .task import Task, TaskContext, TaskGraph

_LOGGER = logging.getLogger(__name__)

__all__ = [
    "ArtifactPipeline",
    "ProjectLayout",
]

GO_BIN = "go"
CONTROLLER_GEN_BIN = "controller-gen"
DOCKER_BIN = "docker"
KUBECTL_BIN = "kubectl"

PLUGIN_NAME = "kubectl-hierarchical_namespaces"
PLUGIN_ALIAS = "kubectl-hns"
KREW_PLUGIN_NAME = "hierarchical-namespaces"
CONTROLLER_IMAGE_NAME = "controller"
CONTROLLERS_PACKAGE = "controllers"
NEW_OBJECT_CONTROLLER_SETTING = "enable_new_object_controller"


@dataclass(frozen=True)
class ProjectLayout:
    """Locations of inputs and outputs within the controller source tree."""

    root: Path

    @classmethod
    def from_config(cls, config: ConfigurationSnapshot) -> "ProjectLayout":
        """Return the layout for the configured project directory."""
        return cls(root=config.project_dir.absolute())

    @property
    def bin_dir(self) -> Path:
        return self.root / "bin"

    @property
    def manager_binary(self) -> Path:
        return self.bin_dir / "manager"

    @property
    def plugin_dir(self) -> Path:
        return self.bin_dir / "kubectl"

    @property
    def plugin_binary(self) -> Path:
        return self.plugin_dir / PLUGIN_NAME

    @property
    def plugin_archive(self) -> Path:
        return self.bin_dir / f"{PLUGIN_NAME}.tar.gz"

    @property
    def manifests_dir(self) -> Path:
        """Generated (not checked in) kustomization and manifests."""
        return self.root / "manifests"

    @property
    def manifest_bundle(self) -> Path:
        return self.manifests_dir / "hnc-manager.yaml"

    @property
    def krew_template(self) -> Path:
        return self.root / "hack" / f"krew-{KREW_PLUGIN_NAME}.yaml"

    @property
    def krew_manifest(self) -> Path:
        return self.manifests_dir / f"krew-{KREW_PLUGIN_NAME}.yaml"


async def generate(context: TaskContext) -> None:
    """Generate the deepcopy code for the API types."""
    await context.run(
        CONTROLLER_GEN_BIN,
        "object:headerFile=./hack/boilerplate.go.txt",
        "paths=./api/...",
    )


async def fmt(context: TaskContext) -> None:
    """Run go fmt against code."""
    await context.run(GO_BIN, "fmt", "./...")


async def vet(context: TaskContext) -> None:
    """Run go vet against code."""
    await context.run(GO_BIN, "vet", "./...")


async def generate_manifests(context: TaskContext) -> None:
    """Generate CRD, RBAC and webhook manifests and the kustomized bundle.

    The generated files in `config/` are checked in, while the contents of
    `manifests/` are recreated on every run.
    """
    layout = ProjectLayout.from_config(context.config)
    await context.run(
        CONTROLLER_GEN_BIN,
        *context.config.crd_arguments,
        "rbac:roleName=manager-role",
        "webhook",
        "paths=./...",
        "output:crd:artifacts:config=config/crd/bases",
    )
    shutil.rmtree(layout.manifests_dir, ignore_errors=True)
    await makedirs(layout.manifests_dir, exist_ok=True)
    await kustomize.write_kustomization(
        layout.manifests_dir,
        ["../config/default"],
        {CONTROLLER_IMAGE_NAME: context.config.image},
    )
    await kustomize.build(context, layout.manifests_dir, layout.manifest_bundle)
    objects = await kustomize.objects(layout.manifest_bundle)
    _LOGGER.info(
        "Synthesized %d objects into %s", len(objects), layout.manifest_bundle
    )


async def build(context: TaskContext) -> None:
    """Build the manager and kubectl plugin binaries."""
    layout = ProjectLayout.from_config(context.config)
    await context.run(
        GO_BIN, "build", "-o", str(layout.manager_binary), "./cmd/manager/main.go"
    )
    await context.run(
        GO_BIN, "build", "-o", str(layout.plugin_binary), "./cmd/kubectl/main.go"
    )


async def run_main_tests(context: TaskContext) -> None:
    """Run tests in all packages except the object controllers."""
    out = await context.run(GO_BIN, "list", "./pkg/...")
    packages = [
        pkg
        for line in out.splitlines()
        if (pkg := line.strip()) and CONTROLLERS_PACKAGE not in pkg
    ]
    await context.run(
        GO_BIN,
        "test",
        "./api/...",
        "./cmd/...",
        *packages,
        "-coverprofile",
        "cover.out",
        capture=False,
    )


async def run_controller_tests(context: TaskContext) -> None:
    """Run the object controller tests with the selected implementation."""
    enabled = bool(context.settings.get(NEW_OBJECT_CONTROLLER_SETTING, True))
    await context.run(
        GO_BIN,
        "test",
        f"./pkg/{CONTROLLERS_PACKAGE}/...",
        f"-enable-new-object-controller={str(enabled).lower()}",
        "-coverprofile",
        "cover.out",
        capture=False,
    )


async def containerize(context: TaskContext) -> None:
    """Build the controller image."""
    _LOGGER.warning(
        "This does not run tests. Run the 'test' task to ensure tests are passing."
    )
    await context.run(
        DOCKER_BIN, "build", ".", "-t", context.config.image, capture=False
    )


async def archive_plugin(context: TaskContext) -> None:
    """Archive the kubectl plugin binaries for krew."""
    layout = ProjectLayout.from_config(context.config)
    krew.create_archive(layout.plugin_dir, layout.plugin_archive, "bin/kubectl")


async def package_plugin(context: TaskContext) -> None:
    """Write the krew manifest with the archive checksum and version."""
    layout = ProjectLayout.from_config(context.config)
    checksum = krew.sha256sum(layout.plugin_archive)
    _LOGGER.debug("Archive %s sha256 %s", layout.plugin_archive, checksum)
    await makedirs(layout.manifests_dir, exist_ok=True)
    await krew.write_manifest(
        layout.krew_template, layout.krew_manifest, context.config.version, checksum
    )


async def install_plugin(context: TaskContext) -> None:
    """Copy the kubectl plugin into the install directory with a short alias."""
    layout = ProjectLayout.from_config(context.config)
    install_dir = context.config.plugin_install_dir
    await makedirs(install_dir, exist_ok=True)
    target = install_dir / PLUGIN_NAME
    shutil.copy2(layout.plugin_binary, target)
    alias = install_dir / PLUGIN_ALIAS
    if alias.is_symlink() or alias.exists():
        alias.unlink()
    alias.symlink_to(target)
    _LOGGER.info("Installed %s and %s to %s", PLUGIN_NAME, PLUGIN_ALIAS, install_dir)


async def install_plugin_krew(context: TaskContext) -> None:
    """Install the kubectl plugin locally using krew."""
    layout = ProjectLayout.from_config(context.config)
    await context.run(
        KUBECTL_BIN,
        "krew",
        "install",
        f"--manifest={layout.krew_manifest}",
        f"--archive={layout.plugin_archive}",
    )


async def uninstall_plugin(context: TaskContext) -> None:
    """Uninstall the krew managed kubectl plugin."""
    await context.run(KUBECTL_BIN, "krew", "uninstall", KREW_PLUGIN_NAME)


async def run_manager(context: TaskContext) -> None:
    """Run the manager against the cluster configured in ~/.kube/config."""
    await context.run(
        GO_BIN, "run", "./cmd/manager/main.go", "--novalidation", capture=False
    )


async def clean(context: TaskContext) -> None:
    """Remove built binaries, generated manifests and the installed plugin."""
    layout = ProjectLayout.from_config(context.config)
    install_dir = context.config.plugin_install_dir
    paths: list[Path] = [
        *_children(layout.bin_dir),
        *_children(layout.manifests_dir),
        install_dir / PLUGIN_NAME,
        install_dir / PLUGIN_ALIAS,
    ]
    errors: list[str] = []
    for path in paths:
        try:
            if path.is_dir() and not path.is_symlink():
                shutil.rmtree(path)
            elif path.exists() or path.is_symlink():
                path.unlink()
        except OSError as err:
            _LOGGER.warning("Unable to remove %s: %s", path, err)
            errors.append(str(path))
    if errors:
        raise OSError(f"Unable to remove: {', '.join(errors)}")


def _children(path: Path) -> list[Path]:
    if not path.is_dir():
        return []
    return sorted(path.iterdir())


class ArtifactPipeline:
    """Registers the build stages and declares the artifacts they produce."""

    def __init__(
        self,
        config: ConfigurationSnapshot,
        artifacts: ArtifactRegistry | None = None,
    ) -> None:
        """Initialize ArtifactPipeline."""
        self._config = config
        self._layout = ProjectLayout.from_config(config)
        self.artifacts = artifacts or ArtifactRegistry()

    def tasks(self) -> list[Task]:
        """Return the build tasks in declaration order."""
        return [
            Task("generate", action=generate, description="Generate code"),
            Task("fmt", action=fmt, description="Run go fmt against code"),
            Task("vet", action=vet, description="Run go vet against code"),
            Task(
                "generate-manifests",
                ("generate",),
                action=generate_manifests,
                description="Generate CRD, RBAC and the kustomized manifest bundle",
            ),
            Task(
                "build",
                ("generate", "fmt", "vet", "generate-manifests"),
                action=build,
                description="Build the manager and kubectl plugin binaries",
            ),
            Task(
                "test-main",
                ("build",),
                action=run_main_tests,
                description="Run tests in all packages except the controllers",
            ),
            Task(
                "test-controllers",
                ("build",),
                action=run_controller_tests,
                description="Run the controller tests",
                settings={
                    NEW_OBJECT_CONTROLLER_SETTING: (
                        self._config.reconciliation_mode.enable_new_object_controller
                    )
                },
            ),
            Task(
                "test",
                ("build", "test-main", "test-controllers"),
                description="Run all tests",
            ),
            Task(
                "containerize",
                ("generate", "fmt", "vet"),
                action=containerize,
                description="Build the controller image",
            ),
            Task(
                "all",
                ("test", "containerize"),
                description="Run tests and build the controller image",
            ),
            Task(
                "archive-plugin",
                ("build",),
                action=archive_plugin,
                description="Archive the kubectl plugin for krew",
            ),
            Task(
                "package-plugin",
                ("archive-plugin",),
                action=package_plugin,
                description="Write the krew manifest with checksum and version",
            ),
            Task(
                "install-plugin",
                ("build",),
                action=install_plugin,
                description="Install the kubectl plugin binaries",
            ),
            Task(
                "uninstall-plugin",
                action=uninstall_plugin,
                best_effort=True,
                description="Uninstall the krew managed kubectl plugin",
            ),
            Task(
                "install-plugin-krew",
                ("uninstall-plugin", "package-plugin"),
                action=install_plugin_krew,
                description="Install the kubectl plugin using krew",
            ),
            Task(
                "run",
                ("build",),
                action=run_manager,
                description="Run the manager against the configured cluster",
            ),
            Task(
                "clean",
                ("uninstall-plugin",),
                action=clean,
                best_effort=True,
                description="Remove binaries, manifests and the installed plugin",
            ),
        ]

    def declare_artifacts(self) -> None:
        """Declare the artifacts produced by the build tasks."""
        layout = self._layout
        self.artifacts.declare(
            Artifact(
                "manager-binary",
                ArtifactKind.BINARY,
                producer="build",
                location=layout.manager_binary,
            )
        )
        self.artifacts.declare(
            Artifact(
                "plugin-binary",
                ArtifactKind.BINARY,
                producer="build",
                consumers=frozenset({"archive-plugin", "install-plugin"}),
                location=layout.plugin_binary,
            )
        )
        self.artifacts.declare(
            Artifact(
                "manifest-bundle",
                ArtifactKind.MANIFEST_BUNDLE,
                producer="generate-manifests",
                consumers=frozenset({"deploy", "release"}),
                location=layout.manifest_bundle,
            )
        )
        self.artifacts.declare(
            Artifact(
                "controller-image",
                ArtifactKind.IMAGE,
                producer="containerize",
                consumers=frozenset({"publish"}),
                location=self._config.image,
            )
        )
        self.artifacts.declare(
            Artifact(
                "plugin-archive",
                ArtifactKind.ARCHIVE,
                producer="archive-plugin",
                consumers=frozenset({"package-plugin", "install-plugin-krew"}),
                location=layout.plugin_archive,
            )
        )
        self.artifacts.declare(
            Artifact(
                "krew-manifest",
                ArtifactKind.INSTALLER_MANIFEST,
                producer="package-plugin",
                consumers=frozenset({"install-plugin-krew"}),
                location=layout.krew_manifest,
            )
        )

    def register(self, graph: TaskGraph) -> None:
        """Register the build tasks and declare their artifacts."""
        for task in self.tasks():
            graph.register(task)
        self.declare_artifacts()
