"""Configuration for a single pipeline invocation.

Settings are resolved once into an immutable `ConfigurationSnapshot` that is
passed to every task. The resolver layers explicit overrides (e.g. `key=value`
arguments on the command line) over environment variables, over values
derived from the target environment, over hardcoded defaults:

```python
from hnc_pipeline.config import ConfigResolver

config = ConfigResolver(os.environ).resolve({"environment": "local-cluster"})
print(config.image)  # controller:local-cluster-tag
```

The resolver never reads `os.environ` itself so that resolution is pure and
deterministic for a given environment mapping and set of overrides.
"""

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
import re
import shlex

from mashumaro import DataClassDictMixin
from mashumaro.codecs.yaml import yaml_encode

from .exceptions import ConfigError

__all__ = [
    "ConfigResolver",
    "ConfigurationSnapshot",
    "Environment",
    "ReconciliationMode",
    "parse_overrides",
    "split_crd_options",
]


DEFAULT_IMAGE = "controller:latest"
# Kubernetes always attempts to re-pull an image with the `latest` tag, which
# does not work for images loaded directly into a local cluster.
LOCAL_CLUSTER_IMAGE = "controller:local-cluster-tag"
# Produce CRDs that work back to Kubernetes 1.11 (no version conversion)
DEFAULT_CRD_OPTIONS = "crd:trivialVersions=true"
DEFAULT_VERSION = "v0.1.0"
DEFAULT_TOOLS_DIR = ".tools"

SEMVER_RE = re.compile(
    r"^v?(0|[1-9]\d*)\.(0|[1-9]\d*)\.(0|[1-9]\d*)"
    r"(?:-[0-9A-Za-z.-]+)?(?:\+[0-9A-Za-z.-]+)?$"
)


class Environment(str, Enum):
    """Target environment for images and manifests."""

    DEFAULT = "default"
    LOCAL_CLUSTER = "local-cluster"


ENVIRONMENT_ALIASES = {
    "default": Environment.DEFAULT,
    "local-cluster": Environment.LOCAL_CLUSTER,
    "kind": Environment.LOCAL_CLUSTER,
}


class ReconciliationMode(str, Enum):
    """Selects the object controller used when running controller tests."""

    NEW = "new"
    LEGACY = "legacy"

    @property
    def enable_new_object_controller(self) -> bool:
        """Value of the `-enable-new-object-controller` test flag."""
        return self == ReconciliationMode.NEW


RECONCILIATION_ALIASES = {
    "new": ReconciliationMode.NEW,
    "1": ReconciliationMode.NEW,
    "true": ReconciliationMode.NEW,
    "yes": ReconciliationMode.NEW,
    "on": ReconciliationMode.NEW,
    "legacy": ReconciliationMode.LEGACY,
    "old": ReconciliationMode.LEGACY,
    "0": ReconciliationMode.LEGACY,
    "false": ReconciliationMode.LEGACY,
    "no": ReconciliationMode.LEGACY,
    "off": ReconciliationMode.LEGACY,
}


@dataclass(frozen=True)
class ConfigurationSnapshot(DataClassDictMixin):
    """Resolved settings used by all tasks in one invocation."""

    environment: Environment = Environment.DEFAULT
    """Selects the image tag scheme and the image publishing path."""

    image: str = DEFAULT_IMAGE
    """Image reference used for building, publishing and manifests."""

    crd_options: str = DEFAULT_CRD_OPTIONS
    """CRD generation options passed to controller-gen."""

    version: str = DEFAULT_VERSION
    """Semantic version used when packaging the kubectl plugin."""

    reconciliation_mode: ReconciliationMode = ReconciliationMode.NEW
    """Object controller implementation exercised by the controller tests."""

    project_dir: Path = Path(".")
    """Root of the controller source checkout."""

    tools_dir: Path = Path(DEFAULT_TOOLS_DIR)
    """Directory where managed tools are installed."""

    plugin_install_dir: Path = Path("go/bin")
    """Directory where the kubectl plugin binary is installed."""

    @property
    def is_local_cluster(self) -> bool:
        """Return true when targeting a local development cluster."""
        return self.environment == Environment.LOCAL_CLUSTER

    @property
    def crd_arguments(self) -> list[str]:
        """Return the CRD options split into controller-gen arguments."""
        return split_crd_options(self.crd_options)

    def yaml(self) -> str:
        """Return a YAML string representation of the snapshot."""
        return yaml_encode(self, ConfigurationSnapshot)  # type: ignore[return-value]


# Override keys accepted for each snapshot field. The camel case names are the
# primary keys, the upper case names match the environment variables.
OVERRIDE_KEYS: dict[str, str] = {
    "environment": "environment",
    "CONFIG": "environment",
    "image": "image",
    "IMG": "image",
    "crdCompatibility": "crd_options",
    "CRD_OPTIONS": "crd_options",
    "version": "version",
    "VERSION": "version",
    "reconciliationMode": "reconciliation_mode",
    "NOC": "reconciliation_mode",
    "toolsDir": "tools_dir",
    "TOOLS_DIR": "tools_dir",
    "pluginInstallDir": "plugin_install_dir",
    "GOBIN": "plugin_install_dir",
    "projectDir": "project_dir",
}

ENV_VARS: dict[str, str] = {
    "environment": "CONFIG",
    "image": "IMG",
    "crd_options": "CRD_OPTIONS",
    "version": "VERSION",
    "reconciliation_mode": "NOC",
    "tools_dir": "TOOLS_DIR",
    "plugin_install_dir": "GOBIN",
}


def split_crd_options(options: str) -> list[str]:
    """Split CRD options into arguments, raising ConfigError on bad quoting."""
    try:
        return shlex.split(options)
    except ValueError as err:
        raise ConfigError(f"Invalid CRD options '{options}': {err}") from err


def parse_overrides(args: Iterable[str]) -> dict[str, str]:
    """Parse a list of `key=value` strings into a mapping."""
    result: dict[str, str] = {}
    for arg in args:
        key, sep, value = arg.partition("=")
        if not sep or not key:
            raise ConfigError(f"Expected key=value format but got '{arg}'")
        result[key] = value
    return result


class ConfigResolver:
    """Resolves overrides and environment variables into a snapshot."""

    def __init__(self, environ: Mapping[str, str] | None = None) -> None:
        """Initialize ConfigResolver with an explicit environment mapping."""
        self._environ = dict(environ or {})

    def resolve(
        self, overrides: Mapping[str, str] | None = None, strict: bool = False
    ) -> ConfigurationSnapshot:
        """Build the configuration snapshot.

        When `strict` is set, values that can't be interpreted (an unknown
        environment, a non-semver version, an unknown reconciliation mode)
        raise `ConfigError` instead of falling back to the default.
        CRD options with unbalanced quotes always raise `ConfigError`.
        """
        values = self._layer(overrides or {})

        environment = _parse_environment(values.get("environment"), strict)
        version = values.get("version") or DEFAULT_VERSION
        if strict and not SEMVER_RE.match(version):
            raise ConfigError(f"Version '{version}' is not a valid semantic version")

        if not (image := values.get("image")):
            image = (
                LOCAL_CLUSTER_IMAGE
                if environment == Environment.LOCAL_CLUSTER
                else DEFAULT_IMAGE
            )

        crd_options = values.get("crd_options") or DEFAULT_CRD_OPTIONS
        split_crd_options(crd_options)

        project_dir = Path(values.get("project_dir") or ".")
        tools_dir = (
            Path(tools)
            if (tools := values.get("tools_dir"))
            else project_dir / DEFAULT_TOOLS_DIR
        )
        return ConfigurationSnapshot(
            environment=environment,
            image=image,
            crd_options=crd_options,
            version=version,
            reconciliation_mode=_parse_reconciliation_mode(
                values.get("reconciliation_mode"), strict
            ),
            project_dir=project_dir,
            tools_dir=tools_dir,
            plugin_install_dir=self._plugin_install_dir(
                values.get("plugin_install_dir")
            ),
        )

    def _layer(self, overrides: Mapping[str, str]) -> dict[str, str]:
        """Merge overrides on top of environment variables, keyed by field."""
        values: dict[str, str] = {}
        for field_name, env_var in ENV_VARS.items():
            if value := self._environ.get(env_var):
                values[field_name] = value

        explicit: dict[str, tuple[str, str]] = {}
        for key, value in overrides.items():
            if (field_name := OVERRIDE_KEYS.get(key)) is None:
                raise ConfigError(
                    f"Unknown configuration key '{key}', expected one of: "
                    f"{', '.join(OVERRIDE_KEYS)}"
                )
            if (previous := explicit.get(field_name)) and previous[1] != value:
                raise ConfigError(
                    f"Contradictory values for '{field_name}': "
                    f"{previous[0]}={previous[1]} and {key}={value}"
                )
            explicit[field_name] = (key, value)
        for field_name, (_, value) in explicit.items():
            if value:
                values[field_name] = value
        return values

    def _plugin_install_dir(self, value: str | None) -> Path:
        """Follow the go convention of GOBIN, else GOPATH/bin, else ~/go/bin."""
        if value:
            return Path(value)
        if gopath := self._environ.get("GOPATH"):
            return Path(gopath.split(":")[0]) / "bin"
        return Path(self._environ.get("HOME", "~")) / "go" / "bin"


def _parse_environment(value: str | None, strict: bool) -> Environment:
    if value is None:
        return Environment.DEFAULT
    if (environment := ENVIRONMENT_ALIASES.get(value.strip().lower())) is not None:
        return environment
    if strict:
        raise ConfigError(
            f"Unknown environment '{value}', expected one of: "
            f"{', '.join(ENVIRONMENT_ALIASES)}"
        )
    return Environment.DEFAULT


def _parse_reconciliation_mode(value: str | None, strict: bool) -> ReconciliationMode:
    if value is None:
        return ReconciliationMode.NEW
    if (mode := RECONCILIATION_ALIASES.get(value.strip().lower())) is not None:
        return mode
    if strict:
        raise ConfigError(
            f"Unknown reconciliation mode '{value}', expected one of: "
            f"{', '.join(RECONCILIATION_ALIASES)}"
        )
    return ReconciliationMode.NEW
