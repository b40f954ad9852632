"""Command settings and the per-invocation context built from them.

Settings are validated once, when the CLI starts, and every command works from
the resulting ``CommandContext`` instead of looking flags up by name.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import pydantic
from pydantic import BaseModel, field_validator

from qctl.cluster import ClusterController, KubectlController
from qctl.errors import ValidationError
from qctl.lifecycle import LifecycleOrchestrator
from qctl.network.addresses import AddressResolver
from qctl.network.models import NetworkConfig
from qctl.network.registry import NodeRegistry
from qctl.network.store import RegistryStore

CONFIG_ENV = "QUBE_CONFIG"
K8S_DIR_ENV = "QUBE_K8S_DIR"

CONFIG_REMEDIATION = (
    f"--config flag must be provided, or the {CONFIG_ENV} environment variable set "
    "to your config file. To generate a qubernetes.yaml config use: qctl generate config"
)


class QctlSettings(BaseModel):
    """Validated command-line settings."""

    config_file: Optional[Path] = None
    k8s_dir: Optional[Path] = None
    namespace: str = "default"

    @field_validator("config_file")
    @classmethod
    def _config_must_exist(cls, value: Optional[Path]) -> Optional[Path]:
        if value is None:
            return None
        if not value.is_file():
            raise ValueError(f"ConfigFile must exist! Given configFile [{value}]")
        return value.resolve()

    @field_validator("k8s_dir")
    @classmethod
    def _k8s_dir_must_be_dir(cls, value: Optional[Path]) -> Optional[Path]:
        if value is None:
            return None
        if not value.is_dir():
            raise ValueError(f"k8s dir [{value}] is not a directory")
        return value.resolve()

    @field_validator("namespace")
    @classmethod
    def _namespace_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("namespace must not be empty")
        return value.strip()


def load_settings(
    config_file: str | None = None,
    k8s_dir: str | None = None,
    namespace: str = "default",
) -> QctlSettings:
    """Build settings from raw CLI values, turning pydantic errors into ValidationError."""
    try:
        return QctlSettings(
            config_file=config_file or None,
            k8s_dir=k8s_dir or None,
            namespace=namespace,
        )
    except pydantic.ValidationError as e:
        messages = "; ".join(err["msg"].removeprefix("Value error, ") for err in e.errors())
        raise ValidationError(messages, remediation=CONFIG_REMEDIATION) from e


@dataclass
class CommandContext:
    """Everything a command needs, built once per process from the settings."""

    settings: QctlSettings
    controller: ClusterController
    _config: NetworkConfig | None = field(default=None, repr=False)

    @classmethod
    def from_settings(cls, settings: QctlSettings) -> CommandContext:
        controller = KubectlController(namespace=settings.namespace, k8s_dir=settings.k8s_dir)
        return cls(settings=settings, controller=controller)

    @property
    def store(self) -> RegistryStore:
        if self.settings.config_file is None:
            raise ValidationError("no config file given", remediation=CONFIG_REMEDIATION)
        return RegistryStore(self.settings.config_file)

    def load(self) -> NetworkConfig:
        if self._config is None:
            self._config = self.store.load()
        return self._config

    def save(self) -> None:
        self.store.save(self.load())

    @property
    def registry(self) -> NodeRegistry:
        return NodeRegistry(self.load())

    @property
    def resolver(self) -> AddressResolver:
        return AddressResolver(self.controller)

    @property
    def orchestrator(self) -> LifecycleOrchestrator:
        return LifecycleOrchestrator(self.controller, self.registry, k8s_dir=self.settings.k8s_dir)
