"""Shared fixtures: an in-memory cluster controller and registry files."""

from pathlib import Path

import pytest
import yaml

from qctl.errors import ClusterError, ResourceAbsent
from qctl.network.models import Genesis, NetworkConfig, NodeEntry


class FakeController:
    """In-memory stand-in for the cluster, recording every call."""

    def __init__(self):
        self.deployments: set[str] = set()
        self.services: set[str] = set()
        self.pvcs: set[str] = set()
        self.config_maps: dict[str, dict] = {}
        self.service_values: dict[tuple[str, str], str] = {}
        self.peer_list: str | None = None
        self.failures: dict[str, ClusterError] = {}
        self.calls: list[tuple[str, str]] = []
        self.shell_sessions: list[tuple[str, str]] = []

    def add_node_resources(self, identity: str) -> None:
        self.deployments.add(f"{identity}-deployment")
        self.services.add(identity)
        self.pvcs.add(f"{identity}-pvc")

    def _delete(self, kind: str, pool: set[str], name: str) -> None:
        self.calls.append((kind, name))
        if kind in self.failures:
            raise self.failures[kind]
        if name not in pool:
            raise ResourceAbsent(f'{kind} "{name}" not found')
        pool.remove(name)

    def delete_deployment(self, identity: str) -> None:
        self._delete("deployment", self.deployments, f"{identity}-deployment")

    def delete_persistent_volume_claim(self, identity: str) -> None:
        self._delete("pvc", self.pvcs, f"{identity}-pvc")

    def delete_service(self, identity: str) -> None:
        self._delete("service", self.services, identity)

    def get_config_value(self, resource_name: str, path: str | None = None) -> str:
        self.calls.append(("configMap", resource_name))
        if "configMap" in self.failures:
            raise self.failures["configMap"]
        if resource_name not in self.config_maps:
            raise ResourceAbsent(f'configmaps "{resource_name}" not found')
        return self.config_maps[resource_name][path]

    def get_service_value(self, resource_name: str, path: str) -> str:
        self.calls.append(("service value", resource_name))
        for (name, port_name), value in self.service_values.items():
            if name == resource_name and f'"{port_name}"' in path:
                return value
        raise ResourceAbsent(f'services "{resource_name}" not found')

    def query_peer_descriptor_list(self) -> str:
        if self.peer_list is None:
            raise ResourceAbsent("permissioned nodes file not found")
        return self.peer_list

    def exec_interactive_shell(self, pod_selector: str, container: str) -> int:
        self.shell_sessions.append((pod_selector, container))
        return 0


@pytest.fixture
def controller() -> FakeController:
    return FakeController()


@pytest.fixture
def network() -> NetworkConfig:
    return NetworkConfig(
        genesis=Genesis(consensus="raft", quorum_version="2.5.0", tm_name="tessera", tm_version="0.10.4"),
        nodes=[
            NodeEntry(
                identity="quorum-node1",
                key_directory="key1",
                consensus="raft",
                quorum_version="2.5.0",
                transaction_manager_name="tessera",
                transaction_manager_version="0.10.2",
            ),
            NodeEntry(
                identity="quorum-node2",
                key_directory="key2",
                consensus="istanbul",
                quorum_version="2.6.0",
                transaction_manager_name="tessera",
                transaction_manager_version="0.10.2",
            ),
        ],
    )


SAMPLE_CONFIG = {
    "genesis": {
        "consensus": "istanbul",
        "Quorum_Version": "2.5.0",
        "Tm_Version": "0.10.4",
        "Tm_Name": "tessera",
        "Chain_Id": 1000,
    },
    "nodes": [
        {
            "Node_UserIdent": "quorum-node1",
            "Key_Dir": "key1",
            "quorum": {
                "quorum": {"consensus": "istanbul", "Quorum_Version": "2.5.0"},
                "tm": {"Name": "tessera", "Tm_Version": "0.10.4"},
            },
            "geth": {"Geth_Startup_Params": "--rpccorsdomain=\"*\""},
        },
        {
            "Node_UserIdent": "quorum-node2",
            "Key_Dir": "key2",
            "quorum": {
                "quorum": {"consensus": "istanbul", "Quorum_Version": "2.5.0"},
                "tm": {"Name": "tessera", "Tm_Version": "0.10.4"},
            },
        },
    ],
    "k8s": {"service": "ClusterIP", "storage": {"Type": "PVC", "Capacity": "200Mi"}},
}


def write_config(directory, data: dict | None = None) -> Path:
    path = Path(directory) / "qubernetes.yaml"
    with open(path, "w") as f:
        yaml.safe_dump(SAMPLE_CONFIG if data is None else data, f, sort_keys=False)
    return path


@pytest.fixture
def make_config(tmp_path):
    """Write a registry document into the test dir and return its path."""
    return lambda data=None: write_config(tmp_path, data)


@pytest.fixture
def config_file(tmp_path) -> Path:
    return write_config(tmp_path)
