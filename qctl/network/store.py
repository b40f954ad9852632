"""YAML-backed registry store.

Loads and saves the whole qubernetes config document. Every mutation is a
whole-document replace; there is no locking, so concurrent writers race and the
last write wins.
"""

from __future__ import annotations

import logging
from collections import Counter
from pathlib import Path

import yaml

from qctl.errors import RegistryParseError
from qctl.network.models import ExternalNodeEntry, Genesis, NetworkConfig, NodeEntry

logger = logging.getLogger(__name__)

GENESIS_KEYS = {"consensus", "Quorum_Version", "Tm_Name", "Tm_Version", "Chain_Id"}
KNOWN_SECTIONS = {"genesis", "nodes", "external_nodes"}


class RegistryStore:
    """Reads and writes a NetworkConfig from a qubernetes YAML file."""

    def __init__(self, config_path: str | Path):
        self.config_path = Path(config_path)

    def load(self) -> NetworkConfig:
        """Load the registry document.

        Raises:
            RegistryParseError: If the file is unreadable, not a mapping, or
                holds duplicate identities in either collection.
        """
        try:
            with open(self.config_path) as f:
                data = yaml.safe_load(f)
        except OSError as e:
            raise RegistryParseError(
                f"config file [{self.config_path}] could not be read: {e}"
            ) from e
        except yaml.YAMLError as e:
            raise RegistryParseError(
                f"config file [{self.config_path}] is not valid YAML: {e}"
            ) from e

        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise RegistryParseError(
                f"config file [{self.config_path}] must be a mapping at the top level"
            )

        config = config_from_dict(data)
        _check_unique(config.node_identities, "node")
        _check_unique(config.external_node_identities, "external node")
        logger.debug(
            "loaded %s: %d nodes, %d external nodes",
            self.config_path, len(config.nodes), len(config.external_nodes),
        )
        return config

    def save(self, config: NetworkConfig) -> None:
        """Write the full document back, replacing the file contents."""
        with open(self.config_path, "w") as f:
            yaml.safe_dump(config_to_dict(config), f, sort_keys=False, default_flow_style=False)
        logger.debug("saved %s", self.config_path)


def _check_unique(identities: list[str], kind: str) -> None:
    duplicates = sorted(i for i, count in Counter(identities).items() if count > 1)
    if duplicates:
        raise RegistryParseError(
            f"config has duplicate {kind} names: {', '.join(duplicates)}",
            remediation=f"Rename or remove the duplicate {kind} entries; {kind} names must be unique.",
        )


# ---------------------------------------------------------------------------
# Document <-> model conversion
# ---------------------------------------------------------------------------


def config_from_dict(data: dict) -> NetworkConfig:
    genesis_data = data.get("genesis") or {}
    nodes = data.get("nodes") or []
    external_nodes = data.get("external_nodes") or []
    if not isinstance(nodes, list) or not isinstance(external_nodes, list):
        raise RegistryParseError("'nodes' and 'external_nodes' must be lists")

    return NetworkConfig(
        genesis=_dict_to_genesis(genesis_data),
        nodes=[_dict_to_node(n) for n in nodes],
        external_nodes=[_dict_to_external_node(n) for n in external_nodes],
        extra={k: v for k, v in data.items() if k not in KNOWN_SECTIONS},
    )


def config_to_dict(config: NetworkConfig) -> dict:
    data: dict = {"genesis": _genesis_to_dict(config.genesis)}
    data["nodes"] = [_node_to_dict(n) for n in config.nodes]
    if config.external_nodes:
        data["external_nodes"] = [external_node_to_dict(n) for n in config.external_nodes]
    data.update(config.extra)
    return data


def _dict_to_genesis(data: dict) -> Genesis:
    return Genesis(
        consensus=_str(data.get("consensus")),
        quorum_version=_str(data.get("Quorum_Version")),
        tm_name=_str(data.get("Tm_Name")),
        tm_version=_str(data.get("Tm_Version")),
        chain_id=data.get("Chain_Id"),
        extra={k: v for k, v in data.items() if k not in GENESIS_KEYS},
    )


def _genesis_to_dict(genesis: Genesis) -> dict:
    data = {
        "consensus": genesis.consensus,
        "Quorum_Version": genesis.quorum_version,
    }
    if genesis.tm_version:
        data["Tm_Version"] = genesis.tm_version
    if genesis.tm_name:
        data["Tm_Name"] = genesis.tm_name
    if genesis.chain_id is not None:
        data["Chain_Id"] = genesis.chain_id
    data.update(genesis.extra)
    return data


def _dict_to_node(data: dict) -> NodeEntry:
    if not isinstance(data, dict) or not data.get("Node_UserIdent"):
        raise RegistryParseError(f"node entry is missing 'Node_UserIdent': {data!r}")
    quorum_entry = data.get("quorum") or {}
    quorum = quorum_entry.get("quorum") or {}
    tm = quorum_entry.get("tm") or {}
    geth = data.get("geth") or {}
    return NodeEntry(
        identity=_str(data["Node_UserIdent"]),
        key_directory=_str(data.get("Key_Dir")),
        consensus=_str(quorum.get("consensus")),
        quorum_version=_str(quorum.get("Quorum_Version")),
        transaction_manager_name=_str(tm.get("Name")),
        transaction_manager_version=_str(tm.get("Tm_Version")),
        quorum_image_ref=_str(quorum.get("Docker_Repo_Full")),
        transaction_manager_image_ref=_str(tm.get("Docker_Repo_Full")),
        startup_params=_str(geth.get("Geth_Startup_Params")),
    )


def _node_to_dict(node: NodeEntry) -> dict:
    quorum = {
        "consensus": node.consensus,
        "Quorum_Version": node.quorum_version,
    }
    if node.quorum_image_ref:
        quorum["Docker_Repo_Full"] = node.quorum_image_ref
    tm = {
        "Name": node.transaction_manager_name,
        "Tm_Version": node.transaction_manager_version,
    }
    if node.transaction_manager_image_ref:
        tm["Docker_Repo_Full"] = node.transaction_manager_image_ref

    data = {
        "Node_UserIdent": node.identity,
        "Key_Dir": node.key_directory,
        "quorum": {"quorum": quorum, "tm": tm},
    }
    if node.startup_params:
        data["geth"] = {"Geth_Startup_Params": node.startup_params}
    return data


def _dict_to_external_node(data: dict) -> ExternalNodeEntry:
    if not isinstance(data, dict) or not data.get("Node_UserIdent"):
        raise RegistryParseError(f"external node entry is missing 'Node_UserIdent': {data!r}")
    return ExternalNodeEntry(
        identity=_str(data["Node_UserIdent"]),
        enode_url=_str(data.get("Enode_Url")),
        transaction_manager_url=_str(data.get("Tm_Url")),
        node_key_address=_str(data.get("Node_Acct_Addr")),
    )


def external_node_to_dict(node: ExternalNodeEntry) -> dict:
    data = {
        "Node_UserIdent": node.identity,
        "Enode_Url": node.enode_url,
        "Tm_Url": node.transaction_manager_url,
    }
    if node.node_key_address:
        data["Node_Acct_Addr"] = node.node_key_address
    return data


def _str(value) -> str:
    # YAML turns bare versions like 2.5 into floats
    return "" if value is None else str(value)
