"""Network data models: nodes, external nodes, genesis and list projections."""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from enum import Enum

from qctl.errors import ValidationError

DEFAULT_P2P_PORT = "30303"


class Consensus(str, Enum):
    """Consensus algorithm a Quorum node runs."""

    RAFT = "raft"
    ISTANBUL = "istanbul"  # IBFT, needs a node-key address


class TransactionManager(str, Enum):
    """Private transaction manager paired with a node."""

    TESSERA = "tessera"
    CONSTELLATION = "constellation"


def parse_consensus(value: str) -> str:
    """Normalize a consensus value, rejecting anything outside ``Consensus``.

    ``ibft`` is accepted as an alias for istanbul. Empty values pass through.
    """
    if not value:
        return ""
    value = value.strip().lower()
    if value == "ibft":
        value = Consensus.ISTANBUL.value
    try:
        return Consensus(value).value
    except ValueError:
        raise ValidationError(
            f"Invalid consensus '{value}'.",
            remediation="Consensus must be one of: raft | istanbul.",
        )


def parse_transaction_manager(value: str) -> str:
    if not value:
        return ""
    value = value.strip().lower()
    try:
        return TransactionManager(value).value
    except ValueError:
        raise ValidationError(
            f"Invalid transaction manager '{value}'.",
            remediation="Transaction manager must be one of: tessera | constellation.",
        )


@dataclass
class Genesis:
    """Network-wide defaults used when a node does not set its own values."""

    consensus: str = ""
    quorum_version: str = ""
    tm_name: str = ""
    tm_version: str = ""
    chain_id: int | None = None
    extra: dict = field(default_factory=dict)  # unmodeled genesis keys


@dataclass
class NodeEntry:
    """A member node of the local network."""

    identity: str
    key_directory: str = ""
    consensus: str = ""
    quorum_version: str = ""
    transaction_manager_name: str = ""
    transaction_manager_version: str = ""
    quorum_image_ref: str = ""
    transaction_manager_image_ref: str = ""
    startup_params: str = ""

    @property
    def is_raft(self) -> bool:
        return self.consensus == Consensus.RAFT.value

    @property
    def is_istanbul(self) -> bool:
        return self.consensus == Consensus.ISTANBUL.value


@dataclass
class NodePatch:
    """Sparse update for a NodeEntry.

    Only non-empty fields are applied; an empty string means "not supplied",
    so a patch can never clear a field.
    """

    key_directory: str = ""
    consensus: str = ""
    quorum_version: str = ""
    transaction_manager_name: str = ""
    transaction_manager_version: str = ""
    quorum_image_ref: str = ""
    transaction_manager_image_ref: str = ""
    startup_params: str = ""

    def supplied(self) -> dict[str, str]:
        return {f.name: getattr(self, f.name) for f in fields(self) if getattr(self, f.name)}


@dataclass
class ExternalNodeEntry:
    """A node owned by another, federated cluster.

    Tracked only as addresses; no local cluster resources belong to it.
    """

    identity: str
    enode_url: str = ""
    transaction_manager_url: str = ""
    node_key_address: str = ""  # istanbul only


@dataclass
class ExternalNodePatch:
    enode_url: str = ""
    transaction_manager_url: str = ""
    node_key_address: str = ""

    def supplied(self) -> dict[str, str]:
        return {f.name: getattr(self, f.name) for f in fields(self) if getattr(self, f.name)}


@dataclass
class NetworkConfig:
    """The whole registry document: genesis, nodes and external nodes."""

    genesis: Genesis = field(default_factory=Genesis)
    nodes: list[NodeEntry] = field(default_factory=list)
    external_nodes: list[ExternalNodeEntry] = field(default_factory=list)
    extra: dict = field(default_factory=dict)  # unmodeled top-level sections

    @property
    def node_identities(self) -> list[str]:
        return [n.identity for n in self.nodes]

    @property
    def external_node_identities(self) -> list[str]:
        return [n.identity for n in self.external_nodes]


@dataclass
class NodeProjection:
    """Which stored and derived node fields a caller wants rendered."""

    name: bool = True
    key_directory: bool = False
    consensus: bool = False
    quorum_version: bool = False
    tm_name: bool = False
    tm_version: bool = False
    enode_url: bool = False
    quorum_image: bool = False
    tm_image: bool = False
    startup_params: bool = False
    tm_public_key: bool = False

    @classmethod
    def everything(cls, include_derived: bool = False) -> NodeProjection:
        """Select every stored field; derived fields only when requested."""
        return cls(
            key_directory=True,
            consensus=True,
            quorum_version=True,
            tm_name=True,
            tm_version=True,
            enode_url=include_derived,
            quorum_image=True,
            tm_image=True,
            startup_params=True,
        )

    @property
    def selects_any(self) -> bool:
        return any(getattr(self, f.name) for f in fields(self))

    @property
    def needs_cluster(self) -> bool:
        return self.enode_url or self.tm_public_key


@dataclass
class NodeListing:
    """Result of listing nodes: the matches plus every known identity."""

    entries: list = field(default_factory=list)
    known_identities: list[str] = field(default_factory=list)
    identity_filter: str = ""
    projection: NodeProjection = field(default_factory=NodeProjection)

    @property
    def found(self) -> bool:
        return not self.identity_filter or len(self.entries) > 0
