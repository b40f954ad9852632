"""Node registry: identity-checked CRUD over a loaded NetworkConfig.

Pure in-memory logic: the registry mutates the NetworkConfig it wraps and
never touches the filesystem or the cluster. Callers persist the result with
``RegistryStore.save``.
"""

from __future__ import annotations

import logging
from dataclasses import replace

from qctl.errors import DuplicateIdentityError, NotFoundError
from qctl.network.models import (
    ExternalNodeEntry,
    ExternalNodePatch,
    NetworkConfig,
    NodeEntry,
    NodeListing,
    NodePatch,
    NodeProjection,
    parse_consensus,
    parse_transaction_manager,
)

logger = logging.getLogger(__name__)

NODE = "node"
EXTERNAL_NODE = "external node"


def default_key_directory(identity: str) -> str:
    return f"key-{identity}"


class NodeRegistry:
    """CRUD for the ``nodes`` and ``external_nodes`` collections."""

    def __init__(self, config: NetworkConfig):
        self.config = config

    # ------------------------------------------------------------------
    # Nodes
    # ------------------------------------------------------------------

    def add_node(self, candidate: NodeEntry) -> NodeEntry:
        """Append a new node after resolving its unset fields.

        Defaults resolve as: explicit value > genesis > (tm name/version only)
        the first existing node > genesis tm values.

        Raises:
            DuplicateIdentityError: If the identity is already used by a node.
            ValidationError: If consensus or tm name is not a known value.
        """
        if self._find(self.config.nodes, candidate.identity) is not None:
            raise DuplicateIdentityError(NODE, candidate.identity)

        entry = self._apply_defaults(candidate)
        self.config.nodes.append(entry)
        logger.info("added node [%s] key dir [%s]", entry.identity, entry.key_directory)
        return entry

    def update_node(self, identity: str, patch: NodePatch) -> NodeEntry:
        """Overwrite only the non-empty fields of ``patch`` on an existing node."""
        index = self._index_of(self.config.nodes, identity, NODE)
        changes = patch.supplied()
        if "consensus" in changes:
            changes["consensus"] = parse_consensus(changes["consensus"])
        if "transaction_manager_name" in changes:
            changes["transaction_manager_name"] = parse_transaction_manager(
                changes["transaction_manager_name"]
            )

        updated = replace(self.config.nodes[index], **changes)
        self.config.nodes[index] = updated
        logger.info("updated node [%s]: %s", identity, ", ".join(sorted(changes)) or "no changes")
        return updated

    def remove_node(self, identity: str) -> NodeEntry:
        """Remove and return the first node matching ``identity``."""
        self.config.nodes, removed = _without_first(self.config.nodes, identity, NODE)
        logger.info("removed node [%s] from config", identity)
        return removed

    def get_node(self, identity: str) -> NodeEntry:
        return self.config.nodes[self._index_of(self.config.nodes, identity, NODE)]

    def list_nodes(self, identity: str = "", projection: NodeProjection | None = None) -> NodeListing:
        """List nodes matching ``identity`` exactly, or every node when empty.

        The listing always carries every known identity so callers can show
        them when the filter matched nothing.
        """
        return NodeListing(
            entries=_matching(self.config.nodes, identity),
            known_identities=self.config.node_identities,
            identity_filter=identity,
            projection=projection or NodeProjection(),
        )

    # ------------------------------------------------------------------
    # External nodes
    # ------------------------------------------------------------------

    def add_external_node(self, candidate: ExternalNodeEntry) -> ExternalNodeEntry:
        if self._find(self.config.external_nodes, candidate.identity) is not None:
            raise DuplicateIdentityError(EXTERNAL_NODE, candidate.identity)
        self.config.external_nodes.append(candidate)
        logger.info("added external node [%s]", candidate.identity)
        return candidate

    def update_external_node(self, identity: str, patch: ExternalNodePatch) -> ExternalNodeEntry:
        index = self._index_of(self.config.external_nodes, identity, EXTERNAL_NODE)
        changes = patch.supplied()
        updated = replace(self.config.external_nodes[index], **changes)
        self.config.external_nodes[index] = updated
        logger.info("updated external node [%s]: %s", identity, ", ".join(sorted(changes)) or "no changes")
        return updated

    def remove_external_node(self, identity: str) -> ExternalNodeEntry:
        self.config.external_nodes, removed = _without_first(
            self.config.external_nodes, identity, EXTERNAL_NODE
        )
        logger.info("removed external node [%s] from config", identity)
        return removed

    def get_external_node(self, identity: str) -> ExternalNodeEntry:
        entries = self.config.external_nodes
        return entries[self._index_of(entries, identity, EXTERNAL_NODE)]

    def list_external_nodes(self, identity: str = "") -> NodeListing:
        return NodeListing(
            entries=_matching(self.config.external_nodes, identity),
            known_identities=self.config.external_node_identities,
            identity_filter=identity,
        )

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _apply_defaults(self, candidate: NodeEntry) -> NodeEntry:
        genesis = self.config.genesis
        first = self.config.nodes[0] if self.config.nodes else None

        tm_name = candidate.transaction_manager_name
        if not tm_name:
            tm_name = first.transaction_manager_name if first else genesis.tm_name
        tm_version = candidate.transaction_manager_version
        if not tm_version:
            tm_version = first.transaction_manager_version if first else genesis.tm_version

        return replace(
            candidate,
            key_directory=candidate.key_directory or default_key_directory(candidate.identity),
            consensus=parse_consensus(candidate.consensus or genesis.consensus),
            quorum_version=candidate.quorum_version or genesis.quorum_version,
            transaction_manager_name=parse_transaction_manager(tm_name),
            transaction_manager_version=tm_version,
        )

    @staticmethod
    def _find(entries: list, identity: str):
        for entry in entries:
            if entry.identity == identity:
                return entry
        return None

    @staticmethod
    def _index_of(entries: list, identity: str, kind: str) -> int:
        for i, entry in enumerate(entries):
            if entry.identity == identity:
                return i
        raise NotFoundError(kind, identity, [e.identity for e in entries])


def _matching(entries: list, identity: str) -> list:
    return [e for e in entries if not identity or e.identity == identity]


def _without_first(entries: list, identity: str, kind: str) -> tuple[list, object]:
    """Return a copy of ``entries`` without the first match, and that match."""
    for i, entry in enumerate(entries):
        if entry.identity == identity:
            return entries[:i] + entries[i + 1:], entry
    raise NotFoundError(kind, identity, [e.identity for e in entries])
