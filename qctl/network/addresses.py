"""Address resolution: enode URLs, external rewrites and key material.

Nodes are addressable in two domains: inside the cluster by their service DNS
name (``enode://<key>@quorum-node1:30303``) and from outside through a node
port on a k8s node IP. The resolver derives both from the cluster controller.
"""

from __future__ import annotations

import logging
import re

from qctl.cluster.controller import ClusterController
from qctl.errors import AddressRewriteError, ClusterError, NotFoundError, ResourceQueryFailure
from qctl.network.models import DEFAULT_P2P_PORT, Consensus, ExternalNodeEntry, NodeEntry

logger = logging.getLogger(__name__)

TM_PUBLIC_KEY_LABEL = "tm.pub:"
NODE_KEY_ADDRESS_PATH = "{.data.nodekey}"
P2P_PORT_NAME = "devp2p"
TM_PORT_NAME = "tm-tessera-third-part"


def node_key_address_config(identity: str) -> str:
    return f"{identity}-nodekey-address-config"


def tm_key_config(identity: str) -> str:
    return f"{identity}-tm-key-config"


def _clean(value: str) -> str:
    return value.strip().strip("[],").strip().strip("'\"").strip()


class AddressResolver:
    """Derives node addresses and key material through a ClusterController."""

    def __init__(self, controller: ClusterController):
        self.controller = controller

    def resolve_enode_url(self, identity: str) -> str:
        """Return the enode URL of ``identity`` from the permissioned nodes list.

        A line holding ``@<identity>:`` wins. Otherwise the identity must
        appear as a whole name, so ``quorum-node1`` never resolves to
        ``quorum-node10``.

        Raises:
            NotFoundError: If no line references the node.
            ClusterError: If the list itself cannot be read.
        """
        lines = self.controller.query_peer_descriptor_list().splitlines()
        authority = f"@{identity}:"
        match = next((line for line in lines if authority in line), None)
        if match is None:
            whole_name = re.compile(rf"(?<![\w.-]){re.escape(identity)}(?![\w.-])")
            match = next((line for line in lines if whole_name.search(line)), None)
        if match is None:
            raise NotFoundError(
                "enode url",
                identity,
                remediation="Generate the network resources (qctl generate network) so the node is in the permissioned nodes list.",
            )
        return _clean(match)

    def resolve_external_address(
        self,
        identity: str,
        internal_enode_url: str,
        external_host_port: str,
        strict: bool = False,
    ) -> str:
        """Swap the in-cluster ``<identity>:30303`` authority for ``external_host_port``.

        The public key portion is never touched. When the expected authority
        is absent the URL comes back unchanged (logged as a warning), unless
        ``strict`` is set, in which case ``AddressRewriteError`` is raised.
        """
        internal = f"{identity}:{DEFAULT_P2P_PORT}"
        if internal not in internal_enode_url:
            if strict:
                raise AddressRewriteError(
                    f"enode url for [{identity}] does not contain [{internal}]: {internal_enode_url}"
                )
            logger.warning(
                "enode url for [%s] does not contain [%s], leaving it unchanged", identity, internal
            )
            return internal_enode_url
        return internal_enode_url.replace(internal, external_host_port)

    def resolve_node_key_address(self, identity: str, consensus: str) -> str | None:
        """Return the node's account address from its nodekey config map.

        Required under istanbul: a failed or empty lookup raises
        ``ResourceQueryFailure``. Other consensus modes tolerate it and get None.
        """
        required = consensus == Consensus.ISTANBUL.value
        try:
            address = _clean(
                self.controller.get_config_value(node_key_address_config(identity), NODE_KEY_ADDRESS_PATH)
            )
        except ClusterError as e:
            if required:
                raise ResourceQueryFailure(
                    f"issue getting the nodekey-address for node {identity}: {e.message}"
                ) from e
            logger.debug("no nodekey-address for [%s]: %s", identity, e.message)
            return None

        if not address:
            if required:
                raise ResourceQueryFailure(f"nodekey-address for istanbul node {identity} is empty")
            return None
        return address

    def resolve_transaction_manager_public_key(self, identity: str) -> str | None:
        """Return the value after ``tm.pub:`` in the node's tm key config map."""
        try:
            blob = self.controller.get_config_value(tm_key_config(identity))
        except ClusterError as e:
            logger.warning("could not read tm key config for [%s]: %s", identity, e.message)
            return None

        for line in blob.splitlines():
            if TM_PUBLIC_KEY_LABEL in line:
                return line.split(TM_PUBLIC_KEY_LABEL, 1)[1].strip()
        logger.warning("tm key config for [%s] has no %s entry", identity, TM_PUBLIC_KEY_LABEL)
        return None

    def resolve_node_port_url(self, identity: str, port_name: str, node_ip: str, scheme: str = "") -> str:
        """Render ``[scheme://]<node_ip>:<nodePort>`` for a named service port.

        Raises:
            ResourceQueryFailure: If the service or port cannot be read.
        """
        path = f'{{.spec.ports[?(@.name=="{port_name}")].nodePort}}'
        try:
            port = _clean(self.controller.get_service_value(identity, path))
        except ClusterError as e:
            raise ResourceQueryFailure(
                f"could not read node port [{port_name}] of service [{identity}]: {e.message}"
            ) from e
        if not port:
            raise ResourceQueryFailure(f"service [{identity}] exposes no node port named [{port_name}]")

        host_port = f"{node_ip}:{port}"
        return f"{scheme}://{host_port}" if scheme else host_port

    def describe_as_external(self, node: NodeEntry, node_ip: str) -> ExternalNodeEntry:
        """Build the external-node entry another cluster needs to peer with ``node``."""
        tm_url = self.resolve_node_port_url(node.identity, TM_PORT_NAME, node_ip, scheme="http")
        p2p_host_port = self.resolve_node_port_url(node.identity, P2P_PORT_NAME, node_ip)
        enode_url = self.resolve_external_address(
            node.identity, self.resolve_enode_url(node.identity), p2p_host_port
        )
        return ExternalNodeEntry(
            identity=node.identity,
            enode_url=enode_url,
            transaction_manager_url=tm_url,
            node_key_address=self.resolve_node_key_address(node.identity, node.consensus) or "",
        )
