"""Tests for enode URL, external address and key material resolution."""

import pytest

from qctl.errors import AddressRewriteError, ClusterError, NotFoundError, ResourceQueryFailure
from qctl.network.addresses import AddressResolver
from qctl.network.models import NodeEntry

PERMISSIONED_NODES = """[
  "enode://aaaa@quorum-node1:30303?discport=0&raftport=50401",
  "enode://bbbb@quorum-node10:30303?discport=0&raftport=50401",
  "enode://cccc@quorum-node2:30303?discport=0&raftport=50401"
]
"""


# --- External address rewrite ---


def test_rewrite_replaces_internal_authority(controller):
    resolver = AddressResolver(controller)
    assert (
        resolver.resolve_external_address("n1", "enode://abcd@n1:30303", "1.2.3.4:31303")
        == "enode://abcd@1.2.3.4:31303"
    )


def test_rewrite_returns_input_when_authority_absent(controller):
    resolver = AddressResolver(controller)
    url = "enode://abcd@other:30303"
    assert resolver.resolve_external_address("n1", url, "1.2.3.4:31303") == url


def test_rewrite_strict_mode_raises(controller):
    resolver = AddressResolver(controller)
    with pytest.raises(AddressRewriteError):
        resolver.resolve_external_address("n1", "enode://abcd@other:30303", "1.2.3.4:31303", strict=True)


def test_rewrite_keeps_query_string(controller):
    resolver = AddressResolver(controller)
    rewritten = resolver.resolve_external_address(
        "quorum-node1", "enode://aaaa@quorum-node1:30303?discport=0", "10.0.0.5:31001"
    )
    assert rewritten == "enode://aaaa@10.0.0.5:31001?discport=0"


# --- Enode URL ---


def test_resolve_enode_url_strips_quotes_and_separators(controller):
    controller.peer_list = PERMISSIONED_NODES
    resolver = AddressResolver(controller)

    assert resolver.resolve_enode_url("quorum-node2") == "enode://cccc@quorum-node2:30303?discport=0&raftport=50401"


def test_resolve_enode_url_prefers_exact_host(controller):
    controller.peer_list = PERMISSIONED_NODES
    resolver = AddressResolver(controller)

    assert resolver.resolve_enode_url("quorum-node1").startswith("enode://aaaa@")
    assert resolver.resolve_enode_url("quorum-node10").startswith("enode://bbbb@")


def test_resolve_enode_url_missing_node(controller):
    controller.peer_list = PERMISSIONED_NODES
    with pytest.raises(NotFoundError):
        AddressResolver(controller).resolve_enode_url("quorum-node7")


def test_resolve_enode_url_without_peer_list(controller):
    with pytest.raises(ClusterError):
        AddressResolver(controller).resolve_enode_url("quorum-node1")


# --- Node key address ---


def test_node_key_address_strips_quotes(controller):
    controller.config_maps["quorum-node2-nodekey-address-config"] = {
        "{.data.nodekey}": "'0x4c1ccd426833b9782729a212c857f2f03b7b4c0d'\n"
    }
    address = AddressResolver(controller).resolve_node_key_address("quorum-node2", "istanbul")
    assert address == "0x4c1ccd426833b9782729a212c857f2f03b7b4c0d"


def test_node_key_address_required_for_istanbul(controller):
    with pytest.raises(ResourceQueryFailure, match="quorum-node2"):
        AddressResolver(controller).resolve_node_key_address("quorum-node2", "istanbul")


def test_node_key_address_empty_for_istanbul_is_fatal(controller):
    controller.config_maps["quorum-node2-nodekey-address-config"] = {"{.data.nodekey}": "''"}
    with pytest.raises(ResourceQueryFailure):
        AddressResolver(controller).resolve_node_key_address("quorum-node2", "istanbul")


def test_node_key_address_tolerated_for_raft(controller):
    controller.failures["configMap"] = ClusterError("connection refused")
    assert AddressResolver(controller).resolve_node_key_address("quorum-node1", "raft") is None


# --- Transaction manager public key ---


def test_tm_public_key_after_label(controller):
    controller.config_maps["quorum-node3-tm-key-config"] = {
        None: (
            "apiVersion: v1\n"
            "data:\n"
            "  tm.key: secret\n"
            "  tm.pub: dF+Y81qRKI3Noh6ldI+FnQmqmjRYvOqLCaooTi5txi4=\n"
            "kind: ConfigMap\n"
        )
    }
    key = AddressResolver(controller).resolve_transaction_manager_public_key("quorum-node3")
    assert key == "dF+Y81qRKI3Noh6ldI+FnQmqmjRYvOqLCaooTi5txi4="


def test_tm_public_key_missing_config_map(controller):
    assert AddressResolver(controller).resolve_transaction_manager_public_key("quorum-node3") is None


# --- Exporting a node to another cluster ---


def test_node_port_url(controller):
    controller.service_values[("quorum-node1", "devp2p")] = "31303"
    resolver = AddressResolver(controller)

    assert resolver.resolve_node_port_url("quorum-node1", "devp2p", "192.168.99.100") == "192.168.99.100:31303"


def test_node_port_url_missing_service(controller):
    with pytest.raises(ResourceQueryFailure):
        AddressResolver(controller).resolve_node_port_url("quorum-node1", "devp2p", "192.168.99.100")


def test_describe_as_external(controller):
    controller.peer_list = PERMISSIONED_NODES
    controller.service_values[("quorum-node2", "devp2p")] = "31303"
    controller.service_values[("quorum-node2", "tm-tessera-third-part")] = "30900"
    controller.config_maps["quorum-node2-nodekey-address-config"] = {"{.data.nodekey}": "0xbeef"}
    node = NodeEntry(identity="quorum-node2", consensus="istanbul")

    external = AddressResolver(controller).describe_as_external(node, "10.1.1.1")

    assert external.identity == "quorum-node2"
    assert external.transaction_manager_url == "http://10.1.1.1:30900"
    assert external.enode_url == "enode://cccc@10.1.1.1:31303?discport=0&raftport=50401"
    assert external.node_key_address == "0xbeef"


def test_describe_raft_node_without_node_key(controller):
    controller.peer_list = PERMISSIONED_NODES
    controller.service_values[("quorum-node1", "devp2p")] = "31303"
    controller.service_values[("quorum-node1", "tm-tessera-third-part")] = "30900"
    node = NodeEntry(identity="quorum-node1", consensus="raft")

    external = AddressResolver(controller).describe_as_external(node, "10.1.1.1")

    assert external.node_key_address == ""


def test_resolve_enode_url_never_matches_longer_identity(controller):
    controller.peer_list = '["enode://ffff@quorum-node10:30303?discport=0",]\n'

    with pytest.raises(NotFoundError):
        AddressResolver(controller).resolve_enode_url("quorum-node1")


def test_resolve_enode_url_whole_name_without_authority(controller):
    controller.peer_list = (
        '"enode://ffff@10.0.0.10:30303", "quorum-node10"\n'
        '"enode://aaaa@10.0.0.1:30303", "quorum-node1"\n'
    )

    url = AddressResolver(controller).resolve_enode_url("quorum-node1")

    assert url.startswith("enode://aaaa@")
