"""Console rendering of node listings."""

from __future__ import annotations

import yaml
from rich.markup import escape
from rich.table import Table

from qctl.network.models import ExternalNodeEntry, NodeEntry, NodeProjection
from qctl.network.store import external_node_to_dict

# (projection flag, column title, NodeEntry attribute or derived key)
NODE_COLUMNS = [
    ("name", "Name", "identity"),
    ("key_directory", "Key Dir", "key_directory"),
    ("consensus", "Consensus", "consensus"),
    ("quorum_version", "Quorum Version", "quorum_version"),
    ("tm_name", "TM", "transaction_manager_name"),
    ("tm_version", "TM Version", "transaction_manager_version"),
    ("quorum_image", "Quorum Image", "quorum_image_ref"),
    ("tm_image", "TM Image", "transaction_manager_image_ref"),
    ("startup_params", "Geth Params", "startup_params"),
    ("enode_url", "Enode URL", "enode_url"),
    ("tm_public_key", "TM Public Key", "tm_public_key"),
]


def node_values(node: NodeEntry, projection: NodeProjection, derived: dict[str, str] | None = None) -> list[str]:
    """The selected field values of ``node``, in column order."""
    derived = derived or {}
    values = []
    for flag, _, attr in NODE_COLUMNS:
        if not getattr(projection, flag):
            continue
        values.append(getattr(node, attr, None) or derived.get(attr, "") or "")
    return values


def nodes_table(
    nodes: list[NodeEntry],
    projection: NodeProjection,
    derived: dict[str, dict[str, str]] | None = None,
    title: str = "",
) -> Table:
    derived = derived or {}
    table = Table(title=title or f"Nodes ({len(nodes)})")
    for flag, heading, _ in NODE_COLUMNS:
        if getattr(projection, flag):
            table.add_column(heading, style="cyan" if flag == "name" else None)
    for node in nodes:
        table.add_row(*(escape(v) for v in node_values(node, projection, derived.get(node.identity))))
    return table


def bare_lines(
    nodes: list[NodeEntry],
    projection: NodeProjection,
    derived: dict[str, dict[str, str]] | None = None,
) -> list[str]:
    """One value per line, for scripts."""
    derived = derived or {}
    lines = []
    for node in nodes:
        lines.extend(node_values(node, projection, derived.get(node.identity)))
    return lines


def external_nodes_table(entries: list[ExternalNodeEntry]) -> Table:
    table = Table(title=f"External Nodes ({len(entries)})")
    table.add_column("Name", style="cyan")
    table.add_column("Enode URL")
    table.add_column("TM URL")
    table.add_column("Node Acct Addr")
    for entry in entries:
        table.add_row(*(escape(v) for v in (
            entry.identity, entry.enode_url, entry.transaction_manager_url, entry.node_key_address
        )))
    return table


def external_nodes_yaml(entries: list[ExternalNodeEntry]) -> str:
    """The ``external_nodes`` section another cluster pastes into its config."""
    return yaml.safe_dump(
        {"external_nodes": [external_node_to_dict(e) for e in entries]},
        sort_keys=False,
        default_flow_style=False,
    )
