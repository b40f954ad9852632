"""qctl CLI: manage nodes and external nodes of a qubernetes network config."""

from __future__ import annotations

import functools
import logging
import sys

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape

from qctl import __version__
from qctl.config import K8S_DIR_ENV, CONFIG_ENV, CommandContext, load_settings
from qctl.display import (
    bare_lines,
    external_nodes_table,
    external_nodes_yaml,
    nodes_table,
)
from qctl.errors import ClusterError, NotFoundError, QctlError, ResourceQueryFailure
from qctl.lifecycle import LifecycleReport, StepStatus
from qctl.network.models import (
    ExternalNodeEntry,
    ExternalNodePatch,
    NodeEntry,
    NodePatch,
    NodeProjection,
)

EXIT_FAILURE = 3

console = Console()
err_console = Console(stderr=True)

logger = logging.getLogger(__name__)


def reports_errors(f):
    """Render QctlError as a short diagnostic and exit with code 3."""

    @functools.wraps(f)
    def wrapper(*args, **kwargs):
        try:
            return f(*args, **kwargs)
        except QctlError as e:
            _print_error(e)
            sys.exit(EXIT_FAILURE)

    return wrapper


def _print_error(error: QctlError) -> None:
    err_console.print(f"\n  [red]{escape(error.message)}[/]")
    if isinstance(error, NotFoundError) and error.known_identities:
        err_console.print(f"\n  Known {error.kind} names are:")
        for identity in error.known_identities:
            err_console.print(f"    [{identity}]", markup=False)
    if error.remediation:
        err_console.print(f"\n  {error.remediation}\n", markup=False)


def _next_steps(lines: list[str]) -> None:
    if not lines:
        return
    console.print("\n" + "*" * 80 + "\n")
    for line in lines:
        console.print(f"  [green]{escape(line)}[/]")
    console.print("\n" + "*" * 80)


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=err_console, show_path=False)],
    )


@click.group()
@click.version_option(version=__version__)
@click.option("--config", "-c", "config_file", envvar=CONFIG_ENV, default=None,
              help="Load configuration from FULL_PATH_FILE")
@click.option("--k8sdir", "k8s_dir", envvar=K8S_DIR_ENV, default=None,
              help="The k8sdir (usually out) containing the output k8s resources")
@click.option("--namespace", "-n", default="default", help="Kubernetes namespace")
@click.option("--verbose", "-v", is_flag=True, help="Log every cluster call")
@click.pass_context
@reports_errors
def main(ctx: click.Context, config_file: str | None, k8s_dir: str | None, namespace: str, verbose: bool):
    """qctl: manage the nodes of a Quorum network on Kubernetes.

    Node commands read and rewrite the qubernetes config given with --config
    (or QUBE_CONFIG).
    """
    _configure_logging(verbose)
    settings = load_settings(config_file=config_file, k8s_dir=k8s_dir, namespace=namespace)
    ctx.obj = CommandContext.from_settings(settings)


# ── Add ──────────────────────────────────────────────────────────────


@main.group()
def add():
    """Add a node or external node to the config."""


def _node_options(f):
    for option in reversed([
        click.option("--keydir", default="", help="Key dir where the node's keys are placed"),
        click.option("--consensus", default="", help="Consensus to use: raft | istanbul"),
        click.option("--qversion", "--qv", default="", help="Quorum version"),
        click.option("--tmversion", "--tmv", default="", help="Transaction manager version"),
        click.option("--tm", default="", help="Transaction manager to use: tessera | constellation"),
        click.option("--qimagefull", default="", help="Full repo + image name of the quorum image"),
        click.option("--tmimagefull", default="", help="Full repo + image name of the tm image"),
        click.option("--gethparams", default="", help="Geth startup params"),
    ]):
        f = option(f)
    return f


@add.command(name="node")
@click.argument("name")
@_node_options
@click.pass_obj
@reports_errors
def add_node(obj: CommandContext, name: str, keydir: str, consensus: str, qversion: str,
             tmversion: str, tm: str, qimagefull: str, tmimagefull: str, gethparams: str):
    """Add a new node with a unique NAME.

    Unset values default to the genesis config, and for the transaction
    manager, to the first node in the config.
    """
    registry = obj.registry
    console.print(f"\n  config currently has {len(registry.config.nodes)} nodes")

    entry = registry.add_node(NodeEntry(
        identity=name,
        key_directory=keydir,
        consensus=consensus,
        quorum_version=qversion,
        transaction_manager_name=tm,
        transaction_manager_version=tmversion,
        quorum_image_ref=qimagefull,
        transaction_manager_image_ref=tmimagefull,
        startup_params=gethparams,
    ))
    obj.save()

    console.print(nodes_table([entry], NodeProjection.everything(), title="Added Node"))
    console.print(f"  The node has been added to the config file {obj.settings.config_file}", markup=False)
    _next_steps([
        "Next, generate (update) the additional node resources for quorum and k8s:",
        "  $> qctl generate network --update",
    ])


@add.command(name="externalnode")
@click.argument("name")
@click.option("--enode", "enode_url", required=True, help="Enode URL reachable from this cluster")
@click.option("--tmurl", "tm_url", required=True, help="Transaction manager URL reachable from this cluster")
@click.option("--nodekeyaddress", default="", help="Node account address (istanbul only)")
@click.pass_obj
@reports_errors
def add_external_node(obj: CommandContext, name: str, enode_url: str, tm_url: str, nodekeyaddress: str):
    """Add an external node, owned by another cluster, with a unique NAME."""
    entry = obj.registry.add_external_node(ExternalNodeEntry(
        identity=name,
        enode_url=enode_url,
        transaction_manager_url=tm_url,
        node_key_address=nodekeyaddress,
    ))
    obj.save()

    console.print(external_nodes_table([entry]))
    _next_steps([
        "Next, generate (update) the network resources and redeploy:",
        "  $> qctl generate network --update",
        "  $> qctl deploy network",
    ])


# ── Update ───────────────────────────────────────────────────────────


@main.group()
def update():
    """Update a node or external node in the config."""


@update.command(name="node")
@click.argument("name")
@_node_options
@click.pass_obj
@reports_errors
def update_node(obj: CommandContext, name: str, keydir: str, consensus: str, qversion: str,
                tmversion: str, tm: str, qimagefull: str, tmimagefull: str, gethparams: str):
    """Update node NAME. Only the options given are changed."""
    entry = obj.registry.update_node(name, NodePatch(
        key_directory=keydir,
        consensus=consensus,
        quorum_version=qversion,
        transaction_manager_name=tm,
        transaction_manager_version=tmversion,
        quorum_image_ref=qimagefull,
        transaction_manager_image_ref=tmimagefull,
        startup_params=gethparams,
    ))
    obj.save()

    console.print(nodes_table([entry], NodeProjection.everything(), title="Updated Node"))
    _next_steps([
        "Next, generate (update) the additional node resources for quorum and k8s:",
        "  $> qctl generate network --update",
    ])


@update.command(name="externalnode")
@click.argument("name")
@click.option("--enode", "enode_url", default="", help="Enode URL reachable from this cluster")
@click.option("--tmurl", "tm_url", default="", help="Transaction manager URL reachable from this cluster")
@click.option("--nodekeyaddress", default="", help="Node account address (istanbul only)")
@click.pass_obj
@reports_errors
def update_external_node(obj: CommandContext, name: str, enode_url: str, tm_url: str, nodekeyaddress: str):
    """Update external node NAME. Only the options given are changed."""
    entry = obj.registry.update_external_node(name, ExternalNodePatch(
        enode_url=enode_url,
        transaction_manager_url=tm_url,
        node_key_address=nodekeyaddress,
    ))
    obj.save()
    console.print(external_nodes_table([entry]))


# ── Delete / Stop ────────────────────────────────────────────────────


def _print_report(report: LifecycleReport) -> None:
    styles = {
        StepStatus.DONE: "[green]done[/]",
        StepStatus.ABSENT: "[dim]not found, ignored[/]",
        StepStatus.FAILED: "[red]FAILED[/]",
        StepStatus.SKIPPED: "[yellow]skipped[/]",
    }
    for step in report.steps:
        detail = f" ({escape(step.detail)})" if step.detail else ""
        console.print(f"  {styles[step.status]} {step.name}{detail}")
    colour = "green" if report.succeeded else "yellow"
    console.print(f"\n  [{colour}]{escape(report.summary())}[/]")
    _next_steps(report.next_steps)


@main.group()
def delete():
    """Delete a node or external node."""


@delete.command(name="node")
@click.argument("name")
@click.option("--hard", is_flag=True,
              help="Also delete the node's key files and directory (needs --k8sdir)")
@click.pass_obj
@reports_errors
def delete_node(obj: CommandContext, name: str, hard: bool):
    """Delete node NAME and its cluster resources."""
    console.print(f"\n  Deleting node [{name}]{' (hard delete)' if hard else ''}\n", markup=False)
    report = obj.orchestrator.delete(name, hard=hard)
    obj.save()
    _print_report(report)


@delete.command(name="externalnode")
@click.argument("name")
@click.pass_obj
@reports_errors
def delete_external_node(obj: CommandContext, name: str):
    """Delete external node NAME from the config."""
    report = obj.orchestrator.delete_external(name)
    obj.save()
    _print_report(report)


@main.group()
def stop():
    """Stop a node, keeping its storage, service and keys."""


@stop.command(name="node")
@click.argument("name")
@click.pass_obj
@reports_errors
def stop_node(obj: CommandContext, name: str):
    """Stop node NAME by deleting its k8s deployment."""
    report = obj.orchestrator.stop(name)
    _print_report(report)


# ── List ─────────────────────────────────────────────────────────────


@main.group(name="ls")
def ls():
    """List nodes and external nodes."""


def _derived_values(obj: CommandContext, nodes: list[NodeEntry], projection: NodeProjection) -> dict:
    """Resolve enode URLs and tm keys; a failed lookup renders as empty."""
    derived: dict[str, dict[str, str]] = {}
    if not projection.needs_cluster:
        return derived
    resolver = obj.resolver
    for node in nodes:
        values = {}
        if projection.enode_url:
            try:
                values["enode_url"] = resolver.resolve_enode_url(node.identity)
            except (ClusterError, NotFoundError, ResourceQueryFailure) as e:
                logger.warning("no enode url for [%s]: %s", node.identity, e.message)
        if projection.tm_public_key:
            values["tm_public_key"] = resolver.resolve_transaction_manager_public_key(node.identity) or ""
        derived[node.identity] = values
    return derived


@ls.command(name="node")
@click.argument("name", default="")
@click.option("--all", "show_all", is_flag=True, help="Display all node values")
@click.option("--name", "show_name", is_flag=True, help="Display the name of the node")
@click.option("--keydir", is_flag=True, help="Display the keydir of the node")
@click.option("--consensus", is_flag=True, help="Display the consensus of the node")
@click.option("--quorumversion", is_flag=True, help="Display the quorum version of the node")
@click.option("--tmname", is_flag=True, help="Display the tm name of the node")
@click.option("--tmversion", is_flag=True, help="Display the tm version of the node")
@click.option("--qimagefull", is_flag=True, help="Display the quorum image of the node")
@click.option("--tmimagefull", is_flag=True, help="Display the tm image of the node")
@click.option("--gethparams", "--gp", is_flag=True, help="Display the geth startup params of the node")
@click.option("--enodeurl", "--enode", is_flag=True, help="Display the enode url of the node (needs --k8sdir)")
@click.option("--tmpubkey", is_flag=True, help="Display the tm public key of the node")
@click.option("--asexternal", "--asext", is_flag=True,
              help="Display the external_nodes entry another cluster needs to peer with these nodes")
@click.option("--node-ip", default="<K8s_NODE_IP>", help="IP of the K8s node, e.g. minikube ip (with --asexternal)")
@click.option("--bare", "-b", is_flag=True, help="Minimum output, for scripts")
@click.pass_obj
@reports_errors
def ls_node(obj: CommandContext, name: str, show_all: bool, show_name: bool, keydir: bool,
            consensus: bool, quorumversion: bool, tmname: bool, tmversion: bool, qimagefull: bool,
            tmimagefull: bool, gethparams: bool, enodeurl: bool, tmpubkey: bool, asexternal: bool,
            node_ip: str, bare: bool):
    """List nodes, or only node NAME."""
    k8s_dir = obj.settings.k8s_dir
    if show_all:
        projection = NodeProjection.everything(include_derived=k8s_dir is not None)
    else:
        projection = NodeProjection(
            name=show_name or not bare,
            key_directory=keydir,
            consensus=consensus,
            quorum_version=quorumversion,
            tm_name=tmname,
            tm_version=tmversion,
            quorum_image=qimagefull,
            tm_image=tmimagefull,
            startup_params=gethparams,
            enode_url=enodeurl,
            tm_public_key=tmpubkey,
        )
    if projection.enode_url and k8s_dir is None:
        err_console.print(f"[red]Set --k8sdir flag or {K8S_DIR_ENV} env in order to display enodeurl[/]")
        projection.enode_url = False
    if not projection.selects_any:
        projection.name = True

    listing = obj.registry.list_nodes(name, projection)
    if not listing.found:
        raise NotFoundError("node", name, listing.known_identities)

    if not bare:
        console.print(f"\n  config currently has {len(listing.known_identities)} nodes\n")

    if asexternal:
        externals = [obj.resolver.describe_as_external(node, node_ip) for node in listing.entries]
        click.echo(external_nodes_yaml(externals), nl=False)
        return

    derived = _derived_values(obj, listing.entries, projection)
    if bare:
        for line in bare_lines(listing.entries, projection, derived):
            click.echo(line)
    else:
        console.print(nodes_table(listing.entries, projection, derived))


@ls.command(name="externalnode")
@click.argument("name", default="")
@click.option("--bare", "-b", is_flag=True, help="Print the external_nodes YAML section only")
@click.pass_obj
@reports_errors
def ls_external_node(obj: CommandContext, name: str, bare: bool):
    """List external nodes, or only external node NAME."""
    listing = obj.registry.list_external_nodes(name)
    if not listing.found:
        raise NotFoundError("external node", name, listing.known_identities)
    if bare:
        click.echo(external_nodes_yaml(listing.entries), nl=False)
    else:
        console.print(external_nodes_table(listing.entries))


# ── Connect ──────────────────────────────────────────────────────────


@main.command()
@click.argument("pod")
@click.argument("container", default="quorum")
@click.pass_obj
@reports_errors
def connect(obj: CommandContext, pod: str, container: str):
    """Open a shell in the first pod whose name contains POD.

    CONTAINER is one of quorum | tessera | constellation (default quorum).
    """
    code = obj.controller.exec_interactive_shell(pod, container)
    if code:
        sys.exit(code)


if __name__ == "__main__":
    main()
