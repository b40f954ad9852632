"""Lifecycle orchestration: stopping and deleting nodes.

Stop removes only the node's deployment, so the node can be redeployed later
from its stored entry. Delete tears down every cluster resource the node owns,
optionally its key material, and finally its registry entry:

1. Stop (deployment)
2. Service
3. Persistent volume claim
4. Key files and key directory (hard delete only)
5. Generated deployment descriptor
6. Registry entry

"Not found" from the cluster counts as success. Any other cluster failure is
logged and recorded, and the sequence moves on. Only the key directory check
stops the sequence early. Nothing is rolled back.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path

from qctl.cluster.controller import ClusterController
from qctl.errors import ClusterError, KeyDirectoryIntegrityError, ResourceAbsent
from qctl.network.models import ExternalNodeEntry, NodeEntry
from qctl.network.registry import NodeRegistry

logger = logging.getLogger(__name__)

KEY_FILES = (
    "acctkeyfile.json",
    "enode",
    "nodekey",
    "password.txt",
    "tm.key",
    "tm.pub",
)

RAFT_REMOVAL_HINT = [
    "This was a raft node, and has not been removed from the raft cluster.",
    "To remove it from the current raft cluster, run on a healthy node:",
    "  qctl geth exec node1 'raft.cluster'",
    "  qctl geth exec node1 'raft.removePeer(<raft_id>)'",
]


class StepStatus:
    DONE = "done"
    ABSENT = "absent"  # Target did not exist, treated as done
    FAILED = "failed"  # Logged, sequence continued
    SKIPPED = "skipped"


@dataclass
class StepResult:
    """Outcome of one step of a stop/delete sequence."""

    name: str
    status: str
    detail: str = ""

    @property
    def ok(self) -> bool:
        return self.status != StepStatus.FAILED


@dataclass
class LifecycleReport:
    """What a stop or delete did, step by step, plus operator next steps."""

    identity: str
    operation: str
    steps: list[StepResult] = field(default_factory=list)
    next_steps: list[str] = field(default_factory=list)
    removed_entry: NodeEntry | ExternalNodeEntry | None = None

    @property
    def failed_steps(self) -> list[StepResult]:
        return [s for s in self.steps if not s.ok]

    @property
    def succeeded(self) -> bool:
        return not self.failed_steps

    def summary(self) -> str:
        if self.succeeded:
            return f"{self.operation} [{self.identity}]: all steps completed"
        names = ", ".join(s.name for s in self.failed_steps)
        return f"{self.operation} [{self.identity}]: completed with failures [{names}]"


class LifecycleOrchestrator:
    """Sequences destructive node operations against the cluster and registry."""

    def __init__(
        self,
        controller: ClusterController,
        registry: NodeRegistry,
        k8s_dir: str | Path | None = None,
    ):
        """Initialize the orchestrator.

        Args:
            controller: Cluster resource controller used for deletes.
            registry: Registry whose entries are reconciled after a delete.
            k8s_dir: Generated k8s output directory. Required for hard deletes
                and for removing the generated deployment descriptor.
        """
        self.controller = controller
        self.registry = registry
        self.k8s_dir = Path(k8s_dir) if k8s_dir else None

    def stop(self, identity: str) -> LifecycleReport:
        """Remove only the node's deployment; storage, service and keys stay.

        Raises:
            NotFoundError: If the node is not in the registry.
        """
        node = self.registry.get_node(identity)
        report = LifecycleReport(identity=identity, operation="stop")
        report.steps.append(self._remove("deployment", self.controller.delete_deployment, identity))
        report.next_steps.append("To restart the node run: qctl deploy network")
        if node.is_raft:
            report.next_steps.extend(RAFT_REMOVAL_HINT)
        return report

    def delete(self, identity: str, hard: bool = False) -> LifecycleReport:
        """Tear down the node's cluster resources and remove its registry entry.

        Raises:
            NotFoundError: If the node is not in the registry.
            KeyDirectoryIntegrityError: If a hard delete targets a key directory
                outside the config dir, or leaves it missing or non-empty. The
                registry entry is kept.
        """
        node = self.registry.get_node(identity)
        key_dir = self.key_directory(node) if hard else None
        report = LifecycleReport(identity=identity, operation="delete")

        report.steps.append(self._remove("deployment", self.controller.delete_deployment, identity))
        report.steps.append(self._remove("service", self.controller.delete_service, identity))
        report.steps.append(
            self._remove("persistent volume claim", self.controller.delete_persistent_volume_claim, identity)
        )

        if key_dir is not None:
            report.steps.extend(self._remove_key_material(key_dir))
        elif hard:
            reason = "k8s dir not set" if self.k8s_dir is None else "no key directory configured"
            logger.warning("hard delete requested but %s, keeping key files for [%s]", reason, identity)
            report.steps.append(StepResult("key material", StepStatus.SKIPPED, reason))

        report.steps.append(self._remove_deployment_descriptor(identity))

        report.removed_entry = self.registry.remove_node(identity)
        report.steps.append(StepResult("registry entry", StepStatus.DONE))

        if node.is_raft:
            report.next_steps.extend(RAFT_REMOVAL_HINT)
        report.next_steps.append("Regenerate the network resources: qctl generate network --update")
        return report

    def delete_external(self, identity: str) -> LifecycleReport:
        """Remove an external node; it owns no cluster resources."""
        report = LifecycleReport(identity=identity, operation="delete external node")
        report.removed_entry = self.registry.remove_external_node(identity)
        report.steps.append(StepResult("registry entry", StepStatus.DONE))
        report.next_steps.extend([
            "Regenerate the network resources: qctl generate network --update",
            "Then redeploy them: qctl deploy network",
        ])
        return report

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def key_directory(self, node: NodeEntry) -> Path | None:
        """The node's own key directory under ``<k8s_dir>/config``.

        None when no k8s dir or no key directory is configured.

        Raises:
            KeyDirectoryIntegrityError: If the key directory resolves to the
                shared config directory or outside it.
        """
        if self.k8s_dir is None or not node.key_directory.strip():
            return None
        config_root = (self.k8s_dir / "config").resolve()
        key_dir = (config_root / node.key_directory).resolve()
        if config_root not in key_dir.parents:
            raise KeyDirectoryIntegrityError(
                str(key_dir), f"not a node directory under {config_root}"
            )
        return key_dir

    def deployment_descriptor(self, identity: str) -> Path | None:
        if self.k8s_dir is None:
            return None
        return self.k8s_dir / "deployments" / f"{identity}-quorum-deployment.yaml"

    def _remove(self, name: str, delete, identity: str) -> StepResult:
        try:
            delete(identity)
        except ResourceAbsent:
            logger.info("%s for [%s] not found in k8s, ignoring.", name, identity)
            return StepResult(name, StepStatus.ABSENT)
        except ClusterError as e:
            logger.error("failed to delete %s for [%s]: %s", name, identity, e.message)
            return StepResult(name, StepStatus.FAILED, e.message)
        logger.info("deleted %s for [%s]", name, identity)
        return StepResult(name, StepStatus.DONE)

    def _remove_key_material(self, key_dir: Path) -> list[StepResult]:
        results = []
        for file_name in KEY_FILES:
            path = key_dir / file_name
            try:
                path.unlink()
                results.append(StepResult(f"key file {file_name}", StepStatus.DONE))
            except FileNotFoundError:
                results.append(StepResult(f"key file {file_name}", StepStatus.ABSENT))
            except OSError as e:
                logger.error("failed to remove %s: %s", path, e)
                results.append(StepResult(f"key file {file_name}", StepStatus.FAILED, str(e)))

        # rmdir, not rmtree: anything left over is an integrity problem
        if not key_dir.is_dir():
            raise KeyDirectoryIntegrityError(str(key_dir), "directory does not exist")
        try:
            key_dir.rmdir()
        except OSError as e:
            leftovers = sorted(p.name for p in key_dir.iterdir()) if key_dir.is_dir() else []
            reason = f"unexpected files remain: {', '.join(leftovers)}" if leftovers else str(e)
            raise KeyDirectoryIntegrityError(str(key_dir), reason) from e

        logger.info("removed key directory %s", key_dir)
        results.append(StepResult("key directory", StepStatus.DONE))
        return results

    def _remove_deployment_descriptor(self, identity: str) -> StepResult:
        path = self.deployment_descriptor(identity)
        if path is None:
            return StepResult("deployment descriptor", StepStatus.SKIPPED, "k8s dir not set")
        try:
            path.unlink()
        except FileNotFoundError:
            return StepResult("deployment descriptor", StepStatus.ABSENT)
        except OSError as e:
            logger.warning("could not remove deployment descriptor %s: %s", path, e)
            return StepResult("deployment descriptor", StepStatus.FAILED, str(e))
        return StepResult("deployment descriptor", StepStatus.DONE)
