"""kubectl-backed cluster controller.

Each call is one blocking ``kubectl`` round trip in the configured namespace,
with no timeout or retry.
"""

from __future__ import annotations

import logging
import subprocess
from pathlib import Path

from qctl.errors import ClusterError, ResourceAbsent

logger = logging.getLogger(__name__)

PERMISSIONED_NODES_FILE = "permissioned-nodes.json"
DEFAULT_SHELL = "/bin/ash"


def deployment_name(identity: str) -> str:
    return f"{identity}-deployment"


def pvc_name(identity: str) -> str:
    return f"{identity}-pvc"


def service_name(identity: str) -> str:
    return identity


class KubectlController:
    """Drives the cluster through the ``kubectl`` binary."""

    def __init__(
        self,
        namespace: str = "default",
        k8s_dir: str | Path | None = None,
        kubectl: str = "kubectl",
    ):
        """Initialize the controller.

        Args:
            namespace: Kubernetes namespace every command runs in.
            k8s_dir: Generated k8s output directory (usually ``out``); holds
                ``config/permissioned-nodes.json``.
            kubectl: Name or path of the kubectl binary.
        """
        self.namespace = namespace
        self.k8s_dir = Path(k8s_dir) if k8s_dir else None
        self.kubectl = kubectl

    # ------------------------------------------------------------------
    # Deletes
    # ------------------------------------------------------------------

    def delete_deployment(self, identity: str) -> None:
        self._run("delete", "deployment", deployment_name(identity))

    def delete_persistent_volume_claim(self, identity: str) -> None:
        self._run("delete", "pvc", pvc_name(identity))

    def delete_service(self, identity: str) -> None:
        self._run("delete", "service", service_name(identity))

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def get_config_value(self, resource_name: str, path: str | None = None) -> str:
        if path:
            return self._run("get", "configMap", resource_name, f"-o=jsonpath={path}")
        return self._run("get", "configMap", resource_name, "-o", "yaml")

    def get_service_value(self, resource_name: str, path: str) -> str:
        return self._run("get", "service", resource_name, f"-o=jsonpath={path}")

    def query_peer_descriptor_list(self) -> str:
        if self.k8s_dir is None:
            raise ClusterError(
                "k8s dir is not set; it is required to read the permissioned nodes list"
            )
        path = self.k8s_dir / "config" / PERMISSIONED_NODES_FILE
        try:
            return path.read_text()
        except FileNotFoundError as e:
            raise ResourceAbsent(f"permissioned nodes file not found: {path}") from e
        except OSError as e:
            raise ClusterError(f"could not read {path}: {e}") from e

    # ------------------------------------------------------------------
    # Interactive
    # ------------------------------------------------------------------

    def find_pod(self, pod_selector: str) -> str:
        """Return the first pod whose name contains ``pod_selector``."""
        output = self._run("get", "pods", "-o", "name")
        for line in output.splitlines():
            name = line.strip().removeprefix("pod/")
            if pod_selector in name:
                return name
        raise ResourceAbsent(f"no pod matching [{pod_selector}] in namespace [{self.namespace}]")

    def exec_interactive_shell(self, pod_selector: str, container: str) -> int:
        pod = self.find_pod(pod_selector)
        logger.info("connecting to pod [%s] container [%s]", pod, container)
        command = self._command("exec", "-it", pod, "-c", container, "--", DEFAULT_SHELL)
        return subprocess.call(command)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _command(self, *args: str) -> list[str]:
        return [self.kubectl, f"--namespace={self.namespace}", *args]

    def _run(self, *args: str) -> str:
        command = self._command(*args)
        logger.debug("running %s", " ".join(command))
        try:
            proc = subprocess.run(command, capture_output=True, text=True)
        except FileNotFoundError as e:
            raise ClusterError(f"{self.kubectl} not found on PATH", command=command) from e

        if proc.returncode != 0:
            stderr = proc.stderr.strip()
            if _is_not_found(stderr):
                raise ResourceAbsent(stderr or "resource not found", command=command, stderr=stderr)
            raise ClusterError(
                f"{' '.join(args[:2])} failed: {stderr or f'exit code {proc.returncode}'}",
                command=command,
                stderr=stderr,
            )
        return proc.stdout


def _is_not_found(stderr: str) -> bool:
    return "(NotFound)" in stderr or "not found" in stderr.lower()
