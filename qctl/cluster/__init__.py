"""Cluster resource control: the Kubernetes side of a node's lifecycle.

Provides the ``ClusterController`` contract consumed by address resolution and
lifecycle orchestration, and a ``kubectl``-backed implementation of it.
"""

from qctl.cluster.controller import ClusterController
from qctl.cluster.kubectl import KubectlController

__all__ = [
    "ClusterController",
    "KubectlController",
]
