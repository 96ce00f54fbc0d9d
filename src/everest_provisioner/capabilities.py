"""Cluster capability detection.

Guesses the kind of cluster from its storage class provisioners and picks
the nodes that can run workloads based on their taints.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from enum import Enum
from typing import TYPE_CHECKING, Any

from everest_provisioner.utils.errors import NotFoundError

if TYPE_CHECKING:
    from everest_provisioner.connector import Connector

logger = logging.getLogger(__name__)


class ClusterType(str, Enum):
    """Coarse classification of the target cluster."""

    UNKNOWN = "unknown"
    MINIKUBE = "minikube"
    EKS = "eks"
    GENERIC = "generic"


# Provisioner substrings, checked per storage class in this order
EKS_PROVISIONERS = ("aws",)
MINIKUBE_PROVISIONERS = ("minikube", "kubevirt.io/hostpath-provisioner", "standard")

TAINT_EFFECT_NO_SCHEDULE = "NoSchedule"

# Taint key -> effect that keeps workloads off a node
FORBIDDEN_TAINTS = {
    "node.cloudprovider.kubernetes.io/uninitialized": TAINT_EFFECT_NO_SCHEDULE,
    "node.kubernetes.io/unschedulable": TAINT_EFFECT_NO_SCHEDULE,
    "node-role.kubernetes.io/master": TAINT_EFFECT_NO_SCHEDULE,
}


def classify_storage_classes(storage_classes: Iterable[Any]) -> ClusterType:
    """Classify a cluster from its storage classes.

    The first storage class whose provisioner matches a rule decides.
    No match, or no storage class at all, means a generic cluster.
    """
    for storage_class in storage_classes:
        provisioner = storage_class.provisioner or ""
        if any(p in provisioner for p in EKS_PROVISIONERS):
            return ClusterType.EKS
        if any(p in provisioner for p in MINIKUBE_PROVISIONERS):
            return ClusterType.MINIKUBE
    return ClusterType.GENERIC


def is_worker_node(node: Any) -> bool:
    """Return True if workloads can be scheduled on ``node``.

    An untainted node is a worker. A tainted node is a worker when at least
    one of its taints is not forbidden (unknown key, or known key with
    another effect).
    """
    taints = node.spec.taints if node.spec else None
    if not taints:
        return True
    for taint in taints:
        effect = FORBIDDEN_TAINTS.get(taint.key)
        if effect is None or effect != taint.effect:
            return True
    return False


def filter_worker_nodes(nodes: Iterable[Any]) -> list[Any]:
    """Return worker nodes in inventory order, each at most once."""
    return [node for node in nodes if is_worker_node(node)]


class ClusterCapabilities:
    """Reads cluster shape through the connector. Results are never cached."""

    def __init__(self, connector: Connector) -> None:
        self._connector = connector

    def classify_cluster(self) -> ClusterType:
        storage_classes = self._connector.list_storage_classes()
        cluster_type = classify_storage_classes(storage_classes)
        logger.info(f"Detected cluster type: {cluster_type.value}")
        return cluster_type

    def list_worker_nodes(self) -> list[Any]:
        nodes = self._connector.list_nodes()
        workers = filter_worker_nodes(nodes)
        logger.debug(f"{len(workers)} of {len(nodes)} nodes are workers")
        return workers

    def default_storage_class_name(self) -> str:
        """Return the first storage class name.

        Raises:
            NotFoundError: the cluster has no storage class.
        """
        storage_classes = self._connector.list_storage_classes()
        if not storage_classes:
            raise NotFoundError("StorageClass", "default")
        name: str = storage_classes[0].metadata.name
        return name
