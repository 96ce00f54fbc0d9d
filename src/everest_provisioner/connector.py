"""Shared, lock-guarded handle to the Kubernetes API.

One :class:`Connector` is owned by the provisioning process and shared by
every caller. Reads hold the lock shared; every write holds it exclusively,
across the whole cluster rather than per resource or namespace. The
connector never retries; retry policy belongs to its callers.
"""

from __future__ import annotations

import base64
import logging
from typing import Any

from everest_provisioner.clients.base import CRDs, K8sClient
from everest_provisioner.config import ProvisionerConfig, get_config
from everest_provisioner.manifests import decode_resources
from everest_provisioner.olm.crds import OLMCRDs
from everest_provisioner.olm.models import (
    ClusterServiceVersion,
    InstallOperatorRequest,
    InstallPlan,
    OperatorGroup,
    Subscription,
)
from everest_provisioner.utils.errors import NotFoundError, ProvisionerError
from everest_provisioner.utils.rwlock import ReadWriteLock

logger = logging.getLogger(__name__)

RESTART_ANNOTATION = "dbaas.percona.com/restart"
MANAGED_BY_ANNOTATION = "dbaas.percona.com/managed-by"

CONTAINER_STATE_WAITING = "waiting"
CONTAINER_STATE_TERMINATED = "terminated"

PXC_DEPLOYMENT = "percona-xtradb-cluster-operator"
PSMDB_DEPLOYMENT = "percona-server-mongodb-operator"
DBAAS_DEPLOYMENT = "dbaas-operator-controller-manager"
PXC_CONTAINER = "percona-xtradb-cluster-operator"
PSMDB_CONTAINER = "percona-server-mongodb-operator"
DBAAS_CONTAINER = "manager"


def _as_dict(obj: Any) -> dict[str, Any]:
    if isinstance(obj, dict):
        return obj
    return obj.to_dict()


def is_container_in_state(container_statuses: list[Any] | None, state: str) -> bool:
    """Return True if any container status is in ``state`` (waiting, running, terminated)."""
    for status in container_statuses or []:
        if getattr(status.state, state, None) is not None:
            return True
    return False


def is_node_in_condition(node: Any, condition_type: str) -> bool:
    """Return True if the node reports ``condition_type`` with status "True"."""
    for condition in node.status.conditions or []:
        if condition.type == condition_type and condition.status == "True":
            return True
    return False


def deployment_rolled_out(deployment: Any) -> bool:
    """Return True once a deployment's latest generation is fully available."""
    metadata = deployment.metadata
    status = deployment.status
    if status is None or (status.observed_generation or 0) < (metadata.generation or 0):
        return False

    desired = deployment.spec.replicas if deployment.spec.replicas is not None else 1
    updated = status.updated_replicas or 0
    if updated < desired:
        return False
    if (status.replicas or 0) > updated:
        return False
    return (status.available_replicas or 0) >= updated


class Connector:
    """Locked facade over :class:`K8sClient` used by all orchestration code."""

    def __init__(
        self,
        k8s: K8sClient | None = None,
        config: ProvisionerConfig | None = None,
    ) -> None:
        self._config = config or get_config()
        self._k8s = k8s or K8sClient(self._config)
        self._lock = ReadWriteLock()

    @property
    def k8s(self) -> K8sClient:
        return self._k8s

    @property
    def lock(self) -> ReadWriteLock:
        return self._lock

    @property
    def namespace(self) -> str:
        return self._config.namespace

    def connect(self) -> None:
        self._k8s.connect()

    def disconnect(self) -> None:
        self._k8s.disconnect()

    # -------------------------------------------------------------------------
    # Deployments, nodes and storage
    # -------------------------------------------------------------------------

    def get_deployment(self, name: str, namespace: str | None = None) -> Any:
        with self._lock.read():
            return self._k8s.get_deployment(name, namespace or self.namespace)

    def deployment_rolled_out(self, name: str, namespace: str | None = None) -> bool:
        """Return True once the deployment rollout completed; False while it is missing."""
        try:
            deployment = self.get_deployment(name, namespace)
        except NotFoundError:
            return False
        return deployment_rolled_out(deployment)

    def list_nodes(self) -> list[Any]:
        with self._lock.read():
            return self._k8s.list_nodes()

    def list_storage_classes(self) -> list[Any]:
        with self._lock.read():
            return self._k8s.list_storage_classes()

    def list_persistent_volumes(self) -> list[Any]:
        with self._lock.read():
            return self._k8s.list_persistent_volumes()

    def get_server_version(self) -> Any:
        with self._lock.read():
            return self._k8s.get_server_version()

    # -------------------------------------------------------------------------
    # OLM
    # -------------------------------------------------------------------------

    def get_operator_group(self, name: str, namespace: str) -> OperatorGroup:
        with self._lock.read():
            cr = self._k8s.get(OLMCRDs.OPERATOR_GROUP, name=name, namespace=namespace)
        return OperatorGroup.from_cr(_as_dict(cr))

    def create_operator_group(self, name: str, namespace: str) -> OperatorGroup:
        body = OperatorGroup.build_cr(name, namespace)
        with self._lock.write():
            cr = self._k8s.create(OLMCRDs.OPERATOR_GROUP, body=body, namespace=namespace)
        logger.info(f"Created operatorgroup/{name} in {namespace}")
        return OperatorGroup.from_cr(_as_dict(cr))

    def create_subscription(self, request: InstallOperatorRequest) -> Subscription:
        """Create a subscription to ``request.name`` in its catalog source."""
        body = Subscription.build_cr(request)
        with self._lock.write():
            cr = self._k8s.create(OLMCRDs.SUBSCRIPTION, body=body, namespace=request.namespace)
        logger.info(
            f"Created subscription/{request.name} in {request.namespace} "
            f"(channel {request.channel}, approval {request.install_plan_approval})"
        )
        return Subscription.from_cr(_as_dict(cr))

    def get_subscription(self, namespace: str, name: str) -> Subscription | None:
        """Get a subscription, or None if it does not exist."""
        try:
            with self._lock.read():
                cr = self._k8s.get(OLMCRDs.SUBSCRIPTION, name=name, namespace=namespace)
        except NotFoundError:
            return None
        return Subscription.from_cr(_as_dict(cr))

    def list_subscriptions(self, namespace: str) -> list[Subscription]:
        with self._lock.read():
            items = self._k8s.list_resources(OLMCRDs.SUBSCRIPTION, namespace=namespace)
        return [Subscription.from_cr(_as_dict(item)) for item in items]

    def get_install_plan(self, namespace: str, name: str) -> InstallPlan:
        with self._lock.read():
            cr = self._k8s.get(OLMCRDs.INSTALL_PLAN, name=name, namespace=namespace)
        return InstallPlan.from_cr(_as_dict(cr))

    def update_install_plan(self, namespace: str, plan: InstallPlan) -> InstallPlan:
        """Write back an install plan with ``spec.approved`` set."""
        body = plan.approved_cr()
        with self._lock.write():
            cr = self._k8s.replace(OLMCRDs.INSTALL_PLAN, body=body, namespace=namespace)
        logger.info(f"Approved installplan/{plan.name} in {namespace}")
        return InstallPlan.from_cr(_as_dict(cr))

    def get_cluster_service_version(self, namespace: str, name: str) -> ClusterServiceVersion:
        with self._lock.read():
            cr = self._k8s.get(OLMCRDs.CLUSTER_SERVICE_VERSION, name=name, namespace=namespace)
        return ClusterServiceVersion.from_cr(_as_dict(cr))

    def list_cluster_service_versions(self, namespace: str) -> list[ClusterServiceVersion]:
        with self._lock.read():
            items = self._k8s.list_resources(OLMCRDs.CLUSTER_SERVICE_VERSION, namespace=namespace)
        return [ClusterServiceVersion.from_cr(_as_dict(item)) for item in items]

    # -------------------------------------------------------------------------
    # Generic objects and manifests
    # -------------------------------------------------------------------------

    def apply_object(self, body: dict[str, Any]) -> None:
        with self._lock.write():
            self._k8s.apply_object(body)

    def delete_object(self, body: dict[str, Any]) -> None:
        with self._lock.write():
            self._k8s.delete_object(body)

    def apply_manifest(self, data: bytes) -> None:
        """Apply every object of a raw manifest under one write lock."""
        resources = decode_resources(data)
        with self._lock.write():
            for resource in resources:
                logger.debug(f"Applying {resource.kind}/{resource.name}")
                self._k8s.apply_object(resource.body)

    def delete_manifest(self, data: bytes) -> None:
        """Delete every object of a raw manifest under one write lock.

        Objects that are already gone are skipped.
        """
        resources = decode_resources(data)
        with self._lock.write():
            for resource in resources:
                logger.debug(f"Deleting {resource.kind}/{resource.name}")
                try:
                    self._k8s.delete_object(resource.body)
                except NotFoundError:
                    logger.debug(f"{resource.kind}/{resource.name} is already gone")

    # -------------------------------------------------------------------------
    # Secrets
    # -------------------------------------------------------------------------

    def get_secret(self, name: str) -> Any:
        with self._lock.read():
            return self._k8s.get_secret(name, self.namespace)

    def list_secrets(self) -> list[Any]:
        with self._lock.read():
            return self._k8s.list_secrets(self.namespace)

    def create_secret(self, name: str, data: dict[str, bytes]) -> None:
        """Create or update an opaque secret."""
        body = {
            "apiVersion": "v1",
            "kind": "Secret",
            "metadata": {"name": name, "namespace": self.namespace},
            "type": "Opaque",
            "data": {key: base64.b64encode(value).decode() for key, value in data.items()},
        }
        with self._lock.write():
            self._k8s.apply_object(body)

    # -------------------------------------------------------------------------
    # Pods, volumes and diagnostics
    # -------------------------------------------------------------------------

    def get_pods(self, namespace: str | None = None, label_selector: str | None = None) -> list[Any]:
        with self._lock.read():
            return self._k8s.list_pods(namespace or self.namespace, label_selector)

    def get_logs(
        self,
        container_statuses: list[Any] | None,
        pod: str,
        container: str,
    ) -> list[str]:
        """Return a container's log lines; empty while the container is waiting."""
        if is_container_in_state(container_statuses, CONTAINER_STATE_WAITING):
            return []
        with self._lock.read():
            try:
                stdout = self._k8s.get_pod_logs(pod, self.namespace, container)
            except ProvisionerError as e:
                raise ProvisionerError(f"couldn't get logs: {e}") from e
        if not stdout:
            return []
        return stdout.split("\n")

    def get_events(self, pod: str) -> list[str]:
        """Return the events about a pod, one line each."""
        with self._lock.read():
            try:
                events = self._k8s.list_events(self.namespace, pod)
            except ProvisionerError as e:
                raise ProvisionerError(f"couldn't describe pod: {e}") from e
        return [f"{event.type} {event.reason}: {event.message}" for event in events]

    # -------------------------------------------------------------------------
    # Operator versions
    # -------------------------------------------------------------------------

    def get_operator_version(self, deployment_name: str, container_name: str) -> str:
        """Parse an operator version from its deployment's image tag."""
        deployment = self.get_deployment(deployment_name)
        for container in deployment.spec.template.spec.containers:
            if container.name == container_name:
                _, sep, tag = container.image.rpartition(":")
                if not sep or "/" in tag:
                    break
                return tag
        raise ProvisionerError(f"unknown version of operator '{deployment_name}'")

    def get_pxc_operator_version(self) -> str:
        return self.get_operator_version(PXC_DEPLOYMENT, PXC_CONTAINER)

    def get_psmdb_operator_version(self) -> str:
        return self.get_operator_version(PSMDB_DEPLOYMENT, PSMDB_CONTAINER)

    def get_dbaas_operator_version(self) -> str:
        return self.get_operator_version(DBAAS_DEPLOYMENT, DBAAS_CONTAINER)

    # -------------------------------------------------------------------------
    # Database clusters
    # -------------------------------------------------------------------------

    def list_database_clusters(self) -> list[dict[str, Any]]:
        with self._lock.read():
            items = self._k8s.list_resources(CRDs.DATABASE_CLUSTER, namespace=self.namespace)
        return [_as_dict(item) for item in items]

    def get_database_cluster(self, name: str) -> dict[str, Any]:
        with self._lock.read():
            cr = self._k8s.get(CRDs.DATABASE_CLUSTER, name=name, namespace=self.namespace)
        return _as_dict(cr)

    def create_database_cluster(self, cluster: dict[str, Any]) -> None:
        """Create a database cluster annotated as managed by PMM."""
        metadata = cluster.setdefault("metadata", {})
        annotations = metadata.get("annotations") or {}
        annotations[MANAGED_BY_ANNOTATION] = "pmm"
        metadata["annotations"] = annotations
        with self._lock.write():
            self._k8s.apply_object(self._with_type(cluster))

    def patch_database_cluster(self, cluster: dict[str, Any]) -> None:
        with self._lock.write():
            self._k8s.apply_object(self._with_type(cluster))

    def restart_database_cluster(self, name: str) -> None:
        """Ask the operator to restart a cluster through its restart annotation."""
        with self._lock.write():
            cluster = _as_dict(
                self._k8s.get(CRDs.DATABASE_CLUSTER, name=name, namespace=self.namespace)
            )
            metadata = cluster.setdefault("metadata", {})
            annotations = metadata.get("annotations") or {}
            annotations[RESTART_ANNOTATION] = "true"
            metadata["annotations"] = annotations
            self._k8s.apply_object(self._with_type(cluster))

    def delete_database_cluster(self, name: str) -> None:
        with self._lock.write():
            cluster = _as_dict(
                self._k8s.get(CRDs.DATABASE_CLUSTER, name=name, namespace=self.namespace)
            )
            self._k8s.delete_object(self._with_type(cluster))

    def create_restore(self, restore: dict[str, Any]) -> None:
        restore.setdefault("apiVersion", CRDs.DATABASE_CLUSTER_RESTORE.api_version)
        restore.setdefault("kind", CRDs.DATABASE_CLUSTER_RESTORE.kind)
        with self._lock.write():
            self._k8s.apply_object(restore)

    @staticmethod
    def _with_type(cluster: dict[str, Any]) -> dict[str, Any]:
        cluster["apiVersion"] = CRDs.DATABASE_CLUSTER.api_version
        cluster["kind"] = CRDs.DATABASE_CLUSTER.kind
        return cluster
