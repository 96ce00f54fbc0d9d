"""Base Kubernetes client with the CRD definitions the provisioner touches."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from kubernetes import client, config
from kubernetes.client import ApiException
from kubernetes.dynamic import DynamicClient
from kubernetes.dynamic.exceptions import ResourceNotFoundError
from kubernetes.dynamic.resource import Resource, ResourceInstance

from everest_provisioner.config import AuthMode, ProvisionerConfig, get_config
from everest_provisioner.utils.errors import (
    AuthenticationError,
    NotFoundError,
    ProvisionerError,
    ResourceExistsError,
)

logger = logging.getLogger(__name__)

FIELD_MANAGER = "everest-provisioner"


class CRDDefinition:
    """Definition of a Custom Resource."""

    def __init__(
        self,
        group: str,
        version: str,
        plural: str,
        kind: str,
    ) -> None:
        self.group = group
        self.version = version
        self.plural = plural
        self.kind = kind

    @property
    def api_version(self) -> str:
        """Get the full API version string."""
        if self.group:
            return f"{self.group}/{self.version}"
        return self.version


class CRDs:
    """Percona DBaaS Custom Resource Definitions."""

    DATABASE_CLUSTER = CRDDefinition(
        group="dbaas.percona.com",
        version="v1",
        plural="databaseclusters",
        kind="DatabaseCluster",
    )

    DATABASE_CLUSTER_RESTORE = CRDDefinition(
        group="dbaas.percona.com",
        version="v1",
        plural="databaseclusterrestores",
        kind="DatabaseClusterRestore",
    )


class K8sClient:
    """Kubernetes client used by the provisioner.

    Supports multiple authentication modes:
    - auto: Try in-cluster first, fall back to kubeconfig
    - kubeconfig: Use kubeconfig file with optional context
    - token: Use explicit API server URL and token

    The client holds no lock and never retries; see
    :class:`everest_provisioner.connector.Connector` for the shared,
    locked handle.
    """

    def __init__(self, config_obj: ProvisionerConfig | None = None) -> None:
        self._config = config_obj or get_config()
        self._api_client: client.ApiClient | None = None
        self._dynamic_client: DynamicClient | None = None
        self._core_v1: client.CoreV1Api | None = None
        self._apps_v1: client.AppsV1Api | None = None
        self._storage_v1: client.StorageV1Api | None = None
        self._crd_cache: dict[str, Resource] = {}

    def connect(self) -> None:
        """Establish connection to Kubernetes API."""
        try:
            self._api_client = self._create_api_client()
            self._dynamic_client = DynamicClient(self._api_client)
            self._core_v1 = client.CoreV1Api(self._api_client)
            self._apps_v1 = client.AppsV1Api(self._api_client)
            self._storage_v1 = client.StorageV1Api(self._api_client)
            logger.info("Connected to Kubernetes API")
        except Exception as e:
            raise AuthenticationError(f"Failed to connect to Kubernetes API: {e}") from e

    def disconnect(self) -> None:
        """Close connection to Kubernetes API."""
        if self._api_client:
            self._api_client.close()
            self._api_client = None
            self._dynamic_client = None
            self._core_v1 = None
            self._apps_v1 = None
            self._storage_v1 = None
            self._crd_cache.clear()
            logger.info("Disconnected from Kubernetes API")

    def _create_api_client(self) -> client.ApiClient:
        """Create API client based on authentication mode."""
        auth_mode = self._config.auth_mode

        if auth_mode == AuthMode.TOKEN:
            return self._create_token_client()
        elif auth_mode == AuthMode.KUBECONFIG:
            return self._create_kubeconfig_client()
        else:  # AUTO
            return self._create_auto_client()

    def _create_token_client(self) -> client.ApiClient:
        """Create client using explicit token authentication."""
        if not self._config.api_server or not self._config.api_token:
            raise AuthenticationError(
                "api_server and api_token are required for token authentication"
            )

        configuration = client.Configuration()
        configuration.host = self._config.api_server
        configuration.api_key = {"authorization": f"Bearer {self._config.api_token}"}
        configuration.verify_ssl = True

        return client.ApiClient(configuration)

    def _create_kubeconfig_client(self) -> client.ApiClient:
        """Create client using kubeconfig file."""
        kubeconfig_path = self._config.effective_kubeconfig_path
        if not kubeconfig_path.exists():
            raise AuthenticationError(f"Kubeconfig not found: {kubeconfig_path}")

        return config.new_client_from_config(
            config_file=str(kubeconfig_path),
            context=self._config.kubeconfig_context,
        )

    def _create_auto_client(self) -> client.ApiClient:
        """Auto-detect authentication mode."""
        if Path("/var/run/secrets/kubernetes.io/serviceaccount/token").exists():
            logger.info("Using in-cluster authentication")
            config.load_incluster_config()
            configuration = client.Configuration.get_default_copy()
            return client.ApiClient(configuration)

        kubeconfig_path = self._config.effective_kubeconfig_path
        if kubeconfig_path.exists():
            logger.info(f"Using kubeconfig: {kubeconfig_path}")
            return config.new_client_from_config(
                config_file=str(kubeconfig_path),
                context=self._config.kubeconfig_context,
            )

        raise AuthenticationError(
            "No valid authentication method found. "
            "Not running in-cluster and no kubeconfig available."
        )

    @property
    def dynamic(self) -> DynamicClient:
        """Get the dynamic client."""
        if not self._dynamic_client:
            raise ProvisionerError("Client not connected. Call connect() first.")
        return self._dynamic_client

    @property
    def core_v1(self) -> client.CoreV1Api:
        """Get the CoreV1 API client."""
        if not self._core_v1:
            raise ProvisionerError("Client not connected. Call connect() first.")
        return self._core_v1

    @property
    def apps_v1(self) -> client.AppsV1Api:
        """Get the AppsV1 API client."""
        if not self._apps_v1:
            raise ProvisionerError("Client not connected. Call connect() first.")
        return self._apps_v1

    @property
    def storage_v1(self) -> client.StorageV1Api:
        """Get the StorageV1 API client."""
        if not self._storage_v1:
            raise ProvisionerError("Client not connected. Call connect() first.")
        return self._storage_v1

    def get_resource(self, crd: CRDDefinition) -> Resource:
        """Get a dynamic resource for a CRD.

        Uses caching to avoid repeated API discovery calls.
        """
        return self._lookup(crd.api_version, crd.kind)

    def _lookup(self, api_version: str, kind: str) -> Resource:
        cache_key = f"{api_version}/{kind}"
        if cache_key not in self._crd_cache:
            try:
                self._crd_cache[cache_key] = self.dynamic.resources.get(
                    api_version=api_version,
                    kind=kind,
                )
            except ResourceNotFoundError as e:
                # CRDs applied moments ago are missing from stale discovery data.
                self.dynamic.resources.invalidate_cache()
                raise ProvisionerError(
                    f"API server does not serve {kind} in {api_version}"
                ) from e
        return self._crd_cache[cache_key]

    def get(
        self,
        crd: CRDDefinition,
        name: str,
        namespace: str | None = None,
    ) -> ResourceInstance:
        """Get a resource by name."""
        resource = self.get_resource(crd)
        try:
            if namespace:
                return resource.get(name=name, namespace=namespace)
            return resource.get(name=name)
        except ApiException as e:
            if e.status == 404:
                raise NotFoundError(crd.kind, name, namespace) from e
            raise ProvisionerError(f"Failed to get {crd.kind} '{name}': {e.reason}") from e

    def list_resources(
        self,
        crd: CRDDefinition,
        namespace: str | None = None,
        label_selector: str | None = None,
    ) -> list[ResourceInstance]:
        """List resources."""
        resource = self.get_resource(crd)
        try:
            kwargs: dict[str, Any] = {}
            if namespace:
                kwargs["namespace"] = namespace
            if label_selector:
                kwargs["label_selector"] = label_selector

            result = resource.get(**kwargs)
            return list(result.items) if hasattr(result, "items") else [result]
        except ApiException as e:
            raise ProvisionerError(f"Failed to list {crd.kind}: {e.reason}") from e

    def create(
        self,
        crd: CRDDefinition,
        body: dict[str, Any],
        namespace: str | None = None,
    ) -> ResourceInstance:
        """Create a resource."""
        resource = self.get_resource(crd)
        try:
            if namespace:
                return resource.create(body=body, namespace=namespace)
            return resource.create(body=body)
        except ApiException as e:
            if e.status == 409:
                name = body.get("metadata", {}).get("name", "unknown")
                raise ResourceExistsError(crd.kind, name, namespace) from e
            raise ProvisionerError(f"Failed to create {crd.kind}: {e.reason}") from e

    def replace(
        self,
        crd: CRDDefinition,
        body: dict[str, Any],
        namespace: str | None = None,
    ) -> ResourceInstance:
        """Replace a resource with a full body (read-modify-write)."""
        resource = self.get_resource(crd)
        name = body.get("metadata", {}).get("name", "unknown")
        try:
            if namespace:
                return resource.replace(body=body, namespace=namespace)
            return resource.replace(body=body)
        except ApiException as e:
            if e.status == 404:
                raise NotFoundError(crd.kind, name, namespace) from e
            raise ProvisionerError(f"Failed to update {crd.kind} '{name}': {e.reason}") from e

    # Arbitrary objects (manifests and built specs)
    def apply_object(self, body: dict[str, Any]) -> ResourceInstance:
        """Create or update an object with server-side apply."""
        api_version = body.get("apiVersion", "")
        kind = body.get("kind", "")
        metadata = body.get("metadata") or {}
        name = metadata.get("name")
        if not api_version or not kind or not name:
            raise ProvisionerError("Object needs apiVersion, kind and metadata.name to be applied")

        if "managedFields" in metadata:
            # Server-side apply rejects bodies carrying managedFields.
            metadata = {k: v for k, v in metadata.items() if k != "managedFields"}
            body = {**body, "metadata": metadata}

        resource = self._lookup(api_version, kind)
        kwargs: dict[str, Any] = {
            "body": body,
            "name": name,
            "field_manager": FIELD_MANAGER,
            "force_conflicts": True,
        }
        if resource.namespaced:
            kwargs["namespace"] = metadata.get("namespace") or self._config.namespace
        try:
            return resource.server_side_apply(**kwargs)
        except ApiException as e:
            raise ProvisionerError(f"Failed to apply {kind} '{name}': {e.reason}") from e

    def delete_object(self, body: dict[str, Any]) -> None:
        """Delete the object described by a manifest body."""
        api_version = body.get("apiVersion", "")
        kind = body.get("kind", "")
        metadata = body.get("metadata") or {}
        name = metadata.get("name", "")

        resource = self._lookup(api_version, kind)
        namespace = None
        if resource.namespaced:
            namespace = metadata.get("namespace") or self._config.namespace
        try:
            if namespace:
                resource.delete(name=name, namespace=namespace)
            else:
                resource.delete(name=name)
        except ApiException as e:
            if e.status == 404:
                raise NotFoundError(kind, name, namespace) from e
            raise ProvisionerError(f"Failed to delete {kind} '{name}': {e.reason}") from e

    # Core API operations
    def get_deployment(self, name: str, namespace: str) -> Any:
        """Get a deployment."""
        try:
            return self.apps_v1.read_namespaced_deployment(name=name, namespace=namespace)
        except ApiException as e:
            if e.status == 404:
                raise NotFoundError("Deployment", name, namespace) from e
            raise ProvisionerError(f"Failed to get deployment '{name}': {e.reason}") from e

    def list_nodes(self) -> list[Any]:
        """List cluster nodes."""
        try:
            return self.core_v1.list_node().items
        except ApiException as e:
            raise ProvisionerError(f"Failed to list nodes: {e.reason}") from e

    def list_storage_classes(self) -> list[Any]:
        """List storage classes."""
        try:
            return self.storage_v1.list_storage_class().items
        except ApiException as e:
            raise ProvisionerError(f"Failed to list storage classes: {e.reason}") from e

    def list_persistent_volumes(self) -> list[Any]:
        """List persistent volumes."""
        try:
            return self.core_v1.list_persistent_volume().items
        except ApiException as e:
            raise ProvisionerError(f"Failed to list persistent volumes: {e.reason}") from e

    def get_secret(self, name: str, namespace: str) -> Any:
        """Get a secret."""
        try:
            return self.core_v1.read_namespaced_secret(name=name, namespace=namespace)
        except ApiException as e:
            if e.status == 404:
                raise NotFoundError("Secret", name, namespace) from e
            raise ProvisionerError(f"Failed to get secret '{name}': {e.reason}") from e

    def list_secrets(self, namespace: str, label_selector: str | None = None) -> list[Any]:
        """List secrets in a namespace."""
        try:
            result = self.core_v1.list_namespaced_secret(
                namespace=namespace,
                label_selector=label_selector,
            )
            return result.items
        except ApiException as e:
            raise ProvisionerError(f"Failed to list secrets: {e.reason}") from e

    def list_pods(self, namespace: str, label_selector: str | None = None) -> list[Any]:
        """List pods in a namespace."""
        try:
            result = self.core_v1.list_namespaced_pod(
                namespace=namespace,
                label_selector=label_selector,
            )
            return result.items
        except ApiException as e:
            raise ProvisionerError(f"Failed to list pods: {e.reason}") from e

    def get_pod_logs(self, pod: str, namespace: str, container: str | None = None) -> str:
        """Get logs of a pod container."""
        kwargs: dict[str, Any] = {"name": pod, "namespace": namespace}
        if container:
            kwargs["container"] = container
        try:
            logs: str = self.core_v1.read_namespaced_pod_log(**kwargs)
            return logs
        except ApiException as e:
            if e.status == 404:
                raise NotFoundError("Pod", pod, namespace) from e
            raise ProvisionerError(f"Failed to get logs of pod '{pod}': {e.reason}") from e

    def list_events(self, namespace: str, involved_object: str) -> list[Any]:
        """List events about one object."""
        try:
            result = self.core_v1.list_namespaced_event(
                namespace=namespace,
                field_selector=f"involvedObject.name={involved_object}",
            )
            return result.items
        except ApiException as e:
            raise ProvisionerError(f"Failed to list events: {e.reason}") from e

    def get_server_version(self) -> Any:
        """Get the API server version info."""
        if not self._api_client:
            raise ProvisionerError("Client not connected. Call connect() first.")
        try:
            return client.VersionApi(self._api_client).get_code()
        except ApiException as e:
            raise ProvisionerError(f"Failed to get server version: {e.reason}") from e

