"""Cluster monitoring shipped to PMM through a VictoriaMetrics agent."""

from __future__ import annotations

import logging
import secrets
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

from everest_provisioner.manifests import read_manifest

if TYPE_CHECKING:
    from everest_provisioner.applier import Applier
    from everest_provisioner.connector import Connector

logger = logging.getLogger(__name__)

VMAGENT_API_VERSION = "operator.victoriametrics.com/v1beta1"
VMAGENT_KIND = "VMAgent"

# Applied in this order; cleanup walks it backwards
MONITORING_MANIFESTS = [
    "crds/victoriametrics/crs/vmagent_rbac.yaml",
    "crds/victoriametrics/crs/vmnodescrape.yaml",
    "crds/victoriametrics/crs/vmpodscrape.yaml",
    "crds/victoriametrics/kube-state-metrics/service-account.yaml",
    "crds/victoriametrics/kube-state-metrics/cluster-role.yaml",
    "crds/victoriametrics/kube-state-metrics/cluster-role-binding.yaml",
    "crds/victoriametrics/kube-state-metrics/deployment.yaml",
    "crds/victoriametrics/kube-state-metrics/service.yaml",
    "crds/victoriametrics/kube-state-metrics.yaml",
]


def vm_agent_spec(secret_name: str, address: str, namespace: str | None = None) -> dict[str, Any]:
    """Build a VMAgent that remote-writes every scraped metric to PMM.

    Args:
        secret_name: Secret holding the PMM ``username`` and ``password``.
        address: Public PMM address, e.g. ``https://pmm.example.com``.
        namespace: Namespace of the agent and the secret.
    """

    def secret_key(key: str) -> dict[str, str]:
        return {"name": secret_name, "key": key}

    metadata: dict[str, Any] = {"name": f"pmm-vmagent-{secret_name}"}
    if namespace:
        metadata["namespace"] = namespace
    return {
        "apiVersion": VMAGENT_API_VERSION,
        "kind": VMAGENT_KIND,
        "metadata": metadata,
        "spec": {
            "serviceScrapeNamespaceSelector": {},
            "serviceScrapeSelector": {},
            "podScrapeNamespaceSelector": {},
            "podScrapeSelector": {},
            "probeSelector": {},
            "probeNamespaceSelector": {},
            "staticScrapeSelector": {},
            "staticScrapeNamespaceSelector": {},
            "replicaCount": 1,
            "selectAllByDefault": True,
            "resources": {
                "requests": {"cpu": "250m", "memory": "350Mi"},
                "limits": {"cpu": "500m", "memory": "850Mi"},
            },
            "extraArgs": {"memory.allowedPercent": "40"},
            "remoteWrite": [
                {
                    "url": f"{address.rstrip('/')}/victoriametrics/api/v1/write",
                    "tlsConfig": {"insecureSkipVerify": True},
                    "basicAuth": {
                        "username": secret_key("username"),
                        "password": secret_key("password"),
                    },
                }
            ],
        },
    }


def new_secret_name() -> str:
    return f"vm-operator-{secrets.randbits(64)}"


class MonitoringProvisioner:
    """Sets up and tears down the metrics pipeline to PMM."""

    def __init__(
        self,
        connector: Connector,
        applier: Applier,
        read: Callable[[str], bytes] = read_manifest,
        secret_name: Callable[[], str] = new_secret_name,
    ) -> None:
        self._connector = connector
        self._applier = applier
        self._read = read
        self._secret_name = secret_name

    def provision(self, login: str, password: str, pmm_public_address: str) -> str:
        """Create the PMM credentials secret, the VMAgent and the scrape stack.

        Each monitoring manifest is applied with retries, since the VMAgent
        CRDs can take a while to be served after the operator starts.

        Returns:
            Name of the created credentials secret.
        """
        name = self._secret_name()
        logger.info(f"Provisioning monitoring to {pmm_public_address}")
        self._connector.create_secret(
            name,
            {"username": login.encode(), "password": password.encode()},
        )

        agent = vm_agent_spec(name, pmm_public_address, self._connector.namespace)
        self._applier.apply(agent)
        logger.info(f"Applied vmagent/{agent['metadata']['name']}")

        for path in MONITORING_MANIFESTS:
            self._applier.apply_with_retry(self._read(path), source=path)
        return name

    def cleanup(self) -> None:
        """Delete the monitoring manifests, most recently applied first."""
        logger.info("Removing monitoring")
        for path in reversed(MONITORING_MANIFESTS):
            self._connector.delete_manifest(self._read(path))
