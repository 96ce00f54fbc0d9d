"""Installation of the Operator Lifecycle Manager itself."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import TYPE_CHECKING

from everest_provisioner.manifests import decode_resources, filter_resources, is_kind, read_manifest
from everest_provisioner.olm.crds import OLM_GROUP, OLMCRDs
from everest_provisioner.olm.installer import OperatorInstaller
from everest_provisioner.utils.errors import NotFoundError
from everest_provisioner.utils.polling import POLL_INTERVAL, POLL_TIMEOUT, wait_until

if TYPE_CHECKING:
    from everest_provisioner.applier import Applier
    from everest_provisioner.connector import Connector

logger = logging.getLogger(__name__)

OLM_OPERATOR = "olm-operator"
CATALOG_OPERATOR = "catalog-operator"
PACKAGE_SERVER = "packageserver"

CRDS_MANIFEST = "crds/olm/crds.yaml"
OLM_MANIFEST = "crds/olm/olm.yaml"
CATALOG_MANIFEST = "crds/olm/percona-dbaas-catalog.yaml"


class OLMBootstrapper:
    """Installs OLM and the Percona catalog into a cluster that lacks them.

    OLM counts as installed as soon as the ``olm-operator`` deployment
    exists, whatever its health.
    """

    def __init__(
        self,
        connector: Connector,
        applier: Applier,
        installer: OperatorInstaller | None = None,
        olm_namespace: str = "olm",
        interval: float = POLL_INTERVAL,
        timeout: float = POLL_TIMEOUT,
        sleep: Callable[[float], None] = time.sleep,
        read: Callable[[str], bytes] = read_manifest,
    ) -> None:
        self._connector = connector
        self._applier = applier
        self._installer = installer or OperatorInstaller(
            connector, interval=interval, timeout=timeout, sleep=sleep
        )
        self._olm_namespace = olm_namespace
        self._interval = interval
        self._timeout = timeout
        self._sleep = sleep
        self._read = read

    def is_installed(self) -> bool:
        try:
            deployment = self._connector.get_deployment(OLM_OPERATOR, self._olm_namespace)
        except NotFoundError:
            return False
        return bool(deployment is not None and deployment.metadata and deployment.metadata.name)

    def install(self) -> bool:
        """Install OLM unless it is already there.

        Returns:
            True if OLM was installed by this call, False if it was present.
        """
        if self.is_installed():
            logger.info("OLM is already installed")
            return False

        logger.info("Installing OLM")
        crds = self._read(CRDS_MANIFEST)
        self._applier.apply_manifest(crds)
        olm = self._read(OLM_MANIFEST)
        self._applier.apply_manifest(olm)
        catalog = self._read(CATALOG_MANIFEST)
        self._applier.apply_manifest(catalog)

        self.wait_for_rollout(OLM_OPERATOR)
        self.wait_for_rollout(CATALOG_OPERATOR)

        subscription_kind = is_kind(
            OLM_GROUP, OLMCRDs.SUBSCRIPTION.version, OLMCRDs.SUBSCRIPTION.kind
        )
        subscriptions = filter_resources(
            decode_resources(crds) + decode_resources(olm), subscription_kind
        )
        for subscription in subscriptions:
            namespace = subscription.namespace or self._olm_namespace
            logger.info(f"Waiting for subscription {namespace}/{subscription.name}")
            self._installer.await_subscription(namespace, subscription.name)

        self.wait_for_rollout(PACKAGE_SERVER)
        logger.info("OLM installed")
        return True

    def wait_for_rollout(self, name: str) -> None:
        logger.info(f"Waiting for deployment/{name} rollout in {self._olm_namespace}")
        wait_until(
            lambda: self._connector.deployment_rolled_out(name, self._olm_namespace),
            interval=self._interval,
            timeout=self._timeout,
            what=f"deployment/{name} rollout",
            sleep=self._sleep,
        )
