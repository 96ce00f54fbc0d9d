"""End-to-end provisioning of a cluster for Percona DBaaS."""

from __future__ import annotations

import logging
import random
import time
from collections.abc import Callable

from everest_provisioner.applier import Applier
from everest_provisioner.capabilities import ClusterCapabilities
from everest_provisioner.config import ProvisionerConfig, get_config
from everest_provisioner.connector import Connector
from everest_provisioner.monitoring import MonitoringProvisioner
from everest_provisioner.olm.bootstrap import OLMBootstrapper
from everest_provisioner.olm.installer import InstallContext, OperatorInstaller
from everest_provisioner.olm.models import InstallOperatorRequest
from everest_provisioner.pmm import PMMClient
from everest_provisioner.utils.errors import PMMError

logger = logging.getLogger(__name__)

VM_OPERATOR = "victoriametrics-operator"
PXC_OPERATOR = "percona-xtradb-cluster-operator"
PSMDB_OPERATOR = "percona-server-mongodb-operator"
DBAAS_OPERATOR = "dbaas-operator"

SERVICE_ACCOUNT_PREFIX = "dbaas-service-account"


class Provisioner:
    """Wires the components together over one shared connector."""

    def __init__(
        self,
        config: ProvisionerConfig | None = None,
        connector: Connector | None = None,
        pmm_client: PMMClient | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.config = config or get_config()
        self.connector = connector or Connector(config=self.config)
        self._pmm_client = pmm_client

        interval = self.config.poll_interval_seconds
        timeout = self.config.poll_timeout_seconds
        self.applier = Applier(
            self.connector,
            attempts=self.config.apply_attempts,
            backoff=self.config.apply_backoff_seconds,
            sleep=sleep,
        )
        self.installer = OperatorInstaller(
            self.connector, interval=interval, timeout=timeout, sleep=sleep
        )
        self.bootstrapper = OLMBootstrapper(
            self.connector,
            self.applier,
            installer=self.installer,
            olm_namespace=self.config.olm_namespace,
            interval=interval,
            timeout=timeout,
            sleep=sleep,
        )
        self.capabilities = ClusterCapabilities(self.connector)
        self.monitoring = MonitoringProvisioner(self.connector, self.applier)

    @property
    def pmm_client(self) -> PMMClient:
        if self._pmm_client is None:
            if not self.config.pmm_endpoint:
                raise PMMError("monitoring needs a PMM endpoint (EVEREST_PMM_ENDPOINT)")
            self._pmm_client = PMMClient(
                self.config.pmm_endpoint,
                username=self.config.pmm_username,
                password=self.config.pmm_password,
                timeout=self.config.pmm_timeout,
            )
        return self._pmm_client

    def install_request(self, name: str, channel: str) -> InstallOperatorRequest:
        """Build an install request for ``name`` from the configured catalog."""
        return InstallOperatorRequest(
            namespace=self.config.namespace,
            name=name,
            operator_group=self.config.operator_group,
            catalog_source=self.config.catalog_source,
            catalog_source_namespace=self.config.catalog_source_namespace,
            channel=channel,
        )

    def install_olm(self) -> bool:
        return self.bootstrapper.install()

    def install_operator(
        self, name: str, channel: str, wait_for_completion: bool = False
    ) -> InstallContext:
        request = self.install_request(name, channel)
        ctx = self.installer.install(request, wait_for_completion=wait_for_completion)
        logger.info(f"Operator {name} has been installed")
        return ctx

    def upgrade_operator(self, name: str) -> InstallContext:
        return self.installer.upgrade(self.config.namespace, name)

    def provision_cluster(self) -> None:
        """Bootstrap OLM, install the operators in order, then set up monitoring.

        Stops at the first failure. Monitoring without a PMM endpoint fails
        before anything is written to the cluster.
        """
        if self.config.enable_monitoring and self._pmm_client is None:
            if not self.config.pmm_endpoint:
                raise PMMError("monitoring needs a PMM endpoint (EVEREST_PMM_ENDPOINT)")

        if self.config.install_olm:
            logger.info("Installing Operator Lifecycle Manager")
            self.install_olm()
            logger.info("OLM has been installed")

        channels = self.config.channels
        for name, channel in (
            (VM_OPERATOR, channels.victoria_metrics),
            (PXC_OPERATOR, channels.pxc),
            (PSMDB_OPERATOR, channels.psmdb),
            (DBAAS_OPERATOR, channels.dbaas),
        ):
            self.install_operator(name, channel)

        if self.config.enable_monitoring:
            logger.info("Started setting up monitoring")
            self.provision_pmm()

    def provision_pmm(self) -> str:
        """Mint a PMM admin key for a fresh service account and ship metrics with it.

        Returns:
            Name of the service account.
        """
        account = f"{SERVICE_ACCOUNT_PREFIX}-{random.getrandbits(63)}"
        client = self.pmm_client
        key = client.create_admin_api_key(account)
        self.monitoring.provision(account, key, client.endpoint)
        return account

    def cleanup_monitoring(self) -> None:
        self.monitoring.cleanup()
