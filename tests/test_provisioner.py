"""Tests for the end-to-end provisioning sequence."""

from unittest.mock import MagicMock

import pytest

from everest_provisioner.config import ProvisionerConfig
from everest_provisioner.provisioner import Provisioner
from everest_provisioner.utils.errors import OperatorInstallError, PMMError


class TestProvisioner:
    """Test Provisioner with its components replaced by mocks."""

    @pytest.fixture
    def provisioner(self, config: ProvisionerConfig, mock_connector: MagicMock) -> Provisioner:
        p = Provisioner(config, connector=mock_connector, pmm_client=MagicMock())
        p.installer = MagicMock()
        p.bootstrapper = MagicMock()
        p.monitoring = MagicMock()
        p.pmm_client.endpoint = "https://pmm.example.com"
        p.pmm_client.create_admin_api_key.return_value = "api-key"
        return p

    def installed(self, provisioner: Provisioner) -> list[tuple[str, str]]:
        return [
            (c.args[0].name, c.args[0].channel)
            for c in provisioner.installer.install.call_args_list
        ]

    def test_full_sequence(self, provisioner: Provisioner) -> None:
        provisioner.provision_cluster()

        provisioner.bootstrapper.install.assert_called_once_with()
        assert self.installed(provisioner) == [
            ("victoriametrics-operator", "stable-v0"),
            ("percona-xtradb-cluster-operator", "stable-v1"),
            ("percona-server-mongodb-operator", "stable-v1"),
            ("dbaas-operator", "stable-v0"),
        ]
        provisioner.monitoring.provision.assert_called_once()
        account, key, address = provisioner.monitoring.provision.call_args.args
        assert account.startswith("dbaas-service-account-")
        assert key == "api-key"
        assert address == "https://pmm.example.com"
        provisioner.pmm_client.create_admin_api_key.assert_called_once_with(account)

    def test_requests_use_catalog_settings(self, provisioner: Provisioner) -> None:
        provisioner.config.enable_monitoring = False

        provisioner.provision_cluster()

        request = provisioner.installer.install.call_args_list[0].args[0]
        assert request.namespace == "default"
        assert request.operator_group == "percona-operators-group"
        assert request.catalog_source == "percona-dbaas-catalog"
        assert request.catalog_source_namespace == "olm"
        assert request.install_plan_approval == "Manual"

    def test_flags_skip_steps(self, provisioner: Provisioner) -> None:
        provisioner.config.install_olm = False
        provisioner.config.enable_monitoring = False

        provisioner.provision_cluster()

        provisioner.bootstrapper.install.assert_not_called()
        provisioner.monitoring.provision.assert_not_called()
        assert provisioner.installer.install.call_count == 4

    def test_channel_override(self, provisioner: Provisioner) -> None:
        provisioner.config.enable_monitoring = False
        provisioner.config.channels.psmdb = "fast-v1"

        provisioner.provision_cluster()

        assert ("percona-server-mongodb-operator", "fast-v1") in self.installed(provisioner)

    def test_aborts_on_first_failure(self, provisioner: Provisioner) -> None:
        provisioner.installer.install.side_effect = [
            MagicMock(),
            OperatorInstallError("percona-xtradb-cluster-operator", "Start", "denied"),
        ]

        with pytest.raises(OperatorInstallError, match="percona-xtradb-cluster-operator"):
            provisioner.provision_cluster()

        assert provisioner.installer.install.call_count == 2
        provisioner.monitoring.provision.assert_not_called()

    def test_monitoring_needs_endpoint(
        self, config: ProvisionerConfig, mock_connector: MagicMock
    ) -> None:
        provisioner = Provisioner(config, connector=mock_connector)

        with pytest.raises(PMMError, match="PMM endpoint"):
            provisioner.provision_pmm()

    def test_pmm_client_from_config(
        self, config: ProvisionerConfig, mock_connector: MagicMock
    ) -> None:
        config.pmm_endpoint = "https://pmm.example.com/"
        provisioner = Provisioner(config, connector=mock_connector)

        assert provisioner.pmm_client.endpoint == "https://pmm.example.com"

    def test_upgrade_uses_namespace(self, provisioner: Provisioner) -> None:
        provisioner.upgrade_operator("dbaas-operator")
        provisioner.installer.upgrade.assert_called_once_with("default", "dbaas-operator")

    def test_components_share_connector(
        self, config: ProvisionerConfig, mock_connector: MagicMock
    ) -> None:
        provisioner = Provisioner(config, connector=mock_connector)

        assert provisioner.installer._connector is mock_connector
        assert provisioner.bootstrapper._connector is mock_connector
        assert provisioner.capabilities._connector is mock_connector

    def test_missing_endpoint_fails_before_any_write(
        self, config: ProvisionerConfig, mock_connector: MagicMock
    ) -> None:
        provisioner = Provisioner(config, connector=mock_connector)
        provisioner.installer = MagicMock()
        provisioner.bootstrapper = MagicMock()

        with pytest.raises(PMMError, match="PMM endpoint"):
            provisioner.provision_cluster()

        provisioner.bootstrapper.install.assert_not_called()
        provisioner.installer.install.assert_not_called()
