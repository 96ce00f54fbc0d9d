"""Tests for the MCP tools."""

from typing import Any
from unittest.mock import MagicMock

import pytest

from everest_provisioner.capabilities import ClusterType
from everest_provisioner.olm.installer import InstallContext, InstallState
from everest_provisioner.olm.models import InstallPlan, Subscription
from everest_provisioner.tools import register_tools
from everest_provisioner.utils.errors import NotFoundError, OperatorInstallError


@pytest.fixture
def mock_mcp() -> MagicMock:
    """Create a mock FastMCP server that captures tool registrations."""
    mock = MagicMock()
    registered_tools: dict = {}

    def capture_tool():
        def decorator(f):
            registered_tools[f.__name__] = f
            return f

        return decorator

    mock.tool = capture_tool
    mock._registered_tools = registered_tools
    return mock


@pytest.fixture
def mock_server() -> MagicMock:
    """Create a mock ProvisionerServer."""
    server = MagicMock()
    server.provisioner.config.namespace = "default"
    return server


@pytest.fixture
def tools(mock_mcp: MagicMock, mock_server: MagicMock) -> dict[str, Any]:
    register_tools(mock_mcp, mock_server)
    return mock_mcp._registered_tools


class TestToolRegistration:
    def test_all_tools_registered(self, tools: dict[str, Any]) -> None:
        assert set(tools) == {
            "cluster_type",
            "worker_nodes",
            "default_storage_class",
            "install_operator",
            "upgrade_operator",
            "list_subscriptions",
            "install_olm",
        }


class TestCapabilityTools:
    def test_cluster_type(self, tools: dict[str, Any], mock_server: MagicMock) -> None:
        mock_server.provisioner.capabilities.classify_cluster.return_value = ClusterType.EKS
        assert tools["cluster_type"]() == {"cluster_type": "eks"}

    def test_worker_nodes(self, tools: dict[str, Any], mock_server: MagicMock) -> None:
        node = MagicMock()
        node.metadata.name = "w1"
        mock_server.provisioner.capabilities.list_worker_nodes.return_value = [node]

        assert tools["worker_nodes"]() == {"nodes": ["w1"], "count": 1}

    def test_default_storage_class_missing(
        self, tools: dict[str, Any], mock_server: MagicMock
    ) -> None:
        mock_server.provisioner.capabilities.default_storage_class_name.side_effect = (
            NotFoundError("StorageClass", "default")
        )
        assert "error" in tools["default_storage_class"]()


class TestOperatorTools:
    def test_install_operator(self, tools: dict[str, Any], mock_server: MagicMock) -> None:
        ctx = InstallContext(namespace="default", name="dbaas-operator")
        ctx.state = InstallState.SUCCEEDED
        ctx.approval_written = True
        ctx.install_plan = InstallPlan(name="install-1", namespace="default", approved=True)
        mock_server.provisioner.install_operator.return_value = ctx

        result = tools["install_operator"](name="dbaas-operator", channel="stable-v0")

        assert result == {
            "operator": "dbaas-operator",
            "namespace": "default",
            "state": "Succeeded",
            "approval_written": True,
            "install_plan": "install-1",
        }
        mock_server.provisioner.install_operator.assert_called_once_with(
            "dbaas-operator", "stable-v0", wait_for_completion=False
        )

    def test_install_operator_error(self, tools: dict[str, Any], mock_server: MagicMock) -> None:
        mock_server.provisioner.install_operator.side_effect = OperatorInstallError(
            "dbaas-operator", "Start", "denied"
        )

        result = tools["install_operator"](name="dbaas-operator", channel="stable-v0")

        assert "dbaas-operator" in result["error"]

    def test_list_subscriptions(self, tools: dict[str, Any], mock_server: MagicMock) -> None:
        mock_server.provisioner.connector.list_subscriptions.return_value = [
            Subscription(name="pxc", namespace="default", channel="stable-v1")
        ]

        result = tools["list_subscriptions"]()

        assert result["namespace"] == "default"
        assert result["subscriptions"][0]["name"] == "pxc"
        mock_server.provisioner.connector.list_subscriptions.assert_called_once_with("default")

    def test_install_olm_already_present(
        self, tools: dict[str, Any], mock_server: MagicMock
    ) -> None:
        mock_server.provisioner.install_olm.return_value = False
        assert tools["install_olm"]() == {"installed": False, "already_present": True}
