"""MCP tools for cluster inspection and operator management."""

from typing import TYPE_CHECKING, Any

from mcp.server.fastmcp import FastMCP

from everest_provisioner.olm.installer import InstallContext
from everest_provisioner.utils.errors import NotFoundError, ProvisionerError

if TYPE_CHECKING:
    from everest_provisioner.server import ProvisionerServer


def _format_install(ctx: InstallContext) -> dict[str, Any]:
    result: dict[str, Any] = {
        "operator": ctx.name,
        "namespace": ctx.namespace,
        "state": ctx.state.value,
        "approval_written": ctx.approval_written,
    }
    if ctx.install_plan:
        result["install_plan"] = ctx.install_plan.name
    if ctx.csv:
        result["csv"] = ctx.csv.name
    return result


def register_tools(mcp: FastMCP, server: "ProvisionerServer") -> None:
    """Register provisioner tools with the MCP server."""

    @mcp.tool()
    def cluster_type() -> dict[str, Any]:
        """Guess the kind of cluster from its storage classes.

        Returns:
            One of minikube, eks or generic.
        """
        try:
            detected = server.provisioner.capabilities.classify_cluster()
        except ProvisionerError as e:
            return {"error": str(e)}
        return {"cluster_type": detected.value}

    @mcp.tool()
    def worker_nodes() -> dict[str, Any]:
        """List the nodes that can run database workloads.

        Nodes tainted only with control-plane, unschedulable or
        uninitialized NoSchedule taints are left out.
        """
        try:
            nodes = server.provisioner.capabilities.list_worker_nodes()
        except ProvisionerError as e:
            return {"error": str(e)}
        return {"nodes": [node.metadata.name for node in nodes], "count": len(nodes)}

    @mcp.tool()
    def default_storage_class() -> dict[str, Any]:
        """Get the storage class new volumes use by default."""
        try:
            name = server.provisioner.capabilities.default_storage_class_name()
        except NotFoundError:
            return {"error": "The cluster has no storage class"}
        except ProvisionerError as e:
            return {"error": str(e)}
        return {"storage_class": name}

    @mcp.tool()
    def install_operator(
        name: str,
        channel: str,
        wait_for_completion: bool = False,
    ) -> dict[str, Any]:
        """Install an operator from the Percona catalog through OLM.

        Args:
            name: Operator package name, e.g. percona-xtradb-cluster-operator.
            channel: Subscription channel, e.g. stable-v1.
            wait_for_completion: Wait until the operator CSV has succeeded.

        Returns:
            Final install state with the approved install plan.
        """
        try:
            ctx = server.provisioner.install_operator(
                name, channel, wait_for_completion=wait_for_completion
            )
        except ProvisionerError as e:
            return {"error": str(e)}
        return _format_install(ctx)

    @mcp.tool()
    def upgrade_operator(name: str) -> dict[str, Any]:
        """Approve the pending install plan of an installed operator.

        Does nothing when the current install plan is already approved.
        """
        try:
            ctx = server.provisioner.upgrade_operator(name)
        except ProvisionerError as e:
            return {"error": str(e)}
        return _format_install(ctx)

    @mcp.tool()
    def list_subscriptions(namespace: str | None = None) -> dict[str, Any]:
        """List OLM subscriptions with their channel and installed CSV."""
        provisioner = server.provisioner
        target = namespace or provisioner.config.namespace
        try:
            subscriptions = provisioner.connector.list_subscriptions(target)
        except ProvisionerError as e:
            return {"error": str(e)}
        return {
            "namespace": target,
            "subscriptions": [
                {
                    "name": s.name,
                    "channel": s.channel,
                    "install_plan": s.install_plan_name,
                    "installed_csv": s.installed_csv,
                    "state": s.state,
                }
                for s in subscriptions
            ],
        }

    @mcp.tool()
    def install_olm() -> dict[str, Any]:
        """Install the Operator Lifecycle Manager unless it is already present."""
        try:
            installed = server.provisioner.install_olm()
        except ProvisionerError as e:
            return {"error": str(e)}
        return {"installed": installed, "already_present": not installed}
