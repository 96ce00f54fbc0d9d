"""Tests for OLM models."""

from everest_provisioner.olm.models import (
    ClusterServiceVersion,
    InstallOperatorRequest,
    InstallPlan,
    OperatorGroup,
    Subscription,
)


class TestSubscription:
    """Test Subscription parsing and building."""

    def test_from_cr(self) -> None:
        sub = Subscription.from_cr(
            {
                "metadata": {"name": "pxc", "namespace": "default"},
                "spec": {"name": "pxc", "channel": "stable-v1", "source": "cat"},
                "status": {
                    "installPlanRef": {"name": "install-abc"},
                    "installedCSV": "pxc.v1.10.0",
                    "state": "AtLatestKnown",
                },
            }
        )

        assert sub.install_plan_name == "install-abc"
        assert sub.installed_csv == "pxc.v1.10.0"
        assert sub.channel == "stable-v1"

    def test_install_reference_fallback(self) -> None:
        sub = Subscription.from_cr(
            {"metadata": {"name": "s"}, "status": {"install": {"name": "install-xyz"}}}
        )
        assert sub.install_plan_name == "install-xyz"

    def test_no_status(self) -> None:
        sub = Subscription.from_cr({"metadata": {"name": "s", "namespace": "n"}})
        assert sub.install_plan_name is None
        assert sub.installed_csv is None

    def test_build_cr(self) -> None:
        request = InstallOperatorRequest(
            namespace="default",
            name="dbaas-operator",
            operator_group="percona-operators-group",
            catalog_source="percona-dbaas-catalog",
            channel="stable-v0",
            starting_csv="dbaas-operator.v0.1.0",
        )

        cr = Subscription.build_cr(request)

        assert cr["apiVersion"] == "operators.coreos.com/v1alpha1"
        assert cr["metadata"] == {"name": "dbaas-operator", "namespace": "default"}
        assert cr["spec"] == {
            "name": "dbaas-operator",
            "source": "percona-dbaas-catalog",
            "sourceNamespace": "olm",
            "channel": "stable-v0",
            "installPlanApproval": "Manual",
            "startingCSV": "dbaas-operator.v0.1.0",
        }


class TestInstallPlan:
    """Test InstallPlan approval."""

    def test_approved_cr_does_not_mutate(self) -> None:
        raw = {
            "metadata": {"name": "install-abc", "namespace": "default", "resourceVersion": "7"},
            "spec": {"approved": False, "approval": "Manual"},
        }
        plan = InstallPlan.from_cr(raw)

        body = plan.approved_cr()

        assert body["spec"]["approved"] is True
        assert body["metadata"]["resourceVersion"] == "7"
        assert raw["spec"]["approved"] is False
        assert plan.approved is False


class TestClusterServiceVersion:
    def test_succeeded(self) -> None:
        csv = ClusterServiceVersion.from_cr(
            {"metadata": {"name": "c"}, "status": {"phase": "Succeeded"}}
        )
        assert csv.succeeded

    def test_pending(self) -> None:
        csv = ClusterServiceVersion.from_cr({"metadata": {"name": "c"}, "status": {"phase": "Pending"}})
        assert not csv.succeeded


class TestOperatorGroup:
    def test_build_cr_targets_own_namespace(self) -> None:
        cr = OperatorGroup.build_cr("percona-operators-group", "default")
        assert cr["apiVersion"] == "operators.coreos.com/v1"
        assert cr["spec"] == {"targetNamespaces": ["default"]}
        assert OperatorGroup.from_cr(cr).target_namespaces == ["default"]
