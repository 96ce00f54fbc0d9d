"""Tests for cluster capability detection."""

from typing import Any
from unittest.mock import MagicMock

import pytest

from everest_provisioner.capabilities import (
    ClusterCapabilities,
    ClusterType,
    classify_storage_classes,
    filter_worker_nodes,
    is_worker_node,
)
from everest_provisioner.utils.errors import NotFoundError


def storage_class(name: str, provisioner: str) -> MagicMock:
    sc = MagicMock()
    sc.metadata.name = name
    sc.provisioner = provisioner
    return sc


def taint(key: str, effect: str = "NoSchedule") -> MagicMock:
    t = MagicMock()
    t.key = key
    t.effect = effect
    return t


def node(name: str, taints: list[Any] | None = None) -> MagicMock:
    n = MagicMock()
    n.metadata.name = name
    n.spec.taints = taints
    return n


class TestClassifyStorageClasses:
    """Test cluster classification from storage class provisioners."""

    @pytest.mark.parametrize(
        ("provisioners", "expected"),
        [
            (["kubernetes.io/aws-ebs"], ClusterType.EKS),
            (["ebs.csi.aws.com"], ClusterType.EKS),
            (["k8s.io/minikube-hostpath"], ClusterType.MINIKUBE),
            (["kubevirt.io/hostpath-provisioner"], ClusterType.MINIKUBE),
            (["rancher.io/standard"], ClusterType.MINIKUBE),
            (["pd.csi.storage.gke.io"], ClusterType.GENERIC),
            ([], ClusterType.GENERIC),
        ],
    )
    def test_classification(self, provisioners: list[str], expected: ClusterType) -> None:
        classes = [storage_class(f"sc-{i}", p) for i, p in enumerate(provisioners)]
        assert classify_storage_classes(classes) == expected

    def test_first_match_wins(self) -> None:
        """The scan stops at the first storage class matching any rule."""
        minikube_first = [
            storage_class("a", "k8s.io/minikube-hostpath"),
            storage_class("b", "kubernetes.io/aws-ebs"),
        ]
        eks_first = list(reversed(minikube_first))

        assert classify_storage_classes(minikube_first) == ClusterType.MINIKUBE
        assert classify_storage_classes(eks_first) == ClusterType.EKS

    def test_unmatched_before_match(self) -> None:
        classes = [storage_class("a", "csi.example.com"), storage_class("b", "kubernetes.io/aws-ebs")]
        assert classify_storage_classes(classes) == ClusterType.EKS


class TestWorkerNodes:
    """Test taint-based worker node selection."""

    def test_untainted_node_is_worker(self) -> None:
        assert is_worker_node(node("n1"))
        assert is_worker_node(node("n2", []))

    @pytest.mark.parametrize(
        "key",
        [
            "node.cloudprovider.kubernetes.io/uninitialized",
            "node.kubernetes.io/unschedulable",
            "node-role.kubernetes.io/master",
        ],
    )
    def test_forbidden_taint_excludes(self, key: str) -> None:
        assert not is_worker_node(node("n", [taint(key)]))

    def test_forbidden_key_with_other_effect(self) -> None:
        assert is_worker_node(node("n", [taint("node-role.kubernetes.io/master", "PreferNoSchedule")]))

    def test_unknown_taint_keeps_worker(self) -> None:
        n = node("n", [taint("node-role.kubernetes.io/master"), taint("dedicated")])
        assert is_worker_node(n)

    def test_filter_keeps_order_without_duplicates(self) -> None:
        """A node with several allowed taints appears once."""
        nodes = [
            node("master", [taint("node-role.kubernetes.io/master")]),
            node("worker-a", [taint("gpu"), taint("dedicated")]),
            node("worker-b"),
        ]

        workers = filter_worker_nodes(nodes)

        assert [w.metadata.name for w in workers] == ["worker-a", "worker-b"]


class TestClusterCapabilities:
    """Test ClusterCapabilities reads through the connector."""

    @pytest.fixture
    def capabilities(self, mock_connector: MagicMock) -> ClusterCapabilities:
        return ClusterCapabilities(mock_connector)

    def test_classify_cluster(
        self, capabilities: ClusterCapabilities, mock_connector: MagicMock
    ) -> None:
        mock_connector.list_storage_classes.return_value = [
            storage_class("gp2", "kubernetes.io/aws-ebs")
        ]
        assert capabilities.classify_cluster() == ClusterType.EKS

    def test_list_worker_nodes(
        self, capabilities: ClusterCapabilities, mock_connector: MagicMock
    ) -> None:
        mock_connector.list_nodes.return_value = [
            node("cp", [taint("node-role.kubernetes.io/master")]),
            node("w1"),
        ]
        assert [n.metadata.name for n in capabilities.list_worker_nodes()] == ["w1"]

    def test_default_storage_class(
        self, capabilities: ClusterCapabilities, mock_connector: MagicMock
    ) -> None:
        mock_connector.list_storage_classes.return_value = [
            storage_class("standard", "k8s.io/minikube-hostpath"),
            storage_class("fast", "csi.example.com"),
        ]
        assert capabilities.default_storage_class_name() == "standard"

    def test_default_storage_class_missing(
        self, capabilities: ClusterCapabilities, mock_connector: MagicMock
    ) -> None:
        mock_connector.list_storage_classes.return_value = []
        with pytest.raises(NotFoundError):
            capabilities.default_storage_class_name()
