"""CRD definitions for the Operator Lifecycle Manager."""

from everest_provisioner.clients.base import CRDDefinition

OLM_GROUP = "operators.coreos.com"

APPROVAL_MANUAL = "Manual"
APPROVAL_AUTOMATIC = "Automatic"

CSV_PHASE_SUCCEEDED = "Succeeded"
CSV_PHASE_FAILED = "Failed"


class OLMCRDs:
    """OLM CRD definitions."""

    SUBSCRIPTION = CRDDefinition(
        group=OLM_GROUP,
        version="v1alpha1",
        plural="subscriptions",
        kind="Subscription",
    )

    INSTALL_PLAN = CRDDefinition(
        group=OLM_GROUP,
        version="v1alpha1",
        plural="installplans",
        kind="InstallPlan",
    )

    CLUSTER_SERVICE_VERSION = CRDDefinition(
        group=OLM_GROUP,
        version="v1alpha1",
        plural="clusterserviceversions",
        kind="ClusterServiceVersion",
    )

    CATALOG_SOURCE = CRDDefinition(
        group=OLM_GROUP,
        version="v1alpha1",
        plural="catalogsources",
        kind="CatalogSource",
    )

    # OperatorGroup is served from v1, unlike the other OLM kinds
    OPERATOR_GROUP = CRDDefinition(
        group=OLM_GROUP,
        version="v1",
        plural="operatorgroups",
        kind="OperatorGroup",
    )
