"""Pydantic models for OLM objects."""

from __future__ import annotations

import copy
from typing import Any

from pydantic import BaseModel, Field

from everest_provisioner.olm.crds import APPROVAL_MANUAL, CSV_PHASE_SUCCEEDED, OLMCRDs


def _section(cr: dict[str, Any], key: str) -> dict[str, Any]:
    value = cr.get(key)
    return value if isinstance(value, dict) else {}


class InstallOperatorRequest(BaseModel):
    """Fields needed to install one operator through OLM."""

    namespace: str = Field(..., description="Namespace of the subscription")
    name: str = Field(..., description="Package name, also used as subscription name")
    operator_group: str = Field(..., description="OperatorGroup scoping the namespace")
    catalog_source: str = Field(..., description="CatalogSource providing the package")
    catalog_source_namespace: str = Field("olm", description="Namespace of the CatalogSource")
    channel: str = Field(..., description="Channel to subscribe to")
    install_plan_approval: str = Field(APPROVAL_MANUAL, description="Manual or Automatic")
    starting_csv: str | None = Field(None, description="CSV to start the subscription from")


class Subscription(BaseModel):
    """An OLM Subscription."""

    name: str
    namespace: str
    package: str | None = None
    channel: str | None = None
    catalog_source: str | None = None
    catalog_source_namespace: str | None = None
    install_plan_approval: str | None = None
    starting_csv: str | None = None
    install_plan_name: str | None = Field(None, description="Install plan reference, once assigned")
    current_csv: str | None = None
    installed_csv: str | None = None
    state: str | None = None

    @classmethod
    def from_cr(cls, cr: dict[str, Any]) -> Subscription:
        metadata = _section(cr, "metadata")
        spec = _section(cr, "spec")
        status = _section(cr, "status")

        plan_ref = status.get("installPlanRef") or status.get("install") or {}
        return cls(
            name=metadata.get("name", ""),
            namespace=metadata.get("namespace", ""),
            package=spec.get("name"),
            channel=spec.get("channel"),
            catalog_source=spec.get("source"),
            catalog_source_namespace=spec.get("sourceNamespace"),
            install_plan_approval=spec.get("installPlanApproval"),
            starting_csv=spec.get("startingCSV"),
            install_plan_name=plan_ref.get("name") or None,
            current_csv=status.get("currentCSV") or None,
            installed_csv=status.get("installedCSV") or None,
            state=status.get("state"),
        )

    @staticmethod
    def build_cr(request: InstallOperatorRequest) -> dict[str, Any]:
        """Build the Subscription body for an install request."""
        spec: dict[str, Any] = {
            "name": request.name,
            "source": request.catalog_source,
            "sourceNamespace": request.catalog_source_namespace,
            "channel": request.channel,
            "installPlanApproval": request.install_plan_approval,
        }
        if request.starting_csv:
            spec["startingCSV"] = request.starting_csv
        return {
            "apiVersion": OLMCRDs.SUBSCRIPTION.api_version,
            "kind": OLMCRDs.SUBSCRIPTION.kind,
            "metadata": {"name": request.name, "namespace": request.namespace},
            "spec": spec,
        }


class InstallPlan(BaseModel):
    """An OLM InstallPlan."""

    name: str
    namespace: str
    approved: bool = False
    approval: str | None = None
    phase: str | None = None
    csv_names: list[str] = Field(default_factory=list)
    raw: dict[str, Any] = Field(default_factory=dict, repr=False)

    @classmethod
    def from_cr(cls, cr: dict[str, Any]) -> InstallPlan:
        metadata = _section(cr, "metadata")
        spec = _section(cr, "spec")
        status = _section(cr, "status")
        return cls(
            name=metadata.get("name", ""),
            namespace=metadata.get("namespace", ""),
            approved=bool(spec.get("approved", False)),
            approval=spec.get("approval"),
            phase=status.get("phase"),
            csv_names=list(spec.get("clusterServiceVersionNames") or []),
            raw=cr,
        )

    def approved_cr(self) -> dict[str, Any]:
        """Return a copy of the plan body with ``spec.approved`` set."""
        body = copy.deepcopy(self.raw)
        body.setdefault("spec", {})["approved"] = True
        return body


class ClusterServiceVersion(BaseModel):
    """An OLM ClusterServiceVersion, the installed-operator record."""

    name: str
    namespace: str
    phase: str | None = None
    reason: str | None = None
    message: str | None = None

    @classmethod
    def from_cr(cls, cr: dict[str, Any]) -> ClusterServiceVersion:
        metadata = _section(cr, "metadata")
        status = _section(cr, "status")
        return cls(
            name=metadata.get("name", ""),
            namespace=metadata.get("namespace", ""),
            phase=status.get("phase"),
            reason=status.get("reason"),
            message=status.get("message"),
        )

    @property
    def succeeded(self) -> bool:
        return self.phase == CSV_PHASE_SUCCEEDED


class OperatorGroup(BaseModel):
    """An OLM OperatorGroup."""

    name: str
    namespace: str
    target_namespaces: list[str] = Field(default_factory=list)

    @classmethod
    def from_cr(cls, cr: dict[str, Any]) -> OperatorGroup:
        metadata = _section(cr, "metadata")
        spec = _section(cr, "spec")
        return cls(
            name=metadata.get("name", ""),
            namespace=metadata.get("namespace", ""),
            target_namespaces=list(spec.get("targetNamespaces") or []),
        )

    @staticmethod
    def build_cr(name: str, namespace: str) -> dict[str, Any]:
        """Build an OperatorGroup targeting its own namespace."""
        return {
            "apiVersion": OLMCRDs.OPERATOR_GROUP.api_version,
            "kind": OLMCRDs.OPERATOR_GROUP.kind,
            "metadata": {"name": name, "namespace": namespace},
            "spec": {"targetNamespaces": [namespace]},
        }
