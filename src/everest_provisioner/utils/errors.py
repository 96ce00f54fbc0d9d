"""Exceptions raised by everest-provisioner."""

from __future__ import annotations


class ProvisionerError(Exception):
    """Base exception for all provisioning errors."""

    pass


class AuthenticationError(ProvisionerError):
    """Failed to authenticate against the Kubernetes API."""

    pass


class NotFoundError(ProvisionerError):
    """A Kubernetes resource does not exist."""

    def __init__(self, kind: str, name: str, namespace: str | None = None) -> None:
        self.kind = kind
        self.name = name
        self.namespace = namespace
        location = f" in namespace '{namespace}'" if namespace else ""
        super().__init__(f"{kind} '{name}' not found{location}")


class ResourceExistsError(ProvisionerError):
    """A Kubernetes resource already exists."""

    def __init__(self, kind: str, name: str, namespace: str | None = None) -> None:
        self.kind = kind
        self.name = name
        self.namespace = namespace
        location = f" in namespace '{namespace}'" if namespace else ""
        super().__init__(f"{kind} '{name}' already exists{location}")


class ManifestDecodeError(ProvisionerError):
    """A manifest stream contains a malformed document.

    Decoding never returns partial results: one bad document fails
    the whole stream.
    """

    pass


class ApplyError(ProvisionerError):
    """Applying a manifest failed after all attempts."""

    pass


class WaitTimeoutError(ProvisionerError):
    """A bounded wait ran out of time before its condition held."""

    def __init__(self, what: str, timeout: float) -> None:
        self.what = what
        self.timeout = timeout
        super().__init__(f"timed out after {timeout:g}s waiting for {what}")


class CSVFailedError(ProvisionerError):
    """A ClusterServiceVersion reached a terminal phase other than Succeeded."""

    def __init__(self, name: str, namespace: str, phase: str) -> None:
        self.name = name
        self.namespace = namespace
        self.phase = phase
        super().__init__(
            f"clusterserviceversion/{name} in '{namespace}' reached phase '{phase}'"
        )


class InstallPlanUnresolvedError(ProvisionerError):
    """A subscription has no install plan reference after waiting for one."""

    pass


class OperatorInstallError(ProvisionerError):
    """An operator install or upgrade failed in a given state.

    The underlying error is chained as ``__cause__``.
    """

    def __init__(self, operator: str, state: str, message: str) -> None:
        self.operator = operator
        self.state = state
        super().__init__(f"operator '{operator}' failed in state {state}: {message}")


class PMMError(ProvisionerError):
    """Talking to the PMM server failed."""

    pass
