"""Configuration management for everest-provisioner."""

import os
from enum import Enum
from pathlib import Path
from typing import Any

from pydantic import Field, ValidationInfo, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class AuthMode(str, Enum):
    """Authentication mode for Kubernetes API."""

    AUTO = "auto"
    KUBECONFIG = "kubeconfig"
    TOKEN = "token"


class TransportMode(str, Enum):
    """MCP transport mode."""

    STDIO = "stdio"
    SSE = "sse"
    STREAMABLE_HTTP = "streamable-http"


class LogLevel(str, Enum):
    """Logging level."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"


DEFAULT_CHANNELS = {
    "victoria_metrics": "stable-v0",
    "pxc": "stable-v1",
    "psmdb": "stable-v1",
    "dbaas": "stable-v0",
}


class OperatorChannels(BaseSettings):
    """OLM channel per operator.

    Each channel is read from its ``DBAAS_*_OP_CHANNEL`` environment variable.
    An absent or blank variable falls back to the default channel.
    """

    model_config = SettingsConfigDict(
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    victoria_metrics: str = Field(
        default=DEFAULT_CHANNELS["victoria_metrics"],
        validation_alias="DBAAS_VM_OP_CHANNEL",
        description="Channel for victoriametrics-operator",
    )
    pxc: str = Field(
        default=DEFAULT_CHANNELS["pxc"],
        validation_alias="DBAAS_PXC_OP_CHANNEL",
        description="Channel for percona-xtradb-cluster-operator",
    )
    psmdb: str = Field(
        default=DEFAULT_CHANNELS["psmdb"],
        validation_alias="DBAAS_PSMDB_OP_CHANNEL",
        description="Channel for percona-server-mongodb-operator",
    )
    dbaas: str = Field(
        default=DEFAULT_CHANNELS["dbaas"],
        validation_alias="DBAAS_DBAAS_OP_CHANNEL",
        description="Channel for dbaas-operator",
    )

    @field_validator("victoria_metrics", "pxc", "psmdb", "dbaas", mode="before")
    @classmethod
    def blank_means_default(cls, v: Any, info: ValidationInfo) -> Any:
        """Treat empty channel strings as unset."""
        if v is None or (isinstance(v, str) and not v.strip()):
            return DEFAULT_CHANNELS[info.field_name]
        return v


class ProvisionerConfig(BaseSettings):
    """Configuration for the provisioner.

    Configuration is loaded from environment variables with EVEREST_ prefix.
    """

    model_config = SettingsConfigDict(
        env_prefix="EVEREST_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Authentication settings
    auth_mode: AuthMode = Field(
        default=AuthMode.AUTO,
        description="Authentication mode: auto, kubeconfig, or token",
    )
    kubeconfig_path: Path | None = Field(
        default=None,
        description="Path to kubeconfig file (defaults to ~/.kube/config)",
    )
    kubeconfig_context: str | None = Field(
        default=None,
        description="Kubeconfig context to use",
    )
    api_server: str | None = Field(
        default=None,
        description="Kubernetes API server URL (for token auth)",
    )
    api_token: str | None = Field(
        default=None,
        description="Kubernetes API token (for token auth)",
    )

    # Provisioning flow
    install_olm: bool = Field(
        default=True,
        description="Install the Operator Lifecycle Manager before the operators",
    )
    enable_monitoring: bool = Field(
        default=True,
        description="Set up PMM monitoring after the operators are installed",
    )
    enable_backup: bool = Field(
        default=False,
        description="Enable backups",
    )

    # OLM settings
    namespace: str = Field(
        default="default",
        description="Namespace the operators are installed into",
    )
    olm_namespace: str = Field(
        default="olm",
        description="Namespace OLM itself runs in",
    )
    operator_group: str = Field(
        default="percona-operators-group",
        description="OperatorGroup created for the operator subscriptions",
    )
    catalog_source: str = Field(
        default="percona-dbaas-catalog",
        description="CatalogSource the operators are installed from",
    )
    catalog_source_namespace: str = Field(
        default="olm",
        description="Namespace of the CatalogSource",
    )
    channels: OperatorChannels = Field(
        default_factory=OperatorChannels,
        description="OLM channel per operator",
    )

    # Waits and retries
    poll_interval_seconds: float = Field(
        default=1.0,
        gt=0,
        description="Interval between polls of OLM resources",
    )
    poll_timeout_seconds: float = Field(
        default=300.0,
        gt=0,
        description="Deadline for each poll",
    )
    apply_attempts: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Attempts when applying monitoring manifests",
    )
    apply_backoff_seconds: float = Field(
        default=10.0,
        ge=0,
        description="Fixed sleep between manifest apply attempts",
    )

    # PMM settings
    pmm_endpoint: str | None = Field(
        default=None,
        description="Public address of the PMM server",
    )
    pmm_username: str = Field(
        default="admin",
        description="PMM user for creating API keys",
    )
    pmm_password: str | None = Field(
        default=None,
        description="PMM password for creating API keys",
    )
    pmm_timeout: int = Field(
        default=5,
        ge=1,
        le=120,
        description="PMM request timeout in seconds",
    )

    # Transport settings
    transport: TransportMode = Field(
        default=TransportMode.STDIO,
        description="MCP transport mode: stdio, sse, or streamable-http",
    )
    host: str = Field(
        default="127.0.0.1",
        description="Host to bind HTTP server to",
    )
    port: int = Field(
        default=8000,
        ge=1,
        le=65535,
        description="Port to bind HTTP server to",
    )

    # Logging
    log_level: LogLevel = Field(
        default=LogLevel.INFO,
        description="Logging level",
    )

    @field_validator("kubeconfig_path", mode="before")
    @classmethod
    def resolve_kubeconfig_path(cls, v: str | Path | None) -> Path | None:
        """Resolve kubeconfig path, defaulting to standard location."""
        if v is None:
            return None
        return Path(v).expanduser().resolve()

    @property
    def effective_kubeconfig_path(self) -> Path:
        """Get the effective kubeconfig path, with default."""
        if self.kubeconfig_path:
            return self.kubeconfig_path
        env_path = os.environ.get("KUBECONFIG")
        if env_path:
            return Path(env_path).expanduser().resolve()
        return Path.home() / ".kube" / "config"

    def validate_auth_config(self) -> list[str]:
        """Validate authentication configuration and return any warnings."""
        warnings = []

        if self.auth_mode == AuthMode.TOKEN:
            if not self.api_server:
                raise ValueError("api_server is required when auth_mode is 'token'")
            if not self.api_token:
                raise ValueError("api_token is required when auth_mode is 'token'")

        if self.auth_mode == AuthMode.KUBECONFIG and not self.effective_kubeconfig_path.exists():
            raise ValueError(f"Kubeconfig file not found: {self.effective_kubeconfig_path}")

        if self.auth_mode == AuthMode.AUTO:
            if Path("/var/run/secrets/kubernetes.io/serviceaccount/token").exists():
                warnings.append("Running in-cluster, will use service account")
            elif not self.effective_kubeconfig_path.exists():
                warnings.append(
                    f"No kubeconfig found at {self.effective_kubeconfig_path}, "
                    "will attempt in-cluster auth"
                )

        if self.enable_monitoring and not self.pmm_endpoint:
            warnings.append("Monitoring is enabled but no PMM endpoint is configured")

        return warnings


# Global configuration instance
_config: ProvisionerConfig | None = None


def get_config() -> ProvisionerConfig:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = ProvisionerConfig()
    return _config


def configure(**kwargs: Any) -> ProvisionerConfig:
    """Configure the global settings.

    This should be called before get_config() if you want to override defaults.
    """
    global _config
    _config = ProvisionerConfig(**kwargs)
    return _config
