"""Entry point for everest-provisioner."""

import argparse
import json
import logging
import sys
from collections.abc import Sequence
from typing import Any

from everest_provisioner import __version__
from everest_provisioner.config import LogLevel, ProvisionerConfig, TransportMode
from everest_provisioner.utils.errors import AuthenticationError, ProvisionerError

COMMANDS = (
    "provision",
    "install-olm",
    "install-operator",
    "upgrade-operator",
    "cluster-type",
    "worker-nodes",
    "monitoring",
    "cleanup-monitoring",
    "serve",
)


def _has_auth_error(exc: BaseException) -> bool:
    """Check if an exception is or contains an AuthenticationError.

    Handles ExceptionGroup wrappers raised from anyio task groups.
    """
    if isinstance(exc, AuthenticationError):
        return True
    inner: tuple[BaseException, ...] = getattr(exc, "exceptions", ())
    if inner:
        return any(_has_auth_error(e) for e in inner)
    return False


def setup_logging(level: LogLevel) -> None:
    """Configure logging for the provisioner."""
    logging.basicConfig(
        level=level.value,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stderr)],
    )


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        prog="everest-provisioner",
        description="Provision a Kubernetes cluster for Percona DBaaS",
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )

    # Auth options
    parser.add_argument(
        "--kubeconfig",
        default=None,
        help="Path to kubeconfig file",
    )
    parser.add_argument(
        "--context",
        default=None,
        help="Kubeconfig context to use",
    )

    # Flow options
    parser.add_argument(
        "--install-olm",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Install OLM before the operators (default: on)",
    )
    parser.add_argument(
        "--enable-monitoring",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Set up PMM monitoring (default: on)",
    )
    parser.add_argument(
        "--enable-backup",
        action="store_true",
        help="Enable backups",
    )
    parser.add_argument(
        "--pmm-endpoint",
        default=None,
        help="Public address of the PMM server",
    )

    # Transport options, used by "serve"
    parser.add_argument(
        "--transport",
        choices=["stdio", "sse", "streamable-http"],
        default=None,
        help="MCP transport mode (default: from config or stdio)",
    )
    parser.add_argument("--host", default=None, help="Host to bind HTTP server to")
    parser.add_argument("--port", type=int, default=None, help="Port to bind HTTP server to")

    # Logging
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=None,
        help="Logging level (default: INFO)",
    )

    parser.add_argument(
        "command",
        nargs="?",
        choices=COMMANDS,
        default="provision",
        help="What to do (default: provision)",
    )
    parser.add_argument(
        "name",
        nargs="?",
        default=None,
        help="Operator package name for install-operator and upgrade-operator",
    )
    parser.add_argument(
        "--channel",
        default=None,
        help="Subscription channel for install-operator",
    )
    parser.add_argument(
        "--wait",
        action="store_true",
        help="With install-operator, wait until the operator CSV succeeds",
    )

    args = parser.parse_args(argv)
    if args.command in ("install-operator", "upgrade-operator") and not args.name:
        parser.error(f"{args.command} needs an operator name")
    if args.command == "install-operator" and not args.channel:
        parser.error("install-operator needs --channel")
    return args


def build_config(args: argparse.Namespace) -> ProvisionerConfig:
    """Build config from args, falling back to environment/defaults."""
    config_kwargs: dict[str, Any] = {}

    if args.kubeconfig:
        config_kwargs["kubeconfig_path"] = args.kubeconfig
    if args.context:
        config_kwargs["kubeconfig_context"] = args.context
    if args.install_olm is not None:
        config_kwargs["install_olm"] = args.install_olm
    if args.enable_monitoring is not None:
        config_kwargs["enable_monitoring"] = args.enable_monitoring
    if args.enable_backup:
        config_kwargs["enable_backup"] = True
    if args.pmm_endpoint:
        config_kwargs["pmm_endpoint"] = args.pmm_endpoint
    if args.transport:
        config_kwargs["transport"] = TransportMode(args.transport)
    if args.host:
        config_kwargs["host"] = args.host
    if args.port:
        config_kwargs["port"] = args.port
    if args.log_level:
        config_kwargs["log_level"] = LogLevel(args.log_level)

    return ProvisionerConfig(**config_kwargs)


def run_command(args: argparse.Namespace, config: ProvisionerConfig) -> None:
    """Run one provisioning command against the cluster."""
    from everest_provisioner.provisioner import Provisioner

    provisioner = Provisioner(config)
    provisioner.connector.connect()
    try:
        if args.command == "provision":
            provisioner.provision_cluster()
        elif args.command == "install-olm":
            provisioner.install_olm()
        elif args.command == "install-operator":
            provisioner.install_operator(args.name, args.channel, wait_for_completion=args.wait)
        elif args.command == "upgrade-operator":
            provisioner.upgrade_operator(args.name)
        elif args.command == "cluster-type":
            print(provisioner.capabilities.classify_cluster().value)
        elif args.command == "worker-nodes":
            nodes = provisioner.capabilities.list_worker_nodes()
            print(json.dumps([node.metadata.name for node in nodes]))
        elif args.command == "monitoring":
            provisioner.provision_pmm()
        elif args.command == "cleanup-monitoring":
            provisioner.cleanup_monitoring()
    finally:
        provisioner.connector.disconnect()


def serve(config: ProvisionerConfig) -> int:
    """Run the MCP server until it exits."""
    from everest_provisioner.server import create_server

    logger = logging.getLogger(__name__)
    mcp = create_server(config)

    transport_name: str = config.transport.value
    if config.transport != TransportMode.STDIO:
        logger.info(f"Running with {transport_name} transport on {config.host}:{config.port}")
    else:
        logger.info(f"Running with {transport_name} transport")

    try:
        mcp.run(transport=transport_name)  # type: ignore[arg-type]
    except BaseException as exc:  # BaseException to catch anyio's BaseExceptionGroup
        if _has_auth_error(exc):
            logger.error("Kubernetes authentication failed. Your credentials may be expired.")
            return 1
        raise
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    """Main entry point."""
    args = parse_args(argv)
    config = build_config(args)

    setup_logging(config.log_level)

    logger = logging.getLogger(__name__)
    logger.info(f"everest-provisioner v{__version__}: {args.command}")

    try:
        warnings = config.validate_auth_config()
        for warning in warnings:
            logger.warning(warning)
    except ValueError as e:
        logger.error(f"Configuration error: {e}")
        return 1

    if args.command == "serve":
        return serve(config)

    try:
        run_command(args, config)
    except ProvisionerError as e:
        logger.error(f"{args.command} failed: {e}")
        return 1

    logger.info(f"{args.command} finished")
    return 0


if __name__ == "__main__":
    sys.exit(main())
