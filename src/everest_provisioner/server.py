"""FastMCP server exposing the provisioner as tools."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Callable
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from typing import Any

from mcp.server.fastmcp import FastMCP

from everest_provisioner.config import ProvisionerConfig, get_config
from everest_provisioner.provisioner import Provisioner

logger = logging.getLogger(__name__)


class ProvisionerServer:
    """MCP server sharing one provisioner, and so one connector, across all tools."""

    def __init__(self, config: ProvisionerConfig | None = None) -> None:
        self._config = config or get_config()
        self._provisioner: Provisioner | None = None
        self._mcp: FastMCP | None = None

    @property
    def config(self) -> ProvisionerConfig:
        """Get server configuration."""
        return self._config

    @property
    def provisioner(self) -> Provisioner:
        """Get the provisioner.

        Raises:
            RuntimeError: If server is not running.
        """
        if self._provisioner is None:
            raise RuntimeError("Server not running. Provisioner not available.")
        return self._provisioner

    @property
    def mcp(self) -> FastMCP:
        """Get the MCP server instance.

        Raises:
            RuntimeError: If server is not initialized.
        """
        if self._mcp is None:
            raise RuntimeError("Server not initialized.")
        return self._mcp

    def _create_lifespan(self) -> Callable[[Any], AbstractAsyncContextManager[None]]:
        """Create the lifespan context manager for the MCP server."""
        server_self = self

        @asynccontextmanager
        async def lifespan(_app: Any) -> AsyncIterator[None]:
            """Connect to Kubernetes on startup, disconnect on shutdown."""
            logger.info("Starting everest-provisioner MCP server...")
            provisioner = Provisioner(server_self._config)
            server_self._provisioner = provisioner
            try:
                provisioner.connector.connect()
                logger.info("everest-provisioner MCP server started")
                yield
            finally:
                logger.info("Shutting down everest-provisioner MCP server...")
                provisioner.connector.disconnect()
                server_self._provisioner = None
                logger.info("everest-provisioner MCP server shut down")

        return lifespan

    def create_mcp(self) -> FastMCP:
        """Create and configure the FastMCP server."""
        from everest_provisioner.tools import register_tools

        mcp = FastMCP(
            name="everest-provisioner",
            instructions="Provisions Kubernetes clusters for Percona DBaaS: installs OLM "
            "and the database operators, and inspects cluster capabilities.",
            lifespan=self._create_lifespan(),
            host=self._config.host,
            port=self._config.port,
        )
        self._mcp = mcp
        register_tools(mcp, self)
        return mcp


def create_server(config: ProvisionerConfig | None = None) -> FastMCP:
    """Create and return the MCP server instance."""
    return ProvisionerServer(config).create_mcp()
