"""Shared fixtures for everest-provisioner tests."""

from collections.abc import Callable
from unittest.mock import MagicMock

import pytest

from everest_provisioner.config import ProvisionerConfig


@pytest.fixture
def config(monkeypatch: pytest.MonkeyPatch) -> ProvisionerConfig:
    """Default configuration, isolated from the caller's environment."""
    for var in (
        "DBAAS_VM_OP_CHANNEL",
        "DBAAS_PXC_OP_CHANNEL",
        "DBAAS_PSMDB_OP_CHANNEL",
        "DBAAS_DBAAS_OP_CHANNEL",
        "EVEREST_PMM_ENDPOINT",
        "EVEREST_ENABLE_MONITORING",
        "EVEREST_INSTALL_OLM",
    ):
        monkeypatch.delenv(var, raising=False)
    return ProvisionerConfig(_env_file=None)


@pytest.fixture
def mock_connector() -> MagicMock:
    """Create a mock Connector."""
    connector = MagicMock()
    connector.namespace = "default"
    return connector


@pytest.fixture
def no_sleep() -> MagicMock:
    """A sleep stand-in that records the requested delays."""
    return MagicMock(return_value=None)


@pytest.fixture
def make_reader() -> Callable[[dict[str, bytes]], Callable[[str], bytes]]:
    """Build manifest readers serving fixed contents by path."""

    def make(files: dict[str, bytes]) -> Callable[[str], bytes]:
        def read(path: str) -> bytes:
            return files[path]

        return read

    return make
