"""Idempotent apply of objects and manifests, with a fixed-retry variant."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

from tenacity import (
    Retrying,
    before_sleep_log,
    retry_if_not_exception_type,
    stop_after_attempt,
    wait_fixed,
)

from everest_provisioner.manifests import ManifestResource
from everest_provisioner.utils.errors import ApplyError, ManifestDecodeError

if TYPE_CHECKING:
    from everest_provisioner.connector import Connector

logger = logging.getLogger(__name__)

APPLY_ATTEMPTS = 3
APPLY_BACKOFF = 10.0


class Applier:
    """Declares objects present through the connector.

    ``apply`` creates the object when it is missing and updates it
    otherwise, so it may be called any number of times.
    """

    def __init__(
        self,
        connector: Connector,
        attempts: int = APPLY_ATTEMPTS,
        backoff: float = APPLY_BACKOFF,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._connector = connector
        self._attempts = attempts
        self._backoff = backoff
        self._sleep = sleep

    def apply(self, resource: ManifestResource | dict[str, Any]) -> None:
        """Create or update one object."""
        body = resource.body if isinstance(resource, ManifestResource) else resource
        self._connector.apply_object(body)

    def apply_manifest(self, data: bytes) -> None:
        """Create or update every object of a raw manifest, once."""
        self._connector.apply_manifest(data)

    def apply_with_retry(
        self,
        data: bytes,
        source: str = "manifest",
        attempts: int | None = None,
        backoff: float | None = None,
    ) -> None:
        """Apply a raw manifest, retrying a fixed number of times.

        Attempts are separated by a fixed sleep of ``backoff`` seconds. A
        manifest that cannot be decoded is not retried.

        Raises:
            ApplyError: every attempt failed; the last failure is the cause.
            ManifestDecodeError: the manifest is malformed.
        """
        attempts = self._attempts if attempts is None else attempts
        if attempts < 1:
            raise ValueError(f"attempts must be at least 1, got {attempts}")
        backoff = self._backoff if backoff is None else backoff
        retrying = Retrying(
            retry=retry_if_not_exception_type(ManifestDecodeError),
            stop=stop_after_attempt(attempts),
            wait=wait_fixed(backoff),
            sleep=self._sleep,
            reraise=True,
            before_sleep=before_sleep_log(logger, logging.WARNING),
        )
        try:
            retrying(self._connector.apply_manifest, data)
        except ManifestDecodeError:
            raise
        except Exception as e:
            raise ApplyError(f"cannot apply {source} after {attempts} attempts: {e}") from e
