"""Decoding and filtering of multi-document Kubernetes manifests.

Manifests are decoded into :class:`ManifestResource` records rather than
typed API objects: the set of kinds found in bundled manifests is open
ended, so each record keeps its identity fields plus the raw field tree.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from importlib import resources
from typing import Any

import yaml

from everest_provisioner.utils.errors import ManifestDecodeError, ProvisionerError

logger = logging.getLogger(__name__)

DATA_PACKAGE = "everest_provisioner.data"


@dataclass(frozen=True)
class ManifestResource:
    """One decoded manifest document."""

    group: str
    version: str
    kind: str
    name: str
    namespace: str | None = None
    body: dict[str, Any] = field(default_factory=dict, compare=False, repr=False)

    @property
    def api_version(self) -> str:
        if self.group:
            return f"{self.group}/{self.version}"
        return self.version

    @classmethod
    def from_document(cls, doc: dict[str, Any]) -> ManifestResource:
        """Build a record from a decoded YAML/JSON mapping."""
        api_version = doc.get("apiVersion")
        kind = doc.get("kind")
        if not isinstance(api_version, str) or not api_version:
            raise ManifestDecodeError("document has no apiVersion")
        if not isinstance(kind, str) or not kind:
            raise ManifestDecodeError(f"document with apiVersion '{api_version}' has no kind")

        group, _, version = api_version.rpartition("/")
        metadata = doc.get("metadata") or {}
        return cls(
            group=group,
            version=version,
            kind=kind,
            name=metadata.get("name", ""),
            namespace=metadata.get("namespace"),
            body=doc,
        )


def decode_resources(data: bytes | str) -> list[ManifestResource]:
    """Decode every document of a YAML or JSON stream, in order.

    Empty documents are skipped. Any malformed document fails the whole
    decode with :class:`ManifestDecodeError`.
    """
    try:
        documents = list(yaml.safe_load_all(data))
    except yaml.YAMLError as e:
        raise ManifestDecodeError(f"cannot parse manifest: {e}") from e

    decoded = []
    for index, doc in enumerate(documents):
        if doc is None:
            continue
        if not isinstance(doc, dict):
            raise ManifestDecodeError(
                f"document {index} is a {type(doc).__name__}, expected a mapping"
            )
        try:
            decoded.append(ManifestResource.from_document(doc))
        except ManifestDecodeError as e:
            raise ManifestDecodeError(f"document {index}: {e}") from e

    logger.debug(f"Decoded {len(decoded)} resources from manifest")
    return decoded


def filter_resources(
    resources_: Iterable[ManifestResource],
    predicate: Callable[[ManifestResource], bool],
) -> list[ManifestResource]:
    """Return the resources matching ``predicate``, keeping their order."""
    return [r for r in resources_ if predicate(r)]


def is_kind(group: str, version: str, kind: str) -> Callable[[ManifestResource], bool]:
    """Predicate matching one group/version/kind."""

    def predicate(resource: ManifestResource) -> bool:
        return (resource.group, resource.version, resource.kind) == (group, version, kind)

    return predicate


def read_manifest(path: str) -> bytes:
    """Read a bundled manifest, e.g. ``crds/olm/olm.yaml``."""
    target = resources.files(DATA_PACKAGE)
    for part in path.split("/"):
        target = target.joinpath(part)
    try:
        return target.read_bytes()
    except FileNotFoundError as e:
        raise ProvisionerError(f"bundled manifest '{path}' does not exist") from e
