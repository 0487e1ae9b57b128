"""
Property Fetcher

Bulk property retrieval through the vSphere PropertyCollector. Each fetch is a
single RetrieveProperties round trip regardless of how many objects it covers.

Author: uldyssian-sh
License: MIT
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Sequence

import structlog
from pyVmomi import vim

from .exceptions import PropertyRetrievalError
from .inventory import VCenterClient
from .registry import ObjectKind

logger = structlog.get_logger(__name__)


SUMMARY_PROPERTIES = ("summary",)


@dataclass(frozen=True)
class ObjectSnapshot:
    """Properties of one inventory object as returned by one poll"""
    kind: ObjectKind
    moid: str
    properties: Dict[str, Any] = field(default_factory=dict)

    @property
    def summary(self) -> Any:
        return self.properties["summary"]


class PropertyFetcher:
    """Retrieves object snapshots in one round trip per call"""

    def __init__(self, client: VCenterClient):
        self.client = client

    def fetch_by_references(self, kind: ObjectKind, refs: Iterable[Any],
                            properties: Sequence[str] = SUMMARY_PROPERTIES) -> List[ObjectSnapshot]:
        refs = list(refs)
        if not refs:
            return []

        object_specs = [
            vim.PropertyCollector.ObjectSpec(obj=ref, skip=False) for ref in refs
        ]
        filter_spec = vim.PropertyCollector.FilterSpec(
            objectSet=object_specs,
            propSet=[self._property_spec(kind, properties)]
        )
        return self._retrieve(kind, filter_spec)

    def fetch_all(self, kind: ObjectKind,
                  properties: Sequence[str] = SUMMARY_PROPERTIES) -> List[ObjectSnapshot]:
        """Every object of a kind under the root folder"""
        try:
            view = self.client.view_manager.CreateContainerView(
                self.client.root_folder, [getattr(vim, kind.value)], True
            )
        except Exception as e:
            raise PropertyRetrievalError(
                f"Failed to create {kind.value} container view: {e}"
            ) from e

        try:
            traversal_spec = vim.PropertyCollector.TraversalSpec(
                name="traverseEntities",
                path="view",
                skip=False,
                type=vim.view.ContainerView
            )
            object_spec = vim.PropertyCollector.ObjectSpec(
                obj=view, skip=True, selectSet=[traversal_spec]
            )
            filter_spec = vim.PropertyCollector.FilterSpec(
                objectSet=[object_spec],
                propSet=[self._property_spec(kind, properties)]
            )
            return self._retrieve(kind, filter_spec)
        finally:
            try:
                view.Destroy()
            except Exception as e:
                logger.warning("Container view cleanup failed", kind=kind.value, error=str(e))

    def _property_spec(self, kind: ObjectKind, properties: Sequence[str]) -> Any:
        return vim.PropertyCollector.PropertySpec(
            type=getattr(vim, kind.value),
            pathSet=list(properties),
            all=False
        )

    def _retrieve(self, kind: ObjectKind, filter_spec: Any) -> List[ObjectSnapshot]:
        try:
            contents = self.client.property_collector.RetrieveProperties(specSet=[filter_spec])
        except Exception as e:
            raise PropertyRetrievalError(
                f"Failed to retrieve {kind.value} properties: {e}"
            ) from e

        snapshots = []
        for content in contents or []:
            moid = content.obj._moId
            if content.missingSet:
                logger.warning("Skipping object with missing properties",
                               kind=kind.value, moid=moid,
                               missing=[m.path for m in content.missingSet])
                continue
            snapshots.append(ObjectSnapshot(
                kind=kind,
                moid=moid,
                properties={prop.name: prop.val for prop in content.propSet}
            ))
        return snapshots
