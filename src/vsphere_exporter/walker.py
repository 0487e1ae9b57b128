"""
Hierarchy Walker

Discovers datacenters, clusters, hosts and datastores, and plans the
partitions collected concurrently by one poll. Blocking pyVmomi calls run on a
dedicated thread pool, each under its own deadline.

Two strategies are supported:

- FLAT: hosts and datastores are enumerated inventory-wide in one call each,
  with no hierarchy labels.
- HIERARCHICAL: hosts are walked per cluster within each datacenter and
  labelled with both names; datastores are walked per datacenter. Hosts that
  belong to no cluster are not visited.

Author: uldyssian-sh
License: MIT
"""

import asyncio
import functools
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, List, Optional, Tuple

import structlog

from .exceptions import InventoryError, InventoryTimeoutError
from .fetcher import ObjectSnapshot, PropertyFetcher, SUMMARY_PROPERTIES
from .inventory import InventoryNode, VCenterClient
from .registry import ObjectKind

logger = structlog.get_logger(__name__)


class Strategy(Enum):
    """Hierarchy walk strategy"""
    FLAT = "flat"
    HIERARCHICAL = "hierarchical"

    @classmethod
    def for_labels(cls, hierarchy_labels: bool) -> "Strategy":
        return cls.HIERARCHICAL if hierarchy_labels else cls.FLAT


@dataclass(frozen=True)
class Scope:
    """Whole inventory, one datacenter, or one cluster within one datacenter"""
    datacenter: Optional[InventoryNode] = None
    cluster: Optional[InventoryNode] = None

    @classmethod
    def whole_inventory(cls) -> "Scope":
        return cls()

    @classmethod
    def of_datacenter(cls, datacenter: InventoryNode) -> "Scope":
        return cls(datacenter=datacenter)

    @classmethod
    def of_cluster(cls, datacenter: InventoryNode, cluster: InventoryNode) -> "Scope":
        return cls(datacenter=datacenter, cluster=cluster)

    @property
    def is_whole_inventory(self) -> bool:
        return self.datacenter is None and self.cluster is None

    def describe(self) -> str:
        if self.is_whole_inventory:
            return "inventory"
        if self.cluster is None:
            return f"datacenter={self.datacenter.name}"
        return f"datacenter={self.datacenter.name} cluster={self.cluster.name}"


@dataclass(frozen=True)
class Partition:
    """Sub-tree collected by one concurrent task"""
    kind: ObjectKind
    scope: Scope
    hierarchy_values: Tuple[str, ...] = ()

    def describe(self) -> str:
        return f"{self.kind.value} {self.scope.describe()}"


class HierarchyWalker:
    """Walks the datacenter -> cluster -> host/datastore hierarchy"""

    def __init__(self, client: VCenterClient, fetcher: Optional[PropertyFetcher] = None,
                 strategy: Strategy = Strategy.FLAT, call_timeout: float = 30.0,
                 max_workers: int = 8):
        self.client = client
        self.fetcher = fetcher or PropertyFetcher(client)
        self.strategy = strategy
        self.call_timeout = call_timeout
        self.max_workers = max_workers
        self.thread_pool = ThreadPoolExecutor(
            max_workers=max_workers,
            thread_name_prefix="vsphere-walker"
        )
        self._slots: Optional[asyncio.Semaphore] = None
        self._slots_loop: Optional[asyncio.AbstractEventLoop] = None

    def _worker_slots(self, loop: asyncio.AbstractEventLoop) -> asyncio.Semaphore:
        if self._slots is None or self._slots_loop is not loop:
            self._slots = asyncio.Semaphore(self.max_workers)
            self._slots_loop = loop
        return self._slots

    async def _call(self, operation: str, func: Callable, *args: Any) -> Any:
        """
        Run one blocking inventory call under the per-call deadline.

        The deadline starts once a pool worker is free, so time spent queued
        behind other partitions is not charged to the call. A call that
        misses its deadline cannot be interrupted: its thread runs on and
        keeps its worker slot until the call returns.
        """
        loop = asyncio.get_event_loop()
        slots = self._worker_slots(loop)
        await slots.acquire()
        try:
            future = self.thread_pool.submit(functools.partial(func, *args))
        except RuntimeError as e:
            slots.release()
            raise InventoryError(f"{operation} not started: {e}") from e
        future.add_done_callback(lambda _: self._release_slot(loop, slots))

        try:
            return await asyncio.wait_for(
                asyncio.wrap_future(future, loop=loop),
                timeout=self.call_timeout
            )
        except asyncio.TimeoutError as e:
            raise InventoryTimeoutError(
                f"{operation} exceeded {self.call_timeout}s deadline"
            ) from e
        except InventoryError:
            raise
        except Exception as e:
            raise InventoryError(f"{operation} failed: {e}") from e

    @staticmethod
    def _release_slot(loop: asyncio.AbstractEventLoop, slots: asyncio.Semaphore) -> None:
        # runs on the worker thread once the call returns
        if not loop.is_closed():
            loop.call_soon_threadsafe(slots.release)

    async def list_datacenters(self) -> List[InventoryNode]:
        return await self._call("list datacenters", self.client.list_datacenters)

    async def list_clusters(self, datacenter: InventoryNode) -> List[InventoryNode]:
        return await self._call(
            f"list clusters of {datacenter.name}", self.client.list_clusters, datacenter.ref
        )

    async def list_hosts_under(self, scope: Scope) -> List[Any]:
        if scope.is_whole_inventory:
            return await self._call("list hosts", self.client.list_inventory, ObjectKind.HOST)
        if scope.cluster is None:
            raise InventoryError(f"Hosts are listed per cluster, got {scope.describe()}")
        return await self._call(
            f"list hosts of {scope.describe()}", self.client.list_hosts, scope.cluster.ref
        )

    async def list_datastores_under(self, scope: Scope) -> List[Any]:
        if scope.is_whole_inventory:
            return await self._call(
                "list datastores", self.client.list_inventory, ObjectKind.DATASTORE
            )
        return await self._call(
            f"list datastores of {scope.describe()}",
            self.client.list_datastores, scope.datacenter.ref
        )

    async def fetch_hosts(self, scope: Scope) -> List[ObjectSnapshot]:
        return await self._fetch(ObjectKind.HOST, scope, self.list_hosts_under)

    async def fetch_datastores(self, scope: Scope) -> List[ObjectSnapshot]:
        return await self._fetch(ObjectKind.DATASTORE, scope, self.list_datastores_under)

    async def _fetch(self, kind: ObjectKind, scope: Scope,
                     lister: Callable) -> List[ObjectSnapshot]:
        if scope.is_whole_inventory:
            return await self._call(
                f"fetch {kind.value} inventory",
                self.fetcher.fetch_all, kind, SUMMARY_PROPERTIES
            )

        refs = await lister(scope)
        if not refs:
            logger.debug("Empty partition", kind=kind.value, scope=scope.describe())
            return []
        return await self._call(
            f"fetch {kind.value} of {scope.describe()}",
            self.fetcher.fetch_by_references, kind, refs, SUMMARY_PROPERTIES
        )

    async def fetch(self, partition: Partition) -> List[ObjectSnapshot]:
        if partition.kind is ObjectKind.HOST:
            return await self.fetch_hosts(partition.scope)
        return await self.fetch_datastores(partition.scope)

    def inventory_partitions(self) -> List[Partition]:
        """Partitions of the flat strategy"""
        whole = Scope.whole_inventory()
        return [Partition(ObjectKind.HOST, whole), Partition(ObjectKind.DATASTORE, whole)]

    async def host_partitions(self, datacenter: InventoryNode) -> List[Partition]:
        """One host partition per cluster of the datacenter"""
        clusters = await self.list_clusters(datacenter)
        return [
            Partition(
                ObjectKind.HOST,
                Scope.of_cluster(datacenter, cluster),
                (datacenter.name, cluster.name)
            )
            for cluster in clusters
        ]

    def datastore_partition(self, datacenter: InventoryNode) -> Partition:
        # datastores are not cluster children
        return Partition(
            ObjectKind.DATASTORE, Scope.of_datacenter(datacenter), (datacenter.name,)
        )

    def close(self) -> None:
        self.thread_pool.shutdown(wait=False)
