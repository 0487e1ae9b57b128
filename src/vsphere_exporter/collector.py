"""
Collection Orchestrator

Runs one polling cycle: lists datacenters, fans out one task per partition,
joins them under the poll deadline, and returns every emitted sample followed
by the vCenter availability sample.

Availability is not shared state. Each task returns a PartitionOutcome and the
outcomes are folded after the join; any failed partition makes the poll
unavailable.

Author: uldyssian-sh
License: MIT
"""

import asyncio
import time
from dataclasses import dataclass
from enum import Enum
from typing import AsyncIterator, Iterable, List, Optional, Tuple

import structlog

from .exceptions import ConfigurationError, InventoryError
from .inventory import InventoryNode
from .registry import MetricRegistry, Sample
from .walker import HierarchyWalker, Partition, Strategy

logger = structlog.get_logger(__name__)


AVAILABILITY_METRIC = "vsphere_vcenter_available"
AVAILABILITY_HELP = "Set to 1 if the vcenter is available"


class PartitionOutcome(Enum):
    """Result of one partition task, ordered from best to worst"""
    OK = 0
    FAILED = 1


def worst_outcome(outcomes: Iterable[PartitionOutcome]) -> PartitionOutcome:
    return max(outcomes, key=lambda outcome: outcome.value, default=PartitionOutcome.OK)


class PollState(Enum):
    """Poll lifecycle"""
    IDLE = "idle"
    LISTING_DATACENTERS = "listing_datacenters"
    FANNING_OUT = "fanning_out"
    AGGREGATING = "aggregating"
    DONE = "done"
    FAILED = "failed"


@dataclass(frozen=True)
class PollResult:
    """Samples of one poll; the availability sample is always last"""
    samples: Tuple[Sample, ...]
    available: bool
    state: PollState
    duration: float = 0.0

    @property
    def availability(self) -> float:
        return 1.0 if self.available else 0.0


class VSphereCollector:
    """
    Concurrent fan-out/aggregation over the inventory hierarchy.

    ``state`` tracks the most recent poll to change it. Overlapping scrapes
    share the attribute, so it is a progress indicator only; the final state
    of a given poll is ``PollResult.state``.
    """

    def __init__(self, walker: HierarchyWalker, registry: MetricRegistry,
                 poll_timeout: Optional[float] = 60.0):
        if (walker.strategy is Strategy.HIERARCHICAL) != registry.hierarchy_labels:
            raise ConfigurationError(
                f"{walker.strategy.value} walk does not match registry hierarchy labels"
            )
        self.walker = walker
        self.registry = registry
        self.poll_timeout = poll_timeout
        self.state = PollState.IDLE

    async def collect(self) -> AsyncIterator[Sample]:
        """Stream the samples of one poll"""
        result = await self.poll()
        for sample in result.samples:
            yield sample

    async def poll(self) -> PollResult:
        started = time.monotonic()

        self.state = PollState.LISTING_DATACENTERS
        try:
            datacenters = await self.walker.list_datacenters()
        except InventoryError as e:
            logger.warning("Could not retrieve datacenters list", error=str(e))
            return self._finish(PollState.FAILED, [], PartitionOutcome.FAILED, started)

        self.state = PollState.FANNING_OUT
        queue: asyncio.Queue = asyncio.Queue()
        if self.walker.strategy is Strategy.HIERARCHICAL:
            coros = [self._collect_datacenter(dc, queue) for dc in datacenters]
        else:
            coros = [self._collect_partition(p, queue)
                     for p in self.walker.inventory_partitions()]

        outcomes = await self._join([asyncio.ensure_future(c) for c in coros])

        self.state = PollState.AGGREGATING
        samples = []
        while not queue.empty():
            samples.append(queue.get_nowait())

        return self._finish(PollState.DONE, samples, worst_outcome(outcomes), started)

    async def _join(self, tasks: List[asyncio.Future]) -> List[PartitionOutcome]:
        """Wait for every task; tasks left at the poll deadline count as failed"""
        if not tasks:
            return []

        done, pending = await asyncio.wait(tasks, timeout=self.poll_timeout)

        outcomes = []
        if pending:
            logger.warning("Poll deadline exceeded, cancelling partitions",
                           pending=len(pending), timeout=self.poll_timeout)
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)
            outcomes.extend(PartitionOutcome.FAILED for _ in pending)

        for task in done:
            if task.cancelled() or task.exception() is not None:
                logger.warning("Collection task did not complete",
                               error=None if task.cancelled() else repr(task.exception()))
                outcomes.append(PartitionOutcome.FAILED)
            else:
                outcomes.append(task.result())
        return outcomes

    async def _collect_datacenter(self, datacenter: InventoryNode,
                                  queue: asyncio.Queue) -> PartitionOutcome:
        datastore_task = asyncio.ensure_future(
            self._collect_partition(self.walker.datastore_partition(datacenter), queue)
        )
        try:
            outcomes = []
            try:
                partitions = await self.walker.host_partitions(datacenter)
            except InventoryError as e:
                logger.warning("Could not retrieve clusters list",
                               datacenter=datacenter.name, error=str(e))
                outcomes.append(PartitionOutcome.FAILED)
                partitions = []

            results = await asyncio.gather(
                datastore_task,
                *[self._collect_partition(p, queue) for p in partitions],
                return_exceptions=True
            )
            for result in results:
                if isinstance(result, BaseException):
                    logger.warning("Partition task raised", datacenter=datacenter.name,
                                   error=repr(result))
                    outcomes.append(PartitionOutcome.FAILED)
                else:
                    outcomes.append(result)
            return worst_outcome(outcomes)
        finally:
            if not datastore_task.done():
                datastore_task.cancel()

    async def _collect_partition(self, partition: Partition,
                                 queue: asyncio.Queue) -> PartitionOutcome:
        try:
            snapshots = await self.walker.fetch(partition)
        except InventoryError as e:
            logger.warning("Could not retrieve partition data, vCenter may not be available",
                           partition=partition.describe(), error=str(e))
            return PartitionOutcome.FAILED

        definitions = self.registry.definitions_for(partition.kind)
        try:
            samples = [
                definition.sample(snapshot, partition.hierarchy_values)
                for snapshot in snapshots
                for definition in definitions
            ]
        except Exception as e:
            logger.warning("Could not extract partition samples",
                           partition=partition.describe(), error=repr(e), exc_info=True)
            return PartitionOutcome.FAILED

        for sample in samples:
            queue.put_nowait(sample)

        logger.debug("Partition collected", partition=partition.describe(),
                     objects=len(snapshots), samples=len(samples))
        return PartitionOutcome.OK

    def _finish(self, state: PollState, samples: List[Sample],
                outcome: PartitionOutcome, started: float) -> PollResult:
        available = outcome is PartitionOutcome.OK
        samples.append(Sample(name=AVAILABILITY_METRIC, value=1.0 if available else 0.0))

        self.state = state
        duration = time.monotonic() - started
        logger.info("Poll finished", state=state.value, available=available,
                    samples=len(samples), duration_ms=round(duration * 1000, 1))

        return PollResult(
            samples=tuple(samples),
            available=available,
            state=state,
            duration=duration
        )
