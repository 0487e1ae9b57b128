"""
Metric Definition Registry

Declares the gauges exposed for each inventory object kind. Every definition
pairs a value extraction function with an ordered list of label extraction
functions; hierarchy labels (datacenter, cluster) are appended by the caller
at emission time.

Author: uldyssian-sh
License: MIT
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from .exceptions import MetricDefinitionError


ESXI_METRIC_PREFIX = "esxi_"
DATASTORE_METRIC_PREFIX = "datastore_"

BYTES_PER_MEBIBYTE = 1024 * 1024


class ObjectKind(Enum):
    """Inventory object kinds, valued by their vSphere managed object type"""
    HOST = "HostSystem"
    DATASTORE = "Datastore"


ValueFn = Callable[[Any], float]
LabelFn = Callable[[Any], str]


@dataclass(frozen=True)
class Sample:
    """One metric reading for one object at poll time"""
    name: str
    value: float
    labels: Tuple[str, ...] = ()


@dataclass(frozen=True)
class MetricDefinition:
    """Gauge declaration for one object kind"""
    kind: ObjectKind
    name: str
    help: str
    label_names: Tuple[str, ...]
    value_fn: ValueFn
    label_fns: Tuple[LabelFn, ...]

    def value(self, snapshot: Any) -> float:
        return float(self.value_fn(snapshot))

    def label_values(self, snapshot: Any,
                     hierarchy_values: Sequence[str] = ()) -> Tuple[str, ...]:
        values = tuple(str(fn(snapshot)) for fn in self.label_fns)
        values += tuple(hierarchy_values)
        if len(values) != len(self.label_names):
            raise MetricDefinitionError(
                f"{self.name} expects {len(self.label_names)} label values, "
                f"got {len(values)}"
            )
        return values

    def sample(self, snapshot: Any, hierarchy_values: Sequence[str] = ()) -> Sample:
        """Apply this definition to one snapshot"""
        return Sample(
            name=self.name,
            value=self.value(snapshot),
            labels=self.label_values(snapshot, hierarchy_values),
        )


# Host extraction functions

# config, hardware and quickStats are optional in HostListSummary and stay
# unset for hosts that were added but never connected

def host_name(host: Any) -> str:
    config = host.summary.config
    return config.name if config else host.moid


def host_memory_total_bytes(host: Any) -> float:
    hardware = host.summary.hardware
    return float(hardware.memorySize or 0) if hardware else 0.0


def host_memory_usage_bytes(host: Any) -> float:
    # quickStats reports MiB
    stats = host.summary.quickStats
    usage = (stats.overallMemoryUsage or 0) if stats else 0
    return float(usage * BYTES_PER_MEBIBYTE)


def host_cpu_total_mhz(host: Any) -> float:
    hardware = host.summary.hardware
    if not hardware:
        return 0.0
    return float(int(hardware.cpuMhz or 0) * int(hardware.numCpuCores or 0))


def host_cpu_usage_mhz(host: Any) -> float:
    stats = host.summary.quickStats
    return float((stats.overallCpuUsage or 0) if stats else 0)


def _connection_state_is(state: str) -> ValueFn:
    def getter(host: Any) -> float:
        return 1.0 if str(host.summary.runtime.connectionState) == state else 0.0
    getter.__name__ = f"host_{state}_state"
    return getter


host_connected_state = _connection_state_is("connected")
host_disconnected_state = _connection_state_is("disconnected")
host_not_responding_state = _connection_state_is("notResponding")


# Datastore extraction functions

def datastore_name(datastore: Any) -> str:
    return datastore.summary.name


def datastore_capacity_bytes(datastore: Any) -> float:
    return float(datastore.summary.capacity)


def datastore_free_space_bytes(datastore: Any) -> float:
    return float(datastore.summary.freeSpace)


def datastore_accessibility(datastore: Any) -> float:
    return 1.0 if datastore.summary.accessible else 0.0


HOST_LABEL_NAMES = ("host",)
DATASTORE_LABEL_NAMES = ("name",)

HIERARCHY_LABEL_NAMES: Dict[ObjectKind, Tuple[str, ...]] = {
    ObjectKind.HOST: ("datacenter", "cluster"),
    ObjectKind.DATASTORE: ("datacenter",),
}


class MetricRegistry:
    """Ordered metric definitions per object kind"""

    def __init__(self, hierarchy_labels: bool = False):
        self.hierarchy_labels = hierarchy_labels
        self._definitions: Dict[ObjectKind, List[MetricDefinition]] = {
            kind: [] for kind in ObjectKind
        }
        self._frozen = False

    def hierarchy_label_names(self, kind: ObjectKind) -> Tuple[str, ...]:
        """Labels derived from the datacenter/cluster walk for this kind"""
        if not self.hierarchy_labels:
            return ()
        return HIERARCHY_LABEL_NAMES[kind]

    def register(self, kind: ObjectKind, name: str, help: str,
                 label_names: Sequence[str], value_fn: ValueFn,
                 label_fns: Sequence[LabelFn]) -> MetricDefinition:
        """Declare a gauge; label_names must include the hierarchy labels"""
        if self._frozen:
            raise MetricDefinitionError(f"Registry is frozen, cannot register {name}")

        definition = MetricDefinition(
            kind=kind,
            name=name,
            help=help,
            label_names=tuple(label_names),
            value_fn=value_fn,
            label_fns=tuple(label_fns),
        )
        self._definitions[kind].append(definition)
        return definition

    def freeze(self) -> "MetricRegistry":
        self._frozen = True
        return self

    @property
    def frozen(self) -> bool:
        return self._frozen

    def definitions_for(self, kind: ObjectKind) -> Tuple[MetricDefinition, ...]:
        return tuple(self._definitions[kind])

    @property
    def host_metrics(self) -> Tuple[MetricDefinition, ...]:
        return self.definitions_for(ObjectKind.HOST)

    @property
    def datastore_metrics(self) -> Tuple[MetricDefinition, ...]:
        return self.definitions_for(ObjectKind.DATASTORE)

    def families(self) -> Tuple[MetricDefinition, ...]:
        """Every definition, hosts first"""
        return tuple(d for kind in ObjectKind for d in self._definitions[kind])

    def get(self, name: str) -> Optional[MetricDefinition]:
        for definition in self.families():
            if definition.name == name:
                return definition
        return None


def build_registry(hierarchy_labels: bool = False) -> MetricRegistry:
    """Build the frozen registry of host and datastore gauges"""
    registry = MetricRegistry(hierarchy_labels=hierarchy_labels)

    host_labels = HOST_LABEL_NAMES + registry.hierarchy_label_names(ObjectKind.HOST)
    host_label_fns = (host_name,)

    host_gauges = [
        ("memory_total_bytes", "Size of the esxi memory", host_memory_total_bytes),
        ("memory_usage_bytes", "Memory usage of the ESXi host", host_memory_usage_bytes),
        ("cpu_total_mhz", "Total cpu available", host_cpu_total_mhz),
        ("cpu_usage_mhz", "CPU usage", host_cpu_usage_mhz),
        ("connected_state", "Esxi host connected state", host_connected_state),
        ("disconnected_state", "Esxi host disconnected state", host_disconnected_state),
        ("not_responding_state", "Esxi host not responding state", host_not_responding_state),
    ]
    for suffix, help_text, value_fn in host_gauges:
        registry.register(
            ObjectKind.HOST, ESXI_METRIC_PREFIX + suffix, help_text,
            host_labels, value_fn, host_label_fns,
        )

    datastore_labels = DATASTORE_LABEL_NAMES + registry.hierarchy_label_names(ObjectKind.DATASTORE)
    datastore_label_fns = (datastore_name,)

    datastore_gauges = [
        ("capacity_bytes", "Datastore capacity", datastore_capacity_bytes),
        ("free_space_bytes", "Datastore free space", datastore_free_space_bytes),
        ("accessibility", "Datastore connectivity status", datastore_accessibility),
    ]
    for suffix, help_text, value_fn in datastore_gauges:
        registry.register(
            ObjectKind.DATASTORE, DATASTORE_METRIC_PREFIX + suffix, help_text,
            datastore_labels, value_fn, datastore_label_fns,
        )

    return registry.freeze()
