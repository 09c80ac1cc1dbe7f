"""Node metrics collector for SLURM.

Aggregates node records along two axes, per partition and cluster wide,
and turns the aggregates into metric samples for CPUs, memory, load and
node states.

Partition aggregates are not a partition of the cluster totals: a node in
several partitions contributes its full values to each of them.
"""

from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field

from ..metrics import MetricDescriptor, MetricSample
from ..types import NodeRecord


@dataclass
class PartitionAggregate:
    """Resource sums over every node listed in a partition."""

    cpus: float = 0.0
    real_memory: float = 0.0
    free_memory: float = 0.0
    alloc_memory: float = 0.0
    alloc_cpus: float = 0.0
    idle_cpus: float = 0.0
    weight: float = 0.0
    cpu_load: float = 0.0


@dataclass
class CpuSummary:
    """Aggregated CPU metrics across all nodes."""

    total: float = 0.0
    idle: float = 0.0
    load: float = 0.0
    per_state: dict[str, float] = field(default_factory=dict)


@dataclass
class MemSummary:
    """Aggregated memory metrics across all nodes."""

    alloc_memory: float = 0.0
    free_memory: float = 0.0
    real_memory: float = 0.0


def partition_aggregates(
    nodes: Iterable[NodeRecord],
) -> dict[str, PartitionAggregate]:
    """Sum node resources per partition.

    Args:
        nodes: Node records from a single collection cycle.

    Returns:
        Dictionary mapping partition name to its aggregate.
    """
    partitions: dict[str, PartitionAggregate] = {}

    for node in nodes:
        for name in node.partitions:
            partition = partitions.setdefault(name, PartitionAggregate())
            partition.cpus += node.cpus
            partition.real_memory += node.real_memory
            partition.free_memory += node.free_memory
            partition.alloc_memory += node.alloc_memory
            partition.alloc_cpus += node.alloc_cpus
            partition.idle_cpus += node.idle_cpus
            partition.weight += node.weight
            partition.cpu_load += node.cpu_load

    return partitions


def cpu_summary(nodes: Iterable[NodeRecord]) -> CpuSummary:
    """Aggregate CPU metrics across all nodes.

    Each node's CPU count is added to the bucket of its state string as
    reported, without normalisation.

    Args:
        nodes: Node records from a single collection cycle.

    Returns:
        Aggregated CPU metrics.
    """
    summary = CpuSummary()

    for node in nodes:
        summary.total += node.cpus
        summary.idle += node.idle_cpus
        summary.load += node.cpu_load
        summary.per_state[node.state] = summary.per_state.get(node.state, 0.0) + node.cpus

    return summary


def mem_summary(nodes: Iterable[NodeRecord]) -> MemSummary:
    """Aggregate memory metrics across all nodes."""
    summary = MemSummary()

    for node in nodes:
        summary.alloc_memory += node.alloc_memory
        summary.free_memory += node.free_memory
        summary.real_memory += node.real_memory

    return summary


# Partition metrics, paired with the PartitionAggregate field they export
PARTITION_CPUS = MetricDescriptor(
    "slurm_partition_total_cpus", "Total cpus per partition", labels=("partition",)
)
PARTITION_REAL_MEMORY = MetricDescriptor(
    "slurm_partition_real_mem", "Real mem per partition", labels=("partition",)
)
PARTITION_FREE_MEMORY = MetricDescriptor(
    "slurm_partition_free_mem", "Free mem per partition", labels=("partition",)
)
PARTITION_ALLOC_MEMORY = MetricDescriptor(
    "slurm_partition_alloc_mem", "Alloc mem per partition", labels=("partition",)
)
PARTITION_ALLOC_CPUS = MetricDescriptor(
    "slurm_partition_alloc_cpus", "Alloc cpus per partition", labels=("partition",)
)
PARTITION_IDLE_CPUS = MetricDescriptor(
    "slurm_partition_idle_cpus", "Idle cpus per partition", labels=("partition",)
)
PARTITION_WEIGHT = MetricDescriptor(
    "slurm_partition_weight", "Total node weight per partition", labels=("partition",)
)
PARTITION_CPU_LOAD = MetricDescriptor(
    "slurm_partition_cpu_load", "Total cpu load per partition", labels=("partition",)
)

PARTITION_FIELDS = (
    (PARTITION_CPUS, "cpus"),
    (PARTITION_REAL_MEMORY, "real_memory"),
    (PARTITION_FREE_MEMORY, "free_memory"),
    (PARTITION_ALLOC_MEMORY, "alloc_memory"),
    (PARTITION_ALLOC_CPUS, "alloc_cpus"),
    (PARTITION_IDLE_CPUS, "idle_cpus"),
    (PARTITION_WEIGHT, "weight"),
    (PARTITION_CPU_LOAD, "cpu_load"),
)

# Cluster CPU summary
TOTAL_CPUS = MetricDescriptor("slurm_cpus_total", "Total cpus")
TOTAL_IDLE_CPUS = MetricDescriptor("slurm_cpus_idle", "Total idle cpus")
TOTAL_CPU_LOAD = MetricDescriptor("slurm_cpu_load", "Total cpu load")
CPUS_PER_STATE = MetricDescriptor(
    "slurm_cpus_per_state",
    "Cpus per state i.e alloc, mixed, draining, etc.",
    labels=("state",),
)

# Cluster memory summary
TOTAL_REAL_MEMORY = MetricDescriptor("slurm_mem_real", "Total real mem")
TOTAL_FREE_MEMORY = MetricDescriptor("slurm_mem_free", "Total free mem")
TOTAL_ALLOC_MEMORY = MetricDescriptor("slurm_mem_alloc", "Total alloc mem")

DESCRIPTORS: tuple[MetricDescriptor, ...] = (
    *(descriptor for descriptor, _ in PARTITION_FIELDS),
    TOTAL_CPUS,
    TOTAL_IDLE_CPUS,
    TOTAL_CPU_LOAD,
    CPUS_PER_STATE,
    TOTAL_REAL_MEMORY,
    TOTAL_FREE_MEMORY,
    TOTAL_ALLOC_MEMORY,
)


def generate_samples(nodes: list[NodeRecord]) -> Iterator[MetricSample]:
    """Generate metric samples from node records.

    Partition samples are only emitted for values greater than zero, so an
    empty partition field produces no time series. Cluster-wide CPU, state
    and memory samples are always emitted.

    Args:
        nodes: Node records from a single collection cycle.

    Yields:
        MetricSample objects.
    """
    for partition, aggregate in partition_aggregates(nodes).items():
        for descriptor, attribute in PARTITION_FIELDS:
            value = getattr(aggregate, attribute)
            if value > 0:
                yield MetricSample.of(descriptor, value, partition)

    cpus = cpu_summary(nodes)
    yield MetricSample.of(TOTAL_CPUS, cpus.total)
    yield MetricSample.of(TOTAL_IDLE_CPUS, cpus.idle)
    yield MetricSample.of(TOTAL_CPU_LOAD, cpus.load)
    for state, count in cpus.per_state.items():
        yield MetricSample.of(CPUS_PER_STATE, count, state)

    memory = mem_summary(nodes)
    yield MetricSample.of(TOTAL_REAL_MEMORY, memory.real_memory)
    yield MetricSample.of(TOTAL_FREE_MEMORY, memory.free_memory)
    yield MetricSample.of(TOTAL_ALLOC_MEMORY, memory.alloc_memory)
